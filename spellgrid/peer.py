"""Host-held rooms relayed over redis streams.

The host peer owns the only authoritative Session and claims a short room
code. Guests write JOIN/INTENT/LEAVE entries to the host inbox and read
host broadcasts from their own mailbox stream, keeping a mirror Session
that is never authoritative.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import string
import time
from collections.abc import Callable, Sequence
from typing import Annotated, Literal, Union, assert_never

import redis
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from spellgrid.api.messages import (
    ErrorMessage,
    GameEnded,
    GameStarted,
    GameUpdated,
    PlayerJoined,
    PlayerLeft,
    PlayerReady,
    ROOM_INTENT_TYPES,
    PowerUpUsed,
    RoomIntent,
    RoomJoined,
    RoomList,
    RoomUpdated,
    RoundEnded,
    TimerUpdate,
    TurnStarted,
    WordAccepted,
    parse_client_intent,
)
from spellgrid.api.models import LOBBY_PHASES, PLAY_PHASES, GameConfig, Player, RoomSnapshot, SessionPhase
from spellgrid.authority import DEFAULT_MAX_PLAYERS, Delivery, Room, RoomAuthority
from spellgrid.core.board import Board
from spellgrid.core.dictionary import Dictionary
from spellgrid.errors import (
    ConnectionTimeout,
    GameError,
    InvalidAction,
    PeerUnavailable,
    RoomCodeInUse,
    RoomNotFound,
    error_for_code,
)
from spellgrid.lock import claim_room_code, refresh_room_code, release_room_code, room_code_owner
from spellgrid.session import Session
from spellgrid.streams import Mailbox, host_inbox_key, publish_many, read_after


logger = logging.getLogger(__name__)

ROOM_CODE_LENGTH = 6
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_CODE_ATTEMPTS = 5
DEFAULT_CONNECT_TIMEOUT = 12.0


def generate_room_code(rng: random.Random) -> str:
    return "".join(rng.choice(ROOM_CODE_ALPHABET) for _ in range(ROOM_CODE_LENGTH))


def normalize_room_code(code: str) -> str:
    normalized = code.strip().upper()
    if len(normalized) != ROOM_CODE_LENGTH or any(c not in ROOM_CODE_ALPHABET for c in normalized):
        raise RoomNotFound(f"Invalid room code: {code!r}")
    return normalized


# ---- host -> guest ----


class PeerPlayerJoined(BaseModel):
    type: Literal["PLAYER_JOINED"] = "PLAYER_JOINED"
    player: Player


class PeerPlayerLeft(BaseModel):
    type: Literal["PLAYER_LEFT"] = "PLAYER_LEFT"
    player_id: str


class PeerPlayerReady(BaseModel):
    type: Literal["PLAYER_READY"] = "PLAYER_READY"
    player_id: str
    ready: bool


class PeerRoomState(BaseModel):
    type: Literal["ROOM_STATE"] = "ROOM_STATE"
    room: RoomSnapshot
    # Set only on the copy sent to a player whose join was just accepted.
    joined_player_id: str | None = None


class PeerGameConfig(BaseModel):
    type: Literal["GAME_CONFIG"] = "GAME_CONFIG"
    config: GameConfig
    duration: int
    start_time: float


class PeerRoundStart(BaseModel):
    type: Literal["ROUND_START"] = "ROUND_START"
    round: int
    board: Board


class PeerTurnStart(BaseModel):
    type: Literal["TURN_START"] = "TURN_START"
    player_id: str
    round: int
    turn_time_remaining: int


class PeerTimerUpdate(BaseModel):
    type: Literal["TIMER_UPDATE"] = "TIMER_UPDATE"
    turn_time_remaining: int
    elapsed: float


class PeerBoardUpdate(BaseModel):
    type: Literal["BOARD_UPDATE"] = "BOARD_UPDATE"
    board: Board
    players: list[Player]
    current_round: int
    current_player_id: str | None = None
    chain: list[tuple[int, int]] = Field(default_factory=list)
    current_word: str = ""
    current_score: int = 0


class PeerWordSubmitted(BaseModel):
    type: Literal["WORD_SUBMITTED"] = "WORD_SUBMITTED"
    player_id: str
    word: str
    score: int
    gems: int


class PeerPowerUpUsed(BaseModel):
    type: Literal["POWER_UP_USED"] = "POWER_UP_USED"
    player_id: str
    power_up: Literal["shuffle", "replace_tile"]


class PeerRoundEnd(BaseModel):
    type: Literal["ROUND_END"] = "ROUND_END"
    round: int
    round_scores: list[int]
    players: list[Player]


class PeerGameEnd(BaseModel):
    type: Literal["GAME_END"] = "GAME_END"
    players: list[Player]
    winner: Player | None = None


class PeerError(BaseModel):
    type: Literal["ERROR"] = "ERROR"
    code: str
    message: str


# ---- guest -> host ----


class PeerJoin(BaseModel):
    type: Literal["JOIN"] = "JOIN"
    player_id: str
    name: str


class PeerIntent(BaseModel):
    type: Literal["INTENT"] = "INTENT"
    player_id: str
    intent: dict[str, object]


class PeerLeave(BaseModel):
    type: Literal["LEAVE"] = "LEAVE"
    player_id: str


HostMessage = Annotated[
    Union[
        PeerPlayerJoined,
        PeerPlayerLeft,
        PeerPlayerReady,
        PeerRoomState,
        PeerGameConfig,
        PeerRoundStart,
        PeerTurnStart,
        PeerTimerUpdate,
        PeerBoardUpdate,
        PeerWordSubmitted,
        PeerPowerUpUsed,
        PeerRoundEnd,
        PeerGameEnd,
        PeerError,
    ],
    Field(discriminator="type"),
]

GuestMessage = Annotated[Union[PeerJoin, PeerIntent, PeerLeave], Field(discriminator="type")]

_host_message_adapter: TypeAdapter[HostMessage] = TypeAdapter(HostMessage)
_guest_message_adapter: TypeAdapter[GuestMessage] = TypeAdapter(GuestMessage)


def encode_peer_message(msg: BaseModel) -> dict[str, str]:
    return {"type": str(getattr(msg, "type")), "data": msg.model_dump_json()}


def decode_host_message(fields: dict[str, str]) -> HostMessage:
    return _host_message_adapter.validate_json(fields["data"])


def decode_guest_message(fields: dict[str, str]) -> GuestMessage:
    return _guest_message_adapter.validate_json(fields["data"])


def to_peer_messages(msg: BaseModel) -> list[BaseModel]:
    """Translate an authority broadcast into the peer message union."""

    match msg:
        case RoomJoined(player_id=player_id, room=room):
            return [PeerRoomState(room=room, joined_player_id=player_id)]
        case RoomUpdated(room=room):
            return [PeerRoomState(room=room)]
        case RoomList():
            return []
        case PlayerJoined(player=player):
            return [PeerPlayerJoined(player=player)]
        case PlayerLeft(player_id=player_id):
            return [PeerPlayerLeft(player_id=player_id)]
        case PlayerReady(player_id=player_id, ready=ready):
            return [PeerPlayerReady(player_id=player_id, ready=ready)]
        case GameStarted(board=board, duration=duration, start_time=start_time, config=config):
            return [
                PeerGameConfig(config=config, duration=duration, start_time=start_time),
                PeerRoundStart(round=1, board=board),
            ]
        case TurnStarted(player_id=player_id, round=rnd, turn_time_remaining=remaining):
            return [PeerTurnStart(player_id=player_id, round=rnd, turn_time_remaining=remaining)]
        case TimerUpdate(turn_time_remaining=remaining, elapsed=elapsed):
            return [PeerTimerUpdate(turn_time_remaining=remaining, elapsed=elapsed)]
        case GameUpdated():
            return [PeerBoardUpdate.model_validate(msg.model_dump(exclude={"type"}))]
        case WordAccepted(player_id=player_id, word=word, score=pts, gems=gems):
            return [PeerWordSubmitted(player_id=player_id, word=word, score=pts, gems=gems)]
        case PowerUpUsed(player_id=player_id, power_up=power_up):
            return [PeerPowerUpUsed(player_id=player_id, power_up=power_up)]
        case RoundEnded(round=rnd, round_scores=round_scores, players=players):
            return [PeerRoundEnd(round=rnd, round_scores=round_scores, players=players)]
        case GameEnded(players=players, winner=winner):
            return [PeerGameEnd(players=players, winner=winner)]
        case ErrorMessage(code=code, message=message):
            return [PeerError(code=code, message=message)]
        case _:
            raise TypeError(f"Unexpected broadcast: {type(msg).__name__}")


class PeerHost(RoomAuthority):
    """Authority for a single host-held room.

    The host player acts through `handle_intent` directly; everyone else is
    served by `pump_once`, which drains the host inbox stream.
    """

    def __init__(
        self,
        *,
        r: redis.Redis,
        dictionary: Dictionary,
        host_id: str,
        host_name: str,
        room_name: str = "",
        config: GameConfig | None = None,
        max_players: int = DEFAULT_MAX_PLAYERS,
        rng: random.Random | None = None,
        clock: Callable[[], float] = time.time,
        poll_interval: float = 0.1,
    ) -> None:
        super().__init__(dictionary=dictionary, config=config, max_players=max_players, clock=clock)
        self.r = r
        self.host_id = host_id
        self.host_name = host_name
        self.room_name = room_name or f"{host_name}'s room"
        self.rng = rng or random.Random()
        self.poll_interval = poll_interval
        self.code: str | None = None
        self._last_inbox_id = "0-0"
        self._serve_task: asyncio.Task[None] | None = None
        self._last_tick = 0.0

    @property
    def inbox_key(self) -> str:
        if self.code is None:
            raise InvalidAction("Peer host is not open")
        return host_inbox_key(self.code)

    async def open(self, *, serve: bool = True) -> str:
        """Claim a free room code, create the room and seat the host."""

        for attempt in range(MAX_CODE_ATTEMPTS):
            code = generate_room_code(self.rng)
            try:
                claim_room_code(r=self.r, code=code, owner=self.host_id)
            except RoomCodeInUse:
                logger.info("Room code %s taken (attempt %s)", code, attempt + 1)
                continue
            self.code = code
            break
        else:
            raise RoomCodeInUse("Could not claim a free room code")

        self.new_room(code, self.room_name)
        await self.join_room(code, self.host_id, self.host_name)
        if serve:
            self._serve_task = asyncio.create_task(self._serve())
        logger.info("Peer host %s opened room %s", self.host_id, code)
        return code

    async def close(self) -> None:
        task, self._serve_task = self._serve_task, None
        if task is not None:
            task.cancel()
            if task is not asyncio.current_task():
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        if self.code is not None:
            release_room_code(r=self.r, code=self.code, owner=self.host_id)
            self.rooms.pop(self.code, None)
            logger.info("Peer host %s closed room %s", self.host_id, self.code)
            self.code = None

    async def _serve(self) -> None:
        while True:
            try:
                await self.pump_once()
                now = self.clock()
                if now - self._last_tick >= 1.0:
                    self._last_tick = now
                    await self.tick(now)
                    if self.code is not None:
                        refresh_room_code(r=self.r, code=self.code, owner=self.host_id)
            except Exception:
                logger.exception("Peer host loop failed")
            await asyncio.sleep(self.poll_interval)

    async def publish(self, deliveries: Sequence[Delivery]) -> None:
        if self.code is None:
            return
        entries: list[tuple[str, dict[str, str]]] = []
        for d in deliveries:
            recipients = self.rooms[self.code].member_ids if d.everyone and self.code in self.rooms else d.to
            for peer_msg in to_peer_messages(d.message):
                fields = encode_peer_message(peer_msg)
                entries.extend((Mailbox(room_code=self.code, player_id=pid).key, fields) for pid in recipients)
        if entries:
            publish_many(r=self.r, entries=entries)

    async def room_deleted(self, room: Room) -> None:
        await self.close()

    async def pump_once(self) -> int:
        """Handle every pending guest entry; returns how many were processed."""

        if self.code is None:
            return 0
        entries = read_after(r=self.r, key=self.inbox_key, last_id=self._last_inbox_id)
        for entry_id, fields in entries:
            self._last_inbox_id = entry_id
            await self._handle_entry(fields)
        return len(entries)

    async def _handle_entry(self, fields: dict[str, str]) -> None:
        code = self.code
        if code is None:
            return
        try:
            msg = decode_guest_message(fields)
        except (KeyError, ValidationError):
            logger.warning("Dropping malformed peer entry in %s", code)
            return

        try:
            match msg:
                case PeerJoin(player_id=player_id, name=name):
                    await self.join_room(code, player_id, name)
                case PeerIntent(player_id=player_id, intent=raw):
                    intent = parse_client_intent(raw)
                    if not isinstance(intent, ROOM_INTENT_TYPES):
                        raise InvalidAction(f"'{intent.type}' is not available in peer rooms")
                    await self.handle_intent(code, player_id, intent)
                case PeerLeave(player_id=player_id):
                    await self.leave_room(code, player_id)
                case _:
                    assert_never(msg)
        except ValidationError:
            await self.report_error(msg.player_id, InvalidAction("Malformed intent"))
        except GameError as e:
            await self.report_error(msg.player_id, e, action=msg.type)


class PeerGuest:
    """Guest side of a peer room: sends intents, mirrors host broadcasts."""

    def __init__(
        self,
        *,
        r: redis.Redis,
        code: str,
        player_id: str,
        name: str,
        dictionary: Dictionary,
        poll_interval: float = 0.1,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        self.r = r
        self.code = normalize_room_code(code)
        self.connect_timeout = connect_timeout
        self.player_id = player_id
        self.name = name
        self.poll_interval = poll_interval
        self.dictionary = dictionary
        self.session = Session(dictionary)
        self.session.join_lobby()
        self.room: RoomSnapshot | None = None
        self.turn_time_remaining = 0
        self.received: list[HostMessage] = []
        self.results: PeerGameEnd | None = None
        self.last_error: PeerError | None = None
        self._last_id = "0-0"

    @property
    def mailbox(self) -> Mailbox:
        return Mailbox(room_code=self.code, player_id=self.player_id)

    def _send(self, msg: BaseModel) -> None:
        publish_many(r=self.r, entries=[(host_inbox_key(self.code), encode_peer_message(msg))])

    def request_join(self) -> None:
        if room_code_owner(r=self.r, code=self.code) is None:
            self.session.join_failed()
            raise PeerUnavailable()
        self._send(PeerJoin(player_id=self.player_id, name=self.name))

    async def await_join(self, timeout: float | None = None) -> RoomSnapshot:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + (self.connect_timeout if timeout is None else timeout)
        while True:
            self.poll()
            if self.session.phase == SessionPhase.waiting_room and self.room is not None:
                return self.room
            if self.last_error is not None:
                err = self.last_error
                self.session.join_failed()
                raise error_for_code(err.code, err.message)
            if loop.time() >= deadline:
                self.session.join_failed()
                raise ConnectionTimeout()
            await asyncio.sleep(self.poll_interval)

    async def connect(self, timeout: float | None = None) -> RoomSnapshot:
        self.request_join()
        return await self.await_join(timeout)

    def send(self, intent: RoomIntent) -> None:
        self._send(PeerIntent(player_id=self.player_id, intent=intent.model_dump(mode="json")))

    def leave(self) -> None:
        self._send(PeerLeave(player_id=self.player_id))
        if self.session.phase in LOBBY_PHASES:
            self.session.leave_lobby()

    def poll(self) -> list[HostMessage]:
        """Apply every new host broadcast to the mirror session."""

        new: list[HostMessage] = []
        for entry_id, fields in read_after(r=self.r, key=self.mailbox.key, last_id=self._last_id):
            self._last_id = entry_id
            msg = decode_host_message(fields)
            self._apply(msg)
            new.append(msg)
        self.received.extend(new)
        return new

    def _apply(self, msg: HostMessage) -> None:
        session = self.session
        match msg:
            case PeerRoomState(room=room, joined_player_id=joined):
                self.room = room
                if session.phase == SessionPhase.game_over and room.phase == SessionPhase.host_lobby:
                    # Host started a rematch lobby; follow it with a fresh mirror.
                    session = self.session = Session(self.dictionary)
                    session.join_lobby()
                    session.lobby_joined()
                if session.phase in LOBBY_PHASES or session.phase == SessionPhase.main_menu:
                    session.players = {p.id: p.model_copy() for p in room.players}
                if joined == self.player_id and session.phase == SessionPhase.join_lobby:
                    session.lobby_joined()
            case PeerPlayerJoined() | PeerPlayerLeft() | PeerPlayerReady():
                # The ROOM_STATE that follows carries the full roster.
                pass
            case PeerGameConfig(config=config):
                session.config = config
            case PeerRoundStart(board=board):
                if session.phase == SessionPhase.waiting_room:
                    session.start_game(board=board)
                else:
                    session.sync(
                        board=board,
                        players=list(session.players.values()),
                        current_round=msg.round,
                        current_player_id=None,
                    )
            case PeerTurnStart(turn_time_remaining=remaining):
                self.turn_time_remaining = remaining
            case PeerTimerUpdate(turn_time_remaining=remaining):
                self.turn_time_remaining = remaining
            case PeerBoardUpdate():
                if session.phase in PLAY_PHASES:
                    session.sync(
                        board=msg.board,
                        players=msg.players,
                        current_round=msg.current_round,
                        current_player_id=msg.current_player_id,
                    )
            case PeerWordSubmitted() | PeerPowerUpUsed() | PeerRoundEnd():
                pass
            case PeerGameEnd():
                self.results = msg
                if session.phase in PLAY_PHASES:
                    session.force_end()
            case PeerError():
                self.last_error = msg
            case _:
                assert_never(msg)
