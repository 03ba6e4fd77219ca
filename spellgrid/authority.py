"""Shared room authority: one canonical Session per room, one writer at a time.

`RoomRegistry` (server-held rooms) and `PeerHost` (host-held room) both
subclass `RoomAuthority`; they differ only in how rooms are created and how
deliveries leave the process.
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import assert_never

from pydantic import BaseModel

from spellgrid.api.messages import (
    AddLetter,
    ErrorMessage,
    GameEnded,
    GameStarted,
    GameUpdated,
    LeaveRoom,
    PlayerJoined,
    PlayerLeft,
    PlayerReady,
    PowerUpUsed,
    RemoveLetter,
    RoomIntent,
    RoomJoined,
    RoomUpdated,
    RoundEnded,
    StartGame,
    SubmitWord,
    TimerUpdate,
    ToggleReady,
    TurnStarted,
    UseReplaceTile,
    UseShuffle,
    WordAccepted,
)
from spellgrid.api.models import LOBBY_PHASES, PLAY_PHASES, GameConfig, RoomSnapshot, RoomSummary, SessionPhase
from spellgrid.core.dictionary import Dictionary
from spellgrid.errors import GameError, GameInProgress, NameRequired, RoomFull, RoomNotFound
from spellgrid.session import Session, TurnAdvance
from spellgrid.turn_processing.validators import ValidationContext, pipeline_for_action


logger = logging.getLogger(__name__)

DEFAULT_MAX_PLAYERS = 8


@dataclass(slots=True)
class Room:
    id: str
    name: str
    session: Session
    max_players: int = DEFAULT_MAX_PLAYERS
    created_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    start_time: float | None = None
    # Clock reading the turn countdown has been charged up to.
    ticked_at: float | None = None
    duration: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def member_ids(self) -> tuple[str, ...]:
        return tuple(self.session.players)

    def summary(self) -> RoomSummary:
        return RoomSummary(
            id=self.id,
            name=self.name,
            player_count=len(self.session.players),
            max_players=self.max_players,
        )

    def snapshot(self) -> RoomSnapshot:
        return RoomSnapshot(
            id=self.id,
            name=self.name,
            players=[p.model_copy() for p in self.session.players.values()],
            max_players=self.max_players,
            phase=self.session.phase,
        )


@dataclass(frozen=True, slots=True)
class Delivery:
    """One outbound message and who gets it.

    `everyone` means every connected client, not just room members.
    """

    message: BaseModel
    to: tuple[str, ...] = ()
    everyone: bool = False


def game_duration(config: GameConfig, num_players: int) -> int:
    if config.game_duration is not None:
        return config.game_duration
    return config.total_rounds * config.turns_per_player * max(1, num_players) * config.turn_duration


def game_updated(session: Session) -> GameUpdated:
    snap = session.snapshot()
    return GameUpdated(
        board=snap.board,
        players=snap.players,
        current_round=snap.current_round,
        current_player_id=snap.current_player_id,
        chain=snap.chain,
        current_word=snap.current_word,
        current_score=snap.current_score,
    )


class RoomAuthority(ABC):
    def __init__(
        self,
        *,
        dictionary: Dictionary,
        config: GameConfig | None = None,
        max_players: int = DEFAULT_MAX_PLAYERS,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.dictionary = dictionary
        self.config = config or GameConfig()
        self.max_players = max_players
        self.clock = clock
        self.rooms: dict[str, Room] = {}

    @abstractmethod
    async def publish(self, deliveries: Sequence[Delivery]) -> None:
        raise NotImplementedError

    async def room_deleted(self, room: Room) -> None:
        """Hook run after an empty room is dropped."""

    def get_room(self, room_id: str) -> Room:
        room = self.rooms.get(room_id)
        if room is None:
            raise RoomNotFound()
        return room

    def new_room(self, room_id: str, name: str, *, seed: int | None = None) -> Room:
        session = Session(self.dictionary, self.config, seed=seed, session_id=room_id)
        session.host_lobby()
        room = Room(id=room_id, name=name, session=session, max_players=self.max_players)
        self.rooms[room_id] = room
        logger.info("Room %s (%s) created", room_id, name)
        return room

    async def report_error(self, player_id: str, err: GameError, *, action: str = "") -> None:
        logger.info("Rejected %s from %s: %s", action or "intent", player_id, err.code)
        await self.publish([Delivery(ErrorMessage(code=err.code, message=err.message), to=(player_id,))])

    # ---- roster ----

    def check_admission(self, room: Room, player_id: str) -> None:
        """Raise if `player_id` could not join `room` right now."""

        session = room.session
        if player_id in session.players:
            return
        if session.phase not in LOBBY_PHASES:
            raise GameInProgress()
        if len(session.players) >= room.max_players:
            raise RoomFull()

    async def join_room(self, room_id: str, player_id: str, name: str) -> RoomSnapshot:
        if not name.strip():
            raise NameRequired()
        room = self.get_room(room_id)
        async with room.lock:
            session = room.session
            is_new = player_id not in session.players
            if is_new:
                self.check_admission(room, player_id)
                session.add_player(player_id, name.strip(), is_host=not session.players)
                logger.info("Player %s joined room %s", player_id, room_id)

            snapshot = room.snapshot()
            player = session.players[player_id]
            deliveries = [Delivery(RoomJoined(player_id=player_id, room=snapshot), to=(player_id,))]
            if is_new:
                others = tuple(pid for pid in room.member_ids if pid != player_id)
                deliveries.append(Delivery(PlayerJoined(player=player), to=others))
                deliveries.append(Delivery(RoomUpdated(room=snapshot), to=others))
            await self.publish(deliveries)
            return snapshot

    async def leave_room(self, room_id: str, player_id: str) -> None:
        room = self.get_room(room_id)
        async with room.lock:
            session = room.session
            session.remove_player(player_id)
            logger.info("Player %s left room %s", player_id, room_id)

            if not session.players:
                self.rooms.pop(room_id, None)
                logger.info("Room %s deleted (empty)", room_id)
            else:
                members = room.member_ids
                deliveries = [
                    Delivery(PlayerLeft(player_id=player_id), to=members),
                    Delivery(RoomUpdated(room=room.snapshot()), to=members),
                ]
                if session.phase in PLAY_PHASES:
                    deliveries.append(Delivery(game_updated(session), to=members))
                await self.publish(deliveries)
                return

        await self.room_deleted(room)

    async def toggle_ready(self, room_id: str, player_id: str) -> bool:
        room = self.get_room(room_id)
        async with room.lock:
            self._validate(room, player_id, "toggle_ready")
            ready = room.session.toggle_ready(player_id)
            members = room.member_ids
            await self.publish(
                [
                    Delivery(PlayerReady(player_id=player_id, ready=ready), to=members),
                    Delivery(RoomUpdated(room=room.snapshot()), to=members),
                ]
            )
            return ready

    # ---- match lifecycle ----

    async def start_game(self, room_id: str, player_id: str) -> None:
        room = self.get_room(room_id)
        async with room.lock:
            self._validate(room, player_id, "start_game")
            session = room.session
            session.start_game()
            room.start_time = self.clock()
            room.ticked_at = room.start_time
            room.duration = game_duration(self.config, len(session.players))
            logger.info("Game started in room %s (%s players, %ss)", room_id, len(session.players), room.duration)

            members = room.member_ids
            await self.publish(
                [
                    Delivery(
                        GameStarted(
                            board=session.snapshot().board,
                            duration=room.duration,
                            start_time=room.start_time,
                            config=self.config,
                        ),
                        to=members,
                    ),
                    Delivery(self._turn_started(session), to=members),
                    Delivery(game_updated(session), to=members),
                ]
            )

    async def tick(self, now: float | None = None) -> None:
        """Advance every running room's clock.

        Game end is decided from elapsed time since start, not from the
        per-turn countdown.
        The turn countdown is charged in whole seconds of clock time, so it
        runs at the same speed whatever the tick interval.
        """

        now = self.clock() if now is None else now
        for room in list(self.rooms.values()):
            async with room.lock:
                if room.session.phase not in PLAY_PHASES or room.start_time is None or room.ticked_at is None:
                    continue
                elapsed = now - room.start_time
                if elapsed >= room.duration:
                    await self.publish(self._finish(room))
                    continue

                seconds = int(now - room.ticked_at)
                if seconds < 1:
                    continue
                room.ticked_at += seconds
                advance = room.session.tick(seconds)
                members = room.member_ids
                deliveries = [
                    Delivery(
                        TimerUpdate(turn_time_remaining=room.session.turn_time_remaining, elapsed=elapsed),
                        to=members,
                    )
                ]
                if advance is not None:
                    deliveries.extend(self._after_turn(room, advance))
                logger.debug("Room %s tick: %.1fs elapsed", room.id, elapsed)
                await self.publish(deliveries)

    # ---- board actions ----

    async def add_letter(self, room_id: str, player_id: str, col: int, row: int) -> None:
        room = self.get_room(room_id)
        async with room.lock:
            self._validate(room, player_id, "add_letter")
            room.session.add_letter(player_id, (col, row))
            await self.publish([Delivery(game_updated(room.session), to=room.member_ids)])

    async def remove_letter(self, room_id: str, player_id: str) -> None:
        room = self.get_room(room_id)
        async with room.lock:
            self._validate(room, player_id, "remove_letter")
            room.session.remove_letter(player_id)
            await self.publish([Delivery(game_updated(room.session), to=room.member_ids)])

    async def submit_word(self, room_id: str, player_id: str) -> None:
        room = self.get_room(room_id)
        async with room.lock:
            self._validate(room, player_id, "submit_word")
            session = room.session
            outcome = session.stop_chaining(player_id)
            members = room.member_ids

            deliveries: list[Delivery] = []
            if outcome.accepted:
                gems = session.players[player_id].gems
                deliveries.append(
                    Delivery(
                        WordAccepted(player_id=player_id, word=outcome.word, score=outcome.score, gems=gems),
                        to=members,
                    )
                )
            else:
                deliveries.append(
                    Delivery(ErrorMessage(code="word_rejected", message=session.message or ""), to=(player_id,))
                )
            deliveries.append(Delivery(game_updated(session), to=members))
            await self.publish(deliveries)

    async def use_shuffle(self, room_id: str, player_id: str) -> None:
        room = self.get_room(room_id)
        async with room.lock:
            self._validate(room, player_id, "use_shuffle")
            room.session.use_shuffle(player_id)
            members = room.member_ids
            await self.publish(
                [
                    Delivery(PowerUpUsed(player_id=player_id, power_up="shuffle"), to=members),
                    Delivery(game_updated(room.session), to=members),
                ]
            )

    async def use_replace_tile(self, room_id: str, player_id: str, col: int, row: int, letter: str) -> None:
        room = self.get_room(room_id)
        async with room.lock:
            self._validate(room, player_id, "use_replace_tile")
            room.session.use_replace_tile(player_id, (col, row), letter)
            members = room.member_ids
            await self.publish(
                [
                    Delivery(PowerUpUsed(player_id=player_id, power_up="replace_tile"), to=members),
                    Delivery(game_updated(room.session), to=members),
                ]
            )

    async def handle_intent(self, room_id: str, player_id: str, intent: RoomIntent) -> None:
        match intent:
            case LeaveRoom():
                await self.leave_room(room_id, player_id)
            case ToggleReady():
                await self.toggle_ready(room_id, player_id)
            case StartGame():
                await self.start_game(room_id, player_id)
            case AddLetter(col=col, row=row):
                await self.add_letter(room_id, player_id, col, row)
            case RemoveLetter():
                await self.remove_letter(room_id, player_id)
            case SubmitWord():
                await self.submit_word(room_id, player_id)
            case UseShuffle():
                await self.use_shuffle(room_id, player_id)
            case UseReplaceTile(col=col, row=row, letter=letter):
                await self.use_replace_tile(room_id, player_id, col, row, letter)
            case _:
                assert_never(intent)

    # ---- helpers (callers hold room.lock) ----

    def _validate(self, room: Room, player_id: str, action: str) -> None:
        ctx = ValidationContext(room_id=room.id, player_id=player_id, action=action)
        pipeline_for_action(action).validate(ctx=ctx, session=room.session)

    def _turn_started(self, session: Session) -> TurnStarted:
        return TurnStarted(
            player_id=session.current_player_id or "",
            round=session.current_round,
            turn_time_remaining=session.turn_time_remaining,
        )

    def _after_turn(self, room: Room, advance: TurnAdvance) -> list[Delivery]:
        session = room.session
        if advance.game_over:
            return self._finish(room)

        members = room.member_ids
        deliveries: list[Delivery] = []
        if advance.round_ended:
            deliveries.append(
                Delivery(
                    RoundEnded(
                        round=advance.round,
                        round_scores=list(session.round_scores),
                        players=[p.model_copy() for p in session.players.values()],
                    ),
                    to=members,
                )
            )
        deliveries.append(Delivery(self._turn_started(session), to=members))
        deliveries.append(Delivery(game_updated(session), to=members))
        return deliveries

    def _finish(self, room: Room) -> list[Delivery]:
        """End the match and put the room back into a fresh lobby."""

        session = room.session
        if session.phase != SessionPhase.game_over:
            session.force_end()
        results = session.results()
        members = room.member_ids
        logger.info(
            "Game ended in room %s; winner=%s",
            room.id,
            results.winner.id if results.winner is not None else None,
        )

        room.session = session.rematch()
        room.start_time = None
        room.ticked_at = None
        room.duration = 0
        return [
            Delivery(GameEnded(players=results.players, winner=results.winner), to=members),
            Delivery(RoomUpdated(room=room.snapshot()), to=members),
        ]
