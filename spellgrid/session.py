from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from uuid import uuid4

from statemachine.exceptions import TransitionNotAllowed

from spellgrid.api.models import (
    LOBBY_PHASES,
    PLAY_PHASES,
    GameConfig,
    GameResults,
    Player,
    SessionPhase,
    SessionSnapshot,
)
from spellgrid.core import chain as chains
from spellgrid.core.board import (
    Board,
    Coord,
    copy_board,
    generate_board,
    generate_title_board,
    plain_tile,
    replace_tile_letter,
    replace_used_tiles,
    require_on_board,
    shuffle_board,
    tile_at,
)
from spellgrid.core.dictionary import Dictionary
from spellgrid.core.scoring import gems_earned, score
from spellgrid.errors import (
    GameInProgress,
    InvalidAction,
    NotEnoughGems,
    NotYourTurn,
    PlayerNotFound,
)
from spellgrid.fsm import REPLACE_TILE_GEM_COST, SHUFFLE_GEM_COST, SessionFSM


logger = logging.getLogger(__name__)

SOLO_PLAYER_ID = "solo"

_ACTIVE_PHASES = frozenset({SessionPhase.idle, SessionPhase.chaining})


@dataclass(frozen=True, slots=True)
class WordOutcome:
    """Result of stopping a chain.

    `rejection` is None when the word was accepted; score and gems are then
    what the player was credited with.
    """

    word: str
    score: int = 0
    gems: int = 0
    rejection: chains.ChainRejection | None = None

    @property
    def accepted(self) -> bool:
        return self.rejection is None


@dataclass(frozen=True, slots=True)
class TurnAdvance:
    round: int
    round_ended: bool
    game_over: bool


class Session:
    """Authoritative state of one match.

    Public methods validate their inputs fully and raise `GameError` before
    anything changes; the state machine then runs the mutation as a
    transition action.
    """

    def __init__(
        self,
        dictionary: Dictionary,
        config: GameConfig | None = None,
        *,
        seed: int | None = None,
        session_id: str | None = None,
    ) -> None:
        self.id = session_id or uuid4().hex
        self.dictionary = dictionary
        self.config = config or GameConfig()
        self.rng = random.Random(seed)

        self.players: dict[str, Player] = {}
        self.board: Board = generate_title_board()

        self.chain: list[Coord] = []
        self.current_word = ""
        self.current_score = 0

        self.current_round = 0
        self.current_player_index = 0
        self.turns_taken = 0
        self.turn_time_remaining = self.config.turn_duration
        self.round_scores: list[int] = []

        self.message: str | None = None
        self._last_accepted: WordOutcome | None = None
        self._last_rejection: chains.ChainRejection | None = None

        self.fsm = SessionFSM(self)

    # ---- read side ----

    @property
    def phase(self) -> SessionPhase:
        return self.fsm.phase

    @property
    def turns_per_round(self) -> int:
        return self.config.turns_per_player * max(1, len(self.players))

    @property
    def current_player_id(self) -> str | None:
        if self.phase not in PLAY_PHASES or not self.players:
            return None
        ids = list(self.players)
        return ids[self.current_player_index % len(ids)]

    def player(self, player_id: str) -> Player:
        try:
            return self.players[player_id]
        except KeyError:
            raise PlayerNotFound() from None

    def gems_of(self, player_id: str) -> int:
        return self.player(player_id).gems

    def can_extend(self, coord: Coord) -> bool:
        return chains.can_extend(self.chain, coord, self.board)

    def rejection_reason(self) -> chains.ChainRejection | None:
        return chains.rejection_reason(self.chain, self.board, self.dictionary)

    def winner(self) -> Player | None:
        best: Player | None = None
        for p in self.players.values():
            if best is None or p.score > best.score:
                best = p
        return best

    def results(self) -> GameResults:
        return GameResults(players=list(self.players.values()), winner=self.winner())

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            id=self.id,
            phase=self.phase,
            board=copy_board(self.board),
            players=[p.model_copy() for p in self.players.values()],
            config=self.config,
            current_round=self.current_round,
            current_player_id=self.current_player_id,
            turn_time_remaining=self.turn_time_remaining,
            round_scores=list(self.round_scores),
            chain=list(self.chain),
            current_word=self.current_word,
            current_score=self.current_score,
            message=self.message,
        )

    # ---- roster ----

    def add_player(self, player_id: str, name: str, *, is_host: bool = False) -> Player:
        if self.phase in PLAY_PHASES or self.phase == SessionPhase.game_over:
            raise GameInProgress()
        existing = self.players.get(player_id)
        if existing is not None:
            return existing
        p = Player(id=player_id, name=name, gems=self.config.starting_gems, is_host=is_host)
        self.players[player_id] = p
        return p

    def remove_player(self, player_id: str) -> Player:
        ids = list(self.players)
        if player_id not in self.players:
            raise PlayerNotFound()

        if self.phase in PLAY_PHASES:
            removed_idx = ids.index(player_id)
            current_idx = self.current_player_index % len(ids)
            if removed_idx == current_idx:
                if self.phase == SessionPhase.chaining:
                    self._send("discard_chain")
                self.turn_time_remaining = self.config.turn_duration
            elif removed_idx < current_idx:
                self.current_player_index -= 1

        p = self.players.pop(player_id)
        if self.players:
            self.current_player_index %= len(self.players)
            if p.is_host:
                next(iter(self.players.values())).is_host = True
        return p

    def toggle_ready(self, player_id: str) -> bool:
        if self.phase not in LOBBY_PHASES:
            raise InvalidAction("Ready state can only change in the lobby")
        p = self.player(player_id)
        p.is_ready = not p.is_ready
        return p.is_ready

    # ---- menu and lobby ----

    def host_lobby(self) -> None:
        self._send("host_game")

    def join_lobby(self) -> None:
        self._send("join_game")

    def lobby_joined(self) -> None:
        self._send("lobby_joined")

    def join_failed(self) -> None:
        self._send("join_failed")

    def leave_lobby(self) -> None:
        self._send("leave")

    def play_solo(self, name: str = "Player") -> Player:
        self._send("play_solo")
        return self.add_player(SOLO_PLAYER_ID, name, is_host=True)

    def start_game(self, board: Board | None = None) -> None:
        if self.phase == SessionPhase.host_lobby and not self.fsm.lobby_ready():
            raise InvalidAction(f"Need at least {self.config.min_players} players, all ready")
        self._send("start_game", board=board)
        logger.debug("Session %s started with %s players", self.id, len(self.players))

    def rematch(self) -> Session:
        """Fresh lobby session with the same roster; everyone must ready up again."""

        fresh = Session(self.dictionary, self.config, seed=self.rng.randrange(2**32), session_id=self.id)
        fresh.host_lobby()
        for p in self.players.values():
            fresh.add_player(p.id, p.name, is_host=p.is_host)
        return fresh

    # ---- play ----

    def add_letter(self, player_id: str, coord: Coord) -> None:
        self._require_turn(player_id)
        require_on_board(coord)
        if coord in self.chain:
            raise InvalidAction("Tile is already in the chain")
        if not self.can_extend(coord):
            if tile_at(self.board, coord).is_frozen:
                raise InvalidAction(chains.REJECTION_MESSAGES[chains.ChainRejection.uses_frozen_tile])
            raise InvalidAction("Tile is not adjacent to the last letter")
        self._send("add_letter", coord=coord)
        self.message = None

    def remove_letter(self, player_id: str) -> None:
        self._require_turn(player_id)
        self._send("remove_letter")
        self.message = None

    def stop_chaining(self, player_id: str) -> WordOutcome:
        self._require_turn(player_id)
        if self.phase != SessionPhase.chaining:
            raise InvalidAction("No word in progress")

        word = self.current_word
        self._last_accepted = None
        self._send("stop_chaining", player_id=player_id)
        outcome = self._last_accepted
        if outcome is not None:
            self._send("cleanup_done")
            return outcome

        return WordOutcome(word=word, rejection=self._last_rejection)

    def use_shuffle(self, player_id: str) -> None:
        self._require_turn(player_id)
        if self.gems_of(player_id) < SHUFFLE_GEM_COST:
            raise NotEnoughGems()
        self._send("use_shuffle", player_id=player_id)
        self.message = None

    def use_replace_tile(self, player_id: str, coord: Coord, letter: str) -> None:
        self._require_turn(player_id)
        require_on_board(coord)
        plain_tile(letter)
        if self.gems_of(player_id) < REPLACE_TILE_GEM_COST:
            raise NotEnoughGems()
        self._send("use_replace_tile", player_id=player_id, coord=coord, letter=letter)
        self.message = None

    def tick(self, seconds: int = 1) -> TurnAdvance | None:
        """Count down the turn timer; expiry ends the turn."""

        if self.phase not in _ACTIVE_PHASES:
            return None
        self.turn_time_remaining = max(0, self.turn_time_remaining - seconds)
        if self.turn_time_remaining == 0:
            return self.end_turn()
        return None

    def end_turn(self, player_id: str | None = None) -> TurnAdvance:
        if player_id is not None:
            self._require_turn(player_id)
        ending_round = self.current_round
        self._send("end_turn")
        self._send("next_turn")
        round_ended = self.phase == SessionPhase.round_ending
        if round_ended:
            self.start_next_round()
        return TurnAdvance(
            round=ending_round,
            round_ended=round_ended,
            game_over=self.phase == SessionPhase.game_over,
        )

    def start_next_round(self) -> None:
        self._send("start_next_round")

    def force_end(self) -> None:
        if self.phase == SessionPhase.game_over:
            return
        self._send("force_end")

    def sync(self, *, board: Board, players: list[Player], current_round: int, current_player_id: str | None) -> None:
        """Overwrite local state with an authoritative broadcast (mirror sessions only)."""

        self.board = copy_board(board)
        self.players = {p.id: p.model_copy() for p in players}
        self.current_round = current_round
        if current_player_id in self.players:
            self.current_player_index = list(self.players).index(current_player_id)
        self._refresh_word()

    # ---- transition actions (called by SessionFSM) ----

    def _begin_game(self, board: Board | None) -> None:
        for p in self.players.values():
            p.score = 0
            p.gems = self.config.starting_gems
        self.round_scores = []
        self._begin_round(1, board)

    def _begin_round(self, number: int, board: Board | None = None) -> None:
        self.current_round = number
        self.board = copy_board(board) if board is not None else generate_board(rng=self.rng)
        self.current_player_index = 0
        self.turns_taken = 0
        self.turn_time_remaining = self.config.turn_duration
        self.message = None

    def _append(self, coord: Coord) -> None:
        self.chain.append(coord)
        self._refresh_word()

    def _pop(self) -> None:
        self.chain.pop()
        self._refresh_word()

    def _accept_word(self, player_id: str) -> None:
        valid = chains.validate_submission(self.chain, self.board, self.dictionary)
        points = score(valid.coords, self.board)
        earned = gems_earned(valid.coords, self.board)

        p = self.player(player_id)
        p.score += points
        p.gems = min(self.config.max_gems, p.gems + earned)

        self.board = replace_used_tiles(self.board, valid.coords, rng=self.rng)
        self._record_round_score(points)
        self.message = None
        self._last_accepted = WordOutcome(word=valid.word, score=points, gems=earned)
        logger.debug("Session %s: %s scored %s for %s", self.id, player_id, points, valid.word)

    def _reject_word(self) -> None:
        reason = self.rejection_reason()
        if reason is None:
            raise InvalidAction("Word is submittable")
        self._last_rejection = reason
        self.message = chains.REJECTION_MESSAGES[reason]

    def _shuffle(self, player_id: str, cost: int) -> None:
        self.player(player_id).gems -= cost
        self.board = shuffle_board(self.board, rng=self.rng)

    def _replace_tile(self, player_id: str, coord: Coord, letter: str, cost: int) -> None:
        self.player(player_id).gems -= cost
        self.board = replace_tile_letter(self.board, coord, letter)
        self._refresh_word()

    def _close_turn(self) -> None:
        self._clear_chain()
        self.turns_taken += 1

    def _advance_turn(self) -> None:
        if self.players:
            self.current_player_index = (self.current_player_index + 1) % len(self.players)
        self.turn_time_remaining = self.config.turn_duration

    def _close_round(self) -> None:
        self._record_round_score(0)

    def _clear_chain(self) -> None:
        self.chain = []
        self.current_word = ""
        self.current_score = 0

    # ---- helpers ----

    def _record_round_score(self, points: int) -> None:
        while len(self.round_scores) < self.current_round:
            self.round_scores.append(0)
        self.round_scores[self.current_round - 1] += points

    def _refresh_word(self) -> None:
        self.current_word = chains.word_for(self.chain, self.board)
        self.current_score = score(self.chain, self.board) if self.chain else 0

    def _require_turn(self, player_id: str) -> None:
        self.player(player_id)
        if self.phase not in _ACTIVE_PHASES:
            raise InvalidAction(f"Not allowed while {self.phase.value}")
        if self.current_player_id != player_id:
            raise NotYourTurn()

    def _send(self, event: str, **kwargs: object) -> None:
        try:
            self.fsm.send(event, **kwargs)
        except TransitionNotAllowed as e:
            raise InvalidAction(f"Cannot {event.replace('_', ' ')} while {self.phase.value}") from e
