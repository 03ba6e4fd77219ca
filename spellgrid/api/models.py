from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field

from spellgrid.core.board import Board


class SessionPhase(StrEnum):
    main_menu = "main_menu"
    host_lobby = "host_lobby"
    join_lobby = "join_lobby"
    waiting_room = "waiting_room"
    title = "title"
    idle = "idle"
    chaining = "chaining"
    cleanup = "cleanup"
    turn_ending = "turn_ending"
    round_ending = "round_ending"
    game_over = "game_over"


PLAY_PHASES = frozenset(
    {
        SessionPhase.idle,
        SessionPhase.chaining,
        SessionPhase.cleanup,
        SessionPhase.turn_ending,
        SessionPhase.round_ending,
    }
)

LOBBY_PHASES = frozenset({SessionPhase.host_lobby, SessionPhase.join_lobby, SessionPhase.waiting_room})


class Player(BaseModel):
    id: str
    name: str
    score: int = 0
    gems: int = Field(default=3, ge=0, le=10)
    is_ready: bool = False
    is_host: bool = False


class GameConfig(BaseModel):
    total_rounds: int = Field(default=3, ge=1)
    turns_per_player: int = Field(default=1, ge=1)
    turn_duration: int = Field(default=60, ge=1)
    min_players: int = Field(default=2, ge=1)

    # Hard cap on a match, seconds after start. None derives it from the turn schedule.
    game_duration: int | None = Field(default=None, ge=1)

    starting_gems: int = Field(default=3, ge=0, le=10)
    max_gems: int = Field(default=10, ge=0, le=10)


class RoomSummary(BaseModel):
    id: str
    name: str
    player_count: int
    max_players: int


class RoomSnapshot(BaseModel):
    id: str
    name: str
    players: list[Player]
    max_players: int
    phase: SessionPhase


class GameResults(BaseModel):
    players: list[Player]
    winner: Player | None = None


class SessionSnapshot(BaseModel):
    """Read-only view of a session; everything clients render comes from here."""

    id: str
    phase: SessionPhase
    board: Board
    players: list[Player]
    config: GameConfig
    current_round: int
    current_player_id: str | None = None
    turn_time_remaining: int
    round_scores: list[int] = Field(default_factory=list)

    chain: list[tuple[int, int]] = Field(default_factory=list)
    current_word: str = ""
    current_score: int = 0

    # Transient rejection text; cleared by the next successful action.
    message: str | None = None
