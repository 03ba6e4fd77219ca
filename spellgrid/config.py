from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

from spellgrid.api.models import GameConfig


_PROJECT_ROOT = Path(__file__).resolve().parents[1]


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    return int(raw) if raw not in (None, "") else default


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    return float(raw) if raw not in (None, "") else default


@dataclass(frozen=True, slots=True)
class Settings:
    """Process-wide settings read from the environment (and `.env`, if present)."""

    max_players: int = 8
    min_players: int = 2
    total_rounds: int = 3
    turns_per_player: int = 1
    turn_duration_sec: int = 60
    game_duration_sec: int | None = None
    starting_gems: int = 3
    tick_interval_sec: float = 1.0
    connect_timeout_sec: float = 12.0
    words_path: Path | None = None
    log_level: str = "INFO"
    redis_url: str = "redis://localhost:6379/0"

    @classmethod
    def from_env(cls, *, dotenv_path: Path | None = None) -> "Settings":
        env_path = dotenv_path or _PROJECT_ROOT / ".env"
        if env_path.exists():
            load_dotenv(dotenv_path=env_path, override=False)

        words = os.environ.get("SPELLGRID_WORDS_PATH")
        game_duration = os.environ.get("SPELLGRID_GAME_DURATION_SEC")
        return cls(
            max_players=_int_env("SPELLGRID_MAX_PLAYERS", 8),
            min_players=_int_env("SPELLGRID_MIN_PLAYERS", 2),
            total_rounds=_int_env("SPELLGRID_TOTAL_ROUNDS", 3),
            turns_per_player=_int_env("SPELLGRID_TURNS_PER_PLAYER", 1),
            turn_duration_sec=_int_env("SPELLGRID_TURN_DURATION_SEC", 60),
            game_duration_sec=int(game_duration) if game_duration else None,
            starting_gems=_int_env("SPELLGRID_STARTING_GEMS", 3),
            tick_interval_sec=_float_env("SPELLGRID_TICK_INTERVAL_SEC", 1.0),
            connect_timeout_sec=_float_env("SPELLGRID_CONNECT_TIMEOUT_SEC", 12.0),
            words_path=Path(words) if words else None,
            log_level=os.environ.get("SPELLGRID_LOG_LEVEL", "INFO").upper(),
            redis_url=os.environ.get("REDIS_URL", "redis://localhost:6379/0"),
        )

    def game_config(self) -> GameConfig:
        return GameConfig(
            total_rounds=self.total_rounds,
            turns_per_player=self.turns_per_player,
            turn_duration=self.turn_duration_sec,
            min_players=self.min_players,
            game_duration=self.game_duration_sec,
            starting_gems=self.starting_gems,
        )
