from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from spellgrid.api.models import SessionPhase
from spellgrid.errors import InvalidAction, NotYourTurn, PlayerNotFound
from spellgrid.session import Session


@dataclass(frozen=True, slots=True)
class ValidationContext:
    """Inputs available to validators.

    Keep this tight and serializable-ish so we can safely log it.
    """

    room_id: str
    player_id: str
    action: str


class IntentValidator(ABC):
    """A small, composable validation unit for an incoming intent."""

    @abstractmethod
    def validate(self, *, ctx: ValidationContext, session: Session) -> None:
        raise NotImplementedError


@dataclass(frozen=True, slots=True)
class PhaseValidator(IntentValidator):
    """Validates the session phase for a given action."""

    allowed_phases: frozenset[SessionPhase]

    def validate(self, *, ctx: ValidationContext, session: Session) -> None:
        if session.phase not in self.allowed_phases:
            allowed = ",".join(sorted(p.value for p in self.allowed_phases))
            raise InvalidAction(
                f"Action '{ctx.action}' not allowed in phase '{session.phase.value}' (allowed: {allowed})"
            )


@dataclass(frozen=True, slots=True)
class MemberValidator(IntentValidator):
    """The acting player must be on the room's roster."""

    def validate(self, *, ctx: ValidationContext, session: Session) -> None:
        if ctx.player_id not in session.players:
            raise PlayerNotFound()


@dataclass(frozen=True, slots=True)
class HostValidator(IntentValidator):
    """Only the host may start the game."""

    def validate(self, *, ctx: ValidationContext, session: Session) -> None:
        p = session.players.get(ctx.player_id)
        if p is None or not p.is_host:
            raise InvalidAction(f"Only the host may {ctx.action.replace('_', ' ')}")


@dataclass(frozen=True, slots=True)
class CurrentTurnValidator(IntentValidator):
    """During play only the current player may act on the board."""

    def validate(self, *, ctx: ValidationContext, session: Session) -> None:
        if session.current_player_id != ctx.player_id:
            raise NotYourTurn()


@dataclass(frozen=True, slots=True)
class ValidatorPipeline:
    validators: tuple[IntentValidator, ...]

    def validate(self, *, ctx: ValidationContext, session: Session) -> None:
        for v in self.validators:
            v.validate(ctx=ctx, session=session)


_LOBBY = frozenset({SessionPhase.host_lobby, SessionPhase.waiting_room})
_PLAY = frozenset({SessionPhase.idle, SessionPhase.chaining})


def _board_action() -> ValidatorPipeline:
    return ValidatorPipeline(
        validators=(
            MemberValidator(),
            PhaseValidator(allowed_phases=_PLAY),
            CurrentTurnValidator(),
        )
    )


DEFAULT_ACTION_PIPELINES: dict[str, ValidatorPipeline] = {
    "toggle_ready": ValidatorPipeline(
        validators=(
            MemberValidator(),
            PhaseValidator(allowed_phases=_LOBBY),
        )
    ),
    "start_game": ValidatorPipeline(
        validators=(
            MemberValidator(),
            PhaseValidator(allowed_phases=_LOBBY),
            HostValidator(),
        )
    ),
    "add_letter": _board_action(),
    "remove_letter": _board_action(),
    "submit_word": _board_action(),
    "use_shuffle": _board_action(),
    "use_replace_tile": _board_action(),
}


def pipeline_for_action(action: str) -> ValidatorPipeline:
    pipe = DEFAULT_ACTION_PIPELINES.get(action)
    if pipe is None:
        raise InvalidAction(f"Unknown action: {action}")
    return pipe
