from __future__ import annotations

from enum import StrEnum


class ErrorCategory(StrEnum):
    input_rejected = "input_rejected"
    connection_failure = "connection_failure"
    not_found = "not_found"


class GameError(ValueError):
    """Base class for every error surfaced to a player.

    Subclasses ValueError so transport layers can keep catching `ValueError`
    the way the routes always have. `code` is the stable wire identifier.
    """

    code: str = "input_rejected"
    category: ErrorCategory = ErrorCategory.input_rejected
    default_message: str = "Action rejected"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)

    @property
    def message(self) -> str:
        return str(self)


class InvalidAction(GameError):
    code = "invalid_action"
    default_message = "Action not allowed right now"


class NotYourTurn(InvalidAction):
    code = "not_your_turn"
    default_message = "Not your turn"


class NameRequired(GameError):
    code = "name_required"
    default_message = "Please set your name first"


class NotEnoughGems(GameError):
    code = "not_enough_gems"
    default_message = "Not enough gems"


class InvalidTileLocation(GameError):
    code = "invalid_tile_location"
    default_message = "Invalid tile location"


class InvalidLetter(GameError):
    code = "invalid_letter"
    default_message = "Invalid letter"


class WordRejected(GameError):
    code = "word_rejected"

    def __init__(self, reason: str, message: str | None = None) -> None:
        self.reason = reason
        super().__init__(message or f"Word rejected: {reason}")


class RoomFull(GameError):
    code = "room_full"
    default_message = "Room is full"


class GameInProgress(GameError):
    code = "game_in_progress"
    default_message = "Game already in progress"


class RoomNotFound(GameError):
    code = "room_not_found"
    category = ErrorCategory.not_found
    default_message = "Room not found"


class PlayerNotFound(GameError):
    code = "player_not_found"
    category = ErrorCategory.not_found
    default_message = "Player not found"


class ConnectionFailure(GameError):
    code = "connection_failure"
    category = ErrorCategory.connection_failure
    default_message = "Connection failed"


class ConnectionTimeout(ConnectionFailure):
    code = "connection_timeout"
    default_message = "Connection timeout - could not reach host"


class PeerUnavailable(ConnectionFailure):
    code = "peer_unavailable"
    default_message = "Host not found. Check the room code or make sure host created the game first."


class RoomCodeInUse(ConnectionFailure):
    code = "room_code_in_use"
    default_message = "Room code already in use"


def _all_subclasses(cls: type[GameError]) -> list[type[GameError]]:
    out: list[type[GameError]] = []
    for sub in cls.__subclasses__():
        out.append(sub)
        out.extend(_all_subclasses(sub))
    return out


def error_for_code(code: str, message: str) -> GameError:
    """Rebuild a GameError received over the wire from its `code`."""

    for cls in _all_subclasses(GameError):
        if cls.code == code:
            if cls is WordRejected:
                return WordRejected(code, message)
            return cls(message)
    err = GameError(message)
    err.code = code
    return err
