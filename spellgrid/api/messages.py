"""Wire messages between clients and the room authority.

Both directions are closed unions discriminated on `type`; parse incoming
frames with `parse_client_intent` and match exhaustively on the model class.
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter

from spellgrid.api.models import GameConfig, Player, RoomSnapshot, RoomSummary
from spellgrid.core.board import Board


# ---- client -> authority ----


class SetName(BaseModel):
    type: Literal["set_name"] = "set_name"
    name: str = Field(..., min_length=1, max_length=32)


class ListRooms(BaseModel):
    type: Literal["list_rooms"] = "list_rooms"


class CreateRoom(BaseModel):
    type: Literal["create_room"] = "create_room"
    name: str = Field(..., min_length=1, max_length=64)


class JoinRoom(BaseModel):
    type: Literal["join_room"] = "join_room"
    room_id: str = Field(..., min_length=1)


class LeaveRoom(BaseModel):
    type: Literal["leave_room"] = "leave_room"


class ToggleReady(BaseModel):
    type: Literal["toggle_ready"] = "toggle_ready"


class StartGame(BaseModel):
    type: Literal["start_game"] = "start_game"


class AddLetter(BaseModel):
    type: Literal["add_letter"] = "add_letter"
    col: int
    row: int


class RemoveLetter(BaseModel):
    type: Literal["remove_letter"] = "remove_letter"


class SubmitWord(BaseModel):
    type: Literal["submit_word"] = "submit_word"


class UseShuffle(BaseModel):
    type: Literal["use_shuffle"] = "use_shuffle"


class UseReplaceTile(BaseModel):
    type: Literal["use_replace_tile"] = "use_replace_tile"
    col: int
    row: int
    letter: str


RoomIntent = Union[
    LeaveRoom,
    ToggleReady,
    StartGame,
    AddLetter,
    RemoveLetter,
    SubmitWord,
    UseShuffle,
    UseReplaceTile,
]

ROOM_INTENT_TYPES: tuple[type[BaseModel], ...] = (
    LeaveRoom,
    ToggleReady,
    StartGame,
    AddLetter,
    RemoveLetter,
    SubmitWord,
    UseShuffle,
    UseReplaceTile,
)

ClientIntent = Annotated[
    Union[
        SetName,
        ListRooms,
        CreateRoom,
        JoinRoom,
        LeaveRoom,
        ToggleReady,
        StartGame,
        AddLetter,
        RemoveLetter,
        SubmitWord,
        UseShuffle,
        UseReplaceTile,
    ],
    Field(discriminator="type"),
]

_client_intent_adapter: TypeAdapter[ClientIntent] = TypeAdapter(ClientIntent)


def parse_client_intent(data: object) -> ClientIntent:
    """Validate a decoded JSON frame; raises pydantic.ValidationError."""

    return _client_intent_adapter.validate_python(data)


# ---- authority -> clients ----


class RoomList(BaseModel):
    type: Literal["room_list"] = "room_list"
    rooms: list[RoomSummary]


class RoomJoined(BaseModel):
    type: Literal["room_joined"] = "room_joined"
    player_id: str
    room: RoomSnapshot


class RoomUpdated(BaseModel):
    type: Literal["room_updated"] = "room_updated"
    room: RoomSnapshot


class PlayerJoined(BaseModel):
    type: Literal["player_joined"] = "player_joined"
    player: Player


class PlayerLeft(BaseModel):
    type: Literal["player_left"] = "player_left"
    player_id: str


class PlayerReady(BaseModel):
    type: Literal["player_ready"] = "player_ready"
    player_id: str
    ready: bool


class GameStarted(BaseModel):
    type: Literal["game_started"] = "game_started"
    board: Board
    duration: int
    start_time: float
    config: GameConfig


class TurnStarted(BaseModel):
    type: Literal["turn_started"] = "turn_started"
    player_id: str
    round: int
    turn_time_remaining: int


class TimerUpdate(BaseModel):
    type: Literal["timer_update"] = "timer_update"
    turn_time_remaining: int
    elapsed: float


class GameUpdated(BaseModel):
    type: Literal["game_updated"] = "game_updated"
    board: Board
    players: list[Player]
    current_round: int
    current_player_id: str | None = None
    chain: list[tuple[int, int]] = Field(default_factory=list)
    current_word: str = ""
    current_score: int = 0


class WordAccepted(BaseModel):
    type: Literal["word_accepted"] = "word_accepted"
    player_id: str
    word: str
    score: int
    gems: int


class PowerUpUsed(BaseModel):
    type: Literal["power_up_used"] = "power_up_used"
    player_id: str
    power_up: Literal["shuffle", "replace_tile"]


class RoundEnded(BaseModel):
    type: Literal["round_ended"] = "round_ended"
    round: int
    round_scores: list[int]
    players: list[Player]


class GameEnded(BaseModel):
    type: Literal["game_ended"] = "game_ended"
    players: list[Player]
    winner: Player | None = None


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    code: str
    message: str


ServerMessage = Annotated[
    Union[
        RoomList,
        RoomJoined,
        RoomUpdated,
        PlayerJoined,
        PlayerLeft,
        PlayerReady,
        GameStarted,
        TurnStarted,
        TimerUpdate,
        GameUpdated,
        WordAccepted,
        PowerUpUsed,
        RoundEnded,
        GameEnded,
        ErrorMessage,
    ],
    Field(discriminator="type"),
]

_server_message_adapter: TypeAdapter[ServerMessage] = TypeAdapter(ServerMessage)


def parse_server_message(data: object) -> ServerMessage:
    return _server_message_adapter.validate_python(data)
