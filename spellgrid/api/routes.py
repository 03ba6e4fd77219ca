from __future__ import annotations

import logging
from uuid import uuid4

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from spellgrid.api.deps import get_registry, get_ws_registry
from spellgrid.api.messages import ErrorMessage, RoomList, parse_client_intent
from spellgrid.api.models import RoomSnapshot, RoomSummary
from spellgrid.errors import GameError, RoomNotFound
from spellgrid.rooms import RoomRegistry


logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws")
async def game_ws(websocket: WebSocket, registry: RoomRegistry = Depends(get_ws_registry)) -> None:
    player_id = uuid4().hex
    await registry.hub.connect(player_id, websocket)
    await websocket.send_json(RoomList(rooms=registry.list_rooms()).model_dump(mode="json"))

    try:
        while True:
            data = await websocket.receive_json()
            try:
                intent = parse_client_intent(data)
            except ValidationError:
                await websocket.send_json(
                    ErrorMessage(code="invalid_message", message="Malformed message").model_dump(mode="json")
                )
                continue

            try:
                await registry.handle(player_id, intent)
            except GameError as e:
                await registry.report_error(player_id, e, action=intent.type)
    except WebSocketDisconnect:
        pass
    finally:
        await registry.hub.disconnect(player_id)
        await registry.disconnect(player_id)


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/rooms", response_model=list[RoomSummary])
async def list_rooms_route(registry: RoomRegistry = Depends(get_registry)) -> list[RoomSummary]:
    return registry.list_rooms()


@router.get("/rooms/{room_id}", response_model=RoomSnapshot)
async def get_room_route(room_id: str, registry: RoomRegistry = Depends(get_registry)) -> RoomSnapshot:
    try:
        return registry.get_room(room_id).snapshot()
    except RoomNotFound as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=e.message) from e
