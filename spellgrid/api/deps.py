from __future__ import annotations

from fastapi import Request, WebSocket

from spellgrid.rooms import RoomRegistry


def get_registry(request: Request) -> RoomRegistry:
    return request.app.state.registry


def get_ws_registry(websocket: WebSocket) -> RoomRegistry:
    return websocket.app.state.registry
