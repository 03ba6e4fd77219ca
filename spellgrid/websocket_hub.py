from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from fastapi import WebSocket


logger = logging.getLogger(__name__)


class ConnectionHub:
    """In-process WebSocket fan-out keyed by player_id.

    Contract:
      - register a connection via `connect(player_id, websocket)`.
      - deliver JSON payloads with `send_many(player_ids, payload)` or to every
        open connection with `broadcast(payload)`.

    Payloads should be JSON-serializable dicts.
    """

    def __init__(self) -> None:
        self._by_player: dict[str, WebSocket] = {}
        self._lock = asyncio.Lock()

    async def connect(self, player_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._by_player[player_id] = websocket

    async def disconnect(self, player_id: str) -> None:
        async with self._lock:
            self._by_player.pop(player_id, None)

    async def send_many(self, player_ids: Iterable[str], payload: dict[str, object]) -> None:
        async with self._lock:
            conns = [(pid, self._by_player[pid]) for pid in player_ids if pid in self._by_player]
        await self._send(conns, payload)

    async def broadcast(self, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._by_player.items())
        await self._send(conns, payload)

    async def _send(self, conns: list[tuple[str, WebSocket]], payload: dict[str, object]) -> None:
        if not conns:
            return

        dead: list[str] = []
        for pid, ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                logger.warning("Dropping dead websocket for player %s", pid)
                dead.append(pid)

        if dead:
            async with self._lock:
                for pid in dead:
                    self._by_player.pop(pid, None)
