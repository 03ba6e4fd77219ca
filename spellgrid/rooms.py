from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Callable, Sequence
from uuid import uuid4

from spellgrid.api.messages import (
    ClientIntent,
    CreateRoom,
    JoinRoom,
    LeaveRoom,
    ListRooms,
    RoomList,
    SetName,
)
from spellgrid.api.models import GameConfig, RoomSnapshot, RoomSummary
from spellgrid.authority import DEFAULT_MAX_PLAYERS, Delivery, Room, RoomAuthority
from spellgrid.core.dictionary import Dictionary
from spellgrid.errors import InvalidAction, NameRequired
from spellgrid.websocket_hub import ConnectionHub


logger = logging.getLogger(__name__)


class RoomRegistry(RoomAuthority):
    """Server-held rooms, one Session each, fanned out over a ConnectionHub.

    Built by the app entry point and driven through `open`/`close`; `open`
    starts the once-a-second clock that drives turn timers and forced game end.
    """

    def __init__(
        self,
        *,
        hub: ConnectionHub,
        dictionary: Dictionary,
        config: GameConfig | None = None,
        max_players: int = DEFAULT_MAX_PLAYERS,
        tick_interval: float = 1.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        super().__init__(dictionary=dictionary, config=config, max_players=max_players, clock=clock)
        self.hub = hub
        self.tick_interval = tick_interval
        self.names: dict[str, str] = {}
        self.memberships: dict[str, str] = {}
        self._clock_task: asyncio.Task[None] | None = None

    async def open(self) -> None:
        if self._clock_task is None:
            self._clock_task = asyncio.create_task(self._run_clock())
        logger.info("Room registry opened")

    async def close(self) -> None:
        if self._clock_task is not None:
            self._clock_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._clock_task
            self._clock_task = None
        self.rooms.clear()
        self.memberships.clear()
        logger.info("Room registry closed")

    async def _run_clock(self) -> None:
        while True:
            await asyncio.sleep(self.tick_interval)
            try:
                await self.tick()
            except Exception:
                logger.exception("Room clock tick failed")

    # ---- transport ----

    async def publish(self, deliveries: Sequence[Delivery]) -> None:
        for d in deliveries:
            payload = d.message.model_dump(mode="json")
            if d.everyone:
                await self.hub.broadcast(payload)
            elif d.to:
                await self.hub.send_many(d.to, payload)

    async def room_deleted(self, room: Room) -> None:
        await self.broadcast_room_list()

    async def broadcast_room_list(self) -> None:
        await self.publish([Delivery(RoomList(rooms=self.list_rooms()), everyone=True)])

    # ---- registry operations ----

    def set_name(self, player_id: str, name: str) -> None:
        self.names[player_id] = name.strip()

    def list_rooms(self) -> list[RoomSummary]:
        return [room.summary() for room in self.rooms.values()]

    async def create_room(self, player_id: str, name: str) -> RoomSnapshot:
        player_name = self.names.get(player_id, "")
        if not player_name:
            raise NameRequired()
        await self.leave_current_room(player_id)

        room = self.new_room(uuid4().hex[:8], name.strip() or f"{player_name}'s room")
        snapshot = await self.join_room(room.id, player_id, player_name)
        self.memberships[player_id] = room.id
        await self.broadcast_room_list()
        return snapshot

    async def join(self, player_id: str, room_id: str) -> RoomSnapshot:
        player_name = self.names.get(player_id, "")
        if not player_name:
            raise NameRequired()
        # Nothing changes unless the target room would admit the player.
        self.check_admission(self.get_room(room_id), player_id)
        if self.memberships.get(player_id) not in (None, room_id):
            await self.leave_current_room(player_id)

        snapshot = await self.join_room(room_id, player_id, player_name)
        self.memberships[player_id] = room_id
        await self.broadcast_room_list()
        return snapshot

    async def leave_current_room(self, player_id: str) -> None:
        room_id = self.memberships.pop(player_id, None)
        if room_id is None or room_id not in self.rooms:
            return
        await self.leave_room(room_id, player_id)
        if room_id in self.rooms:
            await self.broadcast_room_list()

    async def disconnect(self, player_id: str) -> None:
        await self.leave_current_room(player_id)
        self.names.pop(player_id, None)

    async def handle(self, player_id: str, intent: ClientIntent) -> None:
        """Route one client intent; GameError propagates to the transport."""

        match intent:
            case SetName(name=name):
                self.set_name(player_id, name)
            case ListRooms():
                await self.publish([Delivery(RoomList(rooms=self.list_rooms()), to=(player_id,))])
            case CreateRoom(name=name):
                await self.create_room(player_id, name)
            case JoinRoom(room_id=room_id):
                await self.join(player_id, room_id)
            case LeaveRoom():
                await self.leave_current_room(player_id)
            case _:
                room_id = self.memberships.get(player_id)
                if room_id is None:
                    raise InvalidAction("Not in a room")
                await self.handle_intent(room_id, player_id, intent)
