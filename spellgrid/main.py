import logging

import redis
from fastapi import FastAPI

from spellgrid import __version__
from spellgrid.api.routes import router
from spellgrid.config import Settings
from spellgrid.core.dictionary import Dictionary
from spellgrid.streams import connect_relay
from spellgrid.peer import PeerGuest, PeerHost
from spellgrid.rooms import RoomRegistry
from spellgrid.websocket_hub import ConnectionHub

settings = Settings.from_env()

app = FastAPI(title="spellgrid", version=__version__)
app.include_router(router)
# Configure logging
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


def load_dictionary(settings: Settings) -> Dictionary:
    return Dictionary.from_file(settings.words_path) if settings.words_path else Dictionary.default()


def build_registry(settings: Settings) -> RoomRegistry:
    return RoomRegistry(
        hub=ConnectionHub(),
        dictionary=load_dictionary(settings),
        config=settings.game_config(),
        max_players=settings.max_players,
        tick_interval=settings.tick_interval_sec,
    )


def build_peer_host(
    settings: Settings, *, host_id: str, host_name: str, room_name: str = "", r: redis.Redis | None = None
) -> PeerHost:
    """Host-side authority for a peer room; call `open()` to claim a code."""

    return PeerHost(
        r=r if r is not None else connect_relay(settings.redis_url),
        dictionary=load_dictionary(settings),
        host_id=host_id,
        host_name=host_name,
        room_name=room_name,
        config=settings.game_config(),
        max_players=settings.max_players,
    )


def build_peer_guest(
    settings: Settings, *, code: str, player_id: str, name: str, r: redis.Redis | None = None
) -> PeerGuest:
    return PeerGuest(
        r=r if r is not None else connect_relay(settings.redis_url),
        code=code,
        player_id=player_id,
        name=name,
        dictionary=load_dictionary(settings),
        connect_timeout=settings.connect_timeout_sec,
    )


@app.on_event("startup")
async def _startup() -> None:
    app.state.registry = build_registry(settings)
    await app.state.registry.open()


@app.on_event("shutdown")
async def _shutdown() -> None:
    await app.state.registry.close()


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "spellgrid", "version": __version__}
