from __future__ import annotations

import random

import fakeredis
import pytest

from spellgrid.api.messages import AddLetter, ToggleReady
from spellgrid.api.models import GameConfig, SessionPhase
from spellgrid.errors import ConnectionTimeout, PeerUnavailable, RoomCodeInUse, RoomFull, RoomNotFound
from spellgrid.lock import claim_room_code, room_code_owner
from spellgrid.peer import (
    ROOM_CODE_LENGTH,
    PeerBoardUpdate,
    PeerError,
    PeerGuest,
    PeerHost,
    generate_room_code,
    normalize_room_code,
)


@pytest.fixture()
def r() -> fakeredis.FakeRedis:
    return fakeredis.FakeRedis(decode_responses=True)


def _host(r, dictionary, **kwargs) -> PeerHost:
    return PeerHost(
        r=r,
        dictionary=dictionary,
        host_id="host",
        host_name="Ann",
        config=GameConfig(total_rounds=1),
        rng=random.Random(7),
        **kwargs,
    )


def _guest(r, dictionary, code: str, player_id: str = "g1", name: str = "Bob") -> PeerGuest:
    return PeerGuest(r=r, code=code, player_id=player_id, name=name, dictionary=dictionary, poll_interval=0.01)


def test_room_codes_are_short_uppercase() -> None:
    code = generate_room_code(random.Random(1))
    assert len(code) == ROOM_CODE_LENGTH
    assert code == code.upper() and code.isalnum()
    assert normalize_room_code(f" {code.lower()} ") == code
    with pytest.raises(RoomNotFound):
        normalize_room_code("abc")


@pytest.mark.asyncio
async def test_open_claims_code_and_seats_host(r, dictionary) -> None:
    host = _host(r, dictionary)
    code = await host.open(serve=False)

    assert room_code_owner(r=r, code=code) == "host"
    room = host.get_room(code)
    assert list(room.session.players) == ["host"]
    assert room.session.players["host"].is_host

    await host.close()
    assert room_code_owner(r=r, code=code) is None


@pytest.mark.asyncio
async def test_open_retries_when_code_taken(r, dictionary) -> None:
    taken = generate_room_code(random.Random(7))
    claim_room_code(r=r, code=taken, owner="someone-else")

    host = _host(r, dictionary)
    code = await host.open(serve=False)

    assert code != taken
    with pytest.raises(RoomCodeInUse):
        claim_room_code(r=r, code=code, owner="third")
    await host.close()


@pytest.mark.asyncio
async def test_guest_joins_through_host_inbox(r, dictionary) -> None:
    host = _host(r, dictionary)
    code = await host.open(serve=False)
    guest = _guest(r, dictionary, code.lower())

    guest.request_join()
    assert await host.pump_once() == 1
    snap = await guest.await_join(timeout=1.0)

    assert [p.id for p in snap.players] == ["host", "g1"]
    assert guest.session.phase == SessionPhase.waiting_room
    assert list(guest.session.players) == ["host", "g1"]
    await host.close()


def test_guest_without_host_is_peer_unavailable(r, dictionary) -> None:
    guest = _guest(r, dictionary, "ABC123")
    with pytest.raises(PeerUnavailable):
        guest.request_join()
    assert guest.session.phase == SessionPhase.main_menu


@pytest.mark.asyncio
async def test_guest_times_out_when_host_is_silent(r, dictionary) -> None:
    host = _host(r, dictionary)
    code = await host.open(serve=False)
    guest = _guest(r, dictionary, code)

    with pytest.raises(ConnectionTimeout):
        await guest.connect(timeout=0.05)
    assert guest.session.phase == SessionPhase.main_menu
    await host.close()


@pytest.mark.asyncio
async def test_full_room_error_reaches_only_that_guest(r, dictionary) -> None:
    host = _host(r, dictionary, max_players=2)
    code = await host.open(serve=False)
    first = _guest(r, dictionary, code, "g1", "Bob")
    second = _guest(r, dictionary, code, "g2", "Cy")

    first.request_join()
    second.request_join()
    await host.pump_once()

    await first.await_join(timeout=1.0)
    with pytest.raises(RoomFull):
        await second.await_join(timeout=1.0)
    assert not any(isinstance(m, PeerError) for m in first.received)
    await host.close()


@pytest.mark.asyncio
async def test_game_start_and_board_updates_mirror_to_guest(r, dictionary) -> None:
    host = _host(r, dictionary)
    code = await host.open(serve=False)
    guest = _guest(r, dictionary, code)
    guest.request_join()
    await host.pump_once()
    await guest.await_join(timeout=1.0)

    await host.toggle_ready(code, "host")
    guest.send(ToggleReady())
    await host.pump_once()
    await host.start_game(code, "host")
    guest.poll()

    authoritative = host.get_room(code).session
    assert guest.session.phase == SessionPhase.idle
    assert guest.session.board == authoritative.board

    # Out-of-turn intent comes back as an error, and nothing changes.
    guest.send(AddLetter(col=0, row=0))
    await host.pump_once()
    new = guest.poll()
    assert [m.code for m in new if isinstance(m, PeerError)] == ["not_your_turn"]
    assert authoritative.chain == []

    col, row = next((c, r) for r in range(5) for c in range(5) if not authoritative.board[r][c].is_frozen)
    await host.add_letter(code, "host", col, row)
    new = guest.poll()
    update = next(m for m in new if isinstance(m, PeerBoardUpdate))
    assert update.chain == [(col, row)]
    assert update.current_player_id == "host"
    await host.close()


@pytest.mark.asyncio
async def test_last_player_leaving_closes_host(r, dictionary) -> None:
    host = _host(r, dictionary)
    code = await host.open(serve=False)
    guest = _guest(r, dictionary, code)
    guest.request_join()
    await host.pump_once()
    await guest.await_join(timeout=1.0)

    guest.leave()
    await host.pump_once()
    assert list(host.get_room(code).session.players) == ["host"]
    assert guest.session.phase == SessionPhase.main_menu

    await host.leave_room(code, "host")
    assert host.code is None
    assert room_code_owner(r=r, code=code) is None


@pytest.mark.asyncio
async def test_settings_built_peers_share_a_relay(r) -> None:
    from spellgrid.config import Settings
    from spellgrid.main import build_peer_guest, build_peer_host

    settings = Settings(connect_timeout_sec=0.5)
    host = build_peer_host(settings, host_id="host", host_name="Ann", r=r)
    code = await host.open(serve=False)
    guest = build_peer_guest(settings, code=code, player_id="g1", name="Bob", r=r)
    assert guest.connect_timeout == 0.5

    guest.request_join()
    await host.pump_once()
    snap = await guest.await_join()
    assert snap.name == "Ann's room"
    await host.close()
