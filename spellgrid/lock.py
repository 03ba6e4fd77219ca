from __future__ import annotations

import redis

from spellgrid.errors import RoomCodeInUse


DEFAULT_CLAIM_TTL_MS = 60_000


def room_code_key(code: str) -> str:
    return f"peer:room:{code}"


def claim_room_code(*, r: redis.Redis, code: str, owner: str, ttl_ms: int = DEFAULT_CLAIM_TTL_MS) -> None:
    """Claim a peer room code for `owner`.

    SET NX with a TTL, so a host that dies without closing frees its code.
    The host refreshes the claim while it is serving.
    """

    acquired = r.set(room_code_key(code), owner, nx=True, px=ttl_ms)
    if not acquired:
        raise RoomCodeInUse(f"Room code {code} already in use")


def refresh_room_code(*, r: redis.Redis, code: str, owner: str, ttl_ms: int = DEFAULT_CLAIM_TTL_MS) -> bool:
    if room_code_owner(r=r, code=code) != owner:
        return False
    return bool(r.pexpire(room_code_key(code), ttl_ms))


def release_room_code(*, r: redis.Redis, code: str, owner: str) -> None:
    # Only safe with a single holder per code, which the NX claim gives us.
    if room_code_owner(r=r, code=code) == owner:
        r.delete(room_code_key(code))


def room_code_owner(*, r: redis.Redis, code: str) -> str | None:
    owner = r.get(room_code_key(code))
    return str(owner) if owner is not None else None
