from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, cast

import redis


@dataclass(frozen=True, slots=True)
class Mailbox:
    room_code: str
    player_id: str

    @property
    def key(self) -> str:
        return f"peer:{self.room_code}:mailbox:{self.player_id}"


def connect_relay(url: str) -> redis.Redis:
    # decode_responses so stream ids and fields come back as str
    return redis.Redis.from_url(url, decode_responses=True)


def host_inbox_key(room_code: str) -> str:
    return f"peer:{room_code}:host"


def publish_many(*, r: redis.Redis, entries: Sequence[tuple[str, Mapping[str, str]]]) -> list[str]:
    """Append each (stream key, fields) entry in one round trip; returns stream ids in order."""

    pipe = r.pipeline(transaction=False)
    for key, fields in entries:
        pipe.xadd(key, {str(k): str(v) for k, v in fields.items()})
    return [cast(str, stream_id) for stream_id in pipe.execute()]


def read_after(*, r: redis.Redis, key: str, last_id: str, count: int = 100) -> list[tuple[str, dict[str, str]]]:
    """Non-blocking read of entries newer than `last_id`."""

    resp = r.xread({key: last_id}, count=count)
    if not resp:
        return []
    _, entries = resp[0]
    return [(cast(str, entry_id), cast(dict[str, str], fields)) for entry_id, fields in entries]
