from __future__ import annotations

import os
from collections.abc import Callable, Sequence

import pytest

# The room clock would otherwise interleave timer_update frames with the
# websocket assertions; tests drive `tick()` explicitly instead.
os.environ.setdefault("SPELLGRID_TICK_INTERVAL_SEC", "3600")

from spellgrid.core.board import Board, plain_tile  # noqa: E402
from spellgrid.core.dictionary import Dictionary  # noqa: E402


TEST_WORDS = ["CAT", "CATS", "ACT", "AT", "TA", "TAB", "BAT", "STAB", "BATS", "TABS", "SCAT"]


@pytest.fixture()
def dictionary() -> Dictionary:
    return Dictionary(TEST_WORDS)


@pytest.fixture()
def make_board() -> Callable[[Sequence[str]], Board]:
    """Build a plain 5x5 board from five 5-letter rows (row 0 first)."""

    def _make(rows: Sequence[str]) -> Board:
        assert len(rows) == 5 and all(len(r) == 5 for r in rows)
        return [[plain_tile(letter) for letter in row] for row in rows]

    return _make


@pytest.fixture()
def client():
    """FastAPI TestClient with startup/shutdown run, so the registry is live."""

    from fastapi.testclient import TestClient

    from spellgrid.main import app

    with TestClient(app) as c:
        yield c
