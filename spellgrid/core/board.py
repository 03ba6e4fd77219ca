from __future__ import annotations

import bisect
import random
from collections.abc import Iterable

from pydantic import BaseModel, ConfigDict

from spellgrid.errors import InvalidLetter, InvalidTileLocation


BOARD_SIZE = 5

Coord = tuple[int, int]  # (col, row)


class Tile(BaseModel):
    """One board cell. Frozen: cells change only by full replacement."""

    model_config = ConfigDict(frozen=True)

    letter: str
    score: int
    double_letter: bool = False
    triple_letter: bool = False
    double_word: bool = False
    has_gem: bool = False
    is_frozen: bool = False


Board = list[list[Tile]]


LETTER_SCORES: dict[str, int] = {
    "A": 1, "B": 3, "C": 3, "D": 2, "E": 1, "F": 4, "G": 2, "H": 4, "I": 1,
    "J": 8, "K": 5, "L": 1, "M": 3, "N": 1, "O": 1, "P": 3, "Q": 10, "R": 1,
    "S": 1, "T": 1, "U": 1, "V": 4, "W": 4, "X": 8, "Y": 4, "Z": 10,
}

# Cumulative upper bounds, rarest letter first. Letter i owns (bound[i-1], bound[i]].
_LETTER_CDF: tuple[tuple[str, float], ...] = (
    ("Z", 0.00074),
    ("Q", 0.00169),
    ("J", 0.00319),
    ("X", 0.00469),
    ("K", 0.01239),
    ("V", 0.02219),
    ("B", 0.03719),
    ("P", 0.05619),
    ("G", 0.07619),
    ("Y", 0.09619),
    ("F", 0.11819),
    ("M", 0.14219),
    ("W", 0.16619),
    ("C", 0.19419),
    ("U", 0.22219),
    ("L", 0.26219),
    ("D", 0.30519),
    ("R", 0.36519),
    ("H", 0.42619),
    ("S", 0.48919),
    ("N", 0.55619),
    ("I", 0.62619),
    ("O", 0.70119),
    ("A", 0.78319),
    ("T", 0.87419),
    ("E", 1.0),
)
_CDF_LETTERS = tuple(letter for letter, _ in _LETTER_CDF)
_CDF_BOUNDS = tuple(bound for _, bound in _LETTER_CDF)

# (row, col)
DOUBLE_LETTER_CELLS: tuple[tuple[int, int], ...] = ((0, 3), (3, 0), (4, 1), (1, 4), (2, 2))
TRIPLE_LETTER_CELLS: tuple[tuple[int, int], ...] = ((1, 1), (3, 3), (1, 3), (3, 1))

TITLE_WORD = "WIBLE"


def plain_tile(letter: str) -> Tile:
    """Unmodified tile for `letter` (case-insensitive)."""

    normalized = letter.strip().upper()
    if len(normalized) != 1 or normalized not in LETTER_SCORES:
        raise InvalidLetter(f"Invalid letter: {letter!r}")
    return Tile(letter=normalized, score=LETTER_SCORES[normalized])


def letter_for_value(value: float) -> str:
    """Map a uniform draw in [0, 1] onto the letter table.

    Binary search over the cumulative bounds; a value exactly on a boundary
    belongs to the lower-indexed letter.
    """

    idx = bisect.bisect_left(_CDF_BOUNDS, value)
    return _CDF_LETTERS[min(idx, len(_CDF_LETTERS) - 1)]


def weighted_random_tile(*, rng: random.Random) -> Tile:
    return plain_tile(letter_for_value(rng.random()))


def all_cells() -> list[tuple[int, int]]:
    return [(row, col) for row in range(BOARD_SIZE) for col in range(BOARD_SIZE)]


def generate_board(*, rng: random.Random) -> Board:
    board: Board = [[weighted_random_tile(rng=rng) for _ in range(BOARD_SIZE)] for _ in range(BOARD_SIZE)]

    for row, col in DOUBLE_LETTER_CELLS:
        board[row][col] = board[row][col].model_copy(update={"double_letter": True})
    for row, col in TRIPLE_LETTER_CELLS:
        board[row][col] = board[row][col].model_copy(update={"triple_letter": True})

    # The double-word cell replaces whatever letter multiplier was there.
    dw_row, dw_col = rng.randrange(BOARD_SIZE), rng.randrange(BOARD_SIZE)
    board[dw_row][dw_col] = board[dw_row][dw_col].model_copy(
        update={"double_word": True, "double_letter": False, "triple_letter": False}
    )

    cells = all_cells()
    gem_cells = rng.sample(cells, rng.randint(3, 5))
    for row, col in gem_cells:
        board[row][col] = board[row][col].model_copy(update={"has_gem": True})

    taken = set(gem_cells)
    free_cells = [c for c in cells if c not in taken]
    for row, col in rng.sample(free_cells, rng.randint(0, 2)):
        board[row][col] = board[row][col].model_copy(update={"is_frozen": True})

    return board


def generate_title_board() -> Board:
    return [[plain_tile(letter) for letter in TITLE_WORD] for _ in range(BOARD_SIZE)]


def is_on_board(coord: Coord) -> bool:
    col, row = coord
    return 0 <= col < BOARD_SIZE and 0 <= row < BOARD_SIZE


def require_on_board(coord: Coord) -> None:
    if not is_on_board(coord):
        raise InvalidTileLocation(f"Invalid tile location: {list(coord)}")


def tile_at(board: Board, coord: Coord) -> Tile:
    col, row = coord
    return board[row][col]


def copy_board(board: Board) -> Board:
    return [list(row) for row in board]


def replace_used_tiles(board: Board, coords: Iterable[Coord], *, rng: random.Random) -> Board:
    """Return a new board where every coord holds a freshly drawn plain tile."""

    out = copy_board(board)
    for col, row in coords:
        out[row][col] = weighted_random_tile(rng=rng)
    return out


def shuffle_board(board: Board, *, rng: random.Random) -> Board:
    """Fisher-Yates permutation of whole tiles.

    Modifiers travel with their tile; multiplier cells are not pinned.
    """

    flat = [tile for row in board for tile in row]
    for i in range(len(flat) - 1, 0, -1):
        j = rng.randint(0, i)
        flat[i], flat[j] = flat[j], flat[i]
    return [flat[r * BOARD_SIZE : (r + 1) * BOARD_SIZE] for r in range(BOARD_SIZE)]


def replace_tile_letter(board: Board, coord: Coord, letter: str) -> Board:
    """Overwrite the letter/score of one cell, keeping its modifier flags."""

    require_on_board(coord)
    fresh = plain_tile(letter)
    col, row = coord
    out = copy_board(board)
    out[row][col] = out[row][col].model_copy(update={"letter": fresh.letter, "score": fresh.score})
    return out
