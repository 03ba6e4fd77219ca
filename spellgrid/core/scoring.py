from __future__ import annotations

from collections.abc import Sequence

from spellgrid.core.board import Board, Coord, tile_at


LONG_WORD_LENGTH = 6
LONG_WORD_BONUS = 10


def score(chain: Sequence[Coord], board: Board) -> int:
    """Point value of a chain.

    Letter multipliers apply per tile; the double-word multiplier applies once
    no matter how many chain tiles carry it; the long-word bonus is added last.
    """

    total = 0
    doubled = False
    for coord in chain:
        tile = tile_at(board, coord)
        letter_score = tile.score
        if tile.double_letter:
            letter_score *= 2
        elif tile.triple_letter:
            letter_score *= 3
        total += letter_score
        doubled = doubled or tile.double_word

    if doubled:
        total *= 2
    if len(chain) >= LONG_WORD_LENGTH:
        total += LONG_WORD_BONUS
    return total


def gems_earned(chain: Sequence[Coord], board: Board) -> int:
    return sum(1 for coord in chain if tile_at(board, coord).has_gem)
