from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from spellgrid.core.board import Board, Coord, is_on_board, tile_at
from spellgrid.core.dictionary import MIN_WORD_LENGTH, Dictionary
from spellgrid.errors import WordRejected


class ChainRejection(StrEnum):
    too_short = "too_short"
    not_in_dictionary = "not_in_dictionary"
    uses_frozen_tile = "uses_frozen_tile"


REJECTION_MESSAGES: dict[ChainRejection, str] = {
    ChainRejection.too_short: "Words need at least 2 letters",
    ChainRejection.not_in_dictionary: "Not a valid word",
    ChainRejection.uses_frozen_tile: "Frozen tiles cannot be used",
}


@dataclass(frozen=True, slots=True)
class ValidWord:
    word: str
    coords: tuple[Coord, ...]


def is_adjacent(a: Coord, b: Coord) -> bool:
    """Chebyshev distance of exactly 1 (8-directional, no wrap-around)."""

    return a != b and abs(a[0] - b[0]) <= 1 and abs(a[1] - b[1]) <= 1


def word_for(chain: Sequence[Coord], board: Board) -> str:
    return "".join(tile_at(board, c).letter for c in chain)


def can_extend(chain: Sequence[Coord], candidate: Coord, board: Board) -> bool:
    """Whether `candidate` may be appended to `chain`.

    Frozen tiles are refused here as well as at submission.
    """

    if not is_on_board(candidate):
        return False
    if candidate in chain:
        return False
    if tile_at(board, candidate).is_frozen:
        return False
    if not chain:
        return True
    return is_adjacent(chain[-1], candidate)


def rejection_reason(chain: Sequence[Coord], board: Board, dictionary: Dictionary) -> ChainRejection | None:
    """First reason the chain cannot be submitted, or None if it can."""

    if len(chain) < MIN_WORD_LENGTH:
        return ChainRejection.too_short
    if not dictionary.is_valid_word(word_for(chain, board)):
        return ChainRejection.not_in_dictionary
    if any(tile_at(board, c).is_frozen for c in chain):
        return ChainRejection.uses_frozen_tile
    return None


def validate_submission(chain: Sequence[Coord], board: Board, dictionary: Dictionary) -> ValidWord:
    reason = rejection_reason(chain, board, dictionary)
    if reason is not None:
        raise WordRejected(reason.value, REJECTION_MESSAGES[reason])
    return ValidWord(word=word_for(chain, board), coords=tuple(chain))
