"""Word-validity oracle backed by an in-memory set."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path


logger = logging.getLogger(__name__)

DEFAULT_WORDS_PATH = Path(__file__).resolve().parents[1] / "assets" / "words.txt"

MIN_WORD_LENGTH = 2


def _normalize(word: str) -> str:
    return word.strip().upper()


class Dictionary:
    """Case-insensitive exact-match word set.

    Words can be added at runtime but never removed.
    """

    def __init__(self, words: Iterable[str] = ()) -> None:
        self._words: set[str] = set()
        self.load_custom_dictionary(words)

    @classmethod
    def from_file(cls, path: Path) -> "Dictionary":
        with path.open("r", encoding="utf-8") as f:
            d = cls(line for line in f)
        logger.info("Loaded %s words from %s", f"{len(d):,}", path)
        return d

    @classmethod
    def default(cls) -> "Dictionary":
        return cls.from_file(DEFAULT_WORDS_PATH)

    def is_valid_word(self, word: str) -> bool:
        if len(word) < MIN_WORD_LENGTH:
            return False
        return _normalize(word) in self._words

    def load_custom_dictionary(self, words: Iterable[str]) -> None:
        for word in words:
            normalized = _normalize(word)
            if normalized:
                self._words.add(normalized)

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and self.is_valid_word(word)

    def __len__(self) -> int:
        return len(self._words)
