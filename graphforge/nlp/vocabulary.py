"""
GraphForge Vocabulary
======================
A bidirectional ``term ↔ id`` mapping loaded from a BERT style
``vocab.txt`` (one term per line, the line number is the id).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

PAD_TOKEN = "[PAD]"
UNK_TOKEN = "[UNK]"
CLS_TOKEN = "[CLS]"
SEP_TOKEN = "[SEP]"
MASK_TOKEN = "[MASK]"

SPECIAL_TOKENS = [PAD_TOKEN, UNK_TOKEN, CLS_TOKEN, SEP_TOKEN, MASK_TOKEN]


class Vocabulary:
    """
    Ordered set of terms.

    Parameters
    ----------
    terms : iterable of str
        Terms in id order. Duplicates keep their first id.
    """

    def __init__(self, terms: Iterable[str] = ()):
        self._terms: List[str] = []
        self._ids: Dict[str, int] = {}
        for term in terms:
            self.add(term)

    def add(self, term: str) -> int:
        """Add ``term`` if missing and return its id."""
        if term not in self._ids:
            self._ids[term] = len(self._terms)
            self._terms.append(term)
        return self._ids[term]

    def _append(self, term: str) -> None:
        # Always takes the next id; a repeated term keeps resolving to its first id
        self._ids.setdefault(term, len(self._terms))
        self._terms.append(term)

    def id(self, term: str) -> Optional[int]:
        return self._ids.get(term)

    def term(self, term_id: int) -> str:
        if not 0 <= term_id < len(self._terms):
            raise IndexError(f"term id {term_id} out of range [0, {len(self._terms)})")
        return self._terms[term_id]

    def items(self) -> Iterator[Tuple[str, int]]:
        return iter(self._ids.items())

    def __len__(self) -> int:
        return len(self._terms)

    def __contains__(self, term: str) -> bool:
        return term in self._ids

    def __iter__(self) -> Iterator[str]:
        return iter(self._terms)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "Vocabulary":
        """
        Load a vocabulary from a text file with one term per line.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Vocabulary file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            vocab = cls()
            # One id per line, blank lines included, so ids match embedding rows
            for line in f:
                vocab._append(line.rstrip("\r\n"))
        logger.info(f"Vocabulary loaded from {path} ({len(vocab)} terms)")
        return vocab

    def save(self, path: Union[str, Path]) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.writelines(f"{term}\n" for term in self._terms)

    def __repr__(self) -> str:
        return f"Vocabulary(size={len(self)})"
