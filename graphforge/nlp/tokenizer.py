"""
GraphForge WordPiece Tokenizer
===============================
Thin adapter around a HuggingFace ``tokenizers`` WordPiece pipeline built
from a :class:`Vocabulary`. The models never see raw text: the request
layer tokenizes, keeps the character offsets for building replies, and
hands plain token strings to ``encode``.

Pipeline:
    text → BertNormalizer (clean, lowercase, strip accents)
         → BertPreTokenizer (whitespace + punctuation)
         → WordPiece (greedy longest-match-first, "##" continuations)

Special tokens (``[CLS]``, ``[SEP]``, ``[MASK]`` ...) written literally in
the text are kept whole.

Usage:
    >>> tok = WordPieceTokenizer(vocab)
    >>> [t.text for t in tok.tokenize("Hello [MASK]!")]
    ['hello', '[MASK]', '!']
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List

from tokenizers import Tokenizer
from tokenizers.models import WordPiece
from tokenizers.normalizers import BertNormalizer
from tokenizers.pre_tokenizers import BertPreTokenizer

from graphforge.nlp.vocabulary import SPECIAL_TOKENS, UNK_TOKEN, Vocabulary

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Token:
    """A token with its character span in the original text."""
    text: str
    start: int
    end: int


class WordPieceTokenizer:
    """
    BERT style tokenizer over a fixed vocabulary.

    Parameters
    ----------
    vocabulary : Vocabulary
        Must contain ``[UNK]``.
    lowercase : bool
        Whether to lowercase (and strip accents) before splitting.
    """

    def __init__(self, vocabulary: Vocabulary, lowercase: bool = True):
        if UNK_TOKEN not in vocabulary:
            raise ValueError(f"Vocabulary must contain the {UNK_TOKEN} token")
        self.vocabulary = vocabulary

        tokenizer = Tokenizer(WordPiece(vocab=dict(vocabulary.items()), unk_token=UNK_TOKEN))
        tokenizer.normalizer = BertNormalizer(lowercase=lowercase)
        tokenizer.pre_tokenizer = BertPreTokenizer()
        tokenizer.add_special_tokens([t for t in SPECIAL_TOKENS if t in vocabulary])
        self._tokenizer = tokenizer

    def tokenize(self, text: str) -> List[Token]:
        encoding = self._tokenizer.encode(text, add_special_tokens=False)
        return [
            Token(text=piece, start=start, end=end)
            for piece, (start, end) in zip(encoding.tokens, encoding.offsets)
        ]

    def __repr__(self) -> str:
        return f"WordPieceTokenizer(vocab_size={len(self.vocabulary)})"
