"""
GraphForge Stacked Embeddings
==============================
Stacks several word representations by concatenating them, then feeds the
result through one linear layer. The linear layer both projects the
concatenation down to a smaller size and gives the final word
representation something left to train.

Data flow for a sentence of n words and k encoders:

    words ──▶ encoder 1 ──▶ e1[0..n)  ┐
          ──▶ encoder 2 ──▶ e2[0..n)  ├─ concat per word ──▶ projection ──▶ n vectors
          ──▶ ...                      ┘

With a single encoder the concatenation is skipped and its vectors go
straight to the projection.
"""

from __future__ import annotations

import logging
from typing import List, Protocol, Sequence, runtime_checkable

from graphforge.errors import ConfigurationError
from graphforge.graph import Node
from graphforge.nn.base import Context, Model, Processor, reject_forward, require_capability
from graphforge.nn.layers import Linear

logger = logging.getLogger(__name__)


@runtime_checkable
class WordsEncoder(Protocol):
    """Capability of processors that turn a word sequence into vectors."""

    def encode(self, words: Sequence[str]) -> List[Node]:
        ...


class StackedEmbeddings(Model):
    """
    Parameters
    ----------
    words_encoders : sequence of Model
        Models whose processors provide ``encode(words)``.
    projection : Linear
        Applied to every concatenated vector. Its input size must equal
        the sum of the encoders' output sizes.
    """

    def __init__(self, words_encoders: Sequence[Model], projection: Linear):
        if not words_encoders:
            raise ConfigurationError("StackedEmbeddings needs at least one words encoder")
        self.words_encoders = list(words_encoders)
        self.projection = projection

    def new_processor(self, ctx: Context) -> "StackedEmbeddingsProcessor":
        encoders = [
            require_capability(
                encoder.new_processor(ctx), WordsEncoder,
                f"stacked_embeddings: words encoder at index {i}",
            )
            for i, encoder in enumerate(self.words_encoders)
        ]
        projection = self.projection.new_processor(ctx)
        return StackedEmbeddingsProcessor(self, ctx, encoders + [projection])


class StackedEmbeddingsProcessor(Processor):
    @property
    def encoders(self) -> List[Processor]:
        return self.children[:-1]

    @property
    def projection(self) -> Processor:
        return self.children[-1]

    def encode(self, words: Sequence[str]) -> List[Node]:
        """Encode ``words`` with every encoder, concatenate per word, project."""
        per_word: List[List[Node]] = [[] for _ in words]
        for encoder in self.encoders:
            encodings = encoder.encode(words)
            if len(encodings) != len(words):
                raise ValueError(
                    f"{type(encoder).__name__} returned {len(encodings)} "
                    f"vectors for {len(words)} words"
                )
            for i, encoding in enumerate(encodings):
                per_word[i].append(encoding)

        intermediate = [
            vectors[0] if len(vectors) == 1 else self.graph.concat(*vectors)
            for vectors in per_word
        ]
        return self.projection.forward(*intermediate)

    def forward(self, *xs: Node) -> List[Node]:
        raise reject_forward("stacked_embeddings", "encode")
