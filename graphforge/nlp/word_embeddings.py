"""
GraphForge Word Embeddings
===========================
An in-memory lookup table mapping each vocabulary term to a learned
vector. Unknown words fall back to the ``[UNK]`` row when the vocabulary
has one, otherwise to a zero vector.
"""

from __future__ import annotations

from typing import List, Sequence

import torch
from torch.nn import init

from graphforge.graph import DEFAULT_DTYPE, Node
from graphforge.nlp.vocabulary import UNK_TOKEN, Vocabulary
from graphforge.nn.base import Context, Model, Param, Processor, reject_forward


class WordEmbeddings(Model):
    """
    Parameters
    ----------
    vocabulary : Vocabulary
        Terms with a row in the table.
    size : int
        Embedding vector size.
    """

    def __init__(self, vocabulary: Vocabulary, size: int):
        if size <= 0:
            raise ValueError(f"embedding size must be positive, got {size}")
        self.vocabulary = vocabulary
        self.size = size
        table = torch.empty(len(vocabulary), size, dtype=DEFAULT_DTYPE)
        init.normal_(table, mean=0.0, std=0.02)
        self.table = Param(table)

    def new_processor(self, ctx: Context) -> "WordEmbeddingsProcessor":
        return WordEmbeddingsProcessor(self, ctx)

    def __repr__(self) -> str:
        return f"WordEmbeddings(vocab={len(self.vocabulary)}, size={self.size})"


class WordEmbeddingsProcessor(Processor):
    def __init__(self, model: WordEmbeddings, ctx: Context):
        super().__init__(model, ctx)
        self.table = self.param(model.table)

    def lookup(self, index: int) -> Node:
        return self.graph.row(self.table, index)

    def encode(self, words: Sequence[str]) -> List[Node]:
        """One embedding node per word."""
        vocab = self.model.vocabulary
        unk = vocab.id(UNK_TOKEN)
        out = []
        for word in words:
            index = vocab.id(word)
            if index is None:
                index = unk
            if index is None:
                out.append(self.graph.constant(torch.zeros(self.model.size)))
            else:
                out.append(self.lookup(index))
        return out

    def forward(self, *xs: Node) -> List[Node]:
        raise reject_forward("word_embeddings", "encode")
