"""
GraphForge BERT Embeddings
===========================
Turns a token sequence into the vectors the encoder consumes:

    token i ──▶ word[token] + position[i] + token_type[segment(i)]
            ──▶ LayerNorm ──▶ Dropout ──▶ (optional projection)

The segment switches from 0 to 1 right after the first ``[SEP]``, so a
``[CLS] a [SEP] b [SEP]`` pair gets type 0 for the first sentence and type 1
for the second.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import torch
from torch.nn import init

from graphforge.graph import DEFAULT_DTYPE, Node
from graphforge.nlp.vocabulary import SEP_TOKEN, Vocabulary
from graphforge.nlp.word_embeddings import WordEmbeddings
from graphforge.nn.base import Context, Model, Param, Processor, reject_forward
from graphforge.nn.layers import Dropout, LayerNorm, Linear

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingsConfig:
    """
    Parameters
    ----------
    size : int
        Size of the word, position and token type vectors.
    output_size : int
        Size of the returned vectors. A projection is added when it
        differs from ``size``.
    max_positions : int
        Longest sequence that can be encoded.
    token_types : int
        Number of segment embeddings.
    dropout : float
        Dropout probability in training mode.
    layer_norm_eps : float
        Epsilon of the LayerNorm.
    """
    size: int
    output_size: int
    max_positions: int
    token_types: int
    dropout: float = 0.1
    layer_norm_eps: float = 1e-12


class Embeddings(Model):
    """
    Parameters
    ----------
    config : EmbeddingsConfig
        Sizes of the tables.
    vocabulary : Vocabulary
        Terms of the word table.
    """

    def __init__(self, config: EmbeddingsConfig, vocabulary: Vocabulary):
        self.config = config
        self.words = WordEmbeddings(vocabulary, config.size)

        positions = torch.empty(config.max_positions, config.size, dtype=DEFAULT_DTYPE)
        init.normal_(positions, mean=0.0, std=0.02)
        self.positions = Param(positions)

        token_types = torch.empty(config.token_types, config.size, dtype=DEFAULT_DTYPE)
        init.normal_(token_types, mean=0.0, std=0.02)
        self.token_types = Param(token_types)

        self.norm = LayerNorm(config.size, config.layer_norm_eps)
        self.dropout = Dropout(config.dropout)
        self.projector: Optional[Linear] = None
        if config.output_size != config.size:
            self.projector = Linear(config.size, config.output_size)

    def new_processor(self, ctx: Context) -> "EmbeddingsProcessor":
        children = [child.new_processor(ctx) for child in self.children()]
        return EmbeddingsProcessor(self, ctx, children)


class EmbeddingsProcessor(Processor):
    def __init__(self, model: Embeddings, ctx: Context, children: Sequence[Processor]):
        super().__init__(model, ctx, children)
        self.words, self.norm, self.dropout = self.children[:3]
        self.projector = self.children[3] if model.projector is not None else None
        self.positions = self.param(model.positions)
        self.token_types = self.param(model.token_types)

    def encode(self, tokens: Sequence[str]) -> List[Node]:
        """
        Embed a token sequence.

        Raises
        ------
        ValueError
            If the sequence is longer than the position table.
        """
        max_positions = self.model.config.max_positions
        if len(tokens) > max_positions:
            raise ValueError(
                f"Sequence of {len(tokens)} tokens exceeds the "
                f"{max_positions} supported positions"
            )
        g = self.graph
        words = self.words.encode(tokens)
        first_sep = tokens.index(SEP_TOKEN) if SEP_TOKEN in tokens else len(tokens)
        summed = []
        for i, word in enumerate(words):
            position = g.row(self.positions, i)
            token_type = g.row(self.token_types, self._segment(i, first_sep))
            summed.append(g.sum(word, position, token_type))

        ys = self.dropout.forward(*self.norm.forward(*summed))
        if self.projector is not None:
            ys = self.projector.forward(*ys)
        return ys

    def _segment(self, i: int, first_sep: int) -> int:
        # Type 0 up to and including the first [SEP], type 1 afterwards
        if self.model.config.token_types < 2 or i <= first_sep:
            return 0
        return 1

    def forward(self, *xs: Node) -> List[Node]:
        raise reject_forward("bert.embeddings", "encode")
