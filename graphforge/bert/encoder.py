"""
GraphForge BERT Encoder
========================
A stack of identical transformer blocks (post-norm, as in the original
BERT):

    x ──▶ MultiHeadSelfAttention ──▶ Dropout ──▶ + x ──▶ LayerNorm ──▶ h
    h ──▶ Linear ──▶ act ──▶ Linear ──▶ Dropout ──▶ + h ──▶ LayerNorm ──▶ out

Attention is a full-sequence operation: every output position depends on
every input position. All other sub-layers work position by position.

Per head, with keys K and values V stacked as matrices (one row per
position), position i attends with:

    weights_i = softmax(K · q_i / sqrt(head_size))
    context_i = Vᵀ · weights_i
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Sequence

from graphforge.graph import Node
from graphforge.nn.base import Context, Model, Processor
from graphforge.nn.layers import Activation, Dropout, LayerNorm, Linear
from graphforge.nn.stack import Stack

logger = logging.getLogger(__name__)


@dataclass
class EncoderConfig:
    """
    Parameters
    ----------
    size : int
        Size of every token vector.
    num_attention_heads : int
        Heads per attention block. Must divide ``size``.
    intermediate_size : int
        Hidden size of the feed-forward block.
    intermediate_activation : str
        Activation between the two feed-forward linears.
    num_layers : int
        Number of stacked blocks.
    dropout : float
        Dropout probability in training mode.
    layer_norm_eps : float
        Epsilon of every LayerNorm.
    """
    size: int
    num_attention_heads: int
    intermediate_size: int
    intermediate_activation: str
    num_layers: int
    dropout: float = 0.1
    layer_norm_eps: float = 1e-12


# =============================================================================
# Multi-Head Self-Attention
# =============================================================================

class MultiHeadSelfAttention(Model):
    """
    Parameters
    ----------
    size : int
        Input and output vector size.
    num_heads : int
        Number of heads. Must divide ``size`` evenly.
    """

    def __init__(self, size: int, num_heads: int):
        if size % num_heads != 0:
            raise ValueError(
                f"size ({size}) must be divisible by num_heads ({num_heads})"
            )
        self.size = size
        self.num_heads = num_heads
        self.head_size = size // num_heads
        self.query = Linear(size, size)
        self.key = Linear(size, size)
        self.value = Linear(size, size)
        self.output = Linear(size, size)

    def new_processor(self, ctx: Context) -> "MultiHeadSelfAttentionProcessor":
        children = [child.new_processor(ctx) for child in self.children()]
        return MultiHeadSelfAttentionProcessor(self, ctx, children)


class MultiHeadSelfAttentionProcessor(Processor):
    def __init__(self, model: MultiHeadSelfAttention, ctx: Context, children: Sequence[Processor]):
        super().__init__(model, ctx, children)
        self.query, self.key, self.value, self.output = self.children

    def forward(self, *xs: Node) -> List[Node]:
        if not xs:
            return []
        g = self.graph
        m = self.model
        qs = self.query.forward(*xs)
        ks = self.key.forward(*xs)
        vs = self.value.forward(*xs)
        scale = g.constant(1.0 / math.sqrt(m.head_size))

        contexts: List[List[Node]] = [[] for _ in xs]
        for h in range(m.num_heads):
            start, end = h * m.head_size, (h + 1) * m.head_size
            keys = g.stack(*[g.slice_vec(k, start, end) for k in ks])
            values_t = g.transpose(g.stack(*[g.slice_vec(v, start, end) for v in vs]))
            for i, q in enumerate(qs):
                scores = g.prod_scalar(g.mul(keys, g.slice_vec(q, start, end)), scale)
                contexts[i].append(g.mul(values_t, g.softmax(scores)))

        concatenated = [heads[0] if len(heads) == 1 else g.concat(*heads) for heads in contexts]
        return self.output.forward(*concatenated)


# =============================================================================
# Transformer Block
# =============================================================================

class EncoderLayer(Model):
    """One post-norm transformer block."""

    def __init__(self, config: EncoderConfig):
        self.attention = MultiHeadSelfAttention(config.size, config.num_attention_heads)
        self.attention_norm = LayerNorm(config.size, config.layer_norm_eps)
        self.ffn = Stack(
            Linear(config.size, config.intermediate_size),
            Activation(config.intermediate_activation),
            Linear(config.intermediate_size, config.size),
        )
        self.ffn_norm = LayerNorm(config.size, config.layer_norm_eps)
        self.dropout = Dropout(config.dropout)

    def new_processor(self, ctx: Context) -> "EncoderLayerProcessor":
        children = [child.new_processor(ctx) for child in self.children()]
        return EncoderLayerProcessor(self, ctx, children)


class EncoderLayerProcessor(Processor):
    def __init__(self, model: EncoderLayer, ctx: Context, children: Sequence[Processor]):
        super().__init__(model, ctx, children)
        self.attention, self.attention_norm, self.ffn, self.ffn_norm, self.dropout = self.children

    def forward(self, *xs: Node) -> List[Node]:
        g = self.graph
        attended = self.dropout.forward(*self.attention.forward(*xs))
        hs = self.attention_norm.forward(*[g.add(x, a) for x, a in zip(xs, attended)])
        transformed = self.dropout.forward(*self.ffn.forward(*hs))
        return self.ffn_norm.forward(*[g.add(h, t) for h, t in zip(hs, transformed)])


# =============================================================================
# Encoder
# =============================================================================

class Encoder(Stack):
    """A Stack of ``config.num_layers`` identical transformer blocks."""

    def __init__(self, config: EncoderConfig):
        if config.num_layers < 1:
            raise ValueError(f"num_layers must be >= 1, got {config.num_layers}")
        super().__init__(*[EncoderLayer(config) for _ in range(config.num_layers)])
        self.config = config
        logger.info(
            f"Encoder: {config.num_layers} layers, size={config.size}, "
            f"{self.n_params / 1e6:.2f}M params"
        )
