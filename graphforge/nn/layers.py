"""
GraphForge Leaf Layers
=======================
The small building blocks every larger model is made of.

    Linear      y = W·x + b, applied to each input independently
    Activation  a named unary function (identity, gelu, tanh, ...)
    LayerNorm   (x - mean) / sqrt(var + eps) · gamma + beta
    Dropout     random zeroing in training mode, pass-through otherwise

Each layer is a Model holding params plus a Processor that turns input
nodes into output nodes by calling graph operators. None of them keep
state between calls.

Usage:
    >>> linear = Linear(4, 3)
    >>> with evaluation(linear) as proc:
    ...     y = proc.forward(proc.graph.new_variable([1.0, 0.0, 0.0, 0.0]))
"""

from __future__ import annotations

import logging
from typing import List

import torch
from torch.nn import init

from graphforge.errors import ConfigurationError
from graphforge.graph import DEFAULT_DTYPE, Node, UNARY_OPERATORS
from graphforge.nn.base import Context, Mode, Model, Param, Processor

logger = logging.getLogger(__name__)


# =============================================================================
# Linear
# =============================================================================

class LinearProcessor(Processor):
    """Applies ``W·x + b`` to every input node."""

    def __init__(self, model: Linear, ctx: Context):
        super().__init__(model, ctx)
        self.w = self.param(model.w)
        self.b = self.param(model.b) if model.b is not None else None

    def forward(self, *xs: Node) -> List[Node]:
        return [self._project(x) for x in xs]

    def _project(self, x: Node) -> Node:
        y = self.graph.mul(self.w, x)
        if self.b is not None:
            y = self.graph.add(y, self.b)
        return y


class Linear(Model):
    """
    Affine projection from ``in_features`` to ``out_features``.

    Parameters
    ----------
    in_features : int
        Size of each input vector.
    out_features : int
        Size of each output vector.
    bias : bool
        Whether to learn an additive bias.
    """

    processor_class = LinearProcessor

    def __init__(self, in_features: int, out_features: int, bias: bool = True):
        if in_features <= 0 or out_features <= 0:
            raise ValueError(
                f"Linear sizes must be positive, got {in_features}→{out_features}"
            )
        self.in_features = in_features
        self.out_features = out_features

        # Xavier uniform keeps activation variance stable across layers
        w = torch.empty(out_features, in_features, dtype=DEFAULT_DTYPE)
        init.xavier_uniform_(w)
        self.w = Param(w)
        self.b = Param(torch.zeros(out_features, dtype=DEFAULT_DTYPE)) if bias else None

    def new_processor(self, ctx: Context) -> LinearProcessor:
        return self.processor_class(self, ctx)

    def __repr__(self) -> str:
        return (
            f"Linear({self.in_features}→{self.out_features}, "
            f"bias={self.b is not None})"
        )


# =============================================================================
# Activation
# =============================================================================

class Activation(Model):
    """
    A parameter-free unary function chosen by name.

    Parameters
    ----------
    name : str
        One of ``identity, relu, gelu, tanh, sigmoid, exp, sqrt, square,
        softmax, elu, positive_elu``.
    params : float
        Extra scalar arguments. ``elu`` takes ``alpha`` (default 1.0).

    Note:
        Output heads use ``identity``: they emit raw logits, and any
        softmax/sigmoid belongs to the loss or to the caller.
    """

    def __init__(self, name: str, *params: float):
        if name not in UNARY_OPERATORS:
            raise ValueError(
                f"Unknown activation '{name}'. "
                f"Choose from: {', '.join(sorted(UNARY_OPERATORS))}"
            )
        if name == "elu":
            if len(params) > 1:
                raise ConfigurationError(f"elu takes one alpha param, got {len(params)}")
            params = params or (1.0,)
        elif params:
            raise ConfigurationError(f"Activation '{name}' takes no params, got {params}")
        self.name = name
        self.activation_params = tuple(float(p) for p in params)

    def new_processor(self, ctx: Context) -> "ActivationProcessor":
        return ActivationProcessor(self, ctx)

    def __repr__(self) -> str:
        return f"Activation({self.name!r})"


class ActivationProcessor(Processor):
    def forward(self, *xs: Node) -> List[Node]:
        consts = [self.graph.constant(p) for p in self.model.activation_params]
        return [self.graph.invoke(self.model.name, x, *consts) for x in xs]


# =============================================================================
# LayerNorm
# =============================================================================

class LayerNorm(Model):
    """
    Layer normalization over each input vector.

    Parameters
    ----------
    size : int
        Length of the normalized vectors.
    eps : float
        Added to the variance before the square root.
    """

    def __init__(self, size: int, eps: float = 1e-12):
        self.size = size
        self.eps = eps
        self.gamma = Param(torch.ones(size, dtype=DEFAULT_DTYPE))
        self.beta = Param(torch.zeros(size, dtype=DEFAULT_DTYPE))

    def new_processor(self, ctx: Context) -> "LayerNormProcessor":
        return LayerNormProcessor(self, ctx)

    def __repr__(self) -> str:
        return f"LayerNorm({self.size}, eps={self.eps})"


class LayerNormProcessor(Processor):
    def __init__(self, model: LayerNorm, ctx: Context):
        super().__init__(model, ctx)
        self.gamma = self.param(model.gamma)
        self.beta = self.param(model.beta)
        self.eps = self.graph.constant(model.eps)

    def forward(self, *xs: Node) -> List[Node]:
        g = self.graph
        ys = []
        for x in xs:
            dev = g.sub_scalar(x, g.reduce_mean(x))
            std = g.sqrt(g.add_scalar(g.reduce_mean(g.square(dev)), self.eps))
            ys.append(g.add(g.prod(g.div_scalar(dev, std), self.gamma), self.beta))
        return ys


# =============================================================================
# Dropout
# =============================================================================

class Dropout(Model):
    """
    Inverted dropout. Only active when the processor is in training mode.

    The random mask is drawn by the processor and enters the graph as a
    constant, so graph operators themselves stay deterministic.

    Parameters
    ----------
    p : float
        Probability of zeroing each element, in [0, 1).
    """

    def __init__(self, p: float = 0.1):
        if not 0.0 <= p < 1.0:
            raise ValueError(f"dropout must be in [0, 1), got {p}")
        self.p = p

    def new_processor(self, ctx: Context) -> "DropoutProcessor":
        return DropoutProcessor(self, ctx)

    def __repr__(self) -> str:
        return f"Dropout(p={self.p})"


class DropoutProcessor(Processor):
    def forward(self, *xs: Node) -> List[Node]:
        p = self.model.p
        if self.mode is not Mode.TRAINING or p == 0.0:
            return list(xs)
        ys = []
        for x in xs:
            keep = torch.rand(x.shape, dtype=x.value.dtype) >= p
            mask = keep.to(x.value.dtype) / (1.0 - p)
            ys.append(self.graph.prod(x, self.graph.constant(mask)))
        return ys
