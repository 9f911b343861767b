"""
GraphForge Node
================
A node is one immutable entry of a :class:`~graphforge.graph.graph.Graph`.

It is either a leaf (a constant, an input, or a reference to a model
parameter) or the output of an operator applied to nodes created earlier
in the same graph. Because operands can only point backwards, the creation
order of a graph is already a topological order of its DAG.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Tuple

import torch

if TYPE_CHECKING:
    from graphforge.graph.graph import Graph

LEAF = "leaf"


@dataclass(frozen=True, eq=False)
class Node:
    """
    One node on a graph.

    Attributes
    ----------
    index : int
        Position of creation in the owning graph (monotonic).
    op : str
        Operator tag (e.g. ``"add"``, ``"mul"``) or ``"leaf"``.
    operands : tuple of Node
        Operands in call order. Empty for leaves.
    value : torch.Tensor
        The materialised value.
    requires_grad : bool
        True for leaves bound to trainable parameters.
    graph : Graph
        The graph that created this node.
    """
    index: int
    op: str
    operands: Tuple["Node", ...]
    value: torch.Tensor
    requires_grad: bool = False
    graph: "Graph" = field(default=None, repr=False)

    @property
    def is_leaf(self) -> bool:
        return self.op == LEAF

    @property
    def shape(self) -> torch.Size:
        return self.value.shape

    def scalar_value(self) -> float:
        """Return the value as a Python float. The node must hold one element."""
        if self.value.numel() != 1:
            raise ValueError(
                f"Node {self.index} ({self.op}) holds {self.value.numel()} "
                f"elements, expected a scalar"
            )
        return float(self.value.reshape(()).item())

    def __repr__(self) -> str:
        return f"Node(index={self.index}, op={self.op!r}, shape={tuple(self.shape)})"
