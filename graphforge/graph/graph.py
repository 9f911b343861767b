"""
GraphForge Computation Graph
=============================
The graph records every operation of one evaluation session as a node in
an append-only list. Values are computed eagerly with torch as each node is
created, while the operator tags and operand links are kept so that a later
differentiation pass can walk the DAG backwards.

Rules every operator follows:
    - Operands must already belong to this graph (no cross-graph links).
    - Preconditions (arity, shapes) are checked before anything is appended.
    - Exactly one node is appended per primitive call. Composite operators
      (``positive_elu``, ``sum``, ``mean``, ``separate_vec``) only call
      primitives, so they append one node per primitive they use.
    - Nothing random happens inside an operator.

Parameters are wrapped by reference: ``param(p)`` never copies or mutates
``p.value``, and calling it twice with the same storage returns the same
node for this graph.

Usage:
    >>> g = Graph()
    >>> x = g.new_variable([1.0, 2.0, 3.0])
    >>> y = g.mean(x, g.prod_scalar(x, g.constant(3.0)))
    >>> y.value
    tensor([2., 4., 6.], dtype=torch.float64)
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence, Tuple

import torch
import torch.nn.functional as F

from graphforge.errors import (
    CrossGraphError,
    EmptyOperandListError,
    ShapeMismatchError,
)
from graphforge.graph.node import LEAF, Node

logger = logging.getLogger(__name__)

DEFAULT_DTYPE = torch.float64


def as_tensor(value: Any, dtype: torch.dtype = DEFAULT_DTYPE) -> torch.Tensor:
    """Convert a Python number, sequence or tensor into a tensor of ``dtype``."""
    if isinstance(value, torch.Tensor):
        return value.to(dtype)
    return torch.as_tensor(value, dtype=dtype)


class Graph:
    """
    Append-only DAG of computation nodes for one evaluation session.

    A graph is created per request (usually through
    :func:`graphforge.nn.base.evaluation`) and discarded once the caller
    has read the values it needs. It is not thread-safe: one graph belongs
    to one thread, but any number of graphs may evaluate the same model
    concurrently.
    """

    def __init__(self):
        self._nodes: List[Node] = []
        # id(param) -> (param, node); the param is kept so its id stays unique
        self._param_nodes: Dict[int, Tuple[Any, Node]] = {}

    # ─── Bookkeeping ────────────────────────────────────────────────────

    @property
    def nodes(self) -> Tuple[Node, ...]:
        """All nodes in creation order."""
        return tuple(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def clear(self) -> None:
        """Release every node. Parameter storage is left untouched."""
        self._nodes.clear()
        self._param_nodes.clear()

    def _new_node(
        self,
        op: str,
        operands: Sequence[Node],
        value: torch.Tensor,
        requires_grad: bool = False,
    ) -> Node:
        node = Node(
            index=len(self._nodes),
            op=op,
            operands=tuple(operands),
            value=value,
            requires_grad=requires_grad,
            graph=self,
        )
        self._nodes.append(node)
        return node

    def _check_operands(self, op: str, operands: Sequence[Node]) -> None:
        for x in operands:
            if not isinstance(x, Node):
                raise TypeError(f"{op}: expected Node operand, got {type(x).__name__}")
            if x.graph is not self:
                raise CrossGraphError(
                    f"{op}: operand node {x.index} belongs to another graph"
                )

    # ─── Leaves ─────────────────────────────────────────────────────────

    def constant(self, value: Any, dtype: torch.dtype = DEFAULT_DTYPE) -> Node:
        """Create a leaf holding an immutable literal."""
        return self._new_node(LEAF, (), as_tensor(value, dtype))

    def new_variable(self, value: Any, requires_grad: bool = False) -> Node:
        """Create an input leaf owned by this graph."""
        return self._new_node(LEAF, (), as_tensor(value), requires_grad=requires_grad)

    def param(self, p) -> Node:
        """
        Wrap externally owned parameter storage as a leaf.

        Parameters
        ----------
        p : Param
            Any object exposing ``value`` (a tensor) and ``requires_grad``.

        Returns
        -------
        Node
            The same node for every call with the same ``p`` on this graph.
        """
        cached = self._param_nodes.get(id(p))
        if cached is not None:
            return cached[1]
        node = self._new_node(LEAF, (), p.value, requires_grad=p.requires_grad)
        self._param_nodes[id(p)] = (p, node)
        return node

    # ─── Elementwise binary ─────────────────────────────────────────────

    def _same_shape(self, op: str, x1: Node, x2: Node) -> None:
        self._check_operands(op, (x1, x2))
        if x1.shape != x2.shape:
            raise ShapeMismatchError(
                f"{op}: shapes {tuple(x1.shape)} and {tuple(x2.shape)} differ"
            )

    def add(self, x1: Node, x2: Node) -> Node:
        self._same_shape("add", x1, x2)
        return self._new_node("add", (x1, x2), x1.value + x2.value)

    def sub(self, x1: Node, x2: Node) -> Node:
        self._same_shape("sub", x1, x2)
        return self._new_node("sub", (x1, x2), x1.value - x2.value)

    def prod(self, x1: Node, x2: Node) -> Node:
        """Element-wise product."""
        self._same_shape("prod", x1, x2)
        return self._new_node("prod", (x1, x2), x1.value * x2.value)

    def div(self, x1: Node, x2: Node) -> Node:
        """Element-wise division."""
        self._same_shape("div", x1, x2)
        return self._new_node("div", (x1, x2), x1.value / x2.value)

    # ─── Scalar broadcast ───────────────────────────────────────────────

    def _scalar_op(self, op: str, x: Node, s: Node, fn) -> Node:
        self._check_operands(op, (x, s))
        if s.value.numel() != 1:
            raise ShapeMismatchError(
                f"{op}: scalar operand has shape {tuple(s.shape)}"
            )
        return self._new_node(op, (x, s), fn(x.value, s.value.reshape(())))

    def add_scalar(self, x: Node, s: Node) -> Node:
        return self._scalar_op("add_scalar", x, s, torch.add)

    def sub_scalar(self, x: Node, s: Node) -> Node:
        return self._scalar_op("sub_scalar", x, s, torch.sub)

    def prod_scalar(self, x: Node, s: Node) -> Node:
        return self._scalar_op("prod_scalar", x, s, torch.mul)

    def div_scalar(self, x: Node, s: Node) -> Node:
        return self._scalar_op("div_scalar", x, s, torch.div)

    # ─── Linear algebra ─────────────────────────────────────────────────

    def mul(self, m: Node, x: Node) -> Node:
        """Matrix product ``m @ x`` where ``x`` is a vector or a matrix."""
        self._check_operands("mul", (m, x))
        if m.value.dim() != 2 or x.value.dim() not in (1, 2):
            raise ShapeMismatchError(
                f"mul: cannot multiply {tuple(m.shape)} by {tuple(x.shape)}"
            )
        if m.shape[1] != x.shape[0]:
            raise ShapeMismatchError(
                f"mul: inner dimensions differ ({tuple(m.shape)} @ {tuple(x.shape)})"
            )
        return self._new_node("mul", (m, x), m.value @ x.value)

    def dot(self, x1: Node, x2: Node) -> Node:
        self._same_shape("dot", x1, x2)
        return self._new_node("dot", (x1, x2), (x1.value * x2.value).sum())

    def transpose(self, m: Node) -> Node:
        self._check_operands("transpose", (m,))
        if m.value.dim() != 2:
            raise ShapeMismatchError(f"transpose: expected a matrix, got {tuple(m.shape)}")
        return self._new_node("transpose", (m,), m.value.t())

    # ─── Structure ──────────────────────────────────────────────────────

    def _vectors(self, op: str, xs: Sequence[Node]) -> None:
        if not xs:
            raise EmptyOperandListError(f"{op}: at least one operand is required")
        self._check_operands(op, xs)
        for x in xs:
            if x.value.dim() != 1:
                raise ShapeMismatchError(
                    f"{op}: operand {x.index} is not a vector ({tuple(x.shape)})"
                )

    def concat(self, *xs: Node) -> Node:
        """Concatenate vectors into one vector."""
        self._vectors("concat", xs)
        return self._new_node("concat", xs, torch.cat([x.value for x in xs]))

    def stack(self, *xs: Node) -> Node:
        """Stack equally sized vectors as the rows of a matrix."""
        self._vectors("stack", xs)
        if len({x.shape for x in xs}) != 1:
            raise ShapeMismatchError("stack: vectors have different sizes")
        return self._new_node("stack", xs, torch.stack([x.value for x in xs]))

    def at_vec(self, x: Node, i: int) -> Node:
        """The ``i``-th element of a vector, as a scalar node."""
        self._check_operands("at_vec", (x,))
        if x.value.dim() != 1:
            raise ShapeMismatchError(f"at_vec: expected a vector, got {tuple(x.shape)}")
        if not 0 <= i < x.shape[0]:
            raise IndexError(f"at_vec: index {i} out of range for size {x.shape[0]}")
        return self._new_node("at_vec", (x,), x.value[i])

    def slice_vec(self, x: Node, start: int, end: int) -> Node:
        self._check_operands("slice_vec", (x,))
        if x.value.dim() != 1:
            raise ShapeMismatchError(f"slice_vec: expected a vector, got {tuple(x.shape)}")
        if not 0 <= start < end <= x.shape[0]:
            raise IndexError(
                f"slice_vec: [{start}:{end}] out of range for size {x.shape[0]}"
            )
        return self._new_node("slice_vec", (x,), x.value[start:end])

    def row(self, m: Node, i: int) -> Node:
        """The ``i``-th row of a matrix (embedding lookup)."""
        self._check_operands("row", (m,))
        if m.value.dim() != 2:
            raise ShapeMismatchError(f"row: expected a matrix, got {tuple(m.shape)}")
        if not 0 <= i < m.shape[0]:
            raise IndexError(f"row: index {i} out of range for {m.shape[0]} rows")
        return self._new_node("row", (m,), m.value[i])

    # ─── Unary functions ────────────────────────────────────────────────

    def _unary(self, op: str, x: Node, fn) -> Node:
        self._check_operands(op, (x,))
        return self._new_node(op, (x,), fn(x.value))

    def identity(self, x: Node) -> Node:
        return self._unary("identity", x, torch.clone)

    def relu(self, x: Node) -> Node:
        return self._unary("relu", x, torch.relu)

    def gelu(self, x: Node) -> Node:
        return self._unary("gelu", x, F.gelu)

    def tanh(self, x: Node) -> Node:
        return self._unary("tanh", x, torch.tanh)

    def sigmoid(self, x: Node) -> Node:
        return self._unary("sigmoid", x, torch.sigmoid)

    def exp(self, x: Node) -> Node:
        return self._unary("exp", x, torch.exp)

    def sqrt(self, x: Node) -> Node:
        return self._unary("sqrt", x, torch.sqrt)

    def square(self, x: Node) -> Node:
        return self._unary("square", x, torch.square)

    def softmax(self, x: Node) -> Node:
        return self._unary("softmax", x, lambda v: torch.softmax(v, dim=-1))

    def reduce_sum(self, x: Node) -> Node:
        return self._unary("reduce_sum", x, torch.sum)

    def reduce_mean(self, x: Node) -> Node:
        return self._unary("reduce_mean", x, torch.mean)

    def elu(self, x: Node, alpha: Node) -> Node:
        self._check_operands("elu", (x, alpha))
        if alpha.value.numel() != 1:
            raise ShapeMismatchError(f"elu: alpha must be a scalar, got {tuple(alpha.shape)}")
        return self._new_node(
            "elu", (x, alpha), F.elu(x.value, alpha=alpha.scalar_value())
        )

    def invoke(self, op_name: str, x: Node, *params: Node) -> Node:
        """
        Apply a unary operator by name.

        Used by activation layers whose function is chosen by configuration.
        ``params`` carries extra scalar operands (e.g. the ELU alpha).
        """
        fn = getattr(self, op_name, None)
        if op_name.startswith("_") or op_name not in UNARY_OPERATORS or fn is None:
            raise ValueError(
                f"Unknown operator '{op_name}'. "
                f"Choose from: {', '.join(sorted(UNARY_OPERATORS))}"
            )
        return fn(x, *params)

    # ─── Composite operators ────────────────────────────────────────────

    def positive_elu(self, x: Node) -> Node:
        """
        ELU(x) + 1.

        Strictly positive down to about x = -37 in float64. Below that
        ``exp(x) - 1`` rounds to -1 and the result is exactly 0.0.
        """
        return self.add_scalar(self.elu(x, self.constant(1.0)), self.constant(1.0))

    def sum(self, *xs: Node) -> Node:
        """Sum of the operands through repeated ``add``. Fails when empty."""
        if not xs:
            raise EmptyOperandListError("sum: at least one operand is required")
        self._check_operands("sum", xs)
        total = xs[0]
        for x in xs[1:]:
            total = self.add(total, x)
        return total

    def mean(self, *xs: Node) -> Node:
        """Average of the operands: ``sum(xs) / len(xs)``. Fails when empty."""
        if not xs:
            raise EmptyOperandListError("mean: at least one operand is required")
        total = self.sum(*xs)
        return self.div_scalar(total, self.constant(float(len(xs)), dtype=total.value.dtype))

    def separate_vec(self, x: Node) -> List[Node]:
        """Split a vector into one scalar node per element, in index order."""
        if x.value.dim() != 1:
            raise ShapeMismatchError(
                f"separate_vec: expected a vector, got {tuple(x.shape)}"
            )
        return [self.at_vec(x, i) for i in range(x.shape[0])]

    def __repr__(self) -> str:
        return f"Graph(nodes={len(self._nodes)}, params={len(self._param_nodes)})"


UNARY_OPERATORS = frozenset({
    "identity", "relu", "gelu", "tanh", "sigmoid", "exp", "sqrt", "square",
    "softmax", "elu", "positive_elu",
})
