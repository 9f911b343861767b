"""
GraphForge Model / Processor Composition
==========================================
The two halves of every layer:

    Model      — owns the learned parameters and the structure (sizes,
                 chosen activation, child models). Built once, shared by
                 every request, never touched by an evaluation.
    Processor  — a Model bound to one Graph and one Mode. Built fresh for
                 every evaluation and thrown away with its graph.

A composite model builds its processor by asking each child model for a
processor with the *same* Context, so a processor tree always mirrors the
model tree and the whole tree writes into a single graph.

Analogy:
    The Model is a recipe book that stays on the shelf. A Processor is a
    cook working from that book in one particular kitchen (the Graph) on
    one particular day (the Mode). Many cooks can use the same book at
    once, each in their own kitchen.

Usage:
    >>> model = Stack(Linear(4, 3), Activation("tanh"))
    >>> with evaluation(model) as proc:
    ...     x = proc.graph.new_variable([1.0, 2.0, 3.0, 4.0])
    ...     y = proc.forward(x)[0].value
"""

from __future__ import annotations

import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, List, Sequence, Tuple

import torch

from graphforge.errors import CapabilityMisuseError, ConfigurationError
from graphforge.graph import Graph, Node
from graphforge.graph.graph import as_tensor

logger = logging.getLogger(__name__)


class Mode(enum.Enum):
    """Execution mode of a processor tree."""
    TRAINING = "training"
    INFERENCE = "inference"


@dataclass(frozen=True)
class Context:
    """The (graph, mode) pair handed down while building a processor tree."""
    graph: Graph = field(default_factory=Graph)
    mode: Mode = Mode.INFERENCE


class Param:
    """
    A trainable parameter: persistent tensor storage owned by a model.

    Graphs wrap a param by reference (see :meth:`Graph.param`); only an
    explicit update step outside an evaluation may write to ``value``.

    Parameters
    ----------
    value : tensor, sequence or number
        Initial value, converted to the graph dtype.
    requires_grad : bool
        Whether graph leaves bound to this param are trainable.
    """

    def __init__(self, value: Any, requires_grad: bool = True):
        self.value = as_tensor(value)
        self.requires_grad = requires_grad

    @property
    def shape(self) -> torch.Size:
        return self.value.shape

    def numel(self) -> int:
        return self.value.numel()

    def __repr__(self) -> str:
        return f"Param(shape={tuple(self.shape)}, requires_grad={self.requires_grad})"


class Model:
    """
    Base class of every layer and composite structure.

    Children are discovered from instance attributes, in definition order:
    any attribute holding a ``Model`` or a list/tuple of ``Model`` objects.
    Params are discovered the same way. Subclasses implement
    :meth:`new_processor`.
    """

    def new_processor(self, ctx: Context) -> "Processor":
        raise NotImplementedError(
            f"{type(self).__name__} does not implement new_processor()"
        )

    # ─── Structure traversal ────────────────────────────────────────────

    def named_children(self) -> Iterator[Tuple[str, "Model"]]:
        for name, value in vars(self).items():
            if isinstance(value, Model):
                yield name, value
            elif isinstance(value, (list, tuple)):
                for i, item in enumerate(value):
                    if isinstance(item, Model):
                        yield f"{name}.{i}", item

    def children(self) -> List["Model"]:
        return [child for _, child in self.named_children()]

    def named_params(self, prefix: str = "") -> Iterator[Tuple[str, Param]]:
        """
        Yield ``(dotted_name, param)`` for every param in this subtree.

        A param reachable through more than one path (an aliased child) is
        yielded once, under the first name it was found at.
        """
        seen = set()
        for name, p in self._walk_params(prefix):
            if id(p) in seen:
                continue
            seen.add(id(p))
            yield name, p

    def _walk_params(self, prefix: str) -> Iterator[Tuple[str, Param]]:
        for name, value in vars(self).items():
            if isinstance(value, Param):
                yield prefix + name, value
        for name, child in self.named_children():
            yield from child._walk_params(f"{prefix}{name}.")

    def params(self) -> List[Param]:
        return [p for _, p in self.named_params()]

    @property
    def n_params(self) -> int:
        """Total number of scalar parameters (shared params counted once)."""
        return sum(p.numel() for p in self.params())

    def __repr__(self) -> str:
        return f"{type(self).__name__}(params={self.n_params})"


class Processor:
    """
    A model bound to one graph and one mode.

    Attributes
    ----------
    model : Model
        The model this processor was created from (read-only).
    graph : Graph
        The graph every operator call of this processor writes into.
    mode : Mode
        Current execution mode.
    children : list of Processor
        Child processors, in the same order as the model's children.
    """

    def __init__(self, model: Model, ctx: Context, children: Sequence["Processor"] = ()):
        self.model = model
        self.graph = ctx.graph
        self.mode = ctx.mode
        self.children = list(children)

    def set_mode(self, mode: Mode) -> None:
        """Switch this processor and every descendant to ``mode``."""
        self.mode = mode
        for child in self.children:
            child.set_mode(mode)

    def forward(self, *xs: Node) -> List[Node]:
        raise NotImplementedError(
            f"{type(self).__name__} does not implement forward()"
        )

    def param(self, p: Param) -> Node:
        """Graph node for one of the model's params."""
        return self.graph.param(p)


def reject_forward(owner: str, use_instead: str) -> CapabilityMisuseError:
    """Build the error raised by processors whose contract is not ``forward``."""
    return CapabilityMisuseError(
        f"{owner}: forward() not implemented. Use {use_instead}() instead."
    )


def require_capability(proc: Processor, capability: type, where: str) -> Processor:
    """
    Check that ``proc`` satisfies a ``runtime_checkable`` capability protocol.

    Raises
    ------
    ConfigurationError
        If the processor lacks the capability. This is a construction-time
        failure; the tree is never returned half-valid.
    """
    if not isinstance(proc, capability):
        raise ConfigurationError(
            f"{where}: {type(proc).__name__} does not provide the "
            f"'{capability.__name__}' capability"
        )
    return proc


@contextmanager
def evaluation(model: Model, mode: Mode = Mode.INFERENCE) -> Iterator[Processor]:
    """
    Open a fresh graph, build the processor tree for ``model`` on it, and
    release the graph on every exit path.

    Read plain values out of the nodes before leaving the block.
    """
    graph = Graph()
    try:
        yield model.new_processor(Context(graph=graph, mode=mode))
    finally:
        logger.debug(f"Releasing graph with {len(graph)} nodes")
        graph.clear()
