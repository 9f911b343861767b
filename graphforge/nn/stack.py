"""
GraphForge Stack
=================
Sequential composition of models:

    Stack(L1, ..., Ln).forward(x) == Ln.forward(...L1.forward(x))

Each child consumes the full list of outputs of the previous one, so a
stack can mix per-position layers (Linear) with full-sequence layers
(self-attention) freely.
"""

from __future__ import annotations

from typing import List

from graphforge.graph import Node
from graphforge.nn.base import Context, Model, Processor


class StackProcessor(Processor):
    """Feeds the outputs of each child processor into the next."""

    @property
    def layers(self) -> List[Processor]:
        return self.children

    def forward(self, *xs: Node) -> List[Node]:
        ys = list(xs)
        for layer in self.children:
            ys = layer.forward(*ys)
        return ys


class Stack(Model):
    """
    An ordered sequence of layers applied one after another.

    Subclasses that expose extra capabilities (e.g. ``discriminate``) set
    ``processor_class`` to a ``StackProcessor`` subclass.

    Parameters
    ----------
    *layers : Model
        The layers, first applied first. At least one is required.
    """

    processor_class = StackProcessor

    def __init__(self, *layers: Model):
        if not layers:
            raise ValueError("Stack needs at least one layer")
        self.layers = list(layers)

    def new_processor(self, ctx: Context) -> StackProcessor:
        children = [layer.new_processor(ctx) for layer in self.layers]
        return self.processor_class(self, ctx, children)

    def __len__(self) -> int:
        return len(self.layers)

    def __getitem__(self, i: int) -> Model:
        return self.layers[i]

    def __repr__(self) -> str:
        inner = ", ".join(repr(layer) for layer in self.layers)
        return f"{type(self).__name__}({inner})"
