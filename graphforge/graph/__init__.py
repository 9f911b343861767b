"""
graphforge.graph — Computation Graph
=====================================
The dynamic graph built fresh for every evaluation.

Components:
    - node.py   — Immutable Node (leaf or operator output)
    - graph.py  — Graph with primitive and composite operators
"""

from graphforge.graph.node import Node
from graphforge.graph.graph import Graph, DEFAULT_DTYPE, UNARY_OPERATORS
