"""
GraphForge Error Taxonomy
==========================
Every failure raised by the core falls into one of three families:

    1. Configuration errors — a model tree that cannot be instantiated
       (e.g. a child processor missing the capability its parent needs).
       Raised at construction time, never mid-evaluation.
    2. Operator precondition violations — shape mismatches, empty operand
       lists, operands borrowed from another graph. Raised by the graph
       operator that was called with bad operands.
    3. Capability misuse — calling generic ``forward`` on a processor whose
       real contract is a specialised method such as ``encode``. This is a
       caller bug and is never recovered by the callee.

The precondition errors subclass ``ValueError`` so request boundaries that
already catch ``ValueError`` keep working.
"""

from __future__ import annotations


class GraphForgeError(Exception):
    """Base class for all GraphForge errors."""


class ConfigurationError(GraphForgeError, ValueError):
    """A model or processor tree is structurally invalid."""


class ShapeMismatchError(GraphForgeError, ValueError):
    """Operand shapes do not satisfy an operator's preconditions."""


class EmptyOperandListError(GraphForgeError, ValueError):
    """A variadic operator was called without any operand."""


class CrossGraphError(GraphForgeError, ValueError):
    """An operand belongs to a different graph than the one operating on it."""


class CapabilityMisuseError(GraphForgeError, NotImplementedError):
    """A processor was driven through a contract it deliberately rejects."""
