"""
graphforge.nn — Model / Processor Composition
==============================================
Persistent models and their per-evaluation processors.

Components:
    - base.py    — Mode, Context, Param, Model, Processor, evaluation()
    - layers.py  — Linear, Activation, LayerNorm, Dropout
    - stack.py   — Stack (sequential composition)
    - params.py  — Named param iteration and safetensors (de)serialization

Information Flow:
    Model tree ──new_processor(Context(graph, mode))──▶ Processor tree
    Processor.forward(nodes) ──graph operators──▶ new nodes
"""

from graphforge.nn.base import (
    Context,
    Mode,
    Model,
    Param,
    Processor,
    evaluation,
    require_capability,
)
from graphforge.nn.layers import Activation, Dropout, LayerNorm, Linear
from graphforge.nn.stack import Stack
from graphforge.nn.params import load_params, save_params
