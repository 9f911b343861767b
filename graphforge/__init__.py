"""
GraphForge
==========
Composable neural network layers evaluated on a fresh computation graph
per request.

This package provides:
    1. A dynamic, append-only computation graph with primitive and
       composite operators (``graphforge.graph``)
    2. The Model / Processor composition engine: persistent models that
       own params, and per-evaluation processors bound to one graph and
       one mode (``graphforge.nn``)
    3. Text building blocks: vocabulary, WordPiece tokenizer adapter,
       word and stacked embeddings (``graphforge.nlp``)
    4. A BERT transformer with masked-word, discriminator, pooling,
       classification and span heads (``graphforge.bert``)

Quick Start:
    >>> from graphforge.bert import BertService, load_model
    >>> service = BertService(load_model("models/bert-base"))
    >>> service.encode("hello world").vector[:3]

Subpackages:
    - graphforge.graph  — Node and Graph
    - graphforge.nn     — Model, Processor, Context, Linear, Activation, Stack
    - graphforge.nlp    — Vocabulary, tokenizer, embeddings
    - graphforge.bert   — BERT model, heads and request layer
"""

__version__ = "0.1.0"
