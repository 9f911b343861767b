"""
GraphForge BERT Task Heads
===========================
Small models on top of the encoder output, each adding one capability:

    Predictor       masked-word logits        predict_masked(encoded, positions)
    Discriminator   replaced-token detection  discriminate(encoded) -> [0/1]
    Pooler          [CLS] summary vector      forward(cls)
    SpanClassifier  answer start/end logits   classify(encoded)
    Classifier      label logits              predict(xs)

Every head emits raw logits. The softmax/sigmoid that the training loss
implies is left to the caller.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

from graphforge.graph import Node
from graphforge.nn.layers import Activation, LayerNorm, Linear, LinearProcessor
from graphforge.nn.stack import Stack, StackProcessor

logger = logging.getLogger(__name__)


# =============================================================================
# Predictor
# =============================================================================

@dataclass
class PredictorConfig:
    input_size: int
    hidden_size: int
    output_size: int
    hidden_activation: str = "gelu"
    output_activation: str = "identity"
    layer_norm_eps: float = 1e-12


class PredictorProcessor(StackProcessor):
    def predict_masked(self, encoded: Sequence[Node], masked: Sequence[int]) -> Dict[int, Node]:
        """
        Vocabulary logits for each masked position.

        Raises
        ------
        IndexError
            If a position is outside ``encoded``.
        """
        predictions = {}
        for position in masked:
            if not 0 <= position < len(encoded):
                raise IndexError(
                    f"masked position {position} out of range for "
                    f"{len(encoded)} encoded tokens"
                )
            predictions[position] = self.forward(encoded[position])[0]
        return predictions


class Predictor(Stack):
    """Linear → activation → LayerNorm → Linear(vocab) → identity."""

    processor_class = PredictorProcessor

    def __init__(self, config: PredictorConfig):
        super().__init__(
            Linear(config.input_size, config.hidden_size),
            Activation(config.hidden_activation),
            LayerNorm(config.hidden_size, config.layer_norm_eps),
            Linear(config.hidden_size, config.output_size),
            Activation(config.output_activation),
        )


# =============================================================================
# Discriminator
# =============================================================================

@dataclass
class DiscriminatorConfig:
    input_size: int
    hidden_size: int
    hidden_activation: str = "gelu"
    output_activation: str = "identity"


def binarize(x: float) -> int:
    """
    Map a logit to 0 or 1 through ``round((sign(x) + 1) / 2)``.

    Halves round up, so an exact 0 maps to 1 like a positive logit.
    """
    sign = math.copysign(1.0, x) if x != 0 else 0.0
    return int(math.floor((sign + 1.0) / 2.0 + 0.5))


class DiscriminatorProcessor(StackProcessor):
    def discriminate(self, encoded: Sequence[Node]) -> List[int]:
        """
        0 or 1 for each encoded token, where 1 means the token is out of
        context (replaced).
        """
        return [binarize(y.scalar_value()) for y in self.forward(*encoded)]


class Discriminator(Stack):
    """Linear → activation → Linear(1) → identity (ELECTRA style)."""

    processor_class = DiscriminatorProcessor

    def __init__(self, config: DiscriminatorConfig):
        super().__init__(
            Linear(config.input_size, config.hidden_size),
            Activation(config.hidden_activation),
            Linear(config.hidden_size, 1),
            Activation(config.output_activation),
        )


# =============================================================================
# Pooler
# =============================================================================

@dataclass
class PoolerConfig:
    input_size: int
    output_size: int


class Pooler(Stack):
    """Linear → tanh, applied to the ``[CLS]`` vector."""

    def __init__(self, config: PoolerConfig):
        super().__init__(
            Linear(config.input_size, config.output_size),
            Activation("tanh"),
        )


# =============================================================================
# Span Classifier
# =============================================================================

class SpanClassifierProcessor(LinearProcessor):
    def classify(self, xs: Sequence[Node]) -> Tuple[List[Node], List[Node]]:
        """
        Start and end logits for every position.

        One projection produces both: element 0 of each 2-wide output is
        the start logit, element 1 the end logit.
        """
        start_logits, end_logits = [], []
        for y in self.forward(*xs):
            start, end = self.graph.separate_vec(y)
            start_logits.append(start)
            end_logits.append(end)
        return start_logits, end_logits


class SpanClassifier(Linear):
    """Span classification for extractive question answering (SQuAD)."""

    processor_class = SpanClassifierProcessor

    def __init__(self, input_size: int):
        super().__init__(input_size, 2)


# =============================================================================
# Classifier
# =============================================================================

class ClassifierProcessor(LinearProcessor):
    def predict(self, *xs: Node) -> List[Node]:
        """Label logits for each input vector."""
        return self.forward(*xs)


class Classifier(Linear):
    """
    Linear classification layer with named labels.

    Used per token (token classification) or on the pooled ``[CLS]``
    vector (sequence classification).

    Parameters
    ----------
    input_size : int
        Size of the classified vectors.
    labels : sequence of str
        Label names, in logit order. At least two.
    """

    processor_class = ClassifierProcessor

    def __init__(self, input_size: int, labels: Sequence[str]):
        if len(labels) < 2:
            raise ValueError(f"Classifier needs at least 2 labels, got {list(labels)}")
        super().__init__(input_size, len(labels))
        self.labels = list(labels)
