"""
GraphForge BERT Model
======================
The full BERT structure: embeddings, encoder and every task head, plus
the loading/saving of a model directory.

Model directory layout:
    config.json         HuggingFace style configuration
    vocab.txt           one term per line
    model.safetensors   all params, keyed by dotted attribute path

Information Flow:
    tokens ──encode──▶ encoded vectors ──┬─ predict_masked ──▶ vocab logits
                                         ├─ discriminate ────▶ 0/1 per token
                                         ├─ token_classification
                                         ├─ classify_span ───▶ start/end logits
                                         └─ pool ──▶ predict_seq_relationship
                                                 └─▶ sequence_classification

Usage:
    >>> bert = load_model("models/bert-base")
    >>> with evaluation(bert) as proc:
    ...     encoded = proc.encode(["[CLS]", "hello", "[SEP]"])
    ...     vector = proc.pool(encoded).value.tolist()
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List, Sequence, Tuple, Union

from graphforge.config import BertConfig
from graphforge.errors import ConfigurationError
from graphforge.graph import Node
from graphforge.nlp.vocabulary import Vocabulary
from graphforge.nn.base import Context, Model, Processor, reject_forward
from graphforge.nn.layers import Linear
from graphforge.nn.params import load_params, save_params
from graphforge.bert.embeddings import Embeddings, EmbeddingsConfig
from graphforge.bert.encoder import Encoder, EncoderConfig
from graphforge.bert.heads import (
    Classifier,
    Discriminator,
    DiscriminatorConfig,
    Pooler,
    PoolerConfig,
    Predictor,
    PredictorConfig,
    SpanClassifier,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIGURATION_FILE = "config.json"
DEFAULT_VOCABULARY_FILE = "vocab.txt"
DEFAULT_MODEL_FILE = "model.safetensors"


class Bert(Model):
    """
    A BERT model with all its heads.

    Parameters
    ----------
    config : BertConfig
        Structural hyperparameters.
    vocabulary : Vocabulary
        Must hold exactly ``config.vocab_size`` terms.
    """

    def __init__(self, config: BertConfig, vocabulary: Vocabulary):
        config.validate()
        if len(vocabulary) != config.vocab_size:
            raise ConfigurationError(
                f"Vocabulary has {len(vocabulary)} terms but vocab_size is "
                f"{config.vocab_size}"
            )
        self.config = config
        self.vocabulary = vocabulary
        h = config.hidden_size

        self.embeddings = Embeddings(
            EmbeddingsConfig(
                size=h,
                output_size=h,
                max_positions=config.max_position_embeddings,
                token_types=config.type_vocab_size,
                dropout=config.hidden_dropout_prob,
                layer_norm_eps=config.layer_norm_eps,
            ),
            vocabulary,
        )
        self.encoder = Encoder(EncoderConfig(
            size=h,
            num_attention_heads=config.num_attention_heads,
            intermediate_size=config.intermediate_size,
            intermediate_activation=config.hidden_act,
            num_layers=config.num_hidden_layers,
            dropout=config.hidden_dropout_prob,
            layer_norm_eps=config.layer_norm_eps,
        ))
        self.predictor = Predictor(PredictorConfig(
            input_size=h,
            hidden_size=h,
            output_size=config.vocab_size,
            hidden_activation=config.hidden_act,
            output_activation="identity",  # trained with cross-entropy (implicit softmax)
            layer_norm_eps=config.layer_norm_eps,
        ))
        self.discriminator = Discriminator(DiscriminatorConfig(
            input_size=h,
            hidden_size=h,
            hidden_activation=config.hidden_act,
            output_activation="identity",  # trained with BCE on logits (implicit sigmoid)
        ))
        self.pooler = Pooler(PoolerConfig(input_size=h, output_size=h))
        self.seq_relationship = Linear(h, 2)
        self.span_classifier = SpanClassifier(h)
        self.classifier = Classifier(h, config.labels)

        logger.info(f"Bert: {self.n_params / 1e6:.2f}M parameters")

    def new_processor(self, ctx: Context) -> "BertProcessor":
        children = [child.new_processor(ctx) for child in self.children()]
        return BertProcessor(self, ctx, children)

    @property
    def labels(self) -> List[str]:
        return self.classifier.labels

    def __repr__(self) -> str:
        c = self.config
        return (
            f"Bert(layers={c.num_hidden_layers}, hidden={c.hidden_size}, "
            f"heads={c.num_attention_heads}, vocab={c.vocab_size}, "
            f"params={self.n_params / 1e6:.2f}M)"
        )


class BertProcessor(Processor):
    """Task methods of a BERT model on one graph."""

    def __init__(self, model: Bert, ctx: Context, children: Sequence[Processor]):
        super().__init__(model, ctx, children)
        (
            self.embeddings,
            self.encoder,
            self.predictor,
            self.discriminator,
            self.pooler,
            self.seq_relationship,
            self.span_classifier,
            self.classifier,
        ) = self.children

    def encode(self, tokens: Sequence[str]) -> List[Node]:
        """Contextual vector for every token."""
        return self.encoder.forward(*self.embeddings.encode(tokens))

    def predict_masked(self, encoded: Sequence[Node], masked: Sequence[int]) -> Dict[int, Node]:
        """Vocabulary logits for each masked position."""
        return self.predictor.predict_masked(encoded, masked)

    def discriminate(self, encoded: Sequence[Node]) -> List[int]:
        """0 or 1 per token, where 1 means the token was replaced."""
        return self.discriminator.discriminate(encoded)

    def pool(self, encoded: Sequence[Node]) -> Node:
        """Summary vector computed from the ``[CLS]`` position."""
        if not encoded:
            raise ValueError("Cannot pool an empty sequence")
        return self.pooler.forward(encoded[0])[0]

    def predict_seq_relationship(self, pooled: Node) -> Node:
        """Logits for "the second sentence follows the first" (2 classes)."""
        return self.seq_relationship.forward(pooled)[0]

    def token_classification(self, encoded: Sequence[Node]) -> List[Node]:
        """Label logits for every token."""
        return self.classifier.predict(*encoded)

    def sequence_classification(self, encoded: Sequence[Node]) -> Node:
        """Label logits for the whole sequence, from the pooled ``[CLS]``."""
        return self.classifier.predict(self.pool(encoded))[0]

    def classify_span(self, encoded: Sequence[Node]) -> Tuple[List[Node], List[Node]]:
        """Answer span start and end logits for every token."""
        return self.span_classifier.classify(encoded)

    def forward(self, *xs: Node) -> List[Node]:
        raise reject_forward("bert", "encode")


# =============================================================================
# Loading and saving
# =============================================================================

def load_model(model_path: Union[str, Path]) -> Bert:
    """
    Load a BERT model directory.

    Raises
    ------
    FileNotFoundError
        If any of the three files is missing.
    ShapeMismatchError
        If stored weights do not fit the configured structure.
    """
    model_path = Path(model_path)
    logger.info(f"Start loading pre-trained model from {model_path}")

    logger.info("[1/3] Loading configuration...")
    config = BertConfig.from_json(model_path / DEFAULT_CONFIGURATION_FILE)

    logger.info("[2/3] Loading vocabulary...")
    vocabulary = Vocabulary.from_file(model_path / DEFAULT_VOCABULARY_FILE)

    model = Bert(config, vocabulary)

    logger.info("[3/3] Loading model weights...")
    load_params(model, model_path / DEFAULT_MODEL_FILE)

    return model


def save_model(model: Bert, model_path: Union[str, Path]) -> None:
    """Write ``config.json``, ``vocab.txt`` and the weights to a directory."""
    model_path = Path(model_path)
    model_path.mkdir(parents=True, exist_ok=True)
    model.config.to_json(model_path / DEFAULT_CONFIGURATION_FILE)
    model.vocabulary.save(model_path / DEFAULT_VOCABULARY_FILE)
    save_params(model, model_path / DEFAULT_MODEL_FILE)
    logger.info(f"Model saved to {model_path}")
