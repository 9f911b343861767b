"""
GraphForge Configuration System
================================
Structural hyperparameters for the BERT model and settings of the request
layer, as Python dataclasses. The model reads its configuration once, at
construction time; nothing re-reads it during an evaluation.

Usage:
    # Load from YAML file:
    >>> config = GraphForgeConfig.from_yaml("configs/default.yaml")

    # Load a HuggingFace style config.json:
    >>> bert = BertConfig.from_json("models/bert-base/config.json")

    # Create programmatically:
    >>> config = GraphForgeConfig(bert=BertConfig(hidden_size=256, num_attention_heads=4))

    # Save to YAML:
    >>> config.to_yaml("configs/my_model.yaml")
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Dict, List

import yaml

from graphforge.errors import ConfigurationError
from graphforge.graph import UNARY_OPERATORS

logger = logging.getLogger(__name__)

DEFAULT_LABELS = ["LABEL_0", "LABEL_1"]


# =============================================================================
# BERT Configuration
# =============================================================================

@dataclass
class BertConfig:
    """
    Architecture hyperparameters of a BERT model.

    Field names follow the HuggingFace ``config.json`` keys so pre-trained
    configurations load unchanged.

    Parameters
    ----------
    hidden_act : str
        Activation of the feed-forward and head hidden layers.
    hidden_size : int
        Size of every token vector inside the encoder.
    intermediate_size : int
        Hidden size of each feed-forward block. Usually 4 × hidden_size.
    max_position_embeddings : int
        Longest token sequence the position table covers.
    num_attention_heads : int
        Attention heads per layer. Must divide hidden_size evenly.
    num_hidden_layers : int
        Number of stacked transformer blocks.
    type_vocab_size : int
        Number of segment (token type) embeddings.
    vocab_size : int
        Size of the word embedding table and of the masked-word predictor.
    id2label : dict
        Class index (as a string, like in JSON) → label name for the
        classification heads. Empty means binary ``LABEL_0``/``LABEL_1``.
    hidden_dropout_prob : float
        Dropout applied in training mode.
    layer_norm_eps : float
        Epsilon of every LayerNorm.
    """
    hidden_act: str = "gelu"
    hidden_size: int = 768
    intermediate_size: int = 3072
    max_position_embeddings: int = 512
    num_attention_heads: int = 12
    num_hidden_layers: int = 12
    type_vocab_size: int = 2
    vocab_size: int = 30522
    id2label: Dict[str, str] = field(default_factory=dict)
    hidden_dropout_prob: float = 0.1
    layer_norm_eps: float = 1e-12

    def validate(self) -> None:
        """
        Check that all parameters are valid and consistent.

        Raises
        ------
        ValueError
            If any parameter is invalid or inconsistent with others.
        """
        for name in ("hidden_size", "intermediate_size", "max_position_embeddings",
                     "num_attention_heads", "num_hidden_layers", "type_vocab_size",
                     "vocab_size"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.hidden_size % self.num_attention_heads != 0:
            raise ValueError(
                f"hidden_size ({self.hidden_size}) must be divisible by "
                f"num_attention_heads ({self.num_attention_heads})"
            )
        if self.hidden_act not in UNARY_OPERATORS:
            raise ValueError(
                f"Unknown hidden_act: '{self.hidden_act}'. "
                f"Choose from: {', '.join(sorted(UNARY_OPERATORS))}"
            )
        if not 0.0 <= self.hidden_dropout_prob < 1.0:
            raise ValueError(
                f"hidden_dropout_prob must be in [0, 1), got {self.hidden_dropout_prob}"
            )
        if self.layer_norm_eps <= 0:
            raise ValueError(f"layer_norm_eps must be positive, got {self.layer_norm_eps}")
        _ = self.labels

    @property
    def labels(self) -> List[str]:
        """
        Label names ordered by class index.

        Raises
        ------
        ConfigurationError
            If a key of ``id2label`` is not an integer or the indices are
            not exactly 0..n-1.
        """
        if not self.id2label:
            return list(DEFAULT_LABELS)
        labels = [None] * len(self.id2label)
        for key, value in self.id2label.items():
            try:
                index = int(key)
            except ValueError:
                raise ConfigurationError(f"id2label key '{key}' is not an integer") from None
            if not 0 <= index < len(labels):
                raise ConfigurationError(
                    f"id2label index {index} out of range [0, {len(labels)})"
                )
            labels[index] = value
        if any(label is None for label in labels):
            raise ConfigurationError(f"id2label has duplicate indices: {self.id2label}")
        return labels

    @property
    def head_size(self) -> int:
        """Dimension per attention head."""
        return self.hidden_size // self.num_attention_heads

    @classmethod
    def from_dict(cls, raw: dict) -> BertConfig:
        """Build from a mapping, ignoring keys this model does not use."""
        known = {f.name for f in fields(cls)}
        ignored = sorted(k for k in raw if k not in known)
        if ignored:
            logger.debug(f"Ignoring config keys: {ignored}")
        values = {k: v for k, v in raw.items() if k in known}
        if "id2label" in values:
            values["id2label"] = {str(k): v for k, v in values["id2label"].items()}
        return cls(**values)

    @classmethod
    def from_json(cls, path: str | Path) -> BertConfig:
        """
        Load a HuggingFace style ``config.json``.

        Raises
        ------
        FileNotFoundError
            If the file does not exist.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path, "r", encoding="utf-8") as f:
            config = cls.from_dict(json.load(f))
        config.validate()
        return config

    def to_json(self, path: str | Path) -> None:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2)


# =============================================================================
# Request Layer Configuration
# =============================================================================

@dataclass
class ServiceConfig:
    """
    Settings of the in-process request layer.

    Parameters
    ----------
    lowercase : bool
        Whether the tokenizer lowercases input text.
    max_answers : int
        How many answers ``answer`` returns at most.
    max_answer_length : int
        Longest answer span, in tokens.
    n_best : int
        How many top start and end positions are combined into candidates.
    min_confidence : float
        Answers below this softmax confidence are dropped.
    """
    lowercase: bool = True
    max_answers: int = 3
    max_answer_length: int = 20
    n_best: int = 20
    min_confidence: float = 0.1

    def validate(self) -> None:
        """Validate service parameters."""
        if self.max_answers < 1:
            raise ValueError(f"max_answers must be >= 1, got {self.max_answers}")
        if self.max_answer_length < 1:
            raise ValueError(
                f"max_answer_length must be >= 1, got {self.max_answer_length}"
            )
        if self.n_best < 1:
            raise ValueError(f"n_best must be >= 1, got {self.n_best}")
        if not 0.0 <= self.min_confidence <= 1.0:
            raise ValueError(
                f"min_confidence must be in [0, 1], got {self.min_confidence}"
            )


# =============================================================================
# Master Configuration
# =============================================================================

@dataclass
class GraphForgeConfig:
    """
    Master configuration combining all sub-configurations.

    Usage:
        >>> config = GraphForgeConfig.from_yaml("configs/default.yaml")
        >>> config.validate()
        >>> config.to_yaml("configs/copy.yaml")
    """
    bert: BertConfig = field(default_factory=BertConfig)
    service: ServiceConfig = field(default_factory=ServiceConfig)

    def validate(self) -> None:
        self.bert.validate()
        self.service.validate()
        logger.info(
            f"Config validated: {self.bert.num_hidden_layers} layers, "
            f"hidden_size={self.bert.hidden_size}, "
            f"{len(self.bert.labels)} labels"
        )

    @classmethod
    def from_yaml(cls, path: str | Path) -> GraphForgeConfig:
        """
        Load configuration from a YAML file.

        Raises
        ------
        FileNotFoundError
            If the YAML file does not exist.
        yaml.YAMLError
            If the YAML file is malformed.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(
                f"Config file not found: {path}. "
                f"Create one from configs/default.yaml as a template."
            )

        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)

        if raw is None:
            raise ValueError(f"Config file is empty: {path}")

        config = cls(
            bert=BertConfig.from_dict(raw.get("bert", {})),
            service=ServiceConfig(**raw.get("service", {})),
        )
        config.validate()
        return config

    def to_yaml(self, path: str | Path) -> None:
        """Save configuration to a YAML file, creating parent directories."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(
                asdict(self),
                f,
                default_flow_style=False,
                sort_keys=False,
                allow_unicode=True,
            )

        logger.info(f"Config saved to {path}")

    def to_dict(self) -> dict:
        """Convert to nested dictionary."""
        return asdict(self)

    @classmethod
    def for_smoke_test(cls) -> GraphForgeConfig:
        """
        A tiny configuration that builds and evaluates in milliseconds.

        Returns
        -------
        GraphForgeConfig
            Smoke-test configuration.
        """
        return cls(
            bert=BertConfig(
                hidden_act="gelu",
                hidden_size=8,
                intermediate_size=16,
                max_position_embeddings=32,
                num_attention_heads=2,
                num_hidden_layers=2,
                type_vocab_size=2,
                vocab_size=32,
                id2label={"0": "NEGATIVE", "1": "POSITIVE"},
                hidden_dropout_prob=0.0,
            ),
            service=ServiceConfig(
                max_answers=2,
                max_answer_length=5,
                n_best=5,
                min_confidence=0.0,
            ),
        )

    def __repr__(self) -> str:
        b = self.bert
        return (
            "GraphForgeConfig(\n"
            f"  Bert:    layers={b.num_hidden_layers}, hidden={b.hidden_size}, "
            f"heads={b.num_attention_heads}, ff={b.intermediate_size}, "
            f"vocab={b.vocab_size}\n"
            f"  Labels:  {', '.join(b.labels)}\n"
            f"  Service: max_answers={self.service.max_answers}, "
            f"max_answer_length={self.service.max_answer_length}\n"
            ")"
        )
