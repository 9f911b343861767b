"""
graphforge.bert — BERT Transformer
===================================
A BERT model assembled from graphforge layers, with its task heads and an
in-process request layer.

Components:
    - embeddings.py  — word + position + token type embeddings
    - encoder.py     — multi-head self-attention and transformer blocks
    - heads.py       — Predictor, Discriminator, Pooler, SpanClassifier, Classifier
    - model.py       — Bert model/processor, load_model, save_model
    - service.py     — text-in, plain-values-out request layer
"""

from graphforge.bert.embeddings import Embeddings, EmbeddingsConfig
from graphforge.bert.encoder import Encoder, EncoderConfig, EncoderLayer, MultiHeadSelfAttention
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
from graphforge.bert.model import Bert, BertProcessor, load_model, save_model
from graphforge.bert.service import BertService
