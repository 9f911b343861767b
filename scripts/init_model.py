#!/usr/bin/env python3
"""
GraphForge — Model Initialization Script
==========================================
Builds a randomly initialized BERT model from a configuration and a
vocabulary and writes it as a model directory that ``load_model`` and
``scripts/query.py`` accept.

Usage:
    python scripts/init_model.py --config configs/default.yaml \
        --vocab data/vocab.txt --output models/random-bert
    python scripts/init_model.py --smoke-test --vocab data/vocab.txt --output models/tiny
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import torch

from graphforge.bert import Bert, save_model
from graphforge.config import GraphForgeConfig
from graphforge.nlp import Vocabulary

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="GraphForge model initialization")
    parser.add_argument("--config", type=str, default="configs/default.yaml")
    parser.add_argument("--smoke-test", action="store_true")
    parser.add_argument("--vocab", type=str, required=True)
    parser.add_argument("--output", type=str, required=True)
    parser.add_argument("--seed", type=int, default=42)
    args = parser.parse_args()

    if args.smoke_test:
        config = GraphForgeConfig.for_smoke_test()
    else:
        config = GraphForgeConfig.from_yaml(args.config)

    torch.manual_seed(args.seed)

    vocabulary = Vocabulary.from_file(args.vocab)
    if len(vocabulary) != config.bert.vocab_size:
        logger.warning(
            f"vocab_size {config.bert.vocab_size} replaced by the "
            f"vocabulary size {len(vocabulary)}"
        )
        config.bert.vocab_size = len(vocabulary)

    model = Bert(config.bert, vocabulary)
    save_model(model, args.output)
    logger.info(f"Initialized {model!r} in {args.output}")


if __name__ == "__main__":
    main()
