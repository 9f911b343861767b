#!/usr/bin/env python3
"""
GraphForge — Query Script
==========================
Loads a BERT model directory and runs one request against it, printing
the reply as JSON.

Usage:
    python scripts/query.py --model models/bert-base encode "hello world"
    python scripts/query.py --model models/bert-base predict "the [MASK] sat on the mat"
    python scripts/query.py --model models/bert-base answer "passage text" "question?"
    python scripts/query.py --model models/bert-base classify "text" --text2 "other text"
    python scripts/query.py --model models/bert-base --config configs/default.yaml discriminate "text"
"""

import argparse
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from graphforge.bert import BertService, load_model
from graphforge.config import GraphForgeConfig, ServiceConfig

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="GraphForge BERT query")
    parser.add_argument("--model", type=str, required=True,
                        help="Directory with config.json, vocab.txt, model.safetensors")
    parser.add_argument("--config", type=str, default=None,
                        help="YAML file whose 'service' section overrides the defaults")

    sub = parser.add_subparsers(dest="command", required=True)
    for name in ("encode", "discriminate", "predict"):
        sub.add_parser(name).add_argument("text")
    answer = sub.add_parser("answer")
    answer.add_argument("passage")
    answer.add_argument("question")
    classify = sub.add_parser("classify")
    classify.add_argument("text")
    classify.add_argument("--text2", type=str, default=None)
    args = parser.parse_args()

    service_config = ServiceConfig()
    if args.config:
        service_config = GraphForgeConfig.from_yaml(args.config).service

    model = load_model(args.model)
    service = BertService(model, service_config)

    try:
        if args.command == "answer":
            reply = service.answer(args.passage, args.question)
        elif args.command == "classify":
            reply = service.classify(args.text, args.text2)
        else:
            reply = getattr(service, args.command)(args.text)
    except ValueError as e:
        # Bad input for this request (e.g. text longer than the position table)
        logger.error(f"{args.command} failed: {e}")
        sys.exit(1)

    print(json.dumps(asdict(reply), indent=2))
    logger.info(f"{args.command} took {reply.took} ms")


if __name__ == "__main__":
    main()
