"""
GraphForge BERT Service
========================
In-process request layer over a loaded :class:`Bert` model. Each method
takes plain text and returns a plain reply dataclass: no Graph, Node or
Processor ever leaves this module.

Every request opens its own evaluation (fresh graph + processor tree) and
releases it before returning, so one service instance can be shared by
many threads as long as nobody updates the model params meanwhile.

Operations:
    encode(text)               pooled [CLS] vector
    discriminate(text)         ORIGINAL / REPLACED label per token
    predict(text)              best word for every [MASK]
    answer(passage, question)  best answer spans with confidence
    classify(text, text2)      label distribution for the sequence

Usage:
    >>> service = BertService(load_model("models/bert-base"))
    >>> service.classify("what a great movie").label
    'POSITIVE'
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import torch

from graphforge.config import ServiceConfig
from graphforge.nlp.tokenizer import Token as TextToken
from graphforge.nlp.tokenizer import WordPieceTokenizer
from graphforge.nlp.vocabulary import CLS_TOKEN, MASK_TOKEN, SEP_TOKEN
from graphforge.nn.base import Mode, evaluation
from graphforge.bert.model import Bert

logger = logging.getLogger(__name__)

ORIGINAL_LABEL = "ORIGINAL"
REPLACED_LABEL = "REPLACED"
PREDICTED_LABEL = "PREDICTED"


# =============================================================================
# Replies
# =============================================================================

@dataclass
class Token:
    text: str
    start: int
    end: int
    label: str


@dataclass
class Answer:
    text: str
    start: int
    end: int
    confidence: float


@dataclass
class ClassConfidencePair:
    label: str
    confidence: float


@dataclass
class EncodeReply:
    vector: List[float]
    took: int = 0  # milliseconds


@dataclass
class DiscriminateReply:
    tokens: List[Token]
    took: int = 0


@dataclass
class PredictReply:
    tokens: List[Token]
    took: int = 0


@dataclass
class AnswerReply:
    answers: List[Answer]
    took: int = 0


@dataclass
class ClassifyReply:
    label: str
    confidence: float
    distribution: List[ClassConfidencePair] = field(default_factory=list)
    took: int = 0


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


# =============================================================================
# Service
# =============================================================================

class BertService:
    """
    Parameters
    ----------
    model : Bert
        The loaded model, shared read-only by all requests.
    config : ServiceConfig or None
        Request layer settings. Defaults to ``ServiceConfig()``.
    tokenizer : WordPieceTokenizer or None
        Defaults to a tokenizer over the model vocabulary.
    """

    def __init__(
        self,
        model: Bert,
        config: Optional[ServiceConfig] = None,
        tokenizer: Optional[WordPieceTokenizer] = None,
    ):
        self.model = model
        self.config = config or ServiceConfig()
        self.config.validate()
        self.tokenizer = tokenizer or WordPieceTokenizer(
            model.vocabulary, lowercase=self.config.lowercase
        )

    @staticmethod
    def _with_specials(tokens: List[TextToken]) -> List[str]:
        return [CLS_TOKEN] + [t.text for t in tokens] + [SEP_TOKEN]

    # ─── Encode ─────────────────────────────────────────────────────────

    def encode(self, text: str) -> EncodeReply:
        start = time.perf_counter()
        tokens = self._with_specials(self.tokenizer.tokenize(text))
        with evaluation(self.model, Mode.INFERENCE) as proc:
            vector = proc.pool(proc.encode(tokens)).value.tolist()
        return EncodeReply(vector=vector, took=_elapsed_ms(start))

    # ─── Discriminate ───────────────────────────────────────────────────

    def discriminate(self, text: str) -> DiscriminateReply:
        start = time.perf_counter()
        text_tokens = self.tokenizer.tokenize(text)
        with evaluation(self.model, Mode.INFERENCE) as proc:
            flags = proc.discriminate(proc.encode(self._with_specials(text_tokens)))
        tokens = [
            Token(
                text=t.text,
                start=t.start,
                end=t.end,
                label=REPLACED_LABEL if flag == 1 else ORIGINAL_LABEL,
            )
            for t, flag in zip(text_tokens, flags[1:-1])
        ]
        return DiscriminateReply(tokens=tokens, took=_elapsed_ms(start))

    # ─── Predict ────────────────────────────────────────────────────────

    def predict(self, text: str) -> PredictReply:
        start = time.perf_counter()
        text_tokens = self.tokenizer.tokenize(text)
        # +1 skips the leading [CLS]
        masked = [i + 1 for i, t in enumerate(text_tokens) if t.text == MASK_TOKEN]
        with evaluation(self.model, Mode.INFERENCE) as proc:
            encoded = proc.encode(self._with_specials(text_tokens))
            predictions = {
                position: int(torch.argmax(logits.value).item())
                for position, logits in proc.predict_masked(encoded, masked).items()
            }
        vocab = self.model.vocabulary
        tokens = []
        for position in masked:
            original = text_tokens[position - 1]
            tokens.append(Token(
                text=vocab.term(predictions[position]),
                start=original.start,
                end=original.end,
                label=PREDICTED_LABEL,
            ))
        return PredictReply(tokens=tokens, took=_elapsed_ms(start))

    # ─── Answer ─────────────────────────────────────────────────────────

    def answer(self, passage: str, question: str) -> AnswerReply:
        """
        Extract answer spans for ``question`` from ``passage``.

        Candidates combine the ``n_best`` highest start and end logits over
        passage tokens, keep spans with ``start <= end`` no longer than
        ``max_answer_length`` tokens, and score them with a softmax over
        ``start_logit + end_logit``.
        """
        start_time = time.perf_counter()
        question_tokens = self.tokenizer.tokenize(question)
        passage_tokens = self.tokenizer.tokenize(passage)
        tokens = (
            [CLS_TOKEN] + [t.text for t in question_tokens] + [SEP_TOKEN]
            + [t.text for t in passage_tokens] + [SEP_TOKEN]
        )
        offset = len(question_tokens) + 2

        with evaluation(self.model, Mode.INFERENCE) as proc:
            start_logits, end_logits = proc.classify_span(proc.encode(tokens))
            starts = [n.scalar_value() for n in start_logits[offset:offset + len(passage_tokens)]]
            ends = [n.scalar_value() for n in end_logits[offset:offset + len(passage_tokens)]]

        answers = []
        for (s, e), confidence in self._best_spans(starts, ends):
            answers.append(Answer(
                text=passage[passage_tokens[s].start:passage_tokens[e].end],
                start=passage_tokens[s].start,
                end=passage_tokens[e].end,
                confidence=confidence,
            ))
        return AnswerReply(answers=answers, took=_elapsed_ms(start_time))

    def _best_spans(
        self, starts: List[float], ends: List[float]
    ) -> List[Tuple[Tuple[int, int], float]]:
        if not starts:
            return []
        cfg = self.config
        top_starts = sorted(range(len(starts)), key=lambda i: starts[i], reverse=True)[:cfg.n_best]
        top_ends = sorted(range(len(ends)), key=lambda i: ends[i], reverse=True)[:cfg.n_best]

        candidates = [
            ((s, e), starts[s] + ends[e])
            for s in top_starts
            for e in top_ends
            if s <= e and e - s + 1 <= cfg.max_answer_length
        ]
        if not candidates:
            return []

        scores = torch.softmax(
            torch.tensor([score for _, score in candidates], dtype=torch.float64), dim=0
        ).tolist()
        ranked = sorted(
            zip((span for span, _ in candidates), scores),
            key=lambda pair: pair[1],
            reverse=True,
        )
        return [
            (span, confidence) for span, confidence in ranked
            if confidence >= cfg.min_confidence
        ][:cfg.max_answers]

    # ─── Classify ───────────────────────────────────────────────────────

    def classify(self, text: str, text2: Optional[str] = None) -> ClassifyReply:
        start = time.perf_counter()
        tokens = self._with_specials(self.tokenizer.tokenize(text))
        if text2 is not None:
            tokens += [t.text for t in self.tokenizer.tokenize(text2)] + [SEP_TOKEN]

        with evaluation(self.model, Mode.INFERENCE) as proc:
            logits = proc.sequence_classification(proc.encode(tokens))
            probabilities = proc.graph.softmax(logits).value.tolist()

        distribution = sorted(
            (ClassConfidencePair(label=label, confidence=p)
             for label, p in zip(self.model.labels, probabilities)),
            key=lambda pair: pair.confidence,
            reverse=True,
        )
        best = distribution[0]
        return ClassifyReply(
            label=best.label,
            confidence=best.confidence,
            distribution=distribution,
            took=_elapsed_ms(start),
        )
