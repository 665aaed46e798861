"""discipline.py
Naive-Bayes discipline classifier built on *nltk*.

The model is trained exactly once, at process start, via
:func:`train_classifier` and is immutable afterwards; a single
:class:`DisciplineModel` is shared read-only by every extraction request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, NamedTuple, Sequence

from nltk.classify import NaiveBayesClassifier
from nltk.stem import PorterStemmer

from src.classification.keywords import STOP_WORDS
from src.classification.text import tokenize
from src.common.errors import ClassificationError

logger = logging.getLogger(__name__)

DEFAULT_DISCIPLINE = "General"


class Classification(NamedTuple):
    label: str
    confidence: float


GENERAL = Classification(DEFAULT_DISCIPLINE, 0.0)

# (text, label) pairs. Short bag-of-words documents, one theme each.
TRAINING_CORPUS: tuple[tuple[str, str], ...] = (
    ("machine learning artificial intelligence neural network deep learning algorithm", "Computer Science"),
    ("software engineering programming database system architecture", "Computer Science"),
    ("data mining big data analytics visualization computing", "Computer Science"),
    ("cybersecurity encryption network security protocol", "Computer Science"),
    ("dna genetic protein biology molecular cell organism", "Biology"),
    ("evolution ecology biodiversity ecosystem species", "Biology"),
    ("medicine medical health disease treatment diagnosis", "Medicine"),
    ("pharmaceutical drug therapy clinical trial", "Medicine"),
    ("marketing consumer behavior business strategy management", "Business"),
    ("economics finance market economy investment", "Economics"),
    ("accounting financial analysis revenue profit", "Business"),
    ("mechanical engineering design manufacturing material", "Engineering"),
    ("electrical circuit electronics power system", "Engineering"),
    ("civil engineering construction building infrastructure", "Engineering"),
    ("physics quantum mechanics thermodynamics particle", "Physics"),
    ("chemistry chemical reaction compound molecular structure", "Chemistry"),
    ("psychology behavior cognitive social interaction", "Psychology"),
    ("sociology society culture community social", "Sociology"),
    ("education learning teaching pedagogy curriculum", "Education"),
    ("mathematics mathematical statistics probability theorem", "Mathematics"),
    ("algebra calculus geometry topology analysis", "Mathematics"),
    ("environment climate change sustainability pollution", "Environmental Science"),
    ("renewable energy solar wind environmental impact", "Environmental Science"),
)

_STEMMER = PorterStemmer()


def extract_features(text: str | None) -> dict[str, bool]:
    """Bag-of-stems feature set for *text* (stop words dropped)."""
    return {
        _STEMMER.stem(token): True
        for token in tokenize(text)
        if token not in STOP_WORDS
    }


@dataclass(frozen=True)
class DisciplineModel:
    """A trained, read-only discipline classifier."""

    classifier: NaiveBayesClassifier
    labels: tuple[str, ...] = field(default=())

    def classify(self, text: str | None) -> Classification:
        """Return the best ``(label, confidence)`` pair for *text*."""
        return self.classify_with_confidence(text)[0]

    def classify_with_confidence(self, text: str | None) -> list[Classification]:
        """Return every label ranked by posterior probability.

        Blank input, or input with no usable tokens, yields ``[GENERAL]``
        without consulting the model.  Model failures are logged and mapped
        to ``[GENERAL]``.
        """
        features = extract_features(text)
        if not features:
            return [GENERAL]
        try:
            return self._rank(features)
        except ClassificationError as exc:
            logger.warning("Discipline classification failed: %s", exc)
            return [GENERAL]

    def _rank(self, features: dict[str, bool]) -> list[Classification]:
        try:
            dist = self.classifier.prob_classify(features)
            scored = [Classification(label, float(dist.prob(label))) for label in dist.samples()]
        except Exception as exc:  # pylint: disable=broad-except
            raise ClassificationError(str(exc)) from exc
        if not scored:
            raise ClassificationError("model returned no labels")

        order = {label: i for i, label in enumerate(self.labels)}
        scored.sort(key=lambda c: (-c.confidence, order.get(c.label, len(order))))
        return [Classification(c.label, min(max(c.confidence, 0.0), 1.0)) for c in scored]


def train_classifier(
    corpus: Iterable[tuple[str, str]] = TRAINING_CORPUS,
) -> DisciplineModel:
    """Train a :class:`DisciplineModel` on ``(text, label)`` pairs."""
    examples: Sequence[tuple[str, str]] = list(corpus)
    if not examples:
        raise ValueError("training corpus is empty")

    labelled = [(extract_features(text), label) for text, label in examples]
    classifier = NaiveBayesClassifier.train(labelled)

    labels: list[str] = []
    for _, label in examples:
        if label not in labels:
            labels.append(label)

    logger.info(
        "Trained discipline classifier on %d documents, %d labels",
        len(examples),
        len(labels),
    )
    return DisciplineModel(classifier=classifier, labels=tuple(labels))
