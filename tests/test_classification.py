from unittest.mock import MagicMock

import pytest

from src.classification.discipline import (
    GENERAL,
    Classification,
    DisciplineModel,
    extract_features,
    train_classifier,
)
from src.classification.doctype import detect_type
from src.classification.keywords import STOP_WORDS, extract_keywords
from src.classification.text import normalize, tokenize
from src.common.entities import DocumentType


# --------------------------------------------------------------------------- #
# text                                                                        #
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Deep-Learning, for NLP!", "deep learning for nlp"),
        ("  spaced\t\nout  ", "spaced out"),
        ("", ""),
        (None, ""),
        ("   ", ""),
    ],
)
def test_normalize(raw, expected):
    assert normalize(raw) == expected


@pytest.mark.parametrize("raw", ["A.B.C -- x", "Ünïcode Wörds, too", "tabs\tand\nlines"])
def test_normalize_is_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once


def test_tokenize_empty_input():
    assert tokenize("") == []
    assert tokenize("?!") == []


# --------------------------------------------------------------------------- #
# keywords                                                                    #
# --------------------------------------------------------------------------- #
def test_keywords_ranked_by_frequency():
    text = "The the the machine learning machine algorithm algorithm algorithm"
    assert extract_keywords(text) == ["algorithm", "machine", "learning"]


def test_keywords_ties_keep_first_occurrence():
    assert extract_keywords("zebra apple mango") == ["zebra", "apple", "mango"]


def test_keywords_filters_short_numeric_and_stop_words():
    words = extract_keywords("their data set 2024 abc3 should graph graph")
    assert words == ["graph", "data"]


def test_keywords_capped():
    text = "alpha bravo charlie delta echoes foxtrot gamma hotel india juliet kilos lima"
    words = extract_keywords(text)
    assert len(words) == 10
    assert extract_keywords(text, limit=3) == ["alpha", "bravo", "charlie"]


def test_keywords_properties():
    text = "Neural networks, NEURAL nets; and the Networks of 1990s networks."
    words = extract_keywords(text)
    assert words[0] == "networks"
    for w in words:
        assert w == w.lower()
        assert w.isalpha()
        assert len(w) >= 4
        assert w not in STOP_WORDS


def test_keywords_blank():
    assert extract_keywords("") == []
    assert extract_keywords(None) == []


# --------------------------------------------------------------------------- #
# discipline                                                                  #
# --------------------------------------------------------------------------- #
@pytest.mark.parametrize("text", ["", "   ", None, "the and of"])
def test_blank_input_is_general_without_model(text):
    classifier = MagicMock()
    model = DisciplineModel(classifier=classifier, labels=("Biology",))

    assert model.classify(text) == Classification("General", 0.0)
    classifier.prob_classify.assert_not_called()


def test_model_failure_maps_to_general():
    classifier = MagicMock()
    classifier.prob_classify.side_effect = RuntimeError("boom")
    model = DisciplineModel(classifier=classifier, labels=("Biology",))

    assert model.classify_with_confidence("protein folding") == [GENERAL]


def test_computer_science_text(model):
    result = model.classify("A deep learning algorithm for neural network training")
    assert result.label == "Computer Science"
    assert 0.0 < result.confidence <= 1.0


def test_biology_text(model):
    assert model.classify("protein expression in the cell of each organism").label == "Biology"


def test_ranking_covers_every_label(model):
    ranked = model.classify_with_confidence("quantum particle physics")
    assert ranked[0].label == "Physics"
    assert {c.label for c in ranked} == set(model.labels)
    confidences = [c.confidence for c in ranked]
    assert confidences == sorted(confidences, reverse=True)
    assert sum(confidences) == pytest.approx(1.0)


def test_features_are_stemmed_without_stop_words():
    assert extract_features("The learning of networks") == {"learn": True, "network": True}


def test_train_rejects_empty_corpus():
    with pytest.raises(ValueError):
        train_classifier([])


def test_model_is_immutable(model):
    with pytest.raises(AttributeError):
        model.labels = ()


# --------------------------------------------------------------------------- #
# document type                                                               #
# --------------------------------------------------------------------------- #
def test_journal_host_wins():
    assert detect_type("https://arxiv.org/abs/1234", "Deep Learning") is DocumentType.JOURNAL


def test_journal_host_beats_thesis_title():
    assert detect_type("https://arxiv.org/abs/1234", "A PhD thesis") is DocumentType.JOURNAL


def test_thesis_title():
    assert detect_type(None, "PhD Thesis on Graph Algorithms") is DocumentType.THESIS


def test_thesis_repository_url_beats_book_title():
    doctype = detect_type("https://dspace.example.edu/repository/123", "Introduction to Topology")
    assert doctype is DocumentType.THESIS


def test_thesis_text_beats_book_title():
    doctype = detect_type(None, "Introduction to Topology", "Submitted to the committee")
    assert doctype is DocumentType.THESIS


@pytest.mark.parametrize(
    "title, abstract, expected",
    [
        ("Handbook of Robotics", None, DocumentType.BOOK),
        ("Graph theory", "Second edition, with exercises", DocumentType.BOOK),
        ("Technical Report on Wind Farms", None, DocumentType.REPORT),
        ("Wind farms", "Our findings suggest", DocumentType.REPORT),
        ("Attention", "We present methodology and results", DocumentType.JOURNAL),
        ("Untitled", None, DocumentType.JOURNAL),
    ],
)
def test_content_rules(title, abstract, expected):
    assert detect_type(None, title, abstract) is expected


def test_no_input_defaults_to_journal():
    assert detect_type() is DocumentType.JOURNAL
