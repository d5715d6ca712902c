from __future__ import annotations

import pytest

from nurture.intelligence.classifiers import (
    PhraseClassifier,
    high_pressure_classifier,
    objection_classifier,
    reply_outcome_classifier,
    tone_classifier,
)


@pytest.mark.parametrize(
    "text, label",
    [
        ("Not interested, thanks", "reluctant"),
        ("Sounds good, let's talk", "enthusiastic"),
        ("Call me!", "enthusiastic"),
        ("I get paid on Fridays", "neutral"),
        ("", "unknown"),
        (None, "unknown"),
    ],
)
def test_tone_classifier(text, label):
    assert tone_classifier.classify(text).label == label


def test_objection_classifier_matches_phrases():
    verdict = objection_classifier.classify("Honestly I'm too busy and already working with a broker")
    assert verdict.flagged
    assert "too busy" in verdict.matched
    assert "already working with" in verdict.matched


def test_phrase_classifier_is_word_bounded():
    classifier = PhraseClassifier("opt_out", ["stop"])
    assert classifier.classify("Please STOP").flagged
    assert not classifier.classify("My stopwatch broke").flagged


def test_high_pressure_classifier():
    assert high_pressure_classifier.classify("This is a limited time rate, act now").flagged
    assert not high_pressure_classifier.classify("Happy to help whenever you're ready").flagged


@pytest.mark.parametrize(
    "text, label",
    [
        ("STOP", "opted_out"),
        ("please unsubscribe me", "opted_out"),
        ("no thanks", "negative"),
        ("What rate could I get?", "positive"),
        ("sure", "positive"),
        ("I'll be home later", "neutral"),
    ],
)
def test_reply_outcome_classifier(text, label):
    assert reply_outcome_classifier.classify(text).label == label
