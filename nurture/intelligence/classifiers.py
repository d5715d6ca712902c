"""Keyword/phrase classifiers for tone, objections, sales pressure and replies.

Every classifier exposes ``classify(text) -> Verdict`` so a stronger model can
replace a phrase list without touching the analyzer or the guardrail rules.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from nurture.core.enums import ReplyTone


@dataclass(frozen=True)
class Verdict:
    label: str
    matched: tuple[str, ...] = ()

    @property
    def flagged(self) -> bool:
        return bool(self.matched)


class TextClassifier:
    """Interface shared by all text classifiers."""

    def classify(self, text: str | None) -> Verdict:  # pragma: no cover - interface
        raise NotImplementedError


def _compile(phrases: Iterable[str]) -> list[tuple[str, re.Pattern[str]]]:
    return [(phrase, re.compile(rf"\b{re.escape(phrase)}\b", re.IGNORECASE)) for phrase in phrases]


class PhraseClassifier(TextClassifier):
    """Flags text containing any phrase from a fixed list (word-bounded)."""

    def __init__(self, label: str, phrases: Iterable[str], clear_label: str = "clear") -> None:
        self.label = label
        self.clear_label = clear_label
        self._patterns = _compile(phrases)

    def classify(self, text: str | None) -> Verdict:
        if not text:
            return Verdict(label=self.clear_label)
        matched = tuple(phrase for phrase, pattern in self._patterns if pattern.search(text))
        if matched:
            return Verdict(label=self.label, matched=matched)
        return Verdict(label=self.clear_label)


ENTHUSIASTIC_PHRASES = (
    "sounds good",
    "great",
    "perfect",
    "awesome",
    "yes",
    "let's do it",
    "interested",
    "love",
    "excited",
)

RELUCTANT_PHRASES = (
    "maybe",
    "not sure",
    "not right now",
    "let me think",
    "not interested",
    "busy",
    "can't",
    "won't",
)


class ToneClassifier(TextClassifier):
    """Classifies a reply as enthusiastic, reluctant, neutral or unknown.

    Reluctant phrases are checked first so that "not interested" is never read
    as enthusiasm because it contains "interested".
    """

    def __init__(self) -> None:
        self._reluctant = PhraseClassifier(ReplyTone.RELUCTANT.value, RELUCTANT_PHRASES)
        self._enthusiastic = PhraseClassifier(ReplyTone.ENTHUSIASTIC.value, ENTHUSIASTIC_PHRASES)

    def classify(self, text: str | None) -> Verdict:
        if not text or not text.strip():
            return Verdict(label=ReplyTone.UNKNOWN.value)
        reluctant = self._reluctant.classify(text)
        if reluctant.flagged:
            return reluctant
        enthusiastic = self._enthusiastic.classify(text)
        if enthusiastic.flagged:
            return enthusiastic
        if "!" in text:
            return Verdict(label=ReplyTone.ENTHUSIASTIC.value, matched=("!",))
        return Verdict(label=ReplyTone.NEUTRAL.value)


OBJECTION_PHRASES = (
    "not interested",
    "already have",
    "already working with",
    "working with someone",
    "too busy",
    "too expensive",
    "can't afford",
    "not ready",
    "maybe later",
    "stop texting",
    "stop messaging",
    "remove me",
    "unsubscribe",
)

STOCK_PHRASES = (
    "thanks for your text",
    "got your text",
    "thanks for reaching out",
    "hope this email finds you well",
)

HIGH_PRESSURE_PHRASES = (
    "limited time",
    "act now",
    "don't miss out",
    "exclusive offer",
    "once in a lifetime",
)

OPT_OUT_PHRASES = ("stop", "unsubscribe", "remove me", "opt out")
DECLINE_PHRASES = ("not interested", "no thanks", "no thank you", "leave me alone")
AFFIRMATIVE_PHRASES = ("yes", "sure", "sounds good", "okay", "ok")


class ReplyOutcomeClassifier(TextClassifier):
    """Classifies a reply to an outbound message: opted_out, negative, positive or neutral."""

    def __init__(self) -> None:
        self._opt_out = PhraseClassifier("opted_out", OPT_OUT_PHRASES)
        self._decline = PhraseClassifier("negative", DECLINE_PHRASES)
        self._affirmative = PhraseClassifier("positive", AFFIRMATIVE_PHRASES)

    def classify(self, text: str | None) -> Verdict:
        if not text:
            return Verdict(label="neutral")
        for classifier in (self._opt_out, self._decline):
            verdict = classifier.classify(text)
            if verdict.flagged:
                return verdict
        if "?" in text:
            return Verdict(label="positive", matched=("?",))
        affirmative = self._affirmative.classify(text)
        if affirmative.flagged:
            return affirmative
        return Verdict(label="neutral")


tone_classifier = ToneClassifier()
objection_classifier = PhraseClassifier("objection", OBJECTION_PHRASES)
stock_phrase_classifier = PhraseClassifier("stock_phrase", STOCK_PHRASES)
high_pressure_classifier = PhraseClassifier("high_pressure", HIGH_PRESSURE_PHRASES)
reply_outcome_classifier = ReplyOutcomeClassifier()
