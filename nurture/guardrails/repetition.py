"""Near-duplicate detection for outbound messages."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from nurture.core.snapshots import CommunicationRecord

DEFAULT_WINDOW = 5
SIMILARITY_THRESHOLD = 0.7
OPENING_CHARS = 50


@dataclass(frozen=True)
class RepetitionVerdict:
    is_repetitive: bool
    reason: str = ""


def _tokens(text: str) -> set[str]:
    return set(text.lower().split())


def jaccard_similarity(first: str, second: str) -> float:
    words_a = _tokens(first)
    words_b = _tokens(second)
    union = words_a | words_b
    if not union:
        return 0.0
    return len(words_a & words_b) / len(union)


def _opening(text: str, opening_chars: int) -> str:
    first_line = text.split("\n", 1)[0]
    return first_line.lower()[:opening_chars]


def recent_outbound_messages(communications: Iterable[CommunicationRecord], window: int = DEFAULT_WINDOW) -> list[str]:
    """Content of the newest ``window`` outbound messages, most recent first."""
    outbound = sorted((c for c in communications if c.is_outbound), key=lambda c: c.created_at, reverse=True)
    return [c.content for c in outbound[:window]]


def detect_message_repetition(
    candidate: str,
    recent_outbound: Sequence[str],
    window: int = DEFAULT_WINDOW,
    similarity_threshold: float = SIMILARITY_THRESHOLD,
    opening_chars: int = OPENING_CHARS,
) -> RepetitionVerdict:
    """Compare ``candidate`` against the last ``window`` outbound messages.

    Checks run in order and the first hit wins: exact match (case-insensitive),
    word-set Jaccard similarity above the threshold, then a formulaic opener
    that already appears more than once in the history.
    """
    history = [message for message in recent_outbound[:window] if message]
    if not history:
        return RepetitionVerdict(False)

    candidate_lower = candidate.lower()
    for previous in history:
        if candidate_lower == previous.lower():
            return RepetitionVerdict(True, "This exact message was already sent recently")

        similarity = jaccard_similarity(candidate, previous)
        if similarity > similarity_threshold:
            return RepetitionVerdict(True, f"Message is {round(similarity * 100)}% similar to a recent message")

    opening = _opening(candidate, opening_chars)
    repeats = sum(1 for previous in history if _opening(previous, opening_chars) == opening)
    if repeats > 1:
        return RepetitionVerdict(True, f'Opening "{opening}" has already been used {repeats} times')

    return RepetitionVerdict(False)
