"""Outcome tracking for sent messages.

Sending a message arms a durable evaluation row with ``evaluate_after`` set
one window later. A periodic sweep evaluates the rows that are due, so a
worker restart never loses a pending evaluation. Outcomes are observation
only; nothing in the decision loop reads them back.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from nurture.core.enums import Direction, OutcomeType, Sentiment
from nurture.intelligence.classifiers import TextClassifier, reply_outcome_classifier
from nurture.intelligence.clock import utcnow
from nurture.models import Appointment, Communication, ConversationOutcome
from nurture.services.base_service import BaseService

logger = logging.getLogger(__name__)

_REPLY_LABELS: dict[str, tuple[OutcomeType, Sentiment]] = {
    "opted_out": (OutcomeType.OPTED_OUT, Sentiment.NEGATIVE),
    "negative": (OutcomeType.ENGAGED, Sentiment.NEGATIVE),
    "positive": (OutcomeType.ENGAGED, Sentiment.POSITIVE),
    "neutral": (OutcomeType.ENGAGED, Sentiment.NEUTRAL),
}


@dataclass(frozen=True)
class OutcomeClassification:
    outcome: OutcomeType
    sentiment: Sentiment | None = None
    reply_text: str | None = None
    response_time_minutes: int | None = None

    @property
    def booked(self) -> bool:
        return self.outcome == OutcomeType.BOOKED

    @property
    def replied(self) -> bool:
        return self.reply_text is not None


def classify_outcome(
    sent_at: datetime,
    replies: Sequence[tuple[datetime, str]],
    appointment_booked: bool,
    classifier: TextClassifier | None = None,
) -> OutcomeClassification:
    """Classify what happened after a send.

    A booking wins over any reply. Sentiment is read from the latest reply and
    latency is measured to the first one.
    """
    if appointment_booked:
        return OutcomeClassification(OutcomeType.BOOKED)
    if not replies:
        return OutcomeClassification(OutcomeType.GHOSTED)

    ordered = sorted(replies, key=lambda reply: reply[0])
    first_at = ordered[0][0]
    latest_text = ordered[-1][1]
    label = (classifier or reply_outcome_classifier).classify(latest_text).label
    outcome, sentiment = _REPLY_LABELS.get(label, _REPLY_LABELS["neutral"])
    latency = max(0, int((first_at - sent_at).total_seconds() // 60))
    return OutcomeClassification(outcome, sentiment, latest_text, latency)


class OutcomeTracker(BaseService):
    """Arms and evaluates conversation outcomes."""

    def __init__(self, db=None, window_hours: float = 4, classifier: TextClassifier | None = None) -> None:
        super().__init__(db)
        self.window = timedelta(hours=window_hours)
        self.classifier = classifier or reply_outcome_classifier

    def arm(
        self,
        lead_id: int,
        communication_id: int,
        message: str,
        sent_at: datetime,
        stage: str | None = None,
        temperature: str | None = None,
        decision: dict[str, Any] | None = None,
    ) -> ConversationOutcome:
        existing = (
            self.db.query(ConversationOutcome)
            .filter(ConversationOutcome.communication_id == communication_id)
            .first()
        )
        if existing is not None:
            return existing

        tracked = ConversationOutcome(
            lead_id=lead_id,
            communication_id=communication_id,
            message_sent=message,
            sent_at=sent_at,
            evaluate_after=sent_at + self.window,
            stage_at_send=stage,
            temperature_at_send=temperature,
            decision=decision,
        )
        self.db.add(tracked)
        self.commit()
        logger.info(
            "outcome.armed",
            extra={
                "event": "outcome.armed",
                "lead_id": lead_id,
                "communication_id": communication_id,
                "evaluate_after": tracked.evaluate_after.isoformat(),
            },
        )
        return tracked

    def pending(self, now: datetime, limit: int = 100) -> list[ConversationOutcome]:
        return (
            self.db.query(ConversationOutcome)
            .filter(ConversationOutcome.evaluated_at.is_(None), ConversationOutcome.evaluate_after <= now)
            .order_by(ConversationOutcome.evaluate_after.asc())
            .limit(limit)
            .all()
        )

    def evaluate(self, tracked: ConversationOutcome, now: datetime | None = None) -> ConversationOutcome:
        now = now or utcnow()
        window_end = tracked.evaluate_after
        replies = (
            self.db.query(Communication.created_at, Communication.content)
            .filter(
                Communication.lead_id == tracked.lead_id,
                Communication.direction == Direction.INBOUND,
                Communication.created_at >= tracked.sent_at,
                Communication.created_at <= window_end,
            )
            .all()
        )
        booked = (
            self.db.query(Appointment.id)
            .filter(
                Appointment.lead_id == tracked.lead_id,
                Appointment.created_at >= tracked.sent_at,
                Appointment.created_at <= window_end,
            )
            .first()
            is not None
        )

        result = classify_outcome(
            tracked.sent_at,
            [(row.created_at, row.content) for row in replies],
            booked,
            self.classifier,
        )
        tracked.outcome = result.outcome
        tracked.sentiment = result.sentiment
        tracked.booked = result.booked
        tracked.lead_replied = result.replied
        tracked.reply_text = result.reply_text
        tracked.response_time_minutes = result.response_time_minutes
        tracked.evaluated_at = now
        self.commit()

        logger.info(
            "outcome.evaluated",
            extra={
                "event": "outcome.evaluated",
                "lead_id": tracked.lead_id,
                "communication_id": tracked.communication_id,
                "outcome": result.outcome.value,
                "sentiment": result.sentiment.value if result.sentiment else None,
                "response_time_minutes": result.response_time_minutes,
            },
        )
        return tracked

    def evaluate_due(self, now: datetime | None = None, limit: int = 100) -> list[ConversationOutcome]:
        """Evaluate every armed outcome whose window has closed."""
        now = now or utcnow()
        evaluated = []
        for tracked in self.pending(now, limit):
            try:
                evaluated.append(self.evaluate(tracked, now))
            except Exception:
                self.rollback()
                logger.exception(
                    "outcome.evaluation_failed",
                    extra={"event": "outcome.evaluation_failed", "outcome_id": tracked.id},
                )
        return evaluated
