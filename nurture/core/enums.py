"""Canonical enum values shared by the store, the analyzer and the guardrails."""

from __future__ import annotations

import enum


class LeadStage(str, enum.Enum):
    NEW = "NEW"
    CONTACTED = "CONTACTED"
    ENGAGED = "ENGAGED"
    NURTURING = "NURTURING"
    CALL_SCHEDULED = "CALL_SCHEDULED"
    CALL_COMPLETED = "CALL_COMPLETED"
    APPLICATION_STARTED = "APPLICATION_STARTED"
    CONVERTED = "CONVERTED"
    DEALS_WON = "DEALS_WON"
    LOST = "LOST"


class Direction(str, enum.Enum):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class Channel(str, enum.Enum):
    SMS = "SMS"
    EMAIL = "EMAIL"
    CALL = "CALL"
    SYSTEM = "SYSTEM"


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class Temperature(str, enum.Enum):
    """Coarse engagement classification; ``rank`` orders hot above dead."""

    HOT = "hot"
    WARM = "warm"
    COOLING = "cooling"
    COLD = "cold"
    DEAD = "dead"

    @property
    def rank(self) -> int:
        return _TEMPERATURE_RANK[self]


_TEMPERATURE_RANK = {
    Temperature.HOT: 4,
    Temperature.WARM: 3,
    Temperature.COOLING: 2,
    Temperature.COLD: 1,
    Temperature.DEAD: 0,
}


class EngagementTrend(str, enum.Enum):
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class ReplyTone(str, enum.Enum):
    ENTHUSIASTIC = "enthusiastic"
    NEUTRAL = "neutral"
    RELUCTANT = "reluctant"
    UNKNOWN = "unknown"


class UrgencyKind(str, enum.Enum):
    URGENT = "URGENT"
    HOT = "HOT"
    STUCK = "STUCK"
    APPOINTMENT = "APPOINTMENT"


class ActionType(str, enum.Enum):
    SEND_MESSAGE = "send_message"
    SEND_TEMPLATED_LINK = "send_templated_link"
    WAIT = "wait"
    ESCALATE = "escalate"


class LinkKind(str, enum.Enum):
    BOOKING = "booking"
    APPLICATION = "application"


class Confidence(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class OutcomeType(str, enum.Enum):
    BOOKED = "BOOKED"
    ENGAGED = "ENGAGED"
    OPTED_OUT = "OPTED_OUT"
    GHOSTED = "GHOSTED"


class Sentiment(str, enum.Enum):
    POSITIVE = "POSITIVE"
    NEUTRAL = "NEUTRAL"
    NEGATIVE = "NEGATIVE"


class Disposition(str, enum.Enum):
    """Terminal state of one lead's pass through the pipeline."""

    EXECUTED = "executed"
    WAITED = "waited"
    ESCALATED = "escalated"
    BLOCKED = "blocked"
    REPETITIVE = "repetitive"
    ERRORED = "errored"
    SKIPPED = "skipped"


TERMINAL_STAGES = frozenset({LeadStage.CONVERTED, LeadStage.DEALS_WON, LeadStage.LOST})
WON_STAGES = frozenset({LeadStage.CONVERTED, LeadStage.DEALS_WON})
ACTIVE_APPOINTMENT_STATUSES = frozenset({AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED})
SEND_ACTIONS = frozenset({ActionType.SEND_MESSAGE, ActionType.SEND_TEMPLATED_LINK})
