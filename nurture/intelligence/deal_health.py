"""Deal health analysis: interaction history in, compact engagement signal out.

`analyze_deal_health` is a pure function of the lead snapshot and the current
instant. It never raises for missing optional data; absent appointments, call
outcomes or attributes fall through to the default branches.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from nurture.core.enums import (
    EngagementTrend,
    LeadStage,
    ReplyTone,
    Temperature,
    UrgencyKind,
)
from nurture.core.snapshots import LeadSnapshot
from nurture.intelligence.classifiers import (
    TextClassifier,
    objection_classifier as default_objection_classifier,
    tone_classifier as default_tone_classifier,
)
from nurture.intelligence.clock import utcnow

logger = logging.getLogger(__name__)

NEXT_REVIEW_HOURS: dict[Temperature, float] = {
    Temperature.HOT: 0.5,
    Temperature.WARM: 2,
    Temperature.COOLING: 6,
    Temperature.COLD: 24,
    Temperature.DEAD: 168,
}

TREND_WINDOW = timedelta(days=3)
STUCK_APPLICATION_HOURS = 12
APPOINTMENT_URGENCY_HOURS = 24
ACCEPTED_OFFER_MARKERS = ("offer to purchase", "accepted offer")
READY_FOR_APPLICATION = "READY_FOR_APP"


@dataclass(frozen=True)
class SentimentSignals:
    last_reply_tone: ReplyTone
    objection_detected: bool
    question_count: int


@dataclass(frozen=True)
class EngagementSignal:
    temperature: Temperature
    engagement_trend: EngagementTrend
    sentiment: SentimentSignals
    contextual_urgency: str | None
    urgency_kind: UrgencyKind | None
    lead_source_quality: str
    motivation_level: str
    hours_since_contact: float
    reply_count: int
    outbound_count: int
    next_review_hours: float
    reasoning_context: str


def _hours_between(later: datetime, earlier: datetime) -> float:
    return (later - earlier).total_seconds() / 3600


def _engagement_trend(lead: LeadSnapshot, now: datetime) -> EngagementTrend:
    recent_start = now - TREND_WINDOW
    previous_start = now - 2 * TREND_WINDOW
    recent = previous = 0
    for message in lead.inbound():
        if recent_start < message.created_at <= now:
            recent += 1
        elif previous_start < message.created_at <= recent_start:
            previous += 1

    if recent > previous:
        return EngagementTrend.IMPROVING
    if recent < previous and previous > 0:
        return EngagementTrend.DECLINING
    return EngagementTrend.STABLE


def _contextual_urgency(lead: LeadSnapshot, now: datetime) -> tuple[UrgencyKind | None, str | None]:
    # First match wins; the order is a deliberate tie-break.
    motivation = str(lead.attributes.get("motivation_level") or "").lower()
    if any(marker in motivation for marker in ACCEPTED_OFFER_MARKERS):
        return UrgencyKind.URGENT, "URGENT: Accepted offer - subject removal deadline likely soon"

    if (
        lead.stage == LeadStage.CALL_COMPLETED
        and lead.call_outcome is not None
        and lead.call_outcome.outcome == READY_FOR_APPLICATION
    ):
        return UrgencyKind.HOT, "HOT: Advisor marked ready for application after call"

    if lead.application_started_at and not lead.application_completed_at:
        hours_stuck = _hours_between(now, lead.application_started_at)
        if hours_stuck > STUCK_APPLICATION_HOURS:
            return UrgencyKind.STUCK, f"STUCK: Started application {int(hours_stuck)}h ago, not completed"

    upcoming = lead.upcoming_appointments(now)
    if upcoming:
        hours_until = _hours_between(upcoming[0].scheduled_at, now)
        if hours_until < APPOINTMENT_URGENCY_HOURS:
            return UrgencyKind.APPOINTMENT, f"APPOINTMENT: Call in {int(hours_until)}h - ensure they show up"

    return None, None


def _lead_source_quality(lead: LeadSnapshot) -> str:
    source = lead.attributes.get("ad_source")
    if source == "Referral":
        return "high"
    if source == "Google":
        return "medium"
    return "low"


def _motivation_level(lead: LeadSnapshot) -> str:
    motivation = str(lead.attributes.get("motivation_level") or "").lower()
    if "offer to purchase" in motivation:
        return "urgent"
    if "soon" in motivation:
        return "active"
    if "exploring" in motivation or "qualified" in motivation:
        return "browsing"
    return "unknown"


def classify_temperature(
    *,
    has_upcoming_appointment: bool,
    stage: LeadStage,
    reply_count: int,
    hours_since_contact: float,
    tone: ReplyTone,
    objection_detected: bool,
    urgency_kind: UrgencyKind | None = None,
) -> Temperature:
    """Temperature rules evaluated in priority order, then urgency overrides."""
    if has_upcoming_appointment or stage == LeadStage.CALL_SCHEDULED:
        temperature = Temperature.HOT
    elif reply_count > 2 and hours_since_contact < 12 and tone == ReplyTone.ENTHUSIASTIC:
        temperature = Temperature.HOT
    elif reply_count >= 1 and hours_since_contact < 48 and not objection_detected:
        temperature = Temperature.WARM
    elif reply_count >= 1 and hours_since_contact < 120:
        temperature = Temperature.COOLING
    elif reply_count == 0 and hours_since_contact > 96:
        temperature = Temperature.DEAD
    elif reply_count == 0 and hours_since_contact > 48:
        temperature = Temperature.COLD
    else:
        temperature = Temperature.COOLING

    if urgency_kind in (UrgencyKind.URGENT, UrgencyKind.HOT):
        return Temperature.HOT
    if urgency_kind == UrgencyKind.STUCK:
        # stuck but salvageable
        return Temperature.WARM
    return temperature


def analyze_deal_health(
    lead: LeadSnapshot,
    now: datetime | None = None,
    tone_classifier: TextClassifier | None = None,
    objection_classifier: TextClassifier | None = None,
) -> EngagementSignal:
    now = now or utcnow()
    tone_classifier = tone_classifier or default_tone_classifier
    objection_classifier = objection_classifier or default_objection_classifier

    anchor = max(filter(None, (lead.last_contacted_at, lead.created_at)))
    hours_since_contact = max(0.0, _hours_between(now, anchor))

    inbound = lead.inbound()
    outbound = lead.outbound()
    reply_count = len(inbound)

    last_reply = inbound[0].content if inbound else ""
    tone_label = tone_classifier.classify(last_reply).label
    try:
        tone = ReplyTone(tone_label)
    except ValueError:
        logger.warning("deal_health.tone.unknown_label", extra={"event": "deal_health.tone.unknown_label", "label": tone_label})
        tone = ReplyTone.UNKNOWN
    objection_detected = objection_classifier.classify(last_reply).flagged
    question_count = last_reply.count("?")

    trend = _engagement_trend(lead, now)
    urgency_kind, urgency_text = _contextual_urgency(lead, now)
    upcoming = lead.upcoming_appointments(now)

    temperature = classify_temperature(
        has_upcoming_appointment=bool(upcoming),
        stage=lead.stage,
        reply_count=reply_count,
        hours_since_contact=hours_since_contact,
        tone=tone,
        objection_detected=objection_detected,
        urgency_kind=urgency_kind,
    )

    reasoning_lines = [
        f"Status: {lead.stage.value}",
        f"Last contact: {int(hours_since_contact)}h ago",
        f"Engagement: {reply_count} replies (trend: {trend.value})",
        f"Sent: {len(outbound)} messages",
    ]
    if tone != ReplyTone.UNKNOWN:
        reasoning_lines.append(f"Last reply tone: {tone.value}")
    if objection_detected:
        reasoning_lines.append("Objection detected in last message")
    if question_count:
        reasoning_lines.append(f"Asked {question_count} question(s)")
    if upcoming:
        reasoning_lines.append(f"Appointment: {upcoming[0].scheduled_at.isoformat()}")
    if urgency_text:
        reasoning_lines.append(urgency_text)

    return EngagementSignal(
        temperature=temperature,
        engagement_trend=trend,
        sentiment=SentimentSignals(
            last_reply_tone=tone,
            objection_detected=objection_detected,
            question_count=question_count,
        ),
        contextual_urgency=urgency_text,
        urgency_kind=urgency_kind,
        lead_source_quality=_lead_source_quality(lead),
        motivation_level=_motivation_level(lead),
        hours_since_contact=round(hours_since_contact, 2),
        reply_count=reply_count,
        outbound_count=len(outbound),
        next_review_hours=NEXT_REVIEW_HOURS[temperature],
        reasoning_context="\n".join(reasoning_lines),
    )
