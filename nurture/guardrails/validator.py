"""Guardrail engine: hard-blocks unsafe proposals and soft-flags risky ones.

Hard rules encode properties that must never be violated (consent, quiet
hours, anti-spam cooldown, double booking, terminal-stage protection, empty
content, unverifiable promises). Soft rules only add warnings.

`validate_decision` is a pure function: identical inputs at the same instant
always produce identical results and nothing is written anywhere.
"""

from __future__ import annotations

import enum
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime

from nurture.core.config import Config
from nurture.core.enums import WON_STAGES, ActionType, Channel, Confidence
from nurture.core.snapshots import CommunicationRecord, LeadSnapshot
from nurture.intelligence.classifiers import (
    TextClassifier,
    high_pressure_classifier,
    stock_phrase_classifier,
)
from nurture.intelligence.clock import (
    DEFAULT_REGION,
    format_local_time,
    is_within_contact_hours,
    resolve_region,
    utcnow,
)
from nurture.intelligence.deal_health import EngagementSignal
from nurture.schemas.decisions import ProposedAction


class RuleCode(str, enum.Enum):
    CONSENT = "consent"
    QUIET_HOURS = "quiet_hours"
    COOLDOWN = "cooldown"
    DOUBLE_BOOKING = "double_booking"
    TERMINAL_STAGE = "terminal_stage"
    EMPTY_MESSAGE = "empty_message"
    UNVERIFIABLE_PROMISE = "unverifiable_promise"
    LONG_MESSAGE = "long_message"
    LOW_CONFIDENCE = "low_confidence"
    STOCK_PHRASE = "stock_phrase"
    HIGH_PRESSURE = "high_pressure"


@dataclass(frozen=True)
class RuleViolation:
    rule: RuleCode
    message: str


@dataclass(frozen=True)
class GuardrailPolicy:
    contact_hours_start: int = 8
    contact_hours_end: int = 21
    anti_spam_cooldown_hours: float = 4
    default_region: str = DEFAULT_REGION
    sms_max_chars: int = 320
    email_max_chars: int = 2000

    @classmethod
    def from_config(cls, config: Config) -> "GuardrailPolicy":
        return cls(
            contact_hours_start=config.CONTACT_HOURS_START,
            contact_hours_end=config.CONTACT_HOURS_END,
            anti_spam_cooldown_hours=config.ANTI_SPAM_COOLDOWN_HOURS,
            default_region=config.DEFAULT_REGION,
            sms_max_chars=config.SMS_MAX_CHARS,
            email_max_chars=config.EMAIL_MAX_CHARS,
        )

    def max_chars(self, channel: Channel) -> int:
        return self.email_max_chars if channel == Channel.EMAIL else self.sms_max_chars


@dataclass(frozen=True)
class ValidationResult:
    errors: list[RuleViolation] = field(default_factory=list)
    warnings: list[RuleViolation] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def failed_rules(self) -> frozenset[RuleCode]:
        return frozenset(error.rule for error in self.errors)

    @property
    def error_messages(self) -> list[str]:
        return [error.message for error in self.errors]

    @property
    def warning_messages(self) -> list[str]:
        return [warning.message for warning in self.warnings]

    def blocked_by(self, rule: RuleCode) -> bool:
        return rule in self.failed_rules


# A human promising to reach out at a concrete time.
PROMISE_PATTERNS = (
    re.compile(
        r"\b(?!you\b)[a-z]+(?:\s+will|'ll|(?:\s+(?:am|is|are)|'m|'re|'s)?\s+going\s+to|\s+gonna|\s+can)\s+"
        r"(?:give\s+you\s+a\s+(?:call|ring)|(?:call|ring|phone|text|reach\s+out\s+to|contact)\s+you)\b[^.?!\n]*?"
        r"\b(?:at\s+\d|around\s+\d|by\s+\d|tomorrow|tonight|today|this\s+(?:morning|afternoon|evening)"
        r"|on\s+(?:mon|tues|wednes|thurs|fri|satur|sun)day)",
        re.IGNORECASE,
    ),
    re.compile(r"\b(?:call|ring|phone)\s+you\s+(?:at|around)\s+\d{1,2}(?::\d{2})?\s*(?:am|pm|a\.m\.|p\.m\.)?", re.IGNORECASE),
)

BOOKING_ACKNOWLEDGEMENT = re.compile(
    r"\b(?:confirm(?:ed|ing|ation)?|booked|booking|your\s+(?:appointment|call)\s+(?:is|for|on|at))\b",
    re.IGNORECASE,
)

# Language that would push a converted lead back into booking or applying.
REENGAGEMENT_PATTERNS = (
    re.compile(r"\b(?:book|schedule)\s+(?:a|another|your)\s+(?:call|time|meeting|appointment)\b", re.IGNORECASE),
    re.compile(r"\bbooking\s+link\b", re.IGNORECASE),
    re.compile(r"\b(?:start|restart|begin|finish)\s+(?:a|an|your|the)\s+(?:new\s+)?application\b", re.IGNORECASE),
    re.compile(r"\bapplication\s+link\b", re.IGNORECASE),
    re.compile(r"\bre-?apply\b|\bapply\s+(?:now|again|here)\b", re.IGNORECASE),
)


def contains_unverifiable_promise(message: str) -> bool:
    return any(pattern.search(message) for pattern in PROMISE_PATTERNS)


def acknowledges_existing_booking(message: str, lead: LeadSnapshot) -> bool:
    return lead.has_active_appointment() and bool(BOOKING_ACKNOWLEDGEMENT.search(message))


def proposes_reengagement(action: ProposedAction) -> bool:
    if action.action == ActionType.SEND_TEMPLATED_LINK:
        return True
    message = action.message or ""
    return any(pattern.search(message) for pattern in REENGAGEMENT_PATTERNS)


def _last_outbound_at(lead: LeadSnapshot, communications: Sequence[CommunicationRecord]) -> datetime | None:
    stamps = [c.created_at for c in communications if c.is_outbound]
    if lead.last_contacted_at:
        stamps.append(lead.last_contacted_at)
    return max(stamps) if stamps else None


def _last_inbound_at(communications: Sequence[CommunicationRecord]) -> datetime | None:
    stamps = [c.created_at for c in communications if c.is_inbound]
    return max(stamps) if stamps else None


def validate_decision(
    action: ProposedAction,
    lead: LeadSnapshot,
    signal: EngagementSignal | None = None,
    communications: Sequence[CommunicationRecord] | None = None,
    now: datetime | None = None,
    policy: GuardrailPolicy | None = None,
    stock_phrases: TextClassifier | None = None,
    high_pressure: TextClassifier | None = None,
) -> ValidationResult:
    """Check a proposed action against the hard and soft rules.

    ``signal`` is accepted for rule extensions that need engagement context;
    the current rule set reads only the lead, its communications and the clock.
    """
    now = now or utcnow()
    policy = policy or GuardrailPolicy()
    communications = lead.communications if communications is None else communications
    stock_phrases = stock_phrases or stock_phrase_classifier
    high_pressure = high_pressure or high_pressure_classifier

    errors: list[RuleViolation] = []
    warnings: list[RuleViolation] = []
    message = action.message or ""

    if action.is_send:
        if not lead.consents_to(action.channel):
            errors.append(
                RuleViolation(RuleCode.CONSENT, f"Lead has not consented to {action.channel.value} - cannot send")
            )

        region = resolve_region(lead.region, policy.default_region)
        if not is_within_contact_hours(region, now, policy.contact_hours_start, policy.contact_hours_end):
            errors.append(
                RuleViolation(
                    RuleCode.QUIET_HOURS,
                    f"Outside contact hours ({format_local_time(region, now)} in {region}) - "
                    f"can only send {policy.contact_hours_start}:00-{policy.contact_hours_end}:00",
                )
            )

        last_outbound = _last_outbound_at(lead, communications)
        last_inbound = _last_inbound_at(communications)
        replied_since = last_inbound is not None and (last_outbound is None or last_inbound > last_outbound)
        if last_outbound is not None and not replied_since:
            hours_since = (now - last_outbound).total_seconds() / 3600
            if hours_since < policy.anti_spam_cooldown_hours:
                errors.append(
                    RuleViolation(
                        RuleCode.COOLDOWN,
                        f"Too soon - last message {hours_since:.1f}h ago with no reply "
                        f"(minimum {policy.anti_spam_cooldown_hours:g}h gap required)",
                    )
                )

        if action.proposes_booking and lead.has_active_appointment():
            errors.append(
                RuleViolation(RuleCode.DOUBLE_BOOKING, "Lead already has an active appointment - cannot double-book")
            )

        if lead.stage in WON_STAGES and proposes_reengagement(action):
            errors.append(
                RuleViolation(
                    RuleCode.TERMINAL_STAGE,
                    f"Lead is {lead.stage.value} - only plain support messages are allowed",
                )
            )

        if not message.strip():
            errors.append(RuleViolation(RuleCode.EMPTY_MESSAGE, "Send actions require a non-empty message"))

        if message and contains_unverifiable_promise(message) and not acknowledges_existing_booking(message, lead):
            errors.append(
                RuleViolation(
                    RuleCode.UNVERIFIABLE_PROMISE,
                    "Message promises a specific human contact time without a confirmed booking",
                )
            )

        limit = policy.max_chars(action.channel)
        if len(message) > limit:
            warnings.append(
                RuleViolation(
                    RuleCode.LONG_MESSAGE,
                    f"Long message ({len(message)} chars, limit {limit} for {action.channel.value})",
                )
            )

        if action.confidence == Confidence.LOW:
            warnings.append(
                RuleViolation(RuleCode.LOW_CONFIDENCE, f"Low confidence decision: {action.thinking[:200]!r}")
            )

        stock = stock_phrases.classify(message)
        if stock.flagged:
            warnings.append(
                RuleViolation(RuleCode.STOCK_PHRASE, f"Repetitive stock phrase(s): {', '.join(stock.matched)}")
            )

        pressure = high_pressure.classify(message)
        if pressure.flagged:
            warnings.append(
                RuleViolation(RuleCode.HIGH_PRESSURE, f"High-pressure phrase(s): {', '.join(pressure.matched)}")
            )

    return ValidationResult(errors=errors, warnings=warnings)
