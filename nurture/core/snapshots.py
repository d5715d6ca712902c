"""Read-only views of store records handed to the pure decision core.

The analyzer, the validator and the repetition detector never touch ORM rows;
`LeadService.load_snapshot` converts rows into these frozen dataclasses so the
core stays side-effect free and trivially constructible in tests.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from nurture.core.enums import (
    ACTIVE_APPOINTMENT_STATUSES,
    AppointmentStatus,
    Channel,
    Direction,
    LeadStage,
)


@dataclass(frozen=True)
class CommunicationRecord:
    direction: Direction
    channel: Channel
    content: str
    created_at: datetime
    id: int | None = None
    is_manual: bool = False
    sent_by: str | None = None

    @property
    def is_inbound(self) -> bool:
        return self.direction == Direction.INBOUND

    @property
    def is_outbound(self) -> bool:
        return self.direction == Direction.OUTBOUND


@dataclass(frozen=True)
class AppointmentRecord:
    status: AppointmentStatus
    scheduled_at: datetime
    id: int | None = None
    advisor_name: str | None = None
    created_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_APPOINTMENT_STATUSES


@dataclass(frozen=True)
class CallOutcomeRecord:
    outcome: str
    created_at: datetime
    advisor_name: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class LeadSnapshot:
    id: int
    stage: LeadStage
    created_at: datetime
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None
    email: str | None = None
    consent_sms: bool = False
    consent_email: bool = False
    consent_call: bool = False
    last_contacted_at: datetime | None = None
    next_review_at: datetime | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)
    managed_by_autonomous: bool = False
    automation_disabled: bool = False
    application_started_at: datetime | None = None
    application_completed_at: datetime | None = None
    communications: tuple[CommunicationRecord, ...] = ()
    appointments: tuple[AppointmentRecord, ...] = ()
    call_outcome: CallOutcomeRecord | None = None

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or f"lead {self.id}"

    @property
    def region(self) -> str | None:
        value = self.attributes.get("province") or self.attributes.get("region")
        return str(value) if value else None

    def consents_to(self, channel: Channel) -> bool:
        if channel == Channel.SMS:
            return self.consent_sms
        if channel == Channel.EMAIL:
            return self.consent_email
        if channel == Channel.CALL:
            return self.consent_call
        return False

    def recipient_for(self, channel: Channel) -> str | None:
        if channel == Channel.EMAIL:
            return self.email
        return self.phone

    def communications_newest_first(self) -> list[CommunicationRecord]:
        return sorted(self.communications, key=lambda c: c.created_at, reverse=True)

    def inbound(self) -> list[CommunicationRecord]:
        return [c for c in self.communications_newest_first() if c.is_inbound]

    def outbound(self) -> list[CommunicationRecord]:
        return [c for c in self.communications_newest_first() if c.is_outbound]

    def active_appointments(self) -> list[AppointmentRecord]:
        return sorted(
            (a for a in self.appointments if a.is_active),
            key=lambda a: a.scheduled_at,
        )

    def has_active_appointment(self) -> bool:
        return bool(self.active_appointments())

    def upcoming_appointments(self, now: datetime) -> list[AppointmentRecord]:
        return [a for a in self.active_appointments() if a.scheduled_at > now]
