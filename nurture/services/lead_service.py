"""Lead service: selection, snapshots, leases and scheduling writes."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any

from sqlalchemy import or_

from nurture.core.enums import TERMINAL_STAGES, Channel, Direction, LeadStage
from nurture.core.exceptions import DataInconsistencyError
from nurture.core.snapshots import AppointmentRecord, CallOutcomeRecord, CommunicationRecord, LeadSnapshot
from nurture.intelligence.clock import utcnow
from nurture.models import Appointment, CallOutcome, Communication, Lead, LeadActivity
from nurture.services.base_service import BaseService

logger = logging.getLogger(__name__)

AGENT_SENDER = "nurture-agent"


def _eligible_filters():
    return (
        Lead.stage.notin_(list(TERMINAL_STAGES)),
        Lead.managed_by_autonomous.is_(True),
        Lead.automation_disabled.is_(False),
        or_(Lead.consent_sms.is_(True), Lead.consent_email.is_(True)),
    )


class LeadService(BaseService):
    """Persistence operations used by the nurture loop.

    Every write commits immediately so that a failure on one lead never leaves
    a half-applied transaction behind for the next one.
    """

    def get_lead(self, lead_id: int) -> Lead | None:
        return self.db.query(Lead).filter(Lead.id == lead_id).first()

    def create_lead(self, data: dict[str, Any]) -> Lead:
        lead = Lead(**dict(data))
        self.db.add(lead)
        self.commit()
        self.db.refresh(lead)
        return lead

    def select_due_leads(
        self,
        now: datetime,
        limit: int | None = None,
        exclusion_minutes: int = 10,
    ) -> list[int]:
        """Ids of leads due for proactive review, oldest-due first.

        Never-reviewed leads come first. Leads contacted within the exclusion
        window or currently leased by another worker are left out.
        """
        recent_cutoff = now - timedelta(minutes=exclusion_minutes)
        query = (
            self.db.query(Lead.id)
            .filter(*_eligible_filters())
            .filter(or_(Lead.next_review_at.is_(None), Lead.next_review_at <= now))
            .filter(or_(Lead.last_contacted_at.is_(None), Lead.last_contacted_at < recent_cutoff))
            .filter(or_(Lead.locked_until.is_(None), Lead.locked_until <= now))
            .order_by(Lead.next_review_at.asc().nulls_first(), Lead.id.asc())
        )
        if limit is not None:
            query = query.limit(limit)
        return [row.id for row in query.all()]

    def find_severely_overdue(self, now: datetime, overdue_hours: float = 24) -> list[Lead]:
        cutoff = now - timedelta(hours=overdue_hours)
        return (
            self.db.query(Lead)
            .filter(*_eligible_filters())
            .filter(Lead.next_review_at.is_not(None), Lead.next_review_at < cutoff)
            .order_by(Lead.next_review_at.asc())
            .all()
        )

    def load_snapshot(self, lead_id: int, recent_limit: int = 20) -> LeadSnapshot:
        lead = self.get_lead(lead_id)
        if lead is None:
            raise DataInconsistencyError(f"Lead {lead_id} no longer exists")

        communications = (
            self.db.query(Communication)
            .filter(Communication.lead_id == lead_id)
            .order_by(Communication.created_at.desc(), Communication.id.desc())
            .limit(recent_limit)
            .all()
        )
        appointments = (
            self.db.query(Appointment)
            .filter(Appointment.lead_id == lead_id)
            .order_by(Appointment.scheduled_at.asc())
            .all()
        )
        call_outcome = (
            self.db.query(CallOutcome)
            .filter(CallOutcome.lead_id == lead_id)
            .order_by(CallOutcome.created_at.desc(), CallOutcome.id.desc())
            .first()
        )

        return LeadSnapshot(
            id=lead.id,
            stage=lead.stage,
            created_at=lead.created_at,
            first_name=lead.first_name,
            last_name=lead.last_name,
            phone=lead.phone,
            email=lead.email,
            consent_sms=lead.consent_sms,
            consent_email=lead.consent_email,
            consent_call=lead.consent_call,
            last_contacted_at=lead.last_contacted_at,
            next_review_at=lead.next_review_at,
            attributes=dict(lead.attributes or {}),
            managed_by_autonomous=lead.managed_by_autonomous,
            automation_disabled=lead.automation_disabled,
            application_started_at=lead.application_started_at,
            application_completed_at=lead.application_completed_at,
            communications=tuple(
                CommunicationRecord(
                    direction=c.direction,
                    channel=c.channel,
                    content=c.content,
                    created_at=c.created_at,
                    id=c.id,
                    is_manual=c.is_manual,
                    sent_by=c.sent_by,
                )
                for c in communications
            ),
            appointments=tuple(
                AppointmentRecord(
                    status=a.status,
                    scheduled_at=a.scheduled_at,
                    id=a.id,
                    advisor_name=a.advisor_name,
                    created_at=a.created_at,
                )
                for a in appointments
            ),
            call_outcome=(
                CallOutcomeRecord(
                    outcome=call_outcome.outcome,
                    created_at=call_outcome.created_at,
                    advisor_name=call_outcome.advisor_name,
                    notes=call_outcome.notes,
                )
                if call_outcome
                else None
            ),
        )

    def acquire_lease(self, lead_id: int, owner: str, now: datetime, ttl_seconds: int) -> bool:
        """Compare-and-swap on ``locked_until``; True only for the winning caller."""
        updated = (
            self.db.query(Lead)
            .filter(Lead.id == lead_id, or_(Lead.locked_until.is_(None), Lead.locked_until <= now))
            .update(
                {Lead.locked_until: now + timedelta(seconds=ttl_seconds), Lead.lease_owner: owner},
                synchronize_session=False,
            )
        )
        self.commit()
        acquired = updated == 1
        if not acquired:
            logger.info(
                "lead.lease.contended",
                extra={"event": "lead.lease.contended", "lead_id": lead_id, "owner": owner},
            )
        return acquired

    def release_lease(self, lead_id: int, owner: str) -> None:
        self.db.query(Lead).filter(Lead.id == lead_id, Lead.lease_owner == owner).update(
            {Lead.locked_until: None, Lead.lease_owner: None},
            synchronize_session=False,
        )
        self.commit()

    def schedule_next_review(self, lead_id: int, when: datetime) -> None:
        self.db.query(Lead).filter(Lead.id == lead_id).update(
            {Lead.next_review_at: when, Lead.updated_at: utcnow()},
            synchronize_session=False,
        )
        self.commit()

    def record_communication(
        self,
        lead_id: int,
        channel: Channel,
        content: str,
        direction: Direction = Direction.OUTBOUND,
        sent_by: str | None = AGENT_SENDER,
        provider_message_id: str | None = None,
        now: datetime | None = None,
    ) -> Communication:
        """Append a communication; outbound rows also stamp ``last_contacted_at``."""
        now = now or utcnow()
        communication = Communication(
            lead_id=lead_id,
            direction=direction,
            channel=channel,
            content=content,
            is_manual=False,
            sent_by=sent_by,
            provider_message_id=provider_message_id,
            created_at=now,
            updated_at=now,
        )
        self.db.add(communication)
        if direction == Direction.OUTBOUND:
            lead = self.get_lead(lead_id)
            if lead is None:
                self.rollback()
                raise DataInconsistencyError(f"Lead {lead_id} no longer exists")
            lead.last_contacted_at = now
            if lead.stage == LeadStage.NEW:
                lead.stage = LeadStage.CONTACTED
        self.commit()
        self.db.refresh(communication)
        return communication

    def record_activity(
        self,
        lead_id: int,
        kind: str,
        content: str,
        channel: Channel | None = None,
        details: dict[str, Any] | None = None,
    ) -> LeadActivity:
        activity = LeadActivity(lead_id=lead_id, kind=kind, content=content, channel=channel, details=details)
        self.db.add(activity)
        self.commit()
        return activity

    def revoke_consent(self, lead_id: int, channel: Channel) -> None:
        column = {
            Channel.SMS: Lead.consent_sms,
            Channel.EMAIL: Lead.consent_email,
            Channel.CALL: Lead.consent_call,
        }.get(channel)
        if column is None:
            return
        self.db.query(Lead).filter(Lead.id == lead_id).update({column: False}, synchronize_session=False)
        self.commit()
        logger.warning(
            "lead.consent.revoked",
            extra={"event": "lead.consent.revoked", "lead_id": lead_id, "channel": channel.value},
        )
