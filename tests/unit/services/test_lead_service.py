from __future__ import annotations

from datetime import timedelta

import pytest

from nurture.core.enums import AppointmentStatus, Channel, Direction, LeadStage
from nurture.core.exceptions import DataInconsistencyError
from nurture.services.lead_service import LeadService


def test_create_and_fetch_lead(session_factory):
    with LeadService(db=session_factory()) as service:
        created = service.create_lead({"first_name": "Ari", "email": "ari@example.com", "consent_email": True})
        fetched = service.get_lead(created.id)

        assert fetched is not None
        assert fetched.email == "ari@example.com"
        assert fetched.stage == LeadStage.NEW
        assert fetched.managed_by_autonomous is True


def test_select_due_leads_applies_eligibility_filters(make_lead, session_factory, now):
    due = make_lead(next_review_at=now - timedelta(hours=1))
    never_reviewed = make_lead()
    make_lead(next_review_at=now + timedelta(hours=1))
    make_lead(stage=LeadStage.CONVERTED)
    make_lead(stage=LeadStage.LOST)
    make_lead(managed_by_autonomous=False)
    make_lead(automation_disabled=True)
    make_lead(consent_sms=False, consent_email=False)
    make_lead(last_contacted_at=now - timedelta(minutes=5))
    make_lead(locked_until=now + timedelta(minutes=2), lease_owner="other-worker")

    with LeadService(db=session_factory()) as service:
        selected = service.select_due_leads(now)

    assert selected == [never_reviewed, due]


def test_select_due_leads_orders_oldest_due_first_and_limits(make_lead, session_factory, now):
    newer = make_lead(next_review_at=now - timedelta(hours=1))
    oldest = make_lead(next_review_at=now - timedelta(hours=30))
    middle = make_lead(next_review_at=now - timedelta(hours=5))

    with LeadService(db=session_factory()) as service:
        assert service.select_due_leads(now) == [oldest, middle, newer]
        assert service.select_due_leads(now, limit=2) == [oldest, middle]


def test_contact_outside_exclusion_window_is_selectable(make_lead, session_factory, now):
    lead_id = make_lead(last_contacted_at=now - timedelta(minutes=15))

    with LeadService(db=session_factory()) as service:
        assert service.select_due_leads(now) == [lead_id]


def test_lease_is_exclusive_until_expiry(make_lead, session_factory, now):
    lead_id = make_lead()

    with LeadService(db=session_factory()) as first, LeadService(db=session_factory()) as second:
        assert first.acquire_lease(lead_id, "worker-a", now, ttl_seconds=300) is True
        assert second.acquire_lease(lead_id, "worker-b", now, ttl_seconds=300) is False
        assert second.acquire_lease(lead_id, "worker-b", now + timedelta(seconds=301), ttl_seconds=300) is True


def test_release_lease_only_clears_own_lease(make_lead, session_factory, fetch_lead, now):
    lead_id = make_lead()

    with LeadService(db=session_factory()) as service:
        service.acquire_lease(lead_id, "worker-a", now, ttl_seconds=300)
        service.release_lease(lead_id, "worker-b")
        assert fetch_lead(lead_id).lease_owner == "worker-a"

        service.release_lease(lead_id, "worker-a")

    released = fetch_lead(lead_id)
    assert released.lease_owner is None
    assert released.locked_until is None


def test_schedule_next_review(make_lead, session_factory, fetch_lead, now):
    lead_id = make_lead()

    with LeadService(db=session_factory()) as service:
        service.schedule_next_review(lead_id, now + timedelta(hours=6))

    assert fetch_lead(lead_id).next_review_at == now + timedelta(hours=6)


def test_record_outbound_communication_stamps_contact(make_lead, session_factory, fetch_lead, now):
    lead_id = make_lead(stage=LeadStage.NEW)

    with LeadService(db=session_factory()) as service:
        communication = service.record_communication(
            lead_id, Channel.SMS, "Hi Sarah", provider_message_id="SM123", now=now
        )
        assert communication.id is not None
        assert communication.sent_by == "nurture-agent"
        assert communication.is_manual is False

    lead = fetch_lead(lead_id)
    assert lead.last_contacted_at == now
    assert lead.stage == LeadStage.CONTACTED


def test_record_inbound_communication_leaves_contact_time(make_lead, session_factory, fetch_lead, now):
    lead_id = make_lead()

    with LeadService(db=session_factory()) as service:
        service.record_communication(lead_id, Channel.SMS, "yes", direction=Direction.INBOUND, sent_by=None, now=now)

    assert fetch_lead(lead_id).last_contacted_at is None


def test_load_snapshot_converts_rows(make_lead, session_factory, now):
    lead_id = make_lead(
        communications=[
            (Direction.OUTBOUND, "Any questions?", timedelta(hours=5)),
            (Direction.INBOUND, "What rate?", timedelta(hours=2)),
        ],
        appointments=[(AppointmentStatus.CONFIRMED, timedelta(hours=24))],
    )

    with LeadService(db=session_factory()) as service:
        snapshot = service.load_snapshot(lead_id)

    assert snapshot.id == lead_id
    assert snapshot.region == "British Columbia"
    assert [c.content for c in snapshot.communications_newest_first()] == ["What rate?", "Any questions?"]
    assert snapshot.has_active_appointment()
    assert snapshot.call_outcome is None


def test_load_snapshot_for_missing_lead_raises(session_factory):
    with LeadService(db=session_factory()) as service:
        with pytest.raises(DataInconsistencyError):
            service.load_snapshot(999)


def test_revoke_consent_is_per_channel(make_lead, session_factory, fetch_lead):
    lead_id = make_lead()

    with LeadService(db=session_factory()) as service:
        service.revoke_consent(lead_id, Channel.SMS)

    lead = fetch_lead(lead_id)
    assert lead.consent_sms is False
    assert lead.consent_email is True


def test_record_activity(make_lead, session_factory):
    lead_id = make_lead()

    with LeadService(db=session_factory()) as service:
        activity = service.record_activity(lead_id, "escalation", "Needs a human", details={"reason": "pricing"})
        assert activity.id is not None
        assert activity.details == {"reason": "pricing"}


def test_find_severely_overdue(make_lead, session_factory, now):
    overdue = make_lead(next_review_at=now - timedelta(hours=30))
    make_lead(next_review_at=now - timedelta(hours=3))
    make_lead(next_review_at=now - timedelta(hours=40), stage=LeadStage.DEALS_WON)

    with LeadService(db=session_factory()) as service:
        assert [lead.id for lead in service.find_severely_overdue(now)] == [overdue]
