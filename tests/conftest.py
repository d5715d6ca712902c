from __future__ import annotations

import uuid
from datetime import datetime, timedelta
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from nurture.core.enums import AppointmentStatus, Channel, Direction, LeadStage
from nurture.core.snapshots import AppointmentRecord, CommunicationRecord, LeadSnapshot
from nurture.models import Appointment, Base, Communication, Lead

# 12:00 PDT in British Columbia.
NOON_PDT = datetime(2026, 7, 15, 19, 0)


@pytest.fixture
def now() -> datetime:
    return NOON_PDT


@pytest.fixture
def session_factory():
    tmp_root = Path(".test_tmp")
    tmp_root.mkdir(exist_ok=True)
    db_path = tmp_root / f"nurture_test_{uuid.uuid4().hex}.db"
    engine = create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield TestingSessionLocal
    engine.dispose()
    db_path.unlink(missing_ok=True)


@pytest.fixture
def make_lead(session_factory, now):
    def _make_lead(
        communications: list[tuple[Direction, str, timedelta]] | None = None,
        appointments: list[tuple[AppointmentStatus, timedelta]] | None = None,
        **fields,
    ) -> int:
        payload = {
            "first_name": "Sarah",
            "last_name": "Chen",
            "phone": "+16045550101",
            "email": "sarah@example.com",
            "stage": LeadStage.ENGAGED,
            "consent_sms": True,
            "consent_email": True,
            "managed_by_autonomous": True,
            "attributes": {"province": "British Columbia"},
            "created_at": now - timedelta(hours=200),
            "updated_at": now - timedelta(hours=200),
        }
        payload.update(fields)
        with session_factory() as session:
            lead = Lead(**payload)
            session.add(lead)
            session.flush()
            for direction, content, age in communications or []:
                session.add(
                    Communication(
                        lead_id=lead.id,
                        direction=direction,
                        channel=Channel.SMS,
                        content=content,
                        created_at=now - age,
                        updated_at=now - age,
                    )
                )
            for status, offset in appointments or []:
                session.add(
                    Appointment(
                        lead_id=lead.id,
                        status=status,
                        scheduled_at=now + offset,
                        created_at=now - timedelta(days=1),
                        updated_at=now - timedelta(days=1),
                    )
                )
            session.commit()
            return lead.id

    return _make_lead


@pytest.fixture
def fetch_lead(session_factory):
    def _fetch(lead_id: int) -> Lead:
        with session_factory() as session:
            lead = session.get(Lead, lead_id)
            session.expunge(lead)
            return lead

    return _fetch


@pytest.fixture
def snapshot(now):
    """Factory for in-memory lead snapshots; ages are relative to ``now``."""

    def _snapshot(
        inbound: list[tuple[str, float]] | None = None,
        outbound: list[tuple[str, float]] | None = None,
        appointments: list[tuple[AppointmentStatus, float]] | None = None,
        created_hours_ago: float = 200,
        last_contacted_hours_ago: float | None = None,
        **fields,
    ) -> LeadSnapshot:
        communications = [
            CommunicationRecord(Direction.INBOUND, Channel.SMS, text, now - timedelta(hours=age))
            for text, age in inbound or []
        ] + [
            CommunicationRecord(Direction.OUTBOUND, Channel.SMS, text, now - timedelta(hours=age))
            for text, age in outbound or []
        ]
        payload = {
            "id": 1,
            "stage": LeadStage.ENGAGED,
            "created_at": now - timedelta(hours=created_hours_ago),
            "first_name": "Sarah",
            "phone": "+16045550101",
            "email": "sarah@example.com",
            "consent_sms": True,
            "consent_email": True,
            "attributes": {"province": "British Columbia"},
            "last_contacted_at": (
                now - timedelta(hours=last_contacted_hours_ago) if last_contacted_hours_ago is not None else None
            ),
            "communications": tuple(communications),
            "appointments": tuple(
                AppointmentRecord(status, now + timedelta(hours=offset), id=index + 1)
                for index, (status, offset) in enumerate(appointments or [])
            ),
        }
        payload.update(fields)
        return LeadSnapshot(**payload)

    return _snapshot
