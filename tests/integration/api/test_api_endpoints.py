from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import HTTPException

import nurture.api.v1.health as health_module
import nurture.api.v1.leads as leads_module
from nurture.main import create_app


class _Queued:
    id = "task-123"


def test_health_reports_agent_settings():
    response = health_module.health()

    assert response["status"] == "ok"
    assert response["service"] == "nurture-agent"
    assert set(response["agent"]) == {"enabled", "dry_run", "rollout_percent"}


def test_overdue_endpoint_lists_stale_leads(monkeypatch, make_lead, session_factory, now):
    overdue = make_lead(next_review_at=now - timedelta(hours=30))
    make_lead(next_review_at=now - timedelta(hours=3))
    monkeypatch.setattr(health_module, "utcnow", lambda: now)

    with session_factory() as db:
        report = health_module.overdue_leads(hours=24, db=db)

    assert report.count == 1
    assert report.threshold_hours == 24
    [item] = report.leads
    assert item.lead_id == overdue
    assert item.name == "Sarah Chen"
    assert item.hours_overdue == 30


def test_process_lead_queues_reactive_task(monkeypatch, make_lead, session_factory):
    lead_id = make_lead()
    queued = []

    def _delay(*args, **kwargs):
        queued.append((args, kwargs))
        return _Queued()

    monkeypatch.setattr(leads_module.process_lead_task, "delay", _delay)

    with session_factory() as db:
        response = leads_module.process_lead(lead_id, trigger="inbound_reply", db=db)

    assert response.task_id == "task-123"
    assert response.status == "queued"
    assert queued == [((lead_id,), {"trigger": "inbound_reply"})]


def test_process_lead_unknown_lead_returns_404(monkeypatch, session_factory):
    monkeypatch.setattr(leads_module.process_lead_task, "delay", lambda *args, **kwargs: pytest.fail("queued"))

    with session_factory() as db:
        with pytest.raises(HTTPException) as exc:
            leads_module.process_lead(999, db=db)
    assert exc.value.status_code == 404


def test_app_mounts_v1_routes():
    paths = {route.path for route in create_app().routes}

    assert "/api/v1/health" in paths
    assert "/api/v1/health/overdue" in paths
    assert "/api/v1/leads/{lead_id}/process" in paths
