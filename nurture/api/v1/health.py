"""Health endpoints for API v1."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from nurture.core.config import get_config
from nurture.database.db import get_db
from nurture.intelligence.clock import utcnow
from nurture.schemas.leads import OverdueLead, OverdueReport
from nurture.services.lead_service import LeadService

router = APIRouter(tags=["health"])


@router.get("/health")
def health() -> dict:
    cfg = get_config()
    settings = cfg.agent_settings
    return {
        "status": "ok",
        "service": cfg.APP_NAME,
        "version": cfg.APP_VERSION,
        "agent": {
            "enabled": settings.enabled,
            "dry_run": settings.dry_run,
            "rollout_percent": settings.rollout_percent,
        },
    }


@router.get("/health/overdue", response_model=OverdueReport)
def overdue_leads(
    hours: float | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
) -> OverdueReport:
    threshold = hours if hours is not None else get_config().OVERDUE_ALERT_HOURS
    now = utcnow()
    leads = LeadService(db).find_severely_overdue(now, threshold)
    items = [
        OverdueLead(
            lead_id=lead.id,
            name=" ".join(part for part in (lead.first_name, lead.last_name) if part) or f"lead {lead.id}",
            stage=lead.stage.value,
            next_review_at=lead.next_review_at,
            hours_overdue=int((now - lead.next_review_at).total_seconds() // 3600),
        )
        for lead in leads
    ]
    return OverdueReport(checked_at=now, threshold_hours=threshold, count=len(items), leads=items)
