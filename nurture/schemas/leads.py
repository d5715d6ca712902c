"""API schemas for lead processing and health endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class ProcessLeadResponse(BaseModel):
    lead_id: int
    task_id: str
    status: str = "queued"


class OverdueLead(BaseModel):
    lead_id: int
    name: str
    stage: str
    next_review_at: datetime
    hours_overdue: int


class OverdueReport(BaseModel):
    checked_at: datetime
    threshold_hours: float
    count: int
    leads: list[OverdueLead]
