"""Reactive trigger endpoint: queue one lead for out-of-band processing."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from nurture.database.db import get_db
from nurture.schemas.leads import ProcessLeadResponse
from nurture.services.lead_service import LeadService
from nurture.tasks.nurture_tasks import process_lead_task

router = APIRouter(tags=["leads"])


@router.post(
    "/leads/{lead_id}/process",
    response_model=ProcessLeadResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def process_lead(lead_id: int, trigger: str = "reactive", db: Session = Depends(get_db)) -> ProcessLeadResponse:
    if LeadService(db).get_lead(lead_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Lead not found: {lead_id}")
    queued = process_lead_task.delay(lead_id, trigger=trigger)
    return ProcessLeadResponse(lead_id=lead_id, task_id=str(queued.id))
