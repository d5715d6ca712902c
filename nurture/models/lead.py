"""Lead model module."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nurture.core.enums import LeadStage
from nurture.models.base import AuditMixin, Base


class Lead(Base, AuditMixin):
    __tablename__ = "leads"
    __table_args__ = (
        Index("idx_leads_stage_next_review", "stage", "next_review_at"),
        Index("idx_leads_locked_until", "locked_until"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    first_name: Mapped[str | None] = mapped_column(String(120))
    last_name: Mapped[str | None] = mapped_column(String(120))
    email: Mapped[str | None] = mapped_column(String(320))
    phone: Mapped[str | None] = mapped_column(String(40))
    stage: Mapped[LeadStage] = mapped_column(Enum(LeadStage), default=LeadStage.NEW, nullable=False)
    consent_sms: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    consent_email: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    consent_call: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    managed_by_autonomous: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    automation_disabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attributes: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    last_contacted_at: Mapped[datetime | None] = mapped_column(DateTime)
    next_review_at: Mapped[datetime | None] = mapped_column(DateTime)
    application_started_at: Mapped[datetime | None] = mapped_column(DateTime)
    application_completed_at: Mapped[datetime | None] = mapped_column(DateTime)
    locked_until: Mapped[datetime | None] = mapped_column(DateTime)
    lease_owner: Mapped[str | None] = mapped_column(String(64))

    communications = relationship("Communication", back_populates="lead", order_by="Communication.created_at")
    appointments = relationship("Appointment", back_populates="lead", order_by="Appointment.scheduled_at")
    call_outcomes = relationship("CallOutcome", back_populates="lead", order_by="CallOutcome.created_at")
    activities = relationship("LeadActivity", back_populates="lead", order_by="LeadActivity.created_at")
