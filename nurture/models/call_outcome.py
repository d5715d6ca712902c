"""Call outcome model module."""

from __future__ import annotations

from sqlalchemy import ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nurture.models.base import AuditMixin, Base


class CallOutcome(Base, AuditMixin):
    __tablename__ = "call_outcomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    outcome: Mapped[str] = mapped_column(String(60), nullable=False)
    advisor_name: Mapped[str | None] = mapped_column(String(120))
    notes: Mapped[str | None] = mapped_column(Text)

    lead = relationship("Lead", back_populates="call_outcomes")
