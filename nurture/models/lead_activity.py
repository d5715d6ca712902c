"""Lead activity model module."""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Enum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nurture.core.enums import Channel
from nurture.models.base import AuditMixin, Base


class LeadActivity(Base, AuditMixin):
    __tablename__ = "lead_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    channel: Mapped[Channel | None] = mapped_column(Enum(Channel))
    content: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    lead = relationship("Lead", back_populates="activities")
