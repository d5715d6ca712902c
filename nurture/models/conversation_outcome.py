"""Conversation outcome model module.

One row per tracked outbound message. ``evaluate_after`` is persisted so a
restarted worker can still find pending evaluations; ``evaluated_at`` stays
null until the sweep records the outcome.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from nurture.core.enums import OutcomeType, Sentiment
from nurture.models.base import AuditMixin, Base


class ConversationOutcome(Base, AuditMixin):
    __tablename__ = "conversation_outcomes"
    __table_args__ = (Index("idx_conversation_outcomes_pending", "evaluated_at", "evaluate_after"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False, index=True)
    communication_id: Mapped[int] = mapped_column(
        ForeignKey("communications.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    message_sent: Mapped[str] = mapped_column(Text, nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    evaluate_after: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    evaluated_at: Mapped[datetime | None] = mapped_column(DateTime)
    outcome: Mapped[OutcomeType | None] = mapped_column(Enum(OutcomeType))
    sentiment: Mapped[Sentiment | None] = mapped_column(Enum(Sentiment))
    booked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    lead_replied: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    reply_text: Mapped[str | None] = mapped_column(Text)
    response_time_minutes: Mapped[int | None] = mapped_column(Integer)
    stage_at_send: Mapped[str | None] = mapped_column(String(40))
    temperature_at_send: Mapped[str | None] = mapped_column(String(20))
    decision: Mapped[dict[str, Any] | None] = mapped_column(JSON)
