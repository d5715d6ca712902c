"""Communication model module.

Rows are append-only: nothing in the nurture loop updates a communication
after it has been written.
"""

from __future__ import annotations

from sqlalchemy import Boolean, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from nurture.core.enums import Channel, Direction
from nurture.models.base import AuditMixin, Base


class Communication(Base, AuditMixin):
    __tablename__ = "communications"
    __table_args__ = (Index("idx_communications_lead_created", "lead_id", "created_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    lead_id: Mapped[int] = mapped_column(ForeignKey("leads.id", ondelete="CASCADE"), nullable=False)
    direction: Mapped[Direction] = mapped_column(Enum(Direction), nullable=False)
    channel: Mapped[Channel] = mapped_column(Enum(Channel), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    is_manual: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    sent_by: Mapped[str | None] = mapped_column(String(120))
    provider_message_id: Mapped[str | None] = mapped_column(String(120))

    lead = relationship("Lead", back_populates="communications")
