"""Shared SQLAlchemy base and common mixins for nurture models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from nurture.intelligence.clock import utcnow


class Base(DeclarativeBase):
    """Declarative base class for the nurture schema."""


class AuditMixin:
    """Standard audit fields; timestamps are stored as naive UTC."""

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
