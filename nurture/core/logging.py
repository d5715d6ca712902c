"""Structured logging helpers for the nurture loop."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class LogContext:
    """Normalized context fields expected in structured logs."""

    cycle_id: str | None = None
    lead_id: str | None = None
    trigger: str | None = None
    task_name: str | None = None
    trace_id: str | None = None


def build_log_event(event: str, context: LogContext, **fields: Any) -> dict[str, Any]:
    """Build a normalized structured log payload."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "event": event,
        "cycle_id": context.cycle_id,
        "lead_id": context.lead_id,
        "trigger": context.trigger,
        "task_name": context.task_name,
        "trace_id": context.trace_id,
    }
    payload.update(fields)
    return payload
