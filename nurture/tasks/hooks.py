"""Lifecycle hooks for queue task execution."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from nurture.core.logging import LogContext, build_log_event


def _context(task_name: str, context: dict[str, Any]) -> LogContext:
    lead_id = context.get("lead_id")
    return LogContext(
        cycle_id=context.get("cycle_id"),
        lead_id=str(lead_id) if lead_id is not None else None,
        trigger=context.get("trigger"),
        task_name=task_name,
        trace_id=context.get("trace_id"),
    )


def before_task(task_name: str, context: dict[str, Any]) -> dict[str, Any]:
    """Build pre-task log payload."""
    return build_log_event(event="task.start", context=_context(task_name, context))


def after_task(task_name: str, context: dict[str, Any], status: str, **fields: Any) -> dict[str, Any]:
    """Build post-task log payload."""
    return build_log_event(
        event="task.finish",
        context=_context(task_name, context),
        status=status,
        finished_at=datetime.now(timezone.utc).isoformat(),
        **fields,
    )
