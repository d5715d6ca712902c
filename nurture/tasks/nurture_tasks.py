from __future__ import annotations

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable

from nurture.orchestration.scheduler import NurtureScheduler
from nurture.tasks.celery_app import celery_app
from nurture.tasks.hooks import after_task, before_task

logger = logging.getLogger(__name__)

dead_letter_queue: list[dict[str, Any]] = []


def _serialize_error(exc: Exception) -> dict[str, str]:
    return {
        "type": exc.__class__.__name__,
        "message": str(exc),
    }


def build_scheduler() -> NurtureScheduler:
    return NurtureScheduler()


def execute_task(
    task_name: str,
    runner: Callable[[], dict[str, Any]],
    context: dict[str, Any] | None = None,
    max_retries: int = 2,
    base_backoff_seconds: float = 0.5,
) -> dict[str, Any]:
    """Run a task body with retry bookkeeping and dead-letter capture."""
    context = dict(context or {})
    context.setdefault("trace_id", uuid.uuid4().hex)
    logger.info("task.start", extra=before_task(task_name, context))

    attempt_used = 0
    last_error: dict[str, str] | None = None
    for attempt in range(max_retries + 1):
        attempt_used = attempt
        try:
            result = runner()
            logger.info("task.finish", extra=after_task(task_name, context, status="succeeded", retry_count=attempt))
            return {"status": "succeeded", "retry_count": attempt, "dead_lettered": False, "result": result}
        except Exception as exc:
            last_error = _serialize_error(exc)
            logger.warning(
                "task.attempt_failed",
                extra={"event": "task.attempt_failed", "task_name": task_name, "attempt": attempt, **last_error},
            )
            if attempt < max_retries:
                delay = max(0.0, base_backoff_seconds) * (2**attempt)
                if delay > 0:
                    time.sleep(delay)

    failed_at = datetime.now(timezone.utc).isoformat()
    dead_letter_queue.append(
        {
            "task_name": task_name,
            "context": context,
            "retry_count": attempt_used,
            "error_payload": last_error or {"message": "unknown error"},
            "failed_at": failed_at,
        }
    )
    logger.error("task.failed", extra=after_task(task_name, context, status="failed", retry_count=attempt_used))
    return {
        "status": "failed",
        "retry_count": attempt_used,
        "dead_lettered": True,
        "error_payload": last_error,
    }


@celery_app.task(name="nurture.run_cycle")
def run_cycle_task(trigger: str = "scheduled") -> dict[str, Any]:
    def _run() -> dict[str, Any]:
        return asyncio.run(build_scheduler().run_cycle(trigger=trigger)).as_dict()

    return execute_task("nurture.run_cycle", _run, {"trigger": trigger})


@celery_app.task(name="nurture.process_lead")
def process_lead_task(lead_id: int, trigger: str = "reactive") -> dict[str, Any]:
    def _run() -> dict[str, Any]:
        return asyncio.run(build_scheduler().process_lead(lead_id, trigger=trigger)).as_dict()

    return execute_task("nurture.process_lead", _run, {"lead_id": lead_id, "trigger": trigger}, max_retries=0)


@celery_app.task(name="nurture.evaluate_outcomes")
def evaluate_outcomes_task() -> dict[str, Any]:
    def _run() -> dict[str, Any]:
        return {"evaluated": asyncio.run(build_scheduler().sweep_outcomes())}

    return execute_task("nurture.evaluate_outcomes", _run)


@celery_app.task(name="nurture.health_check")
def health_check_task() -> dict[str, Any]:
    def _run() -> dict[str, Any]:
        overdue = asyncio.run(build_scheduler().check_overdue())
        return {"overdue_count": len(overdue), "overdue_lead_ids": overdue}

    return execute_task("nurture.health_check", _run)
