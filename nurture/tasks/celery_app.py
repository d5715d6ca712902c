"""Celery application bootstrap and beat schedule."""

from __future__ import annotations

import os

from celery import Celery

from nurture.core.config import get_config

config = get_config()

celery_app = Celery(
    "nurture",
    broker=config.CELERY_BROKER_URL,
    backend=config.CELERY_RESULT_BACKEND,
    include=["nurture.tasks.nurture_tasks"],
)
celery_app.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    beat_schedule={
        "nurture-run-cycle": {
            "task": "nurture.run_cycle",
            "schedule": config.CYCLE_INTERVAL_MINUTES * 60.0,
        },
        "nurture-evaluate-outcomes": {
            "task": "nurture.evaluate_outcomes",
            "schedule": 15 * 60.0,
        },
        "nurture-health-check": {
            "task": "nurture.health_check",
            "schedule": 60 * 60.0,
        },
    },
)

# Local/dev convenience: run tasks synchronously when requested.
if os.getenv("CELERY_TASK_ALWAYS_EAGER", "false").lower() in {"1", "true", "yes", "on"}:
    celery_app.conf.task_always_eager = True
