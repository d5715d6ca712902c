"""Startup validation and bootstrap helpers."""

from __future__ import annotations

import logging

from nurture.core.config import get_config
from nurture.core.logging_config import configure_logging
from nurture.database.db import get_active_database_url, verify_database_connection
from nurture.database.init_db import init_db

logger = logging.getLogger(__name__)


def validate_startup_config() -> None:
    """Fail-fast config and connectivity checks."""
    config = get_config()
    database_ok = verify_database_connection()
    active_database_url = get_active_database_url()
    if not database_ok and config.DB_CONNECTIVITY_REQUIRED:
        raise RuntimeError("Database connectivity check failed.")
    if not database_ok:
        logger.warning(
            "startup.database.connectivity_optional_failed",
            extra={"event": "startup.database.connectivity_optional_failed"},
        )

    if config.is_production and active_database_url.startswith("sqlite"):
        logger.warning(
            "startup.production.sqlite_detected",
            extra={"event": "startup.production.sqlite_detected"},
        )

    settings = config.agent_settings
    logger.info(
        "startup.config.validated",
        extra={
            "event": "startup.config.validated",
            "env": config.ENV,
            "database_url_scheme": active_database_url.split("://", 1)[0],
            "agent_enabled": settings.enabled,
            "dry_run": settings.dry_run,
            "rollout_percent": settings.rollout_percent,
            "channel_sandbox_mode": config.CHANNEL_SANDBOX_MODE,
        },
    )


def bootstrap() -> None:
    """Initialize logging, validate configuration and ensure the schema exists."""
    configure_logging()
    validate_startup_config()
    init_db()
