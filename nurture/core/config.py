"""Configuration module for the nurture agent."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import urlparse

from dotenv import load_dotenv

from nurture.core.exceptions import ConfigurationError

load_dotenv()


def _as_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class AgentSettings:
    """Startup toggles for the autonomous agent.

    ``enabled`` gates both the batch and the reactive path, ``dry_run`` runs the
    full decision pipeline without delivering anything, and ``rollout_percent``
    limits participation to a deterministic slice of leads.
    """

    enabled: bool = False
    dry_run: bool = False
    rollout_percent: int = 100

    def __post_init__(self) -> None:
        if not 0 <= self.rollout_percent <= 100:
            raise ConfigurationError("rollout_percent must be between 0 and 100.")


@dataclass(frozen=True)
class Config:
    """Runtime configuration with validation."""

    APP_NAME: str
    APP_VERSION: str
    ENV: str
    DEBUG: bool
    DATABASE_URL: str
    DB_CONNECTIVITY_REQUIRED: bool
    LOG_LEVEL: str
    LOG_FILE: str
    OLLAMA_URL: str
    OLLAMA_MODEL: str
    LLM_TIMEOUT_SECONDS: int
    LLM_MAX_RETRIES: int
    LLM_MIN_INTERVAL_SECONDS: float
    AGENT_ENABLED: bool
    AGENT_DRY_RUN: bool
    AGENT_ROLLOUT_PERCENT: int
    ORACLE_TIMEOUT_SECONDS: float
    CHANNEL_TIMEOUT_SECONDS: float
    CYCLE_BUDGET_SECONDS: float
    CYCLE_INTERVAL_MINUTES: int
    BATCH_SIZE: int
    RECENT_CONTACT_EXCLUSION_MINUTES: int
    LEASE_TTL_SECONDS: int
    POLICY_RETRY_MINUTES: int
    REPETITION_RETRY_HOURS: float
    ERROR_RETRY_HOURS: float
    ESCALATION_COOLDOWN_HOURS: float
    OVERDUE_ALERT_HOURS: float
    OUTCOME_WINDOW_HOURS: float
    ANTI_SPAM_COOLDOWN_HOURS: float
    CONTACT_HOURS_START: int
    CONTACT_HOURS_END: int
    DEFAULT_REGION: str
    SMS_MAX_CHARS: int
    EMAIL_MAX_CHARS: int
    CHANNEL_SANDBOX_MODE: bool
    TWILIO_ACCOUNT_SID: str | None
    TWILIO_AUTH_TOKEN: str | None
    TWILIO_FROM_NUMBER: str | None
    SMTP_SERVER: str | None
    SMTP_PORT: int
    SMTP_USERNAME: str | None
    SMTP_PASSWORD: str | None
    SMTP_FROM_EMAIL: str
    SLACK_WEBHOOK_URL: str | None
    BOOKING_LINK_URL: str
    APPLICATION_LINK_URL: str
    CELERY_BROKER_URL: str
    CELERY_RESULT_BACKEND: str
    API_HOST: str
    API_PORT: int
    API_PREFIX: str

    @property
    def is_production(self) -> bool:
        return self.ENV == "production"

    @property
    def agent_settings(self) -> AgentSettings:
        return AgentSettings(
            enabled=self.AGENT_ENABLED,
            dry_run=self.AGENT_DRY_RUN,
            rollout_percent=self.AGENT_ROLLOUT_PERCENT,
        )


def _build_config(env: str | None = None) -> Config:
    resolved_env = (env or os.getenv("ENV", "development")).strip().lower()
    debug = _as_bool(os.getenv("DEBUG"), default=(resolved_env != "production"))
    redis_url = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    config = Config(
        APP_NAME="nurture-agent",
        APP_VERSION=os.getenv("APP_VERSION", "1.0.0"),
        ENV=resolved_env,
        DEBUG=debug if resolved_env != "production" else False,
        DATABASE_URL=os.getenv("DATABASE_URL", "sqlite:///./nurture.db"),
        DB_CONNECTIVITY_REQUIRED=_as_bool(os.getenv("DB_CONNECTIVITY_REQUIRED"), default=False),
        LOG_LEVEL=os.getenv("LOG_LEVEL", "INFO").upper(),
        LOG_FILE=os.getenv("LOG_FILE", "nurture.log"),
        OLLAMA_URL=os.getenv("OLLAMA_URL", "http://localhost:11434/api/generate"),
        OLLAMA_MODEL=os.getenv("OLLAMA_MODEL", "qwen2.5:7b"),
        LLM_TIMEOUT_SECONDS=int(os.getenv("LLM_TIMEOUT_SECONDS", "45")),
        LLM_MAX_RETRIES=int(os.getenv("LLM_MAX_RETRIES", "1")),
        LLM_MIN_INTERVAL_SECONDS=float(os.getenv("LLM_MIN_INTERVAL_SECONDS", "0.25")),
        AGENT_ENABLED=_as_bool(os.getenv("AGENT_ENABLED"), default=False),
        AGENT_DRY_RUN=_as_bool(os.getenv("AGENT_DRY_RUN"), default=False),
        AGENT_ROLLOUT_PERCENT=int(os.getenv("AGENT_ROLLOUT_PERCENT", "100")),
        ORACLE_TIMEOUT_SECONDS=float(os.getenv("ORACLE_TIMEOUT_SECONDS", "60")),
        CHANNEL_TIMEOUT_SECONDS=float(os.getenv("CHANNEL_TIMEOUT_SECONDS", "30")),
        CYCLE_BUDGET_SECONDS=float(os.getenv("CYCLE_BUDGET_SECONDS", "600")),
        CYCLE_INTERVAL_MINUTES=int(os.getenv("CYCLE_INTERVAL_MINUTES", "15")),
        BATCH_SIZE=int(os.getenv("BATCH_SIZE", "50")),
        RECENT_CONTACT_EXCLUSION_MINUTES=int(os.getenv("RECENT_CONTACT_EXCLUSION_MINUTES", "10")),
        LEASE_TTL_SECONDS=int(os.getenv("LEASE_TTL_SECONDS", "300")),
        POLICY_RETRY_MINUTES=int(os.getenv("POLICY_RETRY_MINUTES", "60")),
        REPETITION_RETRY_HOURS=float(os.getenv("REPETITION_RETRY_HOURS", "6")),
        ERROR_RETRY_HOURS=float(os.getenv("ERROR_RETRY_HOURS", "2")),
        ESCALATION_COOLDOWN_HOURS=float(os.getenv("ESCALATION_COOLDOWN_HOURS", "48")),
        OVERDUE_ALERT_HOURS=float(os.getenv("OVERDUE_ALERT_HOURS", "24")),
        OUTCOME_WINDOW_HOURS=float(os.getenv("OUTCOME_WINDOW_HOURS", "4")),
        ANTI_SPAM_COOLDOWN_HOURS=float(os.getenv("ANTI_SPAM_COOLDOWN_HOURS", "4")),
        CONTACT_HOURS_START=int(os.getenv("CONTACT_HOURS_START", "8")),
        CONTACT_HOURS_END=int(os.getenv("CONTACT_HOURS_END", "21")),
        DEFAULT_REGION=os.getenv("DEFAULT_REGION", "British Columbia"),
        SMS_MAX_CHARS=int(os.getenv("SMS_MAX_CHARS", "320")),
        EMAIL_MAX_CHARS=int(os.getenv("EMAIL_MAX_CHARS", "2000")),
        CHANNEL_SANDBOX_MODE=_as_bool(os.getenv("CHANNEL_SANDBOX_MODE"), default=True),
        TWILIO_ACCOUNT_SID=os.getenv("TWILIO_ACCOUNT_SID"),
        TWILIO_AUTH_TOKEN=os.getenv("TWILIO_AUTH_TOKEN"),
        TWILIO_FROM_NUMBER=os.getenv("TWILIO_FROM_NUMBER"),
        SMTP_SERVER=os.getenv("SMTP_SERVER"),
        SMTP_PORT=int(os.getenv("SMTP_PORT", "587")),
        SMTP_USERNAME=os.getenv("SMTP_USERNAME"),
        SMTP_PASSWORD=os.getenv("SMTP_PASSWORD"),
        SMTP_FROM_EMAIL=os.getenv("SMTP_FROM_EMAIL", os.getenv("SMTP_USERNAME") or "noreply@nurture.local"),
        SLACK_WEBHOOK_URL=os.getenv("SLACK_WEBHOOK_URL"),
        BOOKING_LINK_URL=os.getenv("BOOKING_LINK_URL", "https://cal.com/nurture/discovery"),
        APPLICATION_LINK_URL=os.getenv("APPLICATION_LINK_URL", "https://apply.nurture.local/start"),
        CELERY_BROKER_URL=os.getenv("CELERY_BROKER_URL", redis_url),
        CELERY_RESULT_BACKEND=os.getenv("CELERY_RESULT_BACKEND", redis_url),
        API_HOST=os.getenv("API_HOST", "0.0.0.0"),
        API_PORT=int(os.getenv("API_PORT", "8000")),
        API_PREFIX=os.getenv("API_PREFIX", "/api/v1"),
    )
    _validate_config(config)
    return config


def _validate_database_url(database_url: str) -> None:
    parsed = urlparse(database_url)
    if parsed.scheme not in {"sqlite", "postgresql", "postgresql+psycopg", "postgresql+psycopg2"}:
        raise ConfigurationError(
            "DATABASE_URL must use sqlite:// or postgresql:// style URL."
        )
    if parsed.scheme.startswith("postgresql") and not parsed.hostname:
        raise ConfigurationError("PostgreSQL DATABASE_URL is missing hostname.")


def _validate_config(config: Config) -> None:
    _validate_database_url(config.DATABASE_URL)

    if config.LLM_TIMEOUT_SECONDS < 1:
        raise ConfigurationError("LLM_TIMEOUT_SECONDS must be >= 1.")
    if config.LLM_MAX_RETRIES < 0:
        raise ConfigurationError("LLM_MAX_RETRIES must be >= 0.")
    if config.LLM_MIN_INTERVAL_SECONDS < 0:
        raise ConfigurationError("LLM_MIN_INTERVAL_SECONDS must be >= 0.")
    if not 0 <= config.AGENT_ROLLOUT_PERCENT <= 100:
        raise ConfigurationError("AGENT_ROLLOUT_PERCENT must be between 0 and 100.")
    if config.ORACLE_TIMEOUT_SECONDS <= 0 or config.CHANNEL_TIMEOUT_SECONDS <= 0:
        raise ConfigurationError("Oracle and channel timeouts must be > 0.")
    if config.BATCH_SIZE < 1:
        raise ConfigurationError("BATCH_SIZE must be >= 1.")
    if config.LEASE_TTL_SECONDS < 1:
        raise ConfigurationError("LEASE_TTL_SECONDS must be >= 1.")
    if not 0 <= config.CONTACT_HOURS_START < config.CONTACT_HOURS_END <= 24:
        raise ConfigurationError("CONTACT_HOURS_START/END must satisfy 0 <= start < end <= 24.")
    if config.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
        raise ConfigurationError("LOG_LEVEL must be one of DEBUG/INFO/WARNING/ERROR/CRITICAL.")
    if config.is_production and "change_me" in config.DATABASE_URL.lower():
        raise ConfigurationError("Production DATABASE_URL uses placeholder credentials.")


@lru_cache(maxsize=8)
def get_config(env: str | None = None) -> Config:
    """Get validated configuration for the requested environment."""
    return _build_config(env)
