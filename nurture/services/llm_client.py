"""HTTP transport to the Ollama model that backs the decision oracle."""

from __future__ import annotations

import logging
import threading
import time

import requests

from nurture.core.config import get_config

logger = logging.getLogger(__name__)
# Oracle calls arrive from scheduler worker threads.
_RATE_LOCK = threading.Lock()
_LAST_REQUEST_TS = 0.0


def _apply_rate_limit(min_interval_seconds: float) -> None:
    global _LAST_REQUEST_TS
    if min_interval_seconds <= 0:
        return

    with _RATE_LOCK:
        now = time.monotonic()
        elapsed = now - _LAST_REQUEST_TS
        if elapsed < min_interval_seconds:
            time.sleep(min_interval_seconds - elapsed)
        _LAST_REQUEST_TS = time.monotonic()


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, requests.exceptions.Timeout):
        return False
    if isinstance(exc, requests.exceptions.HTTPError) and exc.response is not None:
        # Unknown model or malformed request will not fix itself.
        return exc.response.status_code >= 500
    return True


def call_llm(prompt: str, json_mode: bool = False) -> str:
    """Return the model's raw text, or "" when the model is unavailable."""
    config = get_config()
    payload = {"model": config.OLLAMA_MODEL, "prompt": prompt, "stream": False}
    if json_mode:
        payload["format"] = "json"

    last_error: Exception | None = None
    attempts = config.LLM_MAX_RETRIES + 1

    for attempt in range(1, attempts + 1):
        try:
            _apply_rate_limit(config.LLM_MIN_INTERVAL_SECONDS)
            response = requests.post(config.OLLAMA_URL, json=payload, timeout=(2, config.LLM_TIMEOUT_SECONDS))
            response.raise_for_status()
            return response.json().get("response", "")
        except (requests.exceptions.RequestException, ValueError) as exc:
            last_error = exc
            logger.warning(
                "llm.call.failed",
                extra={"event": "llm.call.failed", "attempt": attempt, "attempts_total": attempts, "error": str(exc)},
            )
            if attempt == attempts or not _is_retryable(exc):
                break
            time.sleep(min(2 * attempt, 5))

    logger.error(
        "llm.call.unavailable",
        extra={
            "event": "llm.call.unavailable",
            "model": config.OLLAMA_MODEL,
            "error": str(last_error) if last_error else "unknown",
        },
    )
    return ""
