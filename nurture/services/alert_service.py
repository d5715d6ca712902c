"""Operational alerts posted to a Slack incoming webhook.

Alerts are fire-and-forget: a failed notification is logged and swallowed so
it can never change the outcome of the lead processing that triggered it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

import requests

from nurture.core.config import Config, get_config

logger = logging.getLogger(__name__)

ALERT_STYLES = {
    "escalation": (":rotating_light:", "#FF6B6B"),
    "overdue": (":hourglass:", "#F6D7FF"),
    "health": (":warning:", "#FFB020"),
    "info": (":information_source:", "#625FFF"),
}


@dataclass(frozen=True)
class Alert:
    kind: str
    title: str
    details: str = ""
    lead_id: int | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def build_slack_payload(alert: Alert) -> dict[str, Any]:
    emoji, color = ALERT_STYLES.get(alert.kind, ALERT_STYLES["info"])
    text = alert.details or alert.title
    if alert.lead_id is not None:
        text = f"{text}\nLead: {alert.lead_id}"
    return {
        "text": f"{emoji} {alert.title}",
        "attachments": [
            {
                "color": color,
                "blocks": [
                    {"type": "header", "text": {"type": "plain_text", "text": f"{emoji} {alert.title}", "emoji": True}},
                    {"type": "section", "text": {"type": "mrkdwn", "text": text}},
                ],
            }
        ],
    }


class AlertService:
    def __init__(self, config: Config | None = None, session: requests.Session | None = None) -> None:
        self.config = config or get_config()
        self.session = session or requests.Session()

    def notify(
        self,
        kind: str,
        title: str,
        details: str = "",
        lead_id: int | None = None,
        **metadata: Any,
    ) -> bool:
        """Post an alert; returns False instead of raising on any failure."""
        alert = Alert(kind=kind, title=title, details=details, lead_id=lead_id, metadata=metadata)
        logger.warning(
            "alert.raised",
            extra={"event": "alert.raised", "kind": kind, "title": title, "lead_id": lead_id, **metadata},
        )
        if not self.config.SLACK_WEBHOOK_URL:
            logger.info("alert.webhook_not_configured", extra={"event": "alert.webhook_not_configured"})
            return False
        try:
            response = self.session.post(
                self.config.SLACK_WEBHOOK_URL,
                json=build_slack_payload(alert),
                timeout=(2, 10),
            )
            response.raise_for_status()
            return True
        except requests.exceptions.RequestException:
            logger.exception(
                "alert.delivery_failed",
                extra={"event": "alert.delivery_failed", "kind": kind, "lead_id": lead_id},
            )
            return False
