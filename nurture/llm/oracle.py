"""Decision oracle adapter: renders lead context and parses the proposal."""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Callable

from nurture.core.exceptions import OracleResponseError
from nurture.core.snapshots import LeadSnapshot
from nurture.intelligence.clock import DEFAULT_REGION, format_local_time, resolve_region, utcnow
from nurture.intelligence.deal_health import EngagementSignal
from nurture.llm.client import LLMClient, LLMRequest
from nurture.llm.prompt_templates.defaults import DEFAULT_PROMPT_REGISTRY, render_lead_summary
from nurture.schemas.decisions import ProposedAction, parse_proposed_action

logger = logging.getLogger(__name__)

PromptRenderer = Callable[[dict], str]

DECISION_PROMPT_KEY = "nurture.decision"
RECENT_MESSAGES = 5
_FENCED_JSON = re.compile(r"```(?:json)?\s*\n?(.*?)\n?```", re.DOTALL)


def extract_json_text(text: str) -> str:
    """Strip markdown code fences and surrounding prose from model output."""
    match = _FENCED_JSON.search(text)
    if match:
        return match.group(1).strip()
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]
    return text.strip()


def build_decision_context(
    lead: LeadSnapshot,
    signal: EngagementSignal,
    now: datetime,
    default_region: str = DEFAULT_REGION,
) -> dict:
    first_name = lead.first_name or "the lead"
    conversation = [
        f"{'You' if message.is_outbound else first_name}: {message.content}"
        for message in lead.communications_newest_first()[:RECENT_MESSAGES]
    ]
    region = resolve_region(lead.region, default_region)
    call_outcome = None
    if lead.call_outcome is not None:
        call_outcome = {
            "advisor_name": lead.call_outcome.advisor_name,
            "outcome": lead.call_outcome.outcome,
            "notes": lead.call_outcome.notes,
        }
    return {
        "lead_name": lead.display_name,
        "stage": lead.stage.value,
        "region": region,
        "local_time": format_local_time(region, now),
        "temperature": signal.temperature.value,
        "engagement_trend": signal.engagement_trend.value,
        "contextual_urgency": signal.contextual_urgency,
        "lead_source_quality": signal.lead_source_quality,
        "motivation_level": signal.motivation_level,
        "reasoning_context": signal.reasoning_context,
        "call_outcome": call_outcome,
        "lead_summary": render_lead_summary(dict(lead.attributes)),
        "recent_conversation": "\n\n".join(conversation),
    }


class DecisionOracle:
    """Asks the language model for the next action on a lead.

    Output is untrusted: it is only parsed into a `ProposedAction` here and
    must still pass the guardrails before anything is executed.
    """

    def __init__(
        self,
        client: LLMClient | None = None,
        prompt_registry: dict[str, PromptRenderer] | None = None,
        default_region: str = DEFAULT_REGION,
    ) -> None:
        self.client = client or LLMClient()
        self.prompt_registry = prompt_registry or dict(DEFAULT_PROMPT_REGISTRY)
        self.default_region = default_region

    def decide(
        self,
        lead: LeadSnapshot,
        signal: EngagementSignal,
        now: datetime | None = None,
        cycle_id: str | None = None,
    ) -> ProposedAction:
        now = now or utcnow()
        renderer = self.prompt_registry.get(DECISION_PROMPT_KEY)
        if renderer is None:
            raise KeyError(f"Unknown prompt key: {DECISION_PROMPT_KEY}")

        prompt = renderer(build_decision_context(lead, signal, now, self.default_region))
        response = self.client.generate(
            LLMRequest(prompt_key=DECISION_PROMPT_KEY, prompt=prompt, lead_id=lead.id, cycle_id=cycle_id)
        )
        if not response.text or not response.text.strip():
            raise OracleResponseError("Decision oracle returned an empty response")

        try:
            action = parse_proposed_action(extract_json_text(response.text))
        except ValueError as exc:
            raise OracleResponseError(f"Decision oracle returned an invalid proposal: {exc}") from exc

        logger.info(
            "oracle.decision",
            extra={
                "event": "oracle.decision",
                "lead_id": lead.id,
                "cycle_id": cycle_id,
                "action": action.action.value,
                "confidence": action.confidence.value,
                "latency_ms": response.latency_ms,
                "prompt_hash": response.prompt_hash,
            },
        )
        return action
