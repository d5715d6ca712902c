"""Default prompt templates used by the decision oracle."""

from __future__ import annotations

DECISION_RESPONSE_FORMAT = """{
  "thinking": "2-3 sentences of reasoning",
  "action": "send_message" | "send_templated_link" | "wait" | "escalate",
  "message": "short natural message (required when sending)",
  "channel": "SMS" | "EMAIL",
  "link_kind": "booking" | "application" (only for send_templated_link),
  "wait_hours": 24,
  "next_check_condition": "if they reply OR in 24h",
  "confidence": "high" | "medium" | "low"
}"""


def render_lead_summary(attributes: dict) -> str:
    loan_type = attributes.get("loan_type") or attributes.get("lead_type") or "unknown"
    lines = [f"Loan Type: {loan_type}"]
    normalized = str(loan_type).lower()
    if "purchase" in normalized:
        lines.append(f"Purchase Price: ${attributes.get('purchase_price') or attributes.get('home_value') or 'unknown'}")
        lines.append(f"Down Payment: ${attributes.get('down_payment') or 'unknown'}")
    elif "refinance" in normalized:
        lines.append(f"Property Value: ${attributes.get('home_value') or 'unknown'}")
        if attributes.get("lender"):
            lines.append(f"Current Lender: {attributes['lender']}")
    elif "renewal" in normalized:
        if attributes.get("balance"):
            lines.append(f"Current Balance: ${attributes['balance']}")
        if attributes.get("timeframe"):
            lines.append(f"Timeline: {attributes['timeframe']}")
    if attributes.get("motivation_level"):
        lines.append(f"Motivation: {attributes['motivation_level']}")
    if attributes.get("credit_score"):
        lines.append(f"Credit Score: {attributes['credit_score']}")
    return "\n".join(lines)


def render_decision_prompt(context: dict) -> str:
    call_outcome = context.get("call_outcome")
    call_block = ""
    if call_outcome:
        call_block = (
            "\n## Recent Call Outcome\n"
            f"Advisor: {call_outcome.get('advisor_name') or 'unknown'}\n"
            f"Result: {call_outcome.get('outcome')}\n"
        )
        if call_outcome.get("notes"):
            call_block += f"Notes: {call_outcome['notes']}\n"

    urgency = context.get("contextual_urgency")
    return (
        "You are a mortgage sales assistant reviewing one lead in your pipeline.\n\n"
        "## Current Situation\n"
        f"Lead: {context.get('lead_name', 'Unknown')}\n"
        f"Stage: {context.get('stage', 'unknown')}\n"
        f"Local time: {context.get('local_time', 'unknown')} ({context.get('region', 'unknown')})\n"
        f"Temperature: {context.get('temperature', 'unknown')} ({context.get('engagement_trend', 'stable')})\n"
        f"{'Urgency: ' + urgency + chr(10) if urgency else ''}"
        f"Lead source quality: {context.get('lead_source_quality', 'unknown')}\n"
        f"Motivation: {context.get('motivation_level', 'unknown')}\n\n"
        f"{context.get('reasoning_context', '')}\n"
        f"{call_block}\n"
        "## Lead Details\n"
        f"{context.get('lead_summary', '')}\n\n"
        "## Recent Conversation\n"
        f"{context.get('recent_conversation') or 'No conversation yet - first contact'}\n\n"
        "## Your Task\n"
        "Decide the next move: reach out, wait, or escalate to a human.\n"
        "Never promise that a person will call at a specific time; scheduling only happens through the booking link.\n"
        "Respond with JSON only:\n"
        f"{DECISION_RESPONSE_FORMAT}\n"
    )


DEFAULT_PROMPT_REGISTRY = {
    "nurture.decision": render_decision_prompt,
}
