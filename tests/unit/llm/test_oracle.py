from __future__ import annotations

import pytest

from nurture.core.enums import ActionType, Channel, LinkKind
from nurture.core.exceptions import OracleResponseError
from nurture.intelligence.deal_health import analyze_deal_health
from nurture.llm.client import LLMResponse
from nurture.llm.oracle import DecisionOracle, extract_json_text


class DummyClient:
    def __init__(self, text: str) -> None:
        self.text = text
        self.requests = []

    def generate(self, request):
        self.requests.append(request)
        return LLMResponse(
            text=self.text,
            model_name="dummy",
            prompt_hash="hash",
            latency_ms=3,
            generated_at="2026-07-15T19:00:00Z",
        )


def _decide(text, snapshot, now, **fields):
    client = DummyClient(text)
    lead = snapshot(**fields)
    action = DecisionOracle(client=client).decide(lead, analyze_deal_health(lead, now), now=now, cycle_id="cycle-1")
    return action, client


def test_fenced_legacy_booking_action(snapshot, now):
    text = 'Here you go:\n```json\n{"action": "send_booking_link", "message": "Pick a time here"}\n```'
    action, _ = _decide(text, snapshot, now)

    assert action.action == ActionType.SEND_TEMPLATED_LINK
    assert action.link_kind == LinkKind.BOOKING
    assert action.proposes_booking


def test_camel_case_fields_are_accepted(snapshot, now):
    action, _ = _decide('{"action": "wait", "waitHours": 12, "nextCheckCondition": "if they reply"}', snapshot, now)

    assert action.action == ActionType.WAIT
    assert action.wait_hours == 12
    assert action.next_check_condition == "if they reply"


def test_legacy_send_email_sets_channel(snapshot, now):
    action, _ = _decide('{"action": "send_email", "message": "Hi Sarah"}', snapshot, now)

    assert action.action == ActionType.SEND_MESSAGE
    assert action.channel == Channel.EMAIL


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   ",
        "I think we should wait",
        '{"action": "fly_to_moon"}',
        '{"action": "wait", "wait_hours": -3}',
    ],
)
def test_unusable_response_raises(snapshot, now, text):
    with pytest.raises(OracleResponseError):
        _decide(text, snapshot, now)


def test_prompt_carries_lead_context(snapshot, now):
    _, client = _decide(
        '{"action": "escalate"}',
        snapshot,
        now,
        inbound=[("Is the rate locked in?", 2)],
        attributes={"province": "Ontario", "loan_type": "Purchase", "purchase_price": 650000},
    )
    request = client.requests[0]

    assert request.prompt_key == "nurture.decision"
    assert request.lead_id == 1
    assert request.cycle_id == "cycle-1"
    assert "Lead: Sarah" in request.prompt
    assert "Sarah: Is the rate locked in?" in request.prompt
    assert "Purchase Price: $650000" in request.prompt
    assert "(Ontario)" in request.prompt


def test_extract_json_text_falls_back_to_brace_span():
    assert extract_json_text('Sure! {"action": "wait"} hope that helps') == '{"action": "wait"}'
    assert extract_json_text("```\n{}\n```") == "{}"
