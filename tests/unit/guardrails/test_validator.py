from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from nurture.core.enums import ActionType, AppointmentStatus, Channel, Confidence, LeadStage, LinkKind
from nurture.guardrails.validator import RuleCode, validate_decision
from nurture.intelligence.deal_health import analyze_deal_health
from nurture.schemas.decisions import ProposedAction

FRIENDLY = "Hi Sarah, any questions about the pre-approval steps?"
MIDNIGHT_PDT = datetime(2026, 7, 15, 7, 0)


def _send(message: str = FRIENDLY, **fields) -> ProposedAction:
    return ProposedAction(action=ActionType.SEND_MESSAGE, message=message, **fields)


def _booking_link(message: str = "Here is a link to pick a time") -> ProposedAction:
    return ProposedAction(action=ActionType.SEND_TEMPLATED_LINK, message=message, link_kind=LinkKind.BOOKING)


def _validate(action, lead, now):
    return validate_decision(action, lead, analyze_deal_health(lead, now), now=now)


def test_clean_send_is_accepted(snapshot, now):
    result = _validate(_send(), snapshot(last_contacted_hours_ago=30), now)
    assert result.is_valid
    assert result.warnings == []


def test_validation_is_deterministic(snapshot, now):
    lead = snapshot(last_contacted_hours_ago=2, outbound=[("Checking in", 2)])
    action = _send("Greg will call you at 5pm")
    signal = analyze_deal_health(lead, now)

    first = validate_decision(action, lead, signal, now=now)
    second = validate_decision(action, lead, signal, now=now)

    assert first == second
    assert not first.is_valid


@pytest.mark.parametrize("local_hour", [0, 3, 7, 21, 22, 23])
def test_quiet_hours_block_every_send(snapshot, local_hour):
    now = MIDNIGHT_PDT + timedelta(hours=local_hour)
    lead = snapshot(last_contacted_hours_ago=30)

    for action in (_send(), _booking_link(), _send(channel=Channel.EMAIL)):
        result = _validate(action, lead, now)
        assert result.blocked_by(RuleCode.QUIET_HOURS)

    for action in (ProposedAction(action=ActionType.WAIT), ProposedAction(action=ActionType.ESCALATE)):
        assert _validate(action, lead, now).is_valid


@pytest.mark.parametrize("local_hour", [8, 12, 20])
def test_contact_hours_allow_send(snapshot, local_hour):
    now = MIDNIGHT_PDT + timedelta(hours=local_hour)
    assert _validate(_send(), snapshot(last_contacted_hours_ago=30), now).is_valid


def test_quiet_hours_use_lead_region(snapshot):
    # 21:30 NDT in Newfoundland, 17:00 PDT in British Columbia.
    now = datetime(2026, 7, 16, 0, 0)
    newfoundland = snapshot(attributes={"province": "Newfoundland and Labrador"})
    british_columbia = snapshot(attributes={"province": "British Columbia"})

    assert _validate(_send(), newfoundland, now).blocked_by(RuleCode.QUIET_HOURS)
    assert _validate(_send(), british_columbia, now).is_valid


def test_consent_is_per_channel(snapshot, now):
    lead = snapshot(consent_sms=False, consent_email=True)

    assert _validate(_send(), lead, now).blocked_by(RuleCode.CONSENT)
    assert _validate(_send(channel=Channel.EMAIL), lead, now).is_valid


def test_cooldown_blocks_broadcast_follow_up(snapshot, now):
    lead = snapshot(last_contacted_hours_ago=2, outbound=[("Checking in on your file", 2)])
    result = _validate(_send(), lead, now)

    assert result.blocked_by(RuleCode.COOLDOWN)
    assert result.failed_rules == {RuleCode.COOLDOWN}


def test_cooldown_waived_after_reply(snapshot, now):
    lead = snapshot(
        last_contacted_hours_ago=2,
        outbound=[("Checking in on your file", 2)],
        inbound=[("Yes, what do you need?", 1)],
    )
    assert _validate(_send(), lead, now).is_valid


def test_cooldown_expires_after_four_hours(snapshot, now):
    lead = snapshot(last_contacted_hours_ago=4.5, outbound=[("Checking in on your file", 4.5)])
    assert _validate(_send(), lead, now).is_valid


@pytest.mark.parametrize("status", [AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED])
def test_booking_link_rejected_with_active_appointment(snapshot, now, status):
    lead = snapshot(appointments=[(status, 48)])
    assert _validate(_booking_link(), lead, now).blocked_by(RuleCode.DOUBLE_BOOKING)


def test_booking_link_allowed_after_cancellation(snapshot, now):
    lead = snapshot(appointments=[(AppointmentStatus.CANCELLED, 48)])
    assert _validate(_booking_link(), lead, now).is_valid


def test_application_link_is_not_double_booking(snapshot, now):
    lead = snapshot(appointments=[(AppointmentStatus.SCHEDULED, 48)])
    action = ProposedAction(
        action=ActionType.SEND_TEMPLATED_LINK,
        message="Here is the application",
        link_kind=LinkKind.APPLICATION,
    )
    assert not _validate(action, lead, now).blocked_by(RuleCode.DOUBLE_BOOKING)


@pytest.mark.parametrize(
    "action",
    [
        ProposedAction(action=ActionType.SEND_TEMPLATED_LINK, message="Start here", link_kind=LinkKind.APPLICATION),
        ProposedAction(action=ActionType.SEND_MESSAGE, message="Want to book a call to review your renewal?"),
        ProposedAction(action=ActionType.SEND_MESSAGE, message="You can apply again here any time"),
    ],
)
def test_converted_lead_cannot_be_pushed_back_into_funnel(snapshot, now, action):
    lead = snapshot(stage=LeadStage.CONVERTED)
    assert _validate(action, lead, now).blocked_by(RuleCode.TERMINAL_STAGE)


def test_converted_lead_can_get_plain_support_message(snapshot, now):
    lead = snapshot(stage=LeadStage.CONVERTED)
    assert _validate(_send("Congrats on the new home! Reach out if anything comes up."), lead, now).is_valid


@pytest.mark.parametrize("message", ["", "   ", "\n\t"])
def test_send_requires_content(snapshot, now, message):
    assert _validate(_send(message), snapshot(), now).blocked_by(RuleCode.EMPTY_MESSAGE)


def test_human_callback_promise_is_rejected(snapshot, now):
    result = _validate(_send("Greg will call you at 5pm"), snapshot(), now)
    assert result.blocked_by(RuleCode.UNVERIFIABLE_PROMISE)


@pytest.mark.parametrize(
    "message",
    [
        "Our advisor will give you a call tomorrow morning",
        "I'll call you around 3 to go over numbers",
        "We can reach out to you on Monday",
    ],
)
def test_other_promise_shapes_are_rejected(snapshot, now, message):
    assert _validate(_send(message), snapshot(), now).blocked_by(RuleCode.UNVERIFIABLE_PROMISE)


@pytest.mark.parametrize(
    "message",
    [
        "You can call us at 604-555-0100",
        "you can reach out to me today",
        "You can contact our office tomorrow",
        "Someone you can call at 9 is our advisor Greg",
    ],
)
def test_inviting_the_lead_to_get_in_touch_is_not_a_promise(snapshot, now, message):
    assert not _validate(_send(message), snapshot(), now).blocked_by(RuleCode.UNVERIFIABLE_PROMISE)


def test_booking_confirmation_is_not_a_promise(snapshot, now):
    result = _validate(_send("Thanks for confirming your booking for 5pm"), snapshot(), now)
    assert not result.blocked_by(RuleCode.UNVERIFIABLE_PROMISE)


def test_promise_allowed_when_acknowledging_existing_booking(snapshot, now):
    message = "Greg will call you at 5pm as booked, see you then"
    booked = snapshot(appointments=[(AppointmentStatus.CONFIRMED, 3)])
    unbooked = snapshot()

    assert not _validate(_send(message), booked, now).blocked_by(RuleCode.UNVERIFIABLE_PROMISE)
    assert _validate(_send(message), unbooked, now).blocked_by(RuleCode.UNVERIFIABLE_PROMISE)


def test_soft_rules_warn_without_blocking(snapshot, now):
    lead = snapshot()
    long_message = "Hi Sarah, " + "here is more detail about the mortgage options. " * 8
    checks = {
        RuleCode.LONG_MESSAGE: _send(long_message),
        RuleCode.LOW_CONFIDENCE: _send(confidence=Confidence.LOW, thinking="not sure"),
        RuleCode.STOCK_PHRASE: _send("Thanks for reaching out, any questions?"),
        RuleCode.HIGH_PRESSURE: _send("This is a limited time rate hold"),
    }
    for rule, action in checks.items():
        result = _validate(action, lead, now)
        assert result.is_valid, rule
        assert rule in {warning.rule for warning in result.warnings}


def test_email_length_limit_is_wider(snapshot, now):
    message = "Hello " * 80
    assert _validate(_send(message, channel=Channel.EMAIL), snapshot(), now).warnings == []


def test_wait_and_escalate_ignore_send_rules(snapshot, now):
    lead = snapshot(consent_sms=False, consent_email=False, last_contacted_hours_ago=0.5)
    assert _validate(ProposedAction(action=ActionType.WAIT, wait_hours=12), lead, now).is_valid
    assert _validate(ProposedAction(action=ActionType.ESCALATE), lead, now).is_valid
