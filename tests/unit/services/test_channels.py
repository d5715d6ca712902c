from __future__ import annotations

import smtplib
from dataclasses import replace

import pytest
import requests

import nurture.services.channels as channels_module
from nurture.core.config import get_config
from nurture.core.enums import Channel, LinkKind
from nurture.core.exceptions import ChannelSendError, ConsentRevokedError
from nurture.services.channels import (
    ChannelRegistry,
    SmtpEmailSender,
    TwilioSmsSender,
    compose_link_message,
)


def _live_config(**overrides):
    fields = {
        "CHANNEL_SANDBOX_MODE": False,
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "token",
        "TWILIO_FROM_NUMBER": "+16045550000",
        "SMTP_SERVER": "smtp.example.com",
        "SMTP_USERNAME": None,
    }
    fields.update(overrides)
    return replace(get_config(), **fields)


class FakeResponse:
    def __init__(self, status_code: int, payload: dict) -> None:
        self.status_code = status_code
        self._payload = payload
        self.text = str(payload)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, response=None, error: Exception | None = None) -> None:
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response


def test_sms_sandbox_never_calls_gateway():
    session = FakeSession()
    sender = TwilioSmsSender(config=_live_config(CHANNEL_SANDBOX_MODE=True), session=session)

    result = sender.send("+16045550101", "Hi Sarah")

    assert result.sandbox is True
    assert result.provider_message_id.startswith("sandbox-")
    assert session.calls == []


def test_sms_send_posts_to_twilio():
    session = FakeSession(FakeResponse(201, {"sid": "SM42"}))
    sender = TwilioSmsSender(config=_live_config(), session=session)

    result = sender.send("+16045550101", "Hi Sarah")

    assert result.provider_message_id == "SM42"
    assert result.channel == Channel.SMS
    url, kwargs = session.calls[0]
    assert url.endswith("/Accounts/AC123/Messages.json")
    assert kwargs["data"] == {"To": "+16045550101", "From": "+16045550000", "Body": "Hi Sarah"}


def test_sms_unsubscribed_recipient_raises_consent_revoked():
    session = FakeSession(FakeResponse(400, {"code": 21610, "message": "unsubscribed"}))
    sender = TwilioSmsSender(config=_live_config(), session=session)

    with pytest.raises(ConsentRevokedError) as excinfo:
        sender.send("+16045550101", "Hi Sarah")
    assert excinfo.value.channel == "SMS"


def test_sms_gateway_errors_raise_send_error():
    failing = TwilioSmsSender(config=_live_config(), session=FakeSession(FakeResponse(500, {"code": 20500})))
    unreachable = TwilioSmsSender(
        config=_live_config(), session=FakeSession(error=requests.exceptions.ConnectionError("down"))
    )
    unconfigured = TwilioSmsSender(config=_live_config(TWILIO_AUTH_TOKEN=None), session=FakeSession())

    for sender in (failing, unreachable, unconfigured):
        with pytest.raises(ChannelSendError):
            sender.send("+16045550101", "Hi Sarah")


class FakeSMTP:
    sent = []
    refuse = None

    def __init__(self, host, port, timeout=None) -> None:
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def starttls(self):
        return None

    def login(self, username, password):
        return None

    def send_message(self, message):
        if FakeSMTP.refuse is not None:
            raise smtplib.SMTPRecipientsRefused({message["To"]: (FakeSMTP.refuse, b"refused")})
        FakeSMTP.sent.append(message)
        return {}


@pytest.fixture
def fake_smtp(monkeypatch):
    FakeSMTP.sent = []
    FakeSMTP.refuse = None
    monkeypatch.setattr(channels_module.smtplib, "SMTP", FakeSMTP)
    return FakeSMTP


def test_email_send_via_smtp(fake_smtp):
    sender = SmtpEmailSender(config=_live_config(), subject="Your mortgage")

    result = sender.send("sarah@example.com", "Hi Sarah")

    assert result.channel == Channel.EMAIL
    assert result.provider_message_id.endswith("@nurture>")
    assert fake_smtp.sent[0]["Subject"] == "Your mortgage"


def test_email_refused_recipient_raises_consent_revoked(fake_smtp):
    fake_smtp.refuse = 550
    with pytest.raises(ConsentRevokedError):
        SmtpEmailSender(config=_live_config()).send("sarah@example.com", "Hi Sarah")


@pytest.mark.parametrize("code", [450, 452, 552])
def test_email_temporary_refusal_is_a_send_error(fake_smtp, code):
    fake_smtp.refuse = code
    with pytest.raises(ChannelSendError) as excinfo:
        SmtpEmailSender(config=_live_config()).send("sarah@example.com", "Hi Sarah")

    assert not isinstance(excinfo.value, ConsentRevokedError)


def test_email_without_server_raises(fake_smtp):
    with pytest.raises(ChannelSendError):
        SmtpEmailSender(config=_live_config(SMTP_SERVER=None)).send("sarah@example.com", "Hi Sarah")


def test_registry_lookup():
    sms = TwilioSmsSender(config=_live_config(), session=FakeSession())
    registry = ChannelRegistry({Channel.SMS: sms})

    assert registry.get(Channel.SMS) is sms
    with pytest.raises(ChannelSendError):
        registry.get(Channel.EMAIL)


def test_compose_link_message_appends_url_once():
    config = _live_config(BOOKING_LINK_URL="https://cal.example.com/book")

    composed = compose_link_message("Pick a time that suits you", LinkKind.BOOKING, config)
    assert composed == "Pick a time that suits you\n\nhttps://cal.example.com/book"
    assert compose_link_message(composed, LinkKind.BOOKING, config) == composed
    assert compose_link_message("", LinkKind.BOOKING, config) == "https://cal.example.com/book"
