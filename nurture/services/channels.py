"""Outbound delivery channels (SMS via Twilio REST, email via SMTP)."""

from __future__ import annotations

import logging
import smtplib
import uuid
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

import requests

from nurture.core.config import Config, get_config
from nurture.core.enums import Channel, LinkKind
from nurture.core.exceptions import ChannelSendError, ConsentRevokedError

logger = logging.getLogger(__name__)

TWILIO_MESSAGES_URL = "https://api.twilio.com/2010-04-01/Accounts/{sid}/Messages.json"
TWILIO_UNSUBSCRIBED_CODE = 21610
# Mailbox gone, not local, rejected name, or transaction refused.
SMTP_PERMANENT_REFUSAL_CODES = frozenset({550, 551, 553, 554})
DEFAULT_EMAIL_SUBJECT = "Following up"


@dataclass(frozen=True)
class DeliveryResult:
    channel: Channel
    recipient: str
    provider_message_id: str | None = None
    sandbox: bool = False


class ChannelSender:
    """``send(to, body)`` returns a delivery result or raises a ChannelError."""

    channel: Channel

    def send(self, to: str, body: str) -> DeliveryResult:  # pragma: no cover - interface
        raise NotImplementedError


def _sandbox_result(channel: Channel, to: str, body: str) -> DeliveryResult:
    logger.info(
        "channel.sandbox.send",
        extra={"event": "channel.sandbox.send", "channel": channel.value, "to": to, "chars": len(body)},
    )
    return DeliveryResult(channel=channel, recipient=to, provider_message_id=f"sandbox-{uuid.uuid4().hex}", sandbox=True)


class TwilioSmsSender(ChannelSender):
    channel = Channel.SMS

    def __init__(self, config: Config | None = None, session: requests.Session | None = None) -> None:
        self.config = config or get_config()
        self.session = session or requests.Session()

    def send(self, to: str, body: str) -> DeliveryResult:
        if self.config.CHANNEL_SANDBOX_MODE:
            return _sandbox_result(self.channel, to, body)

        sid = self.config.TWILIO_ACCOUNT_SID
        token = self.config.TWILIO_AUTH_TOKEN
        from_number = self.config.TWILIO_FROM_NUMBER
        if not (sid and token and from_number):
            raise ChannelSendError("Twilio credentials not configured")

        try:
            response = self.session.post(
                TWILIO_MESSAGES_URL.format(sid=sid),
                data={"To": to, "From": from_number, "Body": body},
                auth=(sid, token),
                timeout=(2, self.config.CHANNEL_TIMEOUT_SECONDS),
            )
        except requests.exceptions.RequestException as exc:
            raise ChannelSendError(f"Twilio request failed: {exc}") from exc

        if response.status_code >= 400:
            try:
                error_code = response.json().get("code")
            except ValueError:
                error_code = None
            if error_code == TWILIO_UNSUBSCRIBED_CODE:
                raise ConsentRevokedError(Channel.SMS.value, "recipient unsubscribed (Twilio 21610)")
            raise ChannelSendError(f"Twilio API error {response.status_code}: {response.text[:300]}")

        payload = response.json()
        logger.info(
            "channel.sms.sent",
            extra={"event": "channel.sms.sent", "to": to, "sid": payload.get("sid")},
        )
        return DeliveryResult(channel=self.channel, recipient=to, provider_message_id=payload.get("sid"))


class SmtpEmailSender(ChannelSender):
    channel = Channel.EMAIL

    def __init__(self, config: Config | None = None, subject: str = DEFAULT_EMAIL_SUBJECT) -> None:
        self.config = config or get_config()
        self.subject = subject

    def send(self, to: str, body: str) -> DeliveryResult:
        if self.config.CHANNEL_SANDBOX_MODE:
            return _sandbox_result(self.channel, to, body)

        if not self.config.SMTP_SERVER:
            logger.warning("email.smtp_not_configured", extra={"event": "email.smtp_not_configured"})
            raise ChannelSendError("SMTP server not configured")

        message = MIMEMultipart("alternative")
        message["Subject"] = self.subject
        message["From"] = self.config.SMTP_FROM_EMAIL
        message["To"] = to
        message["Message-ID"] = f"<{uuid.uuid4().hex}@nurture>"
        message.attach(MIMEText(body, "plain"))

        try:
            with smtplib.SMTP(self.config.SMTP_SERVER, self.config.SMTP_PORT, timeout=self.config.CHANNEL_TIMEOUT_SECONDS) as server:
                server.starttls()
                if self.config.SMTP_USERNAME:
                    server.login(self.config.SMTP_USERNAME, self.config.SMTP_PASSWORD or "")
                refused = server.send_message(message)
        except smtplib.SMTPRecipientsRefused as exc:
            code = exc.recipients.get(to, (None, b""))[0]
            if code in SMTP_PERMANENT_REFUSAL_CODES:
                raise ConsentRevokedError(Channel.EMAIL.value, f"recipient refused: {exc.recipients}") from exc
            raise ChannelSendError(f"SMTP recipient temporarily refused: {exc.recipients}") from exc
        except (smtplib.SMTPException, OSError) as exc:
            raise ChannelSendError(f"SMTP send failed: {exc}") from exc

        if refused:
            raise ChannelSendError(f"SMTP refused recipients: {refused}")
        return DeliveryResult(channel=self.channel, recipient=to, provider_message_id=message["Message-ID"])


class ChannelRegistry:
    """Maps a channel to its sender."""

    def __init__(self, senders: dict[Channel, ChannelSender] | None = None) -> None:
        self._senders: dict[Channel, ChannelSender] = dict(senders or {})

    @classmethod
    def from_config(cls, config: Config | None = None) -> "ChannelRegistry":
        config = config or get_config()
        return cls({Channel.SMS: TwilioSmsSender(config), Channel.EMAIL: SmtpEmailSender(config)})

    def get(self, channel: Channel) -> ChannelSender:
        sender = self._senders.get(channel)
        if sender is None:
            raise ChannelSendError(f"No sender registered for channel {channel.value}")
        return sender


def link_url(link_kind: LinkKind, config: Config | None = None) -> str:
    config = config or get_config()
    if link_kind == LinkKind.APPLICATION:
        return config.APPLICATION_LINK_URL
    return config.BOOKING_LINK_URL


def compose_link_message(message: str, link_kind: LinkKind, config: Config | None = None) -> str:
    """Append the templated link unless the message already carries it."""
    url = link_url(link_kind, config)
    body = message.strip()
    if url in body:
        return body
    return f"{body}\n\n{url}" if body else url
