"""Custom exceptions for the nurture application."""

from __future__ import annotations


class NurtureException(Exception):
    """Base exception for the nurture application."""

    pass


class ConfigurationError(NurtureException):
    """Raised when configuration is invalid."""

    pass


class DatabaseError(NurtureException):
    """Raised when a database operation fails."""

    pass


class NotFoundError(NurtureException):
    """Raised when a resource is not found."""

    pass


class DataInconsistencyError(NurtureException):
    """Raised when a unit of work references data that no longer exists."""

    pass


class OracleError(NurtureException):
    """Raised when the decision oracle cannot produce a usable proposal."""

    pass


class OracleTimeoutError(OracleError):
    """Raised when the decision oracle does not answer in time."""

    pass


class OracleResponseError(OracleError):
    """Raised when the decision oracle answers with malformed output."""

    pass


class ChannelError(NurtureException):
    """Base class for delivery channel failures."""

    pass


class ChannelSendError(ChannelError):
    """Raised when a channel gateway rejects or fails a send."""

    pass


class ConsentRevokedError(ChannelError):
    """Raised when the gateway reports the recipient revoked consent."""

    def __init__(self, channel: str, message: str = "recipient revoked consent") -> None:
        super().__init__(f"{channel}: {message}")
        self.channel = channel
