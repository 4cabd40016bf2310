"""
Error taxonomy for the alerting core.

Notification errors are returned inside a Result and turned into
per-recipient NotificationResult records; they are never raised across a
fan-out. MissingDataError and ReadingValidationError are raised to the
immediate caller.
"""


class RPMSError(Exception):
    """Base class for all alerting-core errors."""


class ReadingValidationError(RPMSError):
    """A raw vital reading could not be parsed."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}")
        self.field = field


class MissingDataError(RPMSError):
    """A required patient, vital or doctor was absent."""


class NotificationError(RPMSError):
    """Base class for failures of a single send attempt."""


class ConfigError(NotificationError):
    """Channel credentials or wiring are missing."""


class InvalidRecipientError(NotificationError):
    """The recipient address is empty."""


class TransportError(NotificationError):
    """The underlying transport failed or timed out."""

    def __init__(
        self, message: str, *, timeout: bool = False, cause: BaseException | None = None
    ) -> None:
        super().__init__(message)
        self.timeout = timeout
        self.cause = cause
