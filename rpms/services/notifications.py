"""
Notification channels and the service that binds one to a recipient.

Key patterns:
- Protocol-based channels (email, SMS) so new channels are a localized change
- Generic Result type: channels return failures instead of raising them
- Blocking SMTP work pushed off the event loop with asyncio.to_thread
"""

import asyncio
import logging
import smtplib
from collections.abc import Sequence
from email.message import EmailMessage
from typing import Any, Generic, Protocol

import structlog
from typing_extensions import TypeVar

from rpms.config import LoggingConfig, SmtpSettings
from rpms.domain.errors import (
    ConfigError,
    InvalidRecipientError,
    NotificationError,
    TransportError,
)
from rpms.domain.models import ChannelKind, NotificationResult


def _processors(renderer: Any) -> list[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        renderer,
    ]


# Configure structured logging (production-ready observability)
structlog.configure(
    processors=_processors(structlog.processors.JSONRenderer()),
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


def configure_logging(config: LoggingConfig) -> None:
    """Apply the configured level and renderer (json for services, console for dev)."""
    logging.basicConfig(format="%(message)s", level=getattr(logging, config.level))
    renderer: Any = (
        structlog.dev.ConsoleRenderer()
        if config.format == "console"
        else structlog.processors.JSONRenderer()
    )
    structlog.configure(
        processors=_processors(renderer),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


# Generic Result type for explicit error handling
ValueT = TypeVar("ValueT")
ErrorT = TypeVar("ErrorT", bound=BaseException, default=Exception)

_UNSET: Any = object()


class Result(Generic[ValueT, ErrorT]):
    """
    Explicit error handling without exceptions for expected failures.

    ``Result.ok(None)`` is a valid success for operations with nothing to return.
    """

    def __init__(self, value: Any = _UNSET, error: ErrorT | None = None) -> None:
        if value is not _UNSET and error is not None:
            raise ValueError("Result cannot have both value and error")
        if value is _UNSET and error is None:
            raise ValueError("Result must have either value or error")
        self._value: ValueT | None = None if value is _UNSET else value
        self._error: ErrorT | None = error

    @classmethod
    def ok(cls, value: ValueT) -> "Result[ValueT, ErrorT]":
        return cls(value=value)

    @classmethod
    def err(cls, error: ErrorT) -> "Result[ValueT, ErrorT]":
        return cls(error=error)

    def is_ok(self) -> bool:
        return self._error is None

    def is_err(self) -> bool:
        return self._error is not None

    def unwrap(self) -> ValueT:
        if self._error is not None:
            raise self._error
        return self._value  # type: ignore

    def unwrap_or(self, default: ValueT) -> ValueT:
        return self._value if self._error is None else default  # type: ignore

    def unwrap_err(self) -> ErrorT:
        if self._error is None:
            raise ValueError("Called unwrap_err() on an Ok value")
        return self._error


class NotificationChannel(Protocol):
    """
    A named transport capability.

    Implementations must not raise: every failure comes back as Result.err.
    """

    kind: ChannelKind

    async def send(self, message: str, recipient: str) -> Result[None, NotificationError]: ...


class MailTransport(Protocol):
    """Delivers one already-validated email. May raise smtplib/OS errors."""

    async def deliver(self, recipient: str, subject: str, body: str) -> None: ...


class SmtpTransport:
    """
    Real SMTP delivery (STARTTLS + login) using smtplib.

    The blocking session runs in a worker thread so concurrent sends do not
    stall the event loop.
    """

    def __init__(self, settings: SmtpSettings) -> None:
        self.settings = settings

    def _send_blocking(self, recipient: str, subject: str, body: str) -> None:
        if self.settings.username is None or self.settings.password is None:
            raise ConfigError("SMTP username or password not provided.")

        msg = EmailMessage()
        msg["From"] = self.settings.username
        msg["To"] = recipient
        msg["Subject"] = subject
        msg.set_content(body)

        with smtplib.SMTP(
            self.settings.host, self.settings.port, timeout=self.settings.timeout_seconds
        ) as server:
            if self.settings.use_tls:
                server.starttls()
            server.login(self.settings.username, self.settings.password.get_secret_value())
            server.send_message(msg)

    async def deliver(self, recipient: str, subject: str, body: str) -> None:
        await asyncio.to_thread(self._send_blocking, recipient, subject, body)


class EmailChannel:
    """Email notifications through a MailTransport (SMTP by default)."""

    kind = ChannelKind.EMAIL

    def __init__(self, settings: SmtpSettings, transport: MailTransport | None = None) -> None:
        self.settings = settings
        self.transport = transport or SmtpTransport(settings)
        self.logger = logger.bind(channel=self.kind.value)

    async def send(self, message: str, recipient: str) -> Result[None, NotificationError]:
        if not recipient or not recipient.strip():
            return Result.err(InvalidRecipientError("Invalid recipient for email."))
        if not self.settings.has_credentials:
            return Result.err(ConfigError("SMTP username or password not provided."))

        try:
            await self.transport.deliver(recipient, self.settings.subject, message)
        except TimeoutError as e:
            self.logger.warning("email_send_timeout", recipient=recipient)
            return Result.err(
                TransportError(f"Timed out sending email: {e}", timeout=True, cause=e)
            )
        except (smtplib.SMTPException, OSError) as e:
            self.logger.warning("email_send_failed", recipient=recipient, error=str(e))
            return Result.err(TransportError(f"Error sending email: {e}", cause=e))
        except NotificationError as e:
            return Result.err(e)
        except Exception as e:
            self.logger.exception("unexpected_email_transport_error", recipient=recipient)
            return Result.err(TransportError(f"Error sending email: {e}", cause=e))

        self.logger.info("email_sent", recipient=recipient)
        return Result.ok(None)


class SMSChannel:
    """
    SMS notifications.

    The gateway is an external collaborator; with a valid recipient the send
    always succeeds here.
    """

    kind = ChannelKind.SMS

    def __init__(self) -> None:
        self.logger = logger.bind(channel=self.kind.value)

    async def send(self, message: str, recipient: str) -> Result[None, NotificationError]:
        if not recipient or not recipient.strip():
            return Result.err(InvalidRecipientError("Invalid recipient for SMS."))
        self.logger.info("sms_sent", recipient=recipient, length=len(message))
        return Result.ok(None)


def build_channel(
    kind: ChannelKind, smtp: SmtpSettings, transport: MailTransport | None = None
) -> NotificationChannel:
    """Build the channel for ``kind``."""
    match kind:
        case ChannelKind.EMAIL:
            return EmailChannel(smtp, transport)
        case ChannelKind.SMS:
            return SMSChannel()
        case _:
            raise ValueError(f"Unknown channel kind: {kind}")


async def deliver(
    channel: NotificationChannel | None, message: str, recipient: str
) -> NotificationResult:
    """
    Run one send attempt and turn its outcome into a NotificationResult.

    A channel that breaks its contract and raises is logged and reported as a
    failed result so the attempt is never lost.
    """
    kind = channel.kind if channel is not None else None
    if channel is None:
        return NotificationResult.failed(
            recipient, ConfigError("Notification service not configured."), kind
        )

    try:
        result = await channel.send(message, recipient)
    except Exception as e:
        logger.exception("channel_raised", channel=kind, recipient=recipient)
        return NotificationResult.failed(recipient, e, kind)

    if result.is_err():
        error = result.unwrap_err()
        logger.warning(
            "notification_failed",
            channel=kind,
            recipient=recipient,
            error_kind=type(error).__name__,
            error=str(error),
        )
        return NotificationResult.failed(recipient, error, kind)
    return NotificationResult.sent(recipient, kind)


class NotificationService:
    """Binds one channel to one recipient. A thin adapter, not a retry layer."""

    def __init__(self, channel: NotificationChannel | None, recipient: str) -> None:
        self.channel = channel
        self.recipient = recipient

    async def send_alert(self, message: str) -> Result[None, NotificationError]:
        if self.channel is None:
            return Result.err(ConfigError("Notification service not configured."))
        return await self.channel.send(message, self.recipient)

    async def deliver(self, message: str) -> NotificationResult:
        return await deliver(self.channel, message, self.recipient)


async def deliver_with_timeout(
    service: NotificationService, message: str, timeout_seconds: float
) -> NotificationResult:
    """One send attempt bounded by ``timeout_seconds``. A timeout is a TransportError."""
    try:
        return await asyncio.wait_for(service.deliver(message), timeout=timeout_seconds)
    except TimeoutError:
        kind = service.channel.kind if service.channel is not None else None
        logger.warning(
            "notification_timeout", recipient=service.recipient, timeout_seconds=timeout_seconds
        )
        return NotificationResult.failed(
            service.recipient,
            TransportError(f"Send timed out after {timeout_seconds}s", timeout=True),
            kind,
        )


async def deliver_all(
    sends: Sequence[tuple[NotificationService, str]],
    *,
    max_concurrent: int,
    timeout_seconds: float,
) -> list[NotificationResult]:
    """
    Send every (service, message) pair concurrently.

    At most ``max_concurrent`` sends are in flight. Results come back in
    submission order whatever the completion order, and one failed or timed
    out send never cancels its siblings.
    """
    semaphore = asyncio.Semaphore(max_concurrent)

    async def _bounded(service: NotificationService, message: str) -> NotificationResult:
        async with semaphore:
            return await deliver_with_timeout(service, message, timeout_seconds)

    async with asyncio.TaskGroup() as task_group:
        tasks = [task_group.create_task(_bounded(service, message)) for service, message in sends]

    return [task.result() for task in tasks]
