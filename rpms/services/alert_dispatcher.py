"""
Alert dispatch: turns a threshold breach or a panic press into notifications.

Both triggers collapse into one pipeline:
1. Validate inputs (MissingDataError to the caller)
2. Evaluate the reading (threshold breach only)
3. Compose one immutable AlertEvent
4. Fan out one NotificationService per doctor, isolated per recipient
"""

import re
from collections.abc import Callable
from typing import Protocol

import structlog

from rpms.config import AppConfig, DispatchSettings
from rpms.domain.errors import MissingDataError
from rpms.domain.models import (
    AlertEvent,
    AlertTrigger,
    CareUser,
    ChannelKind,
    DispatchReport,
    NotificationRequest,
    NotificationResult,
    VitalSign,
)
from rpms.services.notifications import (
    MailTransport,
    NotificationChannel,
    NotificationService,
    build_channel,
    deliver_all,
)
from rpms.services.thresholds import ThresholdEvaluator

logger = structlog.get_logger(__name__)

ChannelFactory = Callable[[ChannelKind], NotificationChannel]

_ALERT_MESSAGE = re.compile(
    r"Alert! Patient (?P<patient_id>.+)'s vital signs are abnormal: "
    r"HR=(?P<heart_rate>-?\d+), O2=(?P<oxygen_level>-?\d+), "
    r"BP=(?P<blood_pressure>.*), Temp=(?P<temperature>[^,\s]+)",
    re.DOTALL,
)


class DoctorDirectory(Protocol):
    """Resolves the doctors currently associated with a patient."""

    def associated_doctors(self, patient_id: str) -> list[CareUser]: ...


def render_alert_message(patient_id: str, vital: VitalSign) -> str:
    return (
        f"Alert! Patient {patient_id}'s vital signs are abnormal: "
        f"HR={vital.heart_rate}, O2={vital.oxygen_level}, "
        f"BP={vital.blood_pressure}, Temp={vital.temperature}"
    )


def render_panic_message(patient_id: str) -> str:
    return f"Emergency! Patient {patient_id} needs immediate attention."


def parse_alert_message(message: str) -> tuple[str, VitalSign]:
    """Recover the patient id and the raw readings embedded in an alert message.

    Raises:
        ValueError: if ``message`` was not produced by render_alert_message.
    """
    match = _ALERT_MESSAGE.fullmatch(message)
    if match is None:
        raise ValueError(f"Not a threshold alert message: {message!r}")
    vital = VitalSign(
        heart_rate=int(match["heart_rate"]),
        oxygen_level=int(match["oxygen_level"]),
        blood_pressure=match["blood_pressure"],
        temperature=float(match["temperature"]),
    )
    return match["patient_id"], vital


class AlertDispatcher:
    """
    Dispatches alerts to a patient's doctors.

    Every send is its own at-most-once attempt: no retry, no rollback, and
    one doctor's failure is recorded as that doctor's result only.
    """

    def __init__(
        self,
        directory: DoctorDirectory,
        channel_factory: ChannelFactory,
        settings: DispatchSettings | None = None,
        evaluator: ThresholdEvaluator | None = None,
    ) -> None:
        self.directory = directory
        self.channel_factory = channel_factory
        self.settings = settings or DispatchSettings()
        self.evaluator = evaluator or ThresholdEvaluator()
        self.logger = logger.bind(component="alert_dispatcher")

    @classmethod
    def from_config(
        cls,
        directory: DoctorDirectory,
        config: AppConfig,
        transport: MailTransport | None = None,
    ) -> "AlertDispatcher":
        """Wire a dispatcher whose channels share the process-wide SMTP settings."""
        return cls(
            directory,
            lambda kind: build_channel(kind, config.smtp, transport),
            settings=config.dispatch,
        )

    async def dispatch_threshold_breach(
        self, patient: CareUser | None, vital: VitalSign | None
    ) -> DispatchReport:
        """Evaluate ``vital`` and alert every associated doctor on a breach.

        A reading within threshold is a successful no-op.

        Raises:
            MissingDataError: if the patient or the reading is absent.
        """
        if patient is None or vital is None:
            raise MissingDataError("Vital or patient information missing.")

        verdict = self.evaluator.evaluate(vital)
        if verdict.within_threshold:
            self.logger.info("vitals_within_threshold", patient_id=patient.user_id)
            return DispatchReport(
                patient_id=patient.user_id, trigger=AlertTrigger.THRESHOLD_BREACH, verdict=verdict
            )

        event = AlertEvent(
            patient_id=patient.user_id,
            vital=vital,
            message=render_alert_message(patient.user_id, vital),
            trigger=AlertTrigger.THRESHOLD_BREACH,
        )
        self.logger.info(
            "threshold_breach_detected",
            patient_id=patient.user_id,
            reason=verdict.reason.value,
            breached=[kind.value for kind in verdict.breached],
        )

        doctors = self.directory.associated_doctors(patient.user_id)
        results = await self._fan_out(event, doctors)
        return DispatchReport(
            patient_id=patient.user_id,
            trigger=AlertTrigger.THRESHOLD_BREACH,
            verdict=verdict,
            event=event,
            results=results,
        )

    async def trigger_panic(
        self, patient: CareUser | None, doctor: CareUser | None
    ) -> DispatchReport:
        """Send the fixed emergency message to one doctor.

        Raises:
            MissingDataError: if the patient or the doctor is absent.
        """
        if patient is None or doctor is None:
            raise MissingDataError("Patient or doctor information missing.")

        event = self._panic_event(patient)
        results = await self._fan_out(event, [doctor])
        return DispatchReport(
            patient_id=patient.user_id,
            trigger=AlertTrigger.MANUAL_PANIC,
            event=event,
            results=results,
        )

    async def trigger_panic_for_care_team(self, patient: CareUser | None) -> DispatchReport:
        """Press the panic button: alert every doctor associated with ``patient``.

        Raises:
            MissingDataError: if the patient is absent.
        """
        if patient is None:
            raise MissingDataError("Patient information missing.")

        event = self._panic_event(patient)
        doctors = self.directory.associated_doctors(patient.user_id)
        results = await self._fan_out(event, doctors)
        return DispatchReport(
            patient_id=patient.user_id,
            trigger=AlertTrigger.MANUAL_PANIC,
            event=event,
            results=results,
        )

    def _panic_event(self, patient: CareUser) -> AlertEvent:
        self.logger.warning("panic_button_pressed", patient_id=patient.user_id)
        return AlertEvent(
            patient_id=patient.user_id,
            message=render_panic_message(patient.user_id),
            trigger=AlertTrigger.MANUAL_PANIC,
        )

    def _request_for(self, doctor: CareUser, event: AlertEvent) -> NotificationRequest:
        if self.settings.channel == ChannelKind.SMS:
            recipient = doctor.phone or ""
        else:
            recipient = doctor.email
        return NotificationRequest(
            recipient=recipient, message=event.message, channel=self.settings.channel
        )

    async def _fan_out(
        self, event: AlertEvent, doctors: list[CareUser]
    ) -> list[NotificationResult]:
        if not doctors:
            self.logger.warning("no_associated_doctors", patient_id=event.patient_id)
            return []

        requests = [self._request_for(doctor, event) for doctor in doctors]
        sends = [
            (NotificationService(self.channel_factory(req.channel), req.recipient), req.message)
            for req in requests
        ]
        results = await deliver_all(
            sends,
            max_concurrent=self.settings.max_concurrent_sends,
            timeout_seconds=self.settings.send_timeout_seconds,
        )

        succeeded = sum(1 for r in results if r.success)
        self.logger.info(
            "alert_dispatched",
            patient_id=event.patient_id,
            trigger=event.trigger.value,
            recipients=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
        )
        return results
