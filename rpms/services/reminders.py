"""
Reminder scheduling for approved appointments and active prescriptions.

Jobs are rebuilt from the collaborator's records on every run and sent
through one shared channel. The failure policy is explicit: ISOLATE (the
default) attempts every job; ABORT_ON_FIRST_FAILURE stops the batch at the
first failed send and reports how many jobs were skipped.
"""

import time
from collections.abc import Iterable, Sequence

import structlog

from rpms.config import FailurePolicy, ReminderSettings
from rpms.domain.models import (
    Appointment,
    AppointmentStatus,
    BatchResult,
    CareUser,
    ChannelKind,
    Feedback,
    NotificationResult,
    Prescription,
    ReminderJob,
    ReminderKind,
)
from rpms.services.notifications import (
    NotificationChannel,
    NotificationService,
    deliver_all,
    deliver_with_timeout,
)

logger = structlog.get_logger(__name__)


def render_appointment_reminder(appointment: Appointment) -> str:
    return f"Reminder: Appointment with Dr. {appointment.doctor.name} on {appointment.date}"


def render_medication_reminder(prescription: Prescription) -> str:
    return (
        f"Reminder: Take {prescription.medication} ({prescription.dosage}) "
        f"as per schedule: {prescription.schedule}"
    )


def _address(patient: CareUser, channel: ChannelKind) -> str:
    if channel == ChannelKind.SMS:
        return patient.phone or ""
    return patient.email


def collect_prescriptions(feedback_records: Iterable[Feedback]) -> list[Prescription]:
    """Prescriptions attached to feedback, in record order."""
    return [f.prescription for f in feedback_records if f.prescription is not None]


def build_jobs(
    appointments: Sequence[Appointment],
    prescriptions: Sequence[Prescription],
    channel: ChannelKind = ChannelKind.EMAIL,
) -> list[ReminderJob]:
    """Approved appointments first, then every prescription, both in input order."""
    jobs = [
        ReminderJob(
            kind=ReminderKind.APPOINTMENT,
            source=appointment,
            message=render_appointment_reminder(appointment),
            recipient=_address(appointment.patient, channel),
        )
        for appointment in appointments
        if appointment.status == AppointmentStatus.APPROVED
    ]
    jobs.extend(
        ReminderJob(
            kind=ReminderKind.MEDICATION,
            source=prescription,
            message=render_medication_reminder(prescription),
            recipient=_address(prescription.patient, channel),
        )
        for prescription in prescriptions
    )
    return jobs


class ReminderScheduler:
    """Sends one batch of reminders on demand."""

    def __init__(
        self, notifier: NotificationChannel, settings: ReminderSettings | None = None
    ) -> None:
        self.notifier = notifier
        self.settings = settings or ReminderSettings()
        self.logger = logger.bind(
            component="reminder_scheduler", policy=self.settings.failure_policy.value
        )

    async def run(
        self, appointments: Sequence[Appointment], prescriptions: Sequence[Prescription]
    ) -> BatchResult:
        start_time = time.perf_counter()
        jobs = build_jobs(appointments, prescriptions, self.notifier.kind)

        if self.settings.failure_policy == FailurePolicy.ABORT_ON_FIRST_FAILURE:
            batch = await self._run_until_failure(jobs)
        else:
            results = await deliver_all(
                [(NotificationService(self.notifier, job.recipient), job.message) for job in jobs],
                max_concurrent=self.settings.max_concurrent_sends,
                timeout_seconds=self.settings.send_timeout_seconds,
            )
            batch = BatchResult(results=results)

        self.logger.info(
            "reminder_batch_completed",
            jobs=len(jobs),
            sent=batch.sent,
            failed=len(batch.failed),
            aborted=batch.aborted,
            skipped=batch.skipped,
            duration_seconds=round(time.perf_counter() - start_time, 3),
        )
        return batch

    async def _run_until_failure(self, jobs: list[ReminderJob]) -> BatchResult:
        results: list[NotificationResult] = []
        for index, job in enumerate(jobs):
            service = NotificationService(self.notifier, job.recipient)
            result = await deliver_with_timeout(
                service, job.message, self.settings.send_timeout_seconds
            )
            results.append(result)
            if not result.success:
                skipped = len(jobs) - index - 1
                self.logger.warning(
                    "reminder_batch_aborted", recipient=job.recipient, skipped=skipped
                )
                return BatchResult(results=results, aborted=True, skipped=skipped)
        return BatchResult(results=results)
