"""
Tests for reminder scheduling in `rpms/services/reminders.py`.

Covers:
- Job building: approved appointments only, every prescription, fixed templates
- ISOLATE policy: every job attempted, failures aggregated in job order
- ABORT_ON_FIRST_FAILURE policy: batch stops, skipped jobs counted
"""

import asyncio

import pytest

from rpms.config import FailurePolicy, ReminderSettings, SmtpSettings
from rpms.domain.models import (
    Appointment,
    AppointmentStatus,
    CareUser,
    ChannelKind,
    Feedback,
    Prescription,
    ReminderKind,
    Role,
)
from rpms.services.notifications import EmailChannel, SMSChannel
from rpms.services.reminders import (
    ReminderScheduler,
    build_jobs,
    collect_prescriptions,
    render_appointment_reminder,
    render_medication_reminder,
)


class OutboxTransport:
    def __init__(self, delay: float = 0.0) -> None:
        self.delay = delay
        self.sent: list[tuple[str, str]] = []

    async def deliver(self, recipient: str, subject: str, body: str) -> None:
        await asyncio.sleep(self.delay)
        self.sent.append((recipient, body))


@pytest.fixture
def doctor() -> CareUser:
    return CareUser(user_id="D1", name="House", email="house@example.com", role=Role.DOCTOR)


@pytest.fixture
def ada() -> CareUser:
    return CareUser(user_id="P1", name="Ada", email="ada@example.com", phone="+15550100")


@pytest.fixture
def nobody() -> CareUser:
    """A patient with no email on file."""
    return CareUser(user_id="P2", name="Bob", email="")


def _appointment(doctor: CareUser, patient: CareUser, status: AppointmentStatus) -> Appointment:
    return Appointment(
        appointment_id=f"{patient.user_id}-{status.value}",
        date="2025-03-25",
        doctor=doctor,
        patient=patient,
        status=status,
    )


def _prescription(patient: CareUser, medication: str = "Amoxicillin") -> Prescription:
    return Prescription(
        medication=medication, dosage="500mg", schedule="twice daily", patient=patient
    )


@pytest.fixture
def channel() -> EmailChannel:
    return EmailChannel(SmtpSettings(username="rpms@example.com", password="pw"), OutboxTransport())


class TestBuildJobs:
    def test_only_approved_appointments_are_reminded(self, doctor: CareUser, ada: CareUser) -> None:
        appointments = [_appointment(doctor, ada, status) for status in AppointmentStatus]

        jobs = build_jobs(appointments, [])

        assert len(jobs) == 1
        assert jobs[0].kind == ReminderKind.APPOINTMENT
        assert jobs[0].source == appointments[1]
        assert jobs[0].recipient == "ada@example.com"

    def test_every_prescription_is_reminded_after_appointments(
        self, doctor: CareUser, ada: CareUser
    ) -> None:
        prescriptions = [_prescription(ada, "Amoxicillin"), _prescription(ada, "Ibuprofen")]
        appointment = _appointment(doctor, ada, AppointmentStatus.APPROVED)

        jobs = build_jobs([appointment], prescriptions)

        assert [job.kind for job in jobs] == [
            ReminderKind.APPOINTMENT,
            ReminderKind.MEDICATION,
            ReminderKind.MEDICATION,
        ]
        assert [job.source for job in jobs[1:]] == prescriptions

    def test_message_templates(self, doctor: CareUser, ada: CareUser) -> None:
        appointment = _appointment(doctor, ada, AppointmentStatus.APPROVED)

        assert render_appointment_reminder(appointment) == (
            "Reminder: Appointment with Dr. House on 2025-03-25"
        )
        assert render_medication_reminder(_prescription(ada)) == (
            "Reminder: Take Amoxicillin (500mg) as per schedule: twice daily"
        )

    def test_sms_jobs_use_phone_numbers(self, ada: CareUser) -> None:
        jobs = build_jobs([], [_prescription(ada)], ChannelKind.SMS)

        assert jobs[0].recipient == "+15550100"

    def test_collect_prescriptions_skips_feedback_without_one(self, ada: CareUser) -> None:
        prescription = _prescription(ada)
        records = [
            Feedback(text="Rest well"),
            Feedback(text="Start antibiotics", prescription=prescription),
        ]

        assert collect_prescriptions(records) == [prescription]


class TestIsolatePolicy:
    async def test_every_job_is_attempted(
        self, channel: EmailChannel, doctor: CareUser, ada: CareUser, nobody: CareUser
    ) -> None:
        appointments = [
            _appointment(doctor, ada, AppointmentStatus.APPROVED),
            _appointment(doctor, nobody, AppointmentStatus.APPROVED),
            _appointment(doctor, ada, AppointmentStatus.CANCELLED),
        ]
        prescriptions = [_prescription(ada)]

        batch = await ReminderScheduler(channel).run(appointments, prescriptions)

        assert not batch.aborted
        assert batch.skipped == 0
        assert [r.recipient for r in batch.results] == [
            "ada@example.com",
            "",
            "ada@example.com",
        ]
        assert batch.sent == 2
        assert [r.error_kind for r in batch.failed] == ["InvalidRecipientError"]
        assert len(channel.transport.sent) == 2

    async def test_empty_batch(self, channel: EmailChannel) -> None:
        batch = await ReminderScheduler(channel).run([], [])

        assert batch.results == []
        assert batch.sent == 0

    async def test_slow_send_times_out_without_blocking_others(
        self, doctor: CareUser, ada: CareUser
    ) -> None:
        channel = EmailChannel(
            SmtpSettings(username="rpms@example.com", password="pw"), OutboxTransport(delay=1.0)
        )
        settings = ReminderSettings(send_timeout_seconds=0.05)

        batch = await ReminderScheduler(channel, settings).run(
            [_appointment(doctor, ada, AppointmentStatus.APPROVED)], [_prescription(ada)]
        )

        assert batch.sent == 0
        assert all(r.error_kind == "TransportError" for r in batch.failed)
        assert all(r.timeout for r in batch.failed)
        assert len(batch.results) == 2


class TestAbortPolicy:
    async def test_first_failure_stops_the_batch(
        self, channel: EmailChannel, doctor: CareUser, ada: CareUser, nobody: CareUser
    ) -> None:
        settings = ReminderSettings(failure_policy=FailurePolicy.ABORT_ON_FIRST_FAILURE)
        appointments = [
            _appointment(doctor, ada, AppointmentStatus.APPROVED),
            _appointment(doctor, nobody, AppointmentStatus.APPROVED),
        ]
        prescriptions = [_prescription(ada), _prescription(ada, "Ibuprofen")]

        batch = await ReminderScheduler(channel, settings).run(appointments, prescriptions)

        assert batch.aborted
        assert batch.skipped == 2
        assert [r.success for r in batch.results] == [True, False]
        assert channel.transport.sent == [
            ("ada@example.com", "Reminder: Appointment with Dr. House on 2025-03-25")
        ]

    async def test_clean_batch_is_not_aborted(self, ada: CareUser) -> None:
        settings = ReminderSettings(failure_policy=FailurePolicy.ABORT_ON_FIRST_FAILURE)

        batch = await ReminderScheduler(SMSChannel(), settings).run([], [_prescription(ada)])

        assert not batch.aborted
        assert batch.sent == 1
        assert batch.results[0].recipient == "+15550100"
