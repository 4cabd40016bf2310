"""
Domain models for vital-sign alerting and reminders.

These models represent the core business concepts and are framework-agnostic.
They use Pydantic for validation and are frozen: the core only reads
collaborator-owned entities and produces derived events.
"""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, computed_field

from rpms.domain.errors import TransportError


class Role(str, Enum):
    """Care-team roles. One user record carries a role tag."""

    PATIENT = "patient"
    DOCTOR = "doctor"
    ADMINISTRATOR = "administrator"


class CareUser(BaseModel):
    """Identity of a patient, doctor or administrator."""

    model_config = ConfigDict(frozen=True)

    user_id: str = Field(min_length=1)
    name: str
    email: str = Field(default="", description="May be empty; sends to it fail per recipient")
    phone: str | None = None
    role: Role = Role.PATIENT

    def display(self) -> str:
        return f"User ID: {self.user_id} | Name: {self.name} | Email: {self.email}"


class VitalKind(str, Enum):
    """The four vital readings checked against the policy."""

    HEART_RATE = "heart_rate"
    OXYGEN_LEVEL = "oxygen_level"
    BLOOD_PRESSURE = "blood_pressure"
    TEMPERATURE = "temperature"


class VitalSign(BaseModel):
    """A single vital-sign reading submitted by a patient.

    ``blood_pressure`` is kept as the raw "systolic/diastolic" text. A
    malformed value is a verdict of the evaluator, not a construction error.
    """

    model_config = ConfigDict(frozen=True)

    heart_rate: int = Field(description="Beats per minute")
    oxygen_level: int = Field(description="Oxygen saturation percent")
    blood_pressure: str = Field(description="'systolic/diastolic'")
    temperature: float = Field(description="Body temperature in Celsius")
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    def display(self) -> str:
        return (
            f"Heart Rate: {self.heart_rate} bpm, Oxygen Level: {self.oxygen_level}%, "
            f"Blood Pressure: {self.blood_pressure}, Temperature: {self.temperature} °C"
        )


class BloodPressure(BaseModel):
    """Parsed blood-pressure pair."""

    model_config = ConfigDict(frozen=True)

    systolic: float
    diastolic: float


class ThresholdPolicy(BaseModel):
    """Inclusive normal ranges for each vital."""

    model_config = ConfigDict(frozen=True)

    heart_rate_min: int = 60
    heart_rate_max: int = 100
    oxygen_level_min: int = 95
    systolic_min: float = 90
    systolic_max: float = 140
    diastolic_min: float = 60
    diastolic_max: float = 90
    temperature_min: float = 36.1
    temperature_max: float = 37.2


DEFAULT_POLICY = ThresholdPolicy()


class VerdictReason(str, Enum):
    WITHIN_RANGE = "within_range"
    NO_DATA = "no_data"
    OUT_OF_RANGE = "out_of_range"
    MALFORMED_READING = "malformed_reading"


class ThresholdVerdict(BaseModel):
    """Result of evaluating one reading against a ThresholdPolicy."""

    model_config = ConfigDict(frozen=True)

    within_threshold: bool
    reason: VerdictReason
    breached: list[VitalKind] = Field(default_factory=list)


class AlertTrigger(str, Enum):
    THRESHOLD_BREACH = "threshold_breach"
    MANUAL_PANIC = "manual_panic"


class AlertEvent(BaseModel):
    """An alert composed at dispatch time. Never persisted."""

    model_config = ConfigDict(frozen=True)

    patient_id: str
    vital: VitalSign | None = None
    message: str
    trigger: AlertTrigger
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ChannelKind(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class NotificationRequest(BaseModel):
    """One send attempt: who, what, and over which channel."""

    model_config = ConfigDict(frozen=True)

    recipient: str
    message: str
    channel: ChannelKind


class NotificationResult(BaseModel):
    """Outcome of one send attempt."""

    model_config = ConfigDict(frozen=True)

    recipient: str
    channel: ChannelKind | None = Field(default=None, description="None if no channel was bound")
    success: bool
    error: str | None = None
    error_kind: str | None = Field(default=None, description="Error class name on failure")
    timeout: bool = Field(default=False, description="True if the send timed out")
    cause: str | None = Field(default=None, description="Underlying transport error, if any")

    @classmethod
    def sent(cls, recipient: str, channel: ChannelKind | None) -> "NotificationResult":
        return cls(recipient=recipient, channel=channel, success=True)

    @classmethod
    def failed(
        cls, recipient: str, error: BaseException, channel: ChannelKind | None = None
    ) -> "NotificationResult":
        timeout = False
        cause = None
        if isinstance(error, TransportError):
            timeout = error.timeout
            if error.cause is not None:
                cause = f"{type(error.cause).__name__}: {error.cause}"
        return cls(
            recipient=recipient,
            channel=channel,
            success=False,
            error=str(error),
            error_kind=type(error).__name__,
            timeout=timeout,
            cause=cause,
        )


class DispatchReport(BaseModel):
    """Everything one alert dispatch produced, in recipient submission order."""

    model_config = ConfigDict(frozen=True)

    patient_id: str
    trigger: AlertTrigger
    verdict: ThresholdVerdict | None = None
    event: AlertEvent | None = None
    results: list[NotificationResult] = Field(default_factory=list)

    @property
    def alert_needed(self) -> bool:
        return self.event is not None

    @property
    def succeeded(self) -> list[NotificationResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[NotificationResult]:
        return [r for r in self.results if not r.success]

    @computed_field  # type: ignore[prop-decorator]
    @property
    def recipient_count(self) -> int:
        return len(self.results)


class AppointmentStatus(str, Enum):
    REQUESTED = "Requested"
    APPROVED = "Approved"
    CANCELLED = "Cancelled"


class Appointment(BaseModel):
    model_config = ConfigDict(frozen=True)

    appointment_id: str
    date: str = Field(description="Appointment date as entered, e.g. 2025-03-25")
    doctor: CareUser
    patient: CareUser
    status: AppointmentStatus = AppointmentStatus.REQUESTED

    def display(self) -> str:
        return (
            f"Appointment Date: {self.date} | Doctor: {self.doctor.name} | "
            f"Patient: {self.patient.name} | Status: {self.status.value}"
        )


class Prescription(BaseModel):
    model_config = ConfigDict(frozen=True)

    medication: str
    dosage: str
    schedule: str
    patient: CareUser


class Feedback(BaseModel):
    """Doctor feedback, optionally carrying a prescription."""

    model_config = ConfigDict(frozen=True)

    text: str
    author: CareUser | None = None
    prescription: Prescription | None = None


class ReminderKind(str, Enum):
    APPOINTMENT = "appointment"
    MEDICATION = "medication"


class ReminderJob(BaseModel):
    """A reminder built fresh on each scheduling run."""

    model_config = ConfigDict(frozen=True)

    kind: ReminderKind
    source: Appointment | Prescription
    message: str
    recipient: str


class BatchResult(BaseModel):
    """Outcome of one reminder run, results in job order."""

    model_config = ConfigDict(frozen=True)

    results: list[NotificationResult] = Field(default_factory=list)
    aborted: bool = False
    skipped: int = Field(default=0, ge=0, description="Jobs not attempted after an abort")

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.success)

    @property
    def failed(self) -> list[NotificationResult]:
        return [r for r in self.results if not r.success]
