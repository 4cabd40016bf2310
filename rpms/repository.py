"""
In-memory care-team repository.

Stand-in for the storage collaborator: users, doctor/patient association,
appointments, feedback and vital records. It is an explicit object handed to
the core (it satisfies DoctorDirectory), never module-level state. One writer
at a time; a dispatch or reminder run only reads it.
"""

from collections import defaultdict
from uuid import uuid4

import structlog

from rpms.domain.errors import MissingDataError
from rpms.domain.models import (
    Appointment,
    AppointmentStatus,
    CareUser,
    Feedback,
    Prescription,
    Role,
    VitalSign,
)
from rpms.services.reminders import collect_prescriptions

logger = structlog.get_logger(__name__)


class CareTeamRepository:
    def __init__(self) -> None:
        self._users: dict[str, CareUser] = {}
        self._patients_by_doctor: dict[str, list[str]] = defaultdict(list)
        self._appointments: list[Appointment] = []
        self._feedback: dict[str, list[Feedback]] = defaultdict(list)
        self._vitals: dict[str, list[VitalSign]] = defaultdict(list)
        self.logger = logger.bind(component="care_team_repository")

    def add_user(self, user: CareUser) -> CareUser:
        key = user.user_id.lower()
        if key in self._users:
            raise ValueError(f"User {user.user_id} already exists")
        self._users[key] = user
        return user

    def get_user(self, user_id: str, role: Role | None = None) -> CareUser | None:
        """Case-insensitive lookup, optionally restricted to one role."""
        user = self._users.get(user_id.lower())
        if user is None or (role is not None and user.role != role):
            return None
        return user

    def users(self, role: Role | None = None) -> list[CareUser]:
        return [u for u in self._users.values() if role is None or u.role == role]

    def _require(self, user_id: str, role: Role) -> CareUser:
        user = self.get_user(user_id, role)
        if user is None:
            raise MissingDataError(f"{role.value.capitalize()} {user_id} not found.")
        return user

    def assign_patient(self, doctor_id: str, patient_id: str) -> None:
        """Associate a patient with a doctor. Idempotent."""
        doctor = self._require(doctor_id, Role.DOCTOR)
        patient = self._require(patient_id, Role.PATIENT)
        patients = self._patients_by_doctor[doctor.user_id]
        if patient.user_id not in patients:
            patients.append(patient.user_id)
            self.logger.info(
                "patient_assigned", doctor_id=doctor.user_id, patient_id=patient.user_id
            )

    def patients_of(self, doctor_id: str) -> list[CareUser]:
        doctor = self._require(doctor_id, Role.DOCTOR)
        return [self._users[pid.lower()] for pid in self._patients_by_doctor[doctor.user_id]]

    def associated_doctors(self, patient_id: str) -> list[CareUser]:
        """Doctors whose patient list contains ``patient_id``, in registration order."""
        patient = self.get_user(patient_id, Role.PATIENT)
        if patient is None:
            return []
        return [
            doctor
            for doctor in self.users(Role.DOCTOR)
            if patient.user_id in self._patients_by_doctor[doctor.user_id]
        ]

    def request_appointment(self, date: str, doctor_id: str, patient_id: str) -> Appointment:
        """Request an appointment. The patient joins the doctor's list."""
        doctor = self._require(doctor_id, Role.DOCTOR)
        patient = self._require(patient_id, Role.PATIENT)
        appointment = Appointment(
            appointment_id=uuid4().hex, date=date, doctor=doctor, patient=patient
        )
        self._appointments.append(appointment)
        self.assign_patient(doctor.user_id, patient.user_id)
        return appointment

    def _set_status(self, index: int, status: AppointmentStatus) -> Appointment:
        if not 0 <= index < len(self._appointments):
            raise MissingDataError(f"Invalid appointment index: {index}")
        updated = self._appointments[index].model_copy(update={"status": status})
        self._appointments[index] = updated
        self.logger.info("appointment_status_changed", index=index, status=status.value)
        return updated

    def approve_appointment(self, index: int) -> Appointment:
        return self._set_status(index, AppointmentStatus.APPROVED)

    def cancel_appointment(self, index: int) -> Appointment:
        return self._set_status(index, AppointmentStatus.CANCELLED)

    def appointments(self) -> list[Appointment]:
        return list(self._appointments)

    def add_feedback(self, patient_id: str, feedback: Feedback) -> None:
        patient = self._require(patient_id, Role.PATIENT)
        self._feedback[patient.user_id].append(feedback)

    def feedback_for(self, patient_id: str) -> list[Feedback]:
        patient = self._require(patient_id, Role.PATIENT)
        return list(self._feedback[patient.user_id])

    def prescriptions(self) -> list[Prescription]:
        """Every prescription attached to any patient's feedback."""
        return collect_prescriptions(
            f for patient in self.users(Role.PATIENT) for f in self._feedback[patient.user_id]
        )

    def record_vital(self, patient_id: str, vital: VitalSign) -> None:
        patient = self._require(patient_id, Role.PATIENT)
        self._vitals[patient.user_id].append(vital)

    def vitals_for(self, patient_id: str) -> list[VitalSign]:
        patient = self._require(patient_id, Role.PATIENT)
        return list(self._vitals[patient.user_id])
