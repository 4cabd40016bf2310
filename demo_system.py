"""
End-to-end walkthrough of the alerting core.

This script exercises:
1. Configuration loading and validation
2. Threshold evaluation of normal, abnormal and malformed readings
3. Alert fan-out to a patient's doctors (one bad address included)
4. Panic button dispatch
5. Reminder batch under both failure policies

No mail leaves the machine: email goes through an in-memory transport.

Run with: uv run python demo_system.py
"""

import asyncio

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from rpms.config import (
    FailurePolicy,
    ReminderSettings,
    SmtpSettings,
    get_config,
    print_config_summary,
)
from rpms.domain.errors import ReadingValidationError
from rpms.domain.models import CareUser, DispatchReport, Feedback, Prescription, Role
from rpms.repository import CareTeamRepository
from rpms.services.alert_dispatcher import AlertDispatcher
from rpms.services.notifications import EmailChannel, configure_logging
from rpms.services.reminders import ReminderScheduler
from rpms.services.thresholds import evaluate, parse_vital_reading

console = Console()


class InMemoryTransport:
    """MailTransport that keeps every delivered message."""

    def __init__(self) -> None:
        self.outbox: list[tuple[str, str, str]] = []

    async def deliver(self, recipient: str, subject: str, body: str) -> None:
        await asyncio.sleep(0.05)
        self.outbox.append((recipient, subject, body))


def seed_repository() -> CareTeamRepository:
    repo = CareTeamRepository()
    repo.add_user(CareUser(user_id="P1", name="Ada", email="ada@example.com"))
    for user_id, name, email in [
        ("D1", "House", "house@example.com"),
        ("D2", "Grey", ""),
        ("D3", "Quinn", "quinn@example.com"),
    ]:
        repo.add_user(CareUser(user_id=user_id, name=name, email=email, role=Role.DOCTOR))
        repo.assign_patient(user_id, "P1")
    return repo


def show_report(title: str, report: DispatchReport) -> None:
    table = Table(title=title)
    table.add_column("Recipient", style="cyan")
    table.add_column("Result", style="white")
    table.add_column("Error", style="red")
    for result in report.results:
        table.add_row(
            result.recipient or "<empty>",
            "✅ SENT" if result.success else "❌ FAILED",
            f"{result.error_kind}: {result.error}" if result.error else "",
        )
    console.print(table)


async def run_demo() -> None:
    config = get_config()
    configure_logging(config.logging)
    print_config_summary()

    # The demo always has credentials so the in-memory transport is reached.
    smtp = SmtpSettings.model_validate(
        config.smtp.model_dump() | {"username": "rpms@example.com", "password": "demo"}
    )
    demo_config = config.model_copy(update={"smtp": smtp})

    transport = InMemoryTransport()
    repo = seed_repository()
    dispatcher = AlertDispatcher.from_config(repo, demo_config, transport)
    patient = repo.get_user("P1")

    console.print(Panel("🩺 Threshold Evaluation", style="blue"))
    readings = [
        ("72", "98", "120/80", "36.6"),
        ("130", "90", "150/95", "38.5"),
        ("72", "98", "abc/80", "36.6"),
    ]
    for raw in readings:
        try:
            vital = parse_vital_reading(*raw)
        except ReadingValidationError as e:
            console.print(f"Rejected at input: {e}", style="yellow")
            continue
        verdict = evaluate(vital)
        console.print(f"{vital.display()} -> {verdict.reason.value}")

    console.print(Panel("🚨 Threshold Breach Fan-out", style="blue"))
    vital = parse_vital_reading("130", "90", "150/95", "38.5")
    repo.record_vital("P1", vital)
    report = await dispatcher.dispatch_threshold_breach(patient, vital)
    show_report("Breach alert", report)

    console.print(Panel("🆘 Panic Button", style="blue"))
    report = await dispatcher.trigger_panic_for_care_team(patient)
    show_report("Panic alert", report)

    console.print(Panel("⏰ Reminders", style="blue"))
    repo.request_appointment("2025-03-25", "D1", "P1")
    repo.approve_appointment(0)
    repo.add_feedback(
        "P1",
        Feedback(
            text="Keep hydrated",
            author=repo.get_user("D1"),
            prescription=Prescription(
                medication="Amoxicillin", dosage="500mg", schedule="twice daily", patient=patient
            ),
        ),
    )
    channel = EmailChannel(smtp, transport)
    for policy in FailurePolicy:
        scheduler = ReminderScheduler(channel, ReminderSettings(failure_policy=policy))
        batch = await scheduler.run(repo.appointments(), repo.prescriptions())
        console.print(
            f"{policy.value}: sent={batch.sent} failed={len(batch.failed)} "
            f"aborted={batch.aborted} skipped={batch.skipped}"
        )

    console.print(f"\n📬 {len(transport.outbox)} messages in the in-memory outbox", style="green")


if __name__ == "__main__":
    try:
        asyncio.run(run_demo())
    except KeyboardInterrupt:
        console.print("\n👋 Demo stopped by user", style="yellow")
