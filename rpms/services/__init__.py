"""
Core services for the alerting core.

This package contains threshold evaluation, the notification channels,
alert dispatch and reminder scheduling.
"""

from .alert_dispatcher import AlertDispatcher, DoctorDirectory
from .notifications import (
    EmailChannel,
    NotificationChannel,
    NotificationService,
    Result,
    SMSChannel,
    SmtpTransport,
    build_channel,
)
from .reminders import ReminderScheduler
from .thresholds import ThresholdEvaluator, evaluate, is_within_threshold

__all__ = [
    "AlertDispatcher",
    "DoctorDirectory",
    "EmailChannel",
    "NotificationChannel",
    "NotificationService",
    "ReminderScheduler",
    "Result",
    "SMSChannel",
    "SmtpTransport",
    "ThresholdEvaluator",
    "build_channel",
    "evaluate",
    "is_within_threshold",
]
