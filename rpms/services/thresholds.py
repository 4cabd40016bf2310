"""
Vital-sign threshold evaluation.

Everything here is pure: no I/O, no logging, no side effects. A malformed
blood-pressure string is reported as a verdict, never raised, so callers can
tell it apart from a well-formed reading that is out of range.
"""

import math
import re

from rpms.domain.errors import ReadingValidationError
from rpms.domain.models import (
    DEFAULT_POLICY,
    BloodPressure,
    ThresholdPolicy,
    ThresholdVerdict,
    VerdictReason,
    VitalKind,
    VitalSign,
)

_NUMBER = re.compile(r"[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


def _parse_number(token: str) -> float | None:
    token = token.strip()
    if not _NUMBER.fullmatch(token):
        return None
    value = float(token)
    return value if math.isfinite(value) else None


def parse_blood_pressure(text: str) -> BloodPressure:
    """Parse "systolic/diastolic" into numbers.

    Raises:
        ReadingValidationError: unless the text splits into exactly two real numbers.
    """
    parts = text.split("/")
    if len(parts) != 2:
        raise ReadingValidationError(
            "blood_pressure", "Invalid blood pressure format. Please use 'systolic/diastolic'."
        )
    systolic, diastolic = (_parse_number(p) for p in parts)
    if systolic is None or diastolic is None:
        raise ReadingValidationError(
            "blood_pressure", "Invalid blood pressure values. Please enter numbers."
        )
    return BloodPressure(systolic=systolic, diastolic=diastolic)


def evaluate(vital: VitalSign | None, policy: ThresholdPolicy = DEFAULT_POLICY) -> ThresholdVerdict:
    """Decide whether a reading is within the policy's normal ranges.

    No data is not abnormal: ``evaluate(None)`` is within threshold.
    """
    if vital is None:
        return ThresholdVerdict(within_threshold=True, reason=VerdictReason.NO_DATA)

    try:
        bp = parse_blood_pressure(vital.blood_pressure)
    except ReadingValidationError:
        return ThresholdVerdict(
            within_threshold=False,
            reason=VerdictReason.MALFORMED_READING,
            breached=[VitalKind.BLOOD_PRESSURE],
        )

    checks = {
        VitalKind.HEART_RATE: policy.heart_rate_min <= vital.heart_rate <= policy.heart_rate_max,
        VitalKind.OXYGEN_LEVEL: vital.oxygen_level >= policy.oxygen_level_min,
        VitalKind.BLOOD_PRESSURE: (
            policy.systolic_min <= bp.systolic <= policy.systolic_max
            and policy.diastolic_min <= bp.diastolic <= policy.diastolic_max
        ),
        VitalKind.TEMPERATURE: (
            policy.temperature_min <= vital.temperature <= policy.temperature_max
        ),
    }
    breached = [kind for kind, ok in checks.items() if not ok]

    if breached:
        return ThresholdVerdict(
            within_threshold=False, reason=VerdictReason.OUT_OF_RANGE, breached=breached
        )
    return ThresholdVerdict(within_threshold=True, reason=VerdictReason.WITHIN_RANGE)


def is_within_threshold(vital: VitalSign | None, policy: ThresholdPolicy = DEFAULT_POLICY) -> bool:
    return evaluate(vital, policy).within_threshold


class ThresholdEvaluator:
    """Policy-bound evaluator, injected into the alert dispatcher."""

    def __init__(self, policy: ThresholdPolicy = DEFAULT_POLICY) -> None:
        self.policy = policy

    def evaluate(self, vital: VitalSign | None) -> ThresholdVerdict:
        return evaluate(vital, self.policy)


def parse_vital_reading(
    heart_rate: str, oxygen_level: str, blood_pressure: str, temperature: str
) -> VitalSign:
    """Build a VitalSign from raw form input.

    This is the boundary where malformed input is rejected, so a bad reading
    never reaches the dispatcher as a crash.

    Raises:
        ReadingValidationError: naming the first field that failed to parse.
    """
    try:
        hr = int(heart_rate.strip())
    except ValueError:
        raise ReadingValidationError("heart_rate", "must be a whole number") from None
    try:
        o2 = int(oxygen_level.strip())
    except ValueError:
        raise ReadingValidationError("oxygen_level", "must be a whole number") from None

    parse_blood_pressure(blood_pressure)

    temp = _parse_number(temperature)
    if temp is None:
        raise ReadingValidationError("temperature", "must be a number")

    return VitalSign(
        heart_rate=hr, oxygen_level=o2, blood_pressure=blood_pressure.strip(), temperature=temp
    )
