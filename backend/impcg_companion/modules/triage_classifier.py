"""
Obstetric Triage Classifier
Maps a vitals snapshot to a GREEN / YELLOW / RED acuity color
Author: IMPCG Companion Development Team
Version: 2.0.0

Thresholds follow a simplified Modified Early Obstetric Warning Score
(MEOWS). The classifier is a pure function: callers re-run it on every
form change and must handle the "no result" case.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .schemas import Consciousness, TriageColor, VitalsSnapshot
from .vitals_validator import validate_vitals

logger = logging.getLogger(__name__)


TRIAGE_THRESHOLDS = {
    'SYSTOLIC_RED_LOW': 90,
    'SYSTOLIC_RED_HIGH': 160,
    'DIASTOLIC_RED_HIGH': 110,
    'HR_RED_LOW': 50,
    'HR_RED_HIGH': 120,
    'RR_RED_LOW': 10,
    'RR_RED_HIGH': 30,
    'TEMP_RED_LOW': 35.0,
    'TEMP_RED_HIGH': 38.0,
    'HR_YELLOW_LOW': 100,
    'SYSTOLIC_YELLOW_LOW': 140,
}


@dataclass(frozen=True)
class TriageAssessment:
    color: Optional[TriageColor]
    warning: Optional[str] = None


def _outside(value: Optional[float], low: Optional[float], high: float) -> bool:
    """True when value is present and below ``low`` or at/above ``high``."""
    if value is None:
        return False
    if low is not None and value < low:
        return True
    return value >= high


def _within(value: Optional[float], low: float, high: float) -> bool:
    return value is not None and low <= value < high


def _is_red(snapshot: VitalsSnapshot) -> bool:
    t = TRIAGE_THRESHOLDS
    if snapshot.consciousness != Consciousness.ALERT:
        return True
    return (
        _outside(snapshot.systolic_bp, t['SYSTOLIC_RED_LOW'], t['SYSTOLIC_RED_HIGH'])
        or _outside(snapshot.diastolic_bp, None, t['DIASTOLIC_RED_HIGH'])
        or _outside(snapshot.heart_rate, t['HR_RED_LOW'], t['HR_RED_HIGH'])
        or _outside(snapshot.respiratory_rate, t['RR_RED_LOW'], t['RR_RED_HIGH'])
        or _outside(snapshot.temperature, t['TEMP_RED_LOW'], t['TEMP_RED_HIGH'])
    )


def _is_yellow(snapshot: VitalsSnapshot) -> bool:
    t = TRIAGE_THRESHOLDS
    return (
        _within(snapshot.heart_rate, t['HR_YELLOW_LOW'], t['HR_RED_HIGH'])
        or _within(snapshot.systolic_bp, t['SYSTOLIC_YELLOW_LOW'], t['SYSTOLIC_RED_HIGH'])
    )


def assess_triage(snapshot: VitalsSnapshot) -> TriageAssessment:
    validation = validate_vitals(snapshot)
    if not validation.valid:
        return TriageAssessment(color=None, warning=validation.message)

    # An untouched form must not read as GREEN
    if snapshot.is_empty():
        return TriageAssessment(color=None)

    if _is_red(snapshot):
        logger.debug(
            f"RED triage: BP {snapshot.systolic_bp}/{snapshot.diastolic_bp}, "
            f"HR {snapshot.heart_rate}, RR {snapshot.respiratory_rate}, "
            f"T {snapshot.temperature}, AVPU {snapshot.consciousness.value}"
        )
        return TriageAssessment(color=TriageColor.RED)

    if _is_yellow(snapshot):
        return TriageAssessment(color=TriageColor.YELLOW)

    return TriageAssessment(color=TriageColor.GREEN)


def classify(snapshot: VitalsSnapshot) -> Optional[TriageColor]:
    return assess_triage(snapshot).color
