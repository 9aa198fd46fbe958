"""
BANC Hypertension Risk Classifier

Tiers blood pressure plus urine dipstick protein into LOW / HIGH / CRITICAL.
Gestational age is captured and logged with each assessment but does not
enter the decision rules, and a 1+ dipstick is recorded without being used
by any tier.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .audit_trail import AuditAction, AuditSink, NullAuditTrail
from .schemas import RiskLevel

logger = logging.getLogger(__name__)


SEVERE_SBP = 160  # mmHg
SEVERE_DBP = 110  # mmHg
HIGH_SBP = 140    # mmHg
HIGH_DBP = 90     # mmHg
SIGNIFICANT_PROTEIN = 2  # dipstick 2+

RISK_GUIDANCE: Dict[RiskLevel, Dict[str, str]] = {
    RiskLevel.CRITICAL: {
        'title': 'SEVERE HYPERTENSION / ECLAMPSIA RISK',
        'action': 'START MAGNESIUM SULPHATE',
    },
    RiskLevel.HIGH: {
        'title': 'POSSIBLE PRE-ECLAMPSIA',
        'action': 'REFER TO HOSPITAL TODAY',
    },
    RiskLevel.LOW: {
        'title': 'ROUTINE ANC',
        'action': 'CONTINUE STANDARD CARE',
    },
}


@dataclass(frozen=True)
class BancAssessment:
    risk_level: RiskLevel
    title: str
    action: str
    systolic: int
    diastolic: int
    protein_dipstick: int
    gestational_age_weeks: Optional[int] = None


def _parse_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    try:
        return int(str(value).strip())
    except ValueError:
        return None


def classify_risk(systolic: Any, diastolic: Any, protein_dipstick: int) -> Optional[RiskLevel]:
    """
    Classify hypertensive risk.

    Args:
        systolic: Systolic BP (int or numeric string)
        diastolic: Diastolic BP (int or numeric string)
        protein_dipstick: Urine protein, 0 (negative) to 3 (3+)

    Returns:
        RiskLevel, or None when either BP value is not a valid integer
    """
    if protein_dipstick not in (0, 1, 2, 3):
        raise ValueError(f"protein dipstick must be 0-3, got {protein_dipstick!r}")

    sys_bp = _parse_int(systolic)
    dia_bp = _parse_int(diastolic)
    if sys_bp is None or dia_bp is None:
        return None

    if sys_bp >= SEVERE_SBP or dia_bp >= SEVERE_DBP:
        return RiskLevel.CRITICAL
    if (sys_bp >= HIGH_SBP or dia_bp >= HIGH_DBP) and protein_dipstick >= SIGNIFICANT_PROTEIN:
        return RiskLevel.HIGH
    return RiskLevel.LOW


def assess_banc(systolic: Any, diastolic: Any, protein_dipstick: int,
                gestational_age_weeks: Any = None,
                audit: Optional[AuditSink] = None) -> Optional[BancAssessment]:
    audit = audit or NullAuditTrail()

    risk = classify_risk(systolic, diastolic, protein_dipstick)
    if risk is None:
        return None

    sys_bp = _parse_int(systolic)
    dia_bp = _parse_int(diastolic)
    ga = _parse_int(gestational_age_weeks)
    ga_text = 'Unspecified' if ga is None else f"{ga}w"

    if risk == RiskLevel.CRITICAL:
        logger.warning(f"CRITICAL BANC risk: BP {sys_bp}/{dia_bp}")

    audit.record(
        AuditAction.RISK_ASSESSMENT,
        f"Calculated BANC Risk: {risk.value}. Inputs: BP {sys_bp}/{dia_bp}, "
        f"Protein {protein_dipstick}+, GA: {ga_text}"
    )

    guidance = RISK_GUIDANCE[risk]
    return BancAssessment(
        risk_level=risk,
        title=guidance['title'],
        action=guidance['action'],
        systolic=sys_bp,
        diastolic=dia_bp,
        protein_dipstick=protein_dipstick,
        gestational_age_weeks=ga,
    )
