"""
SBAR Referral Composer

Renders a saved patient record as a fixed-layout handoff note
(Situation, Background, Assessment, Recommendation). ``compose_referral``
is pure; ``generate_referral`` adds the audit event for callers that
produce a referral for a clinician.
"""

import logging
from typing import Optional

from .audit_trail import AuditAction, AuditSink, NullAuditTrail
from .schemas import PatientRecord, TriageColor

logger = logging.getLogger(__name__)


MISSING = 'MISSING'

ASSESSMENT_TEXT = {
    TriageColor.RED: "CRITICAL: Patient exhibits signs of hemodynamic instability or severe distress.",
    TriageColor.YELLOW: "URGENT: Abnormal vitals detected requiring medical review.",
}
ROUTINE_ASSESSMENT = "Routine referral."

URGENT_TRANSFER = "URGENT AMBULANCE TRANSFER REQUIRED. Please accept patient for stabilization."
STANDARD_REVIEW = "Review at District Hospital."


def _num(value: float) -> str:
    return f"{value:g}"


def _with_unit(value: Optional[float], unit: str) -> str:
    if value is None:
        return MISSING
    return f"{_num(value)} {unit}"


def compose_referral(record: PatientRecord) -> str:
    v = record.vitals

    if v.systolic_bp is not None and v.diastolic_bp is not None:
        bp = f"{_num(v.systolic_bp)}/{_num(v.diastolic_bp)} mmHg"
    else:
        bp = MISSING
    hr = _with_unit(v.heart_rate, 'bpm')
    rr = _with_unit(v.respiratory_rate, '/min')
    temp = _with_unit(v.temperature, '°C')

    severity = 'CRITICAL' if record.triage_result == TriageColor.RED else 'Observation'
    ga = MISSING if record.gestational_age_weeks is None else f"{_num(record.gestational_age_weeks)} weeks"
    notes = record.notes.strip() or 'None recorded'

    assessment = ASSESSMENT_TEXT.get(record.triage_result, ROUTINE_ASSESSMENT)
    recommendation = URGENT_TRANSFER if record.triage_result == TriageColor.RED else STANDARD_REVIEW

    lines = [
        "**URGENT REFERRAL NOTE**",
        f"Time: {record.timestamp.strftime('%Y-%m-%d %H:%M')}",
        "",
        "SITUATION:",
        f"Classification: {record.triage_result.value} ({severity})",
        "",
        "BACKGROUND:",
        f"Gestational Age: {ga}",
        f"Notes: {notes}",
        "",
        "VITALS:",
        f"BP: {bp}",
        f"HR: {hr}",
        f"RR: {rr}",
        f"Temp: {temp}",
        f"Consciousness: {v.consciousness.value}",
        "",
        "ASSESSMENT:",
        assessment,
        "",
        "RECOMMENDATION:",
        recommendation,
    ]
    return "\n".join(lines)


def generate_referral(record: PatientRecord, audit: Optional[AuditSink] = None) -> str:
    audit = audit or NullAuditTrail()
    text = compose_referral(record)
    audit.record(
        AuditAction.GENERATE_REFERRAL,
        f"Referral generated for Patient {record.id}. Triage: {record.triage_result.value}",
        record.id,
    )
    logger.info(f"Referral generated for {record.id}")
    return text
