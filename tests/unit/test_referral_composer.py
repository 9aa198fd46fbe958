from datetime import datetime, timezone

import pytest

from impcg_companion.modules.audit_trail import AuditAction
from impcg_companion.modules.referral_composer import (
    STANDARD_REVIEW,
    URGENT_TRANSFER,
    compose_referral,
    generate_referral,
)
from impcg_companion.modules.schemas import Consciousness, PatientRecord, TriageColor, VitalsSnapshot


def make_record(color=TriageColor.RED, **vitals):
    return PatientRecord(
        id="rec-42",
        timestamp=datetime(2026, 3, 1, 9, 30, tzinfo=timezone.utc),
        vitals=VitalsSnapshot(**vitals),
        triage_result=color,
        notes="",
    )


class TestComposeReferral:

    def test_red_referral_requests_transfer(self):
        text = compose_referral(make_record(systolic_bp=170, diastolic_bp=112, heart_rate=96))

        assert text.startswith("**URGENT REFERRAL NOTE**")
        assert "Time: 2026-03-01 09:30" in text
        assert "Classification: RED (CRITICAL)" in text
        assert "BP: 170/112 mmHg" in text
        assert "HR: 96 bpm" in text
        assert "CRITICAL: Patient exhibits signs" in text
        assert text.endswith(URGENT_TRANSFER)

    def test_missing_fields_are_marked(self):
        text = compose_referral(make_record(heart_rate=130))

        assert "BP: MISSING" in text
        assert "RR: MISSING" in text
        assert "Temp: MISSING" in text
        assert "Gestational Age: MISSING" in text
        assert "Notes: None recorded" in text

    def test_partial_blood_pressure_is_missing(self):
        assert "BP: MISSING" in compose_referral(make_record(systolic_bp=150))

    def test_yellow_referral_wording(self):
        text = compose_referral(make_record(TriageColor.YELLOW, heart_rate=110, temperature=37.5))

        assert "Classification: YELLOW (Observation)" in text
        assert "URGENT: Abnormal vitals" in text
        assert "Temp: 37.5 °C" in text
        assert text.endswith(STANDARD_REVIEW)

    def test_green_referral_is_routine(self):
        text = compose_referral(make_record(TriageColor.GREEN, heart_rate=80))
        assert "Routine referral." in text

    def test_consciousness_is_reported(self):
        text = compose_referral(make_record(consciousness=Consciousness.PAIN))
        assert "Consciousness: PAIN" in text

    def test_compose_is_deterministic(self):
        record = make_record(systolic_bp=120, diastolic_bp=80)
        assert compose_referral(record) == compose_referral(record)


class TestGenerateReferral:

    def test_generation_is_audited(self, audit):
        record = make_record(heart_rate=130)
        text = generate_referral(record, audit)

        assert text == compose_referral(record)
        audit.record.assert_called_once_with(
            AuditAction.GENERATE_REFERRAL,
            "Referral generated for Patient rec-42. Triage: RED",
            "rec-42",
        )

    def test_compose_does_not_audit(self, audit):
        compose_referral(make_record(heart_rate=130))
        audit.record.assert_not_called()
