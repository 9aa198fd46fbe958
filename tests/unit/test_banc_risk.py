import pytest

from impcg_companion.modules.audit_trail import AuditAction
from impcg_companion.modules.banc_risk import RISK_GUIDANCE, assess_banc, classify_risk
from impcg_companion.modules.schemas import RiskLevel


class TestClassifyRisk:

    def test_severe_pressure_is_critical_without_protein(self):
        assert classify_risk(165, 100, 0) == RiskLevel.CRITICAL

    def test_severe_diastolic_alone_is_critical(self):
        assert classify_risk(130, 110, 0) == RiskLevel.CRITICAL

    def test_raised_pressure_with_significant_protein_is_high(self):
        assert classify_risk(145, 95, 2) == RiskLevel.HIGH
        assert classify_risk(130, 90, 3) == RiskLevel.HIGH

    def test_raised_pressure_with_trace_protein_is_low(self):
        # 1+ is recorded but no tier uses it
        assert classify_risk(145, 95, 1) == RiskLevel.LOW

    def test_normal_pressure_is_low(self):
        assert classify_risk(130, 80, 0) == RiskLevel.LOW

    def test_numeric_strings_are_accepted(self):
        assert classify_risk("165", " 100 ", 0) == RiskLevel.CRITICAL

    @pytest.mark.parametrize("systolic,diastolic", [("", 80), ("abc", 80), (120, None), (None, None)])
    def test_unparsable_pressure_has_no_result(self, systolic, diastolic):
        assert classify_risk(systolic, diastolic, 0) is None

    @pytest.mark.parametrize("dipstick", [-1, 4])
    def test_dipstick_out_of_range_raises(self, dipstick):
        with pytest.raises(ValueError):
            classify_risk(120, 80, dipstick)


class TestAssessBanc:

    def test_critical_assessment_carries_guidance(self, audit):
        result = assess_banc(165, 100, 0, audit=audit)
        assert result.risk_level == RiskLevel.CRITICAL
        assert result.title == RISK_GUIDANCE[RiskLevel.CRITICAL]['title']
        assert result.action == 'START MAGNESIUM SULPHATE'

    def test_assessment_is_audited_with_inputs(self, audit):
        assess_banc(145, 95, 2, gestational_age_weeks=32, audit=audit)
        audit.record.assert_called_once_with(
            AuditAction.RISK_ASSESSMENT,
            "Calculated BANC Risk: HIGH. Inputs: BP 145/95, Protein 2+, GA: 32w",
        )

    def test_missing_gestational_age_is_unspecified(self, audit):
        assess_banc(120, 80, 0, audit=audit)
        details = audit.record.call_args[0][1]
        assert details.endswith("GA: Unspecified")

    def test_gestational_age_does_not_change_tier(self):
        early = assess_banc(145, 95, 1, gestational_age_weeks=12)
        late = assess_banc(145, 95, 1, gestational_age_weeks=39)
        assert early.risk_level == late.risk_level == RiskLevel.LOW

    def test_invalid_input_is_not_audited(self, audit):
        assert assess_banc("x", 80, 0, audit=audit) is None
        audit.record.assert_not_called()
