"""
Violation Engine Tests

Per-rule behaviour, confidence and staleness, deterministic ids, and the
targeted vs full re-scan contract.
"""
import pytest

from sovereign.models.intelligence import CONFLICT, Severity
from sovereign.services.violations import (
    RULE_BALANCE_PAST_DUE,
    RULE_CHARGE_OFF_INCONSISTENT,
    RULE_CLOSED_DEROGATORY,
    RULE_MISSING_OPEN_DATE,
    TradelineRules,
    evaluate_tradeline,
    staleness_penalty,
    violation_id,
)

from factories import NOW, balance_past_due_tradeline, make_field, make_profile, make_tradeline


def rule_ids(violations):
    return [v.rule_id for v in violations]


# =============================================================================
# TEST: individual rules
# =============================================================================

class TestTradelineRules:

    def test_clean_tradeline_has_no_findings(self):
        assert evaluate_tradeline(make_tradeline(), NOW) == []

    @pytest.mark.parametrize("past_due", [1, 500, 12000.5])
    def test_balance_past_due_always_one_high_finding(self, past_due):
        tradeline = make_tradeline(balance=0, past_due=past_due)

        findings = [v for v in evaluate_tradeline(tradeline, NOW) if v.rule_id == RULE_BALANCE_PAST_DUE]

        assert len(findings) == 1
        assert findings[0].severity is Severity.HIGH
        assert findings[0].related_entity_id == tradeline.id

    def test_balance_past_due_not_fired_with_balance(self):
        assert TradelineRules.check_balance_past_due(make_tradeline(balance=10, past_due=500), 0) is None

    def test_balance_past_due_skips_conflicted_balance(self):
        tradeline = make_tradeline(balance=0, past_due=500)
        tradeline.balance = make_field(CONFLICT, 95)
        assert TradelineRules.check_balance_past_due(tradeline, 0) is None

    def test_closed_derogatory(self):
        tradeline = make_tradeline(date_closed="2024-06-01", status="60 days late", status_code="78")

        findings = evaluate_tradeline(tradeline, NOW)

        assert rule_ids(findings) == [RULE_CLOSED_DEROGATORY]
        assert findings[0].severity is Severity.MEDIUM

    def test_closed_but_current_is_fine(self):
        tradeline = make_tradeline(date_closed="2024-06-01", status_code="11")
        assert evaluate_tradeline(tradeline, NOW) == []

    def test_charge_off_with_current_status(self):
        tradeline = make_tradeline(status="Current", status_code="97")

        findings = evaluate_tradeline(tradeline, NOW)

        assert rule_ids(findings) == [RULE_CHARGE_OFF_INCONSISTENT]
        assert findings[0].severity is Severity.HIGH

    def test_charge_off_with_charge_off_status_is_consistent(self):
        tradeline = make_tradeline(status="Charged off", status_code="97")
        assert evaluate_tradeline(tradeline, NOW) == []

    def test_missing_open_date(self):
        tradeline = make_tradeline(date_opened=None)

        findings = evaluate_tradeline(tradeline, NOW)

        assert rule_ids(findings) == [RULE_MISSING_OPEN_DATE]
        assert findings[0].severity is Severity.LOW
        assert findings[0].confidence == 50

    def test_missing_open_date_needs_populated_record(self):
        tradeline = make_tradeline(date_opened=None, account_number="")
        assert evaluate_tradeline(tradeline, NOW) == []

    def test_malformed_values_never_raise(self):
        tradeline = make_tradeline()
        tradeline.balance = make_field({"unexpected": "shape"})
        tradeline.past_due_amount = make_field("lots")
        tradeline.status_code = make_field(None)
        assert evaluate_tradeline(tradeline, NOW) == []


# =============================================================================
# TEST: confidence
# =============================================================================

class TestFindingConfidence:

    def test_average_of_contributing_fields(self):
        tradeline = make_tradeline(balance=0, past_due=500)
        tradeline.balance = make_field(0, 90)
        tradeline.past_due_amount = make_field(500, 70)

        finding = TradelineRules.check_balance_past_due(tradeline, 0)

        assert finding.confidence == 80

    @pytest.mark.parametrize("reported,penalty", [
        ("2026-01-01", 0),     # 14 days
        ("2025-10-01", -15),   # 106 days
        ("2025-08-01", -30),   # 167 days
        (None, 0),
    ])
    def test_staleness_penalty(self, reported, penalty):
        tradeline = make_tradeline(date_reported=reported)
        assert staleness_penalty(tradeline, NOW) == penalty

    def test_stale_record_lowers_confidence(self):
        tradeline = balance_past_due_tradeline(date_reported="2025-08-01")

        (finding,) = evaluate_tradeline(tradeline, NOW)

        assert finding.confidence == 70

    def test_confidence_floored_at_zero(self):
        tradeline = balance_past_due_tradeline(date_reported="2020-01-01", confidence=20)

        (finding,) = evaluate_tradeline(tradeline, NOW)

        assert finding.confidence == 0


# =============================================================================
# TEST: ViolationEngine.scan_profile
# =============================================================================

class TestScanProfile:

    def test_full_scan_replaces_active_violations(self, violation_engine):
        profile = make_profile(balance_past_due_tradeline("TL-1"), make_tradeline(id="TL-2"))
        profile.active_violations = ["stale"]

        violations = violation_engine.scan_profile(profile)

        assert rule_ids(violations) == [RULE_BALANCE_PAST_DUE]
        assert profile.active_violations == violations
        assert profile.tradelines[0].violations == violations
        assert profile.tradelines[1].violations == []

    def test_violation_ids_are_stable_across_scans(self, violation_engine):
        profile = make_profile(balance_past_due_tradeline("TL-1"))

        first = violation_engine.scan_profile(profile)
        second = violation_engine.scan_profile(profile)

        assert first[0] is not second[0]
        assert first[0].id == second[0].id == violation_id("TL-1", RULE_BALANCE_PAST_DUE)

    def test_targeted_scan_preserves_untargeted_tradelines(self, violation_engine):
        tl1 = balance_past_due_tradeline("TL-1")
        tl2 = balance_past_due_tradeline("TL-2")
        profile = make_profile(tl1, tl2)
        violation_engine.scan_profile(profile)
        untouched = tl2.violations

        # Fix TL-2's data without targeting it: its old finding must survive
        tl2.past_due_amount = make_field(0)
        tl1.past_due_amount = make_field(0)
        violations = violation_engine.scan_profile(profile, target_entity_ids=["TL-1"])

        assert tl1.violations == []
        assert tl2.violations is untouched
        assert [v.related_entity_id for v in violations] == ["TL-2"]
        assert profile.active_violations == violations

    def test_targeted_scan_with_empty_set_rescans_nothing(self, violation_engine):
        profile = make_profile(balance_past_due_tradeline("TL-1"))

        violations = violation_engine.scan_profile(profile, target_entity_ids=[])

        assert violations == []
        assert profile.tradelines[0].violations == []
