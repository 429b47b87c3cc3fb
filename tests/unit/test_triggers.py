"""
Unit Tests for the Trigger Filter

Tests for fuzzy trigger matching and per-rule organ/biomarker filtering.
"""
import pytest

from medsafety.core.clinical import TriggerFilter, fuzzy_match, matches_any
from medsafety.core.knowledge import Rule, RULE_COLUMNS
from medsafety.core.signals import BiomarkerSignal, Direction, OrganSignal, OrganStatus

from tests.factories import rule_row


def make_rule(**kwargs) -> Rule:
    row = dict(zip(RULE_COLUMNS, rule_row(kwargs.pop("drug_class", "Test Class"), "testmed", **kwargs)))
    return Rule.from_row(row, row_index=2)


@pytest.fixture
def trigger_filter() -> TriggerFilter:
    return TriggerFilter()


class TestFuzzyMatch:

    def test_substring_either_direction(self):
        assert fuzzy_match("liver", "liver function")
        assert fuzzy_match("liver function", "liver")

    def test_case_and_whitespace_ignored(self):
        assert fuzzy_match("  Kidney ", "KIDNEY")

    def test_unrelated_terms(self):
        assert not fuzzy_match("glucose", "globulin")

    def test_empty_never_matches(self):
        assert not fuzzy_match("", "kidney")
        assert not fuzzy_match("kidney", "")
        assert not fuzzy_match("", "")

    def test_matches_any(self):
        assert matches_any(["heart", "liver"], "liver")
        assert not matches_any([], "liver")


class TestFilterOrgans:

    def test_tiers_are_matched_separately(self, trigger_filter):
        rule = make_rule(problematic="kidney", dysfunctional="liver")
        signals = [
            OrganSignal("kidney", OrganStatus.PROBLEMATIC, 7),
            OrganSignal("liver", OrganStatus.PROBLEMATIC, 8),
            OrganSignal("kidney", OrganStatus.DYSFUNCTIONAL, 10),
        ]
        kept = trigger_filter.filter_organs(rule, signals)
        assert [s.display_text for s in kept] == ["problematic kidney"]

    def test_stressed_never_kept(self, trigger_filter):
        rule = make_rule(problematic="thyroid", dysfunctional="thyroid")
        assert trigger_filter.filter_organs(rule, [OrganSignal("thyroid", OrganStatus.STRESSED, 6)]) == []

    def test_sorted_by_score_stable(self, trigger_filter):
        rule = make_rule(problematic="kidney, liver, heart", dysfunctional="lungs")
        signals = [
            OrganSignal("kidney", OrganStatus.PROBLEMATIC, 7),
            OrganSignal("liver", OrganStatus.PROBLEMATIC, 8),
            OrganSignal("heart", OrganStatus.PROBLEMATIC, 7),
            OrganSignal("lungs", OrganStatus.DYSFUNCTIONAL, 9),
        ]
        kept = trigger_filter.filter_organs(rule, signals)
        assert [s.organ_name for s in kept] == ["lungs", "liver", "kidney", "heart"]

    def test_fuzzy_organ_names(self, trigger_filter):
        rule = make_rule(dysfunctional="liver function")
        kept = trigger_filter.filter_organs(rule, [OrganSignal("liver", OrganStatus.DYSFUNCTIONAL, 9)])
        assert len(kept) == 1


class TestFilterBiomarkers:

    def test_directional_trigger_keeps_direction(self, trigger_filter):
        rule = make_rule(high="Creatinine")
        signals = [BiomarkerSignal(Direction.HIGH, "Creatinine", 2.0)]
        assert trigger_filter.filter_biomarkers(rule, signals) == ["abnormal high Creatinine"]

    def test_wrong_direction_excluded(self, trigger_filter):
        rule = make_rule(high="Sodium")
        signals = [BiomarkerSignal(Direction.LOW, "Sodium", 120)]
        assert trigger_filter.filter_biomarkers(rule, signals) == []

    def test_abnormal_trigger_uses_generic_text(self, trigger_filter):
        rule = make_rule(abnormal="ALT")
        signals = [BiomarkerSignal(Direction.HIGH, "ALT", 90)]
        assert trigger_filter.filter_biomarkers(rule, signals) == ["abnormal ALT"]

    def test_directional_preferred_over_abnormal(self, trigger_filter):
        rule = make_rule(abnormal="Potassium", high="Potassium")
        signals = [BiomarkerSignal(Direction.HIGH, "Potassium", 6.0)]
        assert trigger_filter.filter_biomarkers(rule, signals) == ["abnormal high Potassium"]

    def test_each_biomarker_reported_once(self, trigger_filter):
        rule = make_rule(abnormal="Potassium", high="Potassium")
        signals = [
            BiomarkerSignal(Direction.HIGH, "Potassium", 6.0),
            BiomarkerSignal(Direction.LOW, "potassium", 3.0),
        ]
        assert trigger_filter.filter_biomarkers(rule, signals) == ["abnormal high Potassium"]

    def test_no_false_match(self, trigger_filter):
        rule = make_rule(abnormal="glucose")
        signals = [BiomarkerSignal(Direction.HIGH, "Globulin", 5.0)]
        assert trigger_filter.filter_biomarkers(rule, signals) == []


class TestApply:

    def test_texts(self, trigger_filter):
        rule = make_rule(problematic="kidney", dysfunctional="liver", high="Creatinine")
        result = trigger_filter.apply(
            rule,
            [
                OrganSignal("kidney", OrganStatus.PROBLEMATIC, 8),
                OrganSignal("liver", OrganStatus.DYSFUNCTIONAL, 10),
                OrganSignal("heart", OrganStatus.PROBLEMATIC, 7),
            ],
            [
                BiomarkerSignal(Direction.HIGH, "Creatinine", 2.0),
                BiomarkerSignal(Direction.LOW, "Sodium", 120),
            ],
        )
        assert result.organs_text == "dysfunctional liver, problematic kidney"
        assert result.biomarkers_text == "abnormal high Creatinine"

    def test_empty_result(self, trigger_filter):
        result = trigger_filter.apply(make_rule(), [], [])
        assert result.organs_text == ""
        assert result.biomarkers_text == ""
