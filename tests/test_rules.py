"""Tests for match-rule evaluation."""

import logging

import pytest

from src.classifier.rules import matches, matches_any
from src.schema.models import MatchRule, MatchRuleKind


def _rule(kind, value, case_sensitive=False):
    return MatchRule(kind=kind, value=value, case_sensitive=case_sensitive)


# ---------------------------------------------------------------------------
# contains
# ---------------------------------------------------------------------------

class TestContains:
    def test_case_insensitive(self):
        assert matches(MatchRule.contains("men balance"), "MEN BALANCE PRO")

    def test_case_sensitive_rejects_other_case(self):
        assert not matches(MatchRule.contains("men balance", case_sensitive=True),
                           "MEN BALANCE PRO")

    def test_case_sensitive_same_case(self):
        assert matches(MatchRule.contains("MEN", case_sensitive=True), "MEN BALANCE")

    def test_substring_anywhere(self):
        assert matches(MatchRule.contains("t-max"), "Men Balance + T-MAX Upsell")

    def test_no_match(self):
        assert not matches(MatchRule.contains("glpro"), "Free Sugar Pro")


# ---------------------------------------------------------------------------
# Fail-closed behaviour
# ---------------------------------------------------------------------------

class TestFailClosed:
    @pytest.mark.parametrize("candidate", ["", None])
    def test_empty_candidate(self, candidate):
        assert not matches(MatchRule.contains("x"), candidate)

    @pytest.mark.parametrize("value", ["", "   "])
    def test_empty_value(self, value):
        assert not matches(MatchRule.contains(value), "anything")

    def test_invalid_regex_never_matches(self, caplog):
        rule = _rule(MatchRuleKind.REGEX, "men(balance")
        with caplog.at_level(logging.WARNING):
            assert not matches(rule, "men(balance")

    def test_empty_rule_list(self):
        assert not matches_any([], "Men Balance")


# ---------------------------------------------------------------------------
# Other rule kinds
# ---------------------------------------------------------------------------

class TestRuleKinds:
    @pytest.mark.parametrize("kind, value, candidate, expected", [
        (MatchRuleKind.STARTS_WITH, "men", "Men Balance", True),
        (MatchRuleKind.STARTS_WITH, "balance", "Men Balance", False),
        (MatchRuleKind.ENDS_WITH, "balance", "Men Balance", True),
        (MatchRuleKind.ENDS_WITH, "men", "Men Balance", False),
        (MatchRuleKind.EXACT, "men balance", "MEN BALANCE", True),
        (MatchRuleKind.EXACT, "men balance", "Men Balance Pro", False),
        (MatchRuleKind.REGEX, r"^gl\s?pro", "GL Pro 3 bottles", True),
        (MatchRuleKind.REGEX, r"^gl\s?pro", "Super GLPro", False),
    ])
    def test_kind(self, kind, value, candidate, expected):
        assert matches(_rule(kind, value), candidate) is expected

    def test_regex_case_sensitive(self):
        assert not matches(_rule(MatchRuleKind.REGEX, "glpro", True), "GLPRO")
        assert matches(_rule(MatchRuleKind.REGEX, "GLPRO", True), "GLPRO")


class TestMatchesAny:
    def test_any_rule_matches(self):
        rules = [MatchRule.contains("glpro"), MatchRule.contains("gl pro")]
        assert matches_any(rules, "GL Pro")
        assert matches_any(rules, "GLPro")
        assert not matches_any(rules, "Free Sugar")

    def test_empty_rule_does_not_block_others(self):
        rules = [MatchRule.contains(""), MatchRule.contains("grr")]
        assert matches_any(rules, "GRR 6 bottles")
