"""QA validator — checks rollup output and arsenals against their contracts.

Rollup checks (``ConsistencyValidator.validate``):
- every additive column: the page totals of all pages add up to the grand total
- recomputing on the same input gives identical rows (classification included)
- no derived figure is NaN or infinite
- no bucket has a negative refund cost

Arsenal checks (``validate_arsenal``):
- the arsenal and each group have a name
- each group has at least one usable match rule
- rules with an empty value are flagged (they never match)
- duplicate group ids and duplicate group orders are flagged

Usage::

    from src.qa.validator import ConsistencyValidator

    validator = ConsistencyValidator(engine)
    result = validator.validate(records, group_by="affiliate", page_size=25)
    assert result.passed, result.summary()
"""

import math
import re
from dataclasses import dataclass, field
from typing import Any

from src.processor.aggregator import DERIVED_FIELDS
from src.processor.paginate import ADDITIVE_COLUMNS, iter_pages, sort_rows
from src.processor.report import GroupBy, RollupEngine
from src.schema.models import Arsenal, MatchRuleKind


REL_TOLERANCE = 1e-9
ABS_TOLERANCE = 1e-6


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass
class Issue:
    """A single QA issue found during validation."""
    severity: str       # "error" or "warning"
    subject: str        # bucket key, group id, column name, or "" for report-level
    category: str       # e.g. "sum_consistency", "determinism", "empty_rule"
    message: str

    def __str__(self) -> str:
        loc = f" {self.subject}" if self.subject else ""
        return f"[{self.severity.upper()}]{loc}: {self.message}"


@dataclass
class QAResult:
    """Aggregated result of QA validation."""
    issues: list[Issue] = field(default_factory=list)

    @property
    def errors(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[Issue]:
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def passed(self) -> bool:
        return len(self.errors) == 0

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)

    def add(self, severity: str, subject: str, category: str, message: str) -> None:
        self.issues.append(Issue(severity, subject, category, message))

    def summary(self) -> str:
        """One-line summary string."""
        status = "PASS" if self.passed else "FAIL"
        return (
            f"QA {status}: {self.error_count} error(s), "
            f"{self.warning_count} warning(s)"
        )

    def report(self) -> str:
        """Multi-line report of all issues."""
        lines = [self.summary()]
        for issue in self.issues:
            lines.append(f"  {issue}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _close(a: float, b: float) -> bool:
    return math.isclose(a, b, rel_tol=REL_TOLERANCE, abs_tol=ABS_TOLERANCE)


def _is_bad_number(value: Any) -> bool:
    return isinstance(value, float) and (math.isnan(value) or math.isinf(value))


# ---------------------------------------------------------------------------
# ConsistencyValidator
# ---------------------------------------------------------------------------

class ConsistencyValidator:
    """Validates rollups produced by a :class:`RollupEngine`.

    Parameters
    ----------
    engine : RollupEngine
        The engine (and therefore arsenal source and config) under test.
    """

    def __init__(self, engine: RollupEngine) -> None:
        self.engine = engine

    def validate(self, records, group_by: GroupBy | str = GroupBy.AFFILIATE,
                 sort_column: str = "total_revenue", sort_direction: str = "desc",
                 page_size: int | None = None) -> QAResult:
        """Run all rollup checks for one grouping.

        Parameters
        ----------
        records : iterable of TransactionRecord
            Input rows, already filtered.
        group_by : GroupBy or str
            Rollup dimension.
        page_size : int, optional
            Page size used for the sum-consistency split.

        Returns
        -------
        QAResult
            Aggregated validation result.
        """
        records = list(records)
        group_by = GroupBy(group_by)
        page_size = page_size or self.engine.config.default_page_size
        result = QAResult()

        # One arsenal snapshot for both passes
        arsenal = self.engine.snapshot_for(group_by)
        first = self.engine.aggregate_snapshot(records, group_by, arsenal)
        second = self.engine.aggregate_snapshot(records, group_by, arsenal)
        ordered = sort_rows(first.values(), sort_column, sort_direction)

        self._check_sum_consistency(ordered, page_size, result)
        self._check_determinism(first, second, result)
        self._check_finite(ordered, result)
        self._check_refund_costs(ordered, result)
        if group_by in (GroupBy.GROUP, GroupBy.OFFER):
            self._check_classification(records, arsenal, result)
        return result

    # ------------------------------------------------------------------
    # Rollup checks
    # ------------------------------------------------------------------

    def _check_sum_consistency(self, ordered, page_size: int,
                               result: QAResult) -> None:
        """Sum of page totals must equal the grand total for every additive column."""
        pages = list(iter_pages(ordered, page_size))
        grand = pages[0].grand_total
        for column in ADDITIVE_COLUMNS:
            paged = sum(getattr(p.page_total, column) for p in pages)
            expected = getattr(grand, column)
            if not _close(paged, expected):
                result.add(
                    "error", column, "sum_consistency",
                    f"Page totals sum to {paged!r}, grand total is {expected!r}",
                )

    def _check_determinism(self, first, second, result: QAResult) -> None:
        """Two aggregations of the same input must be identical."""
        if list(first) != list(second):
            result.add("error", "", "determinism",
                       "Bucket keys differ between two identical runs")
            return
        for key, bucket in first.items():
            if bucket.to_dict() != second[key].to_dict():
                result.add("error", key, "determinism",
                           "Bucket values differ between two identical runs")

    def _check_finite(self, ordered, result: QAResult) -> None:
        for bucket in ordered:
            for name in DERIVED_FIELDS:
                if _is_bad_number(getattr(bucket, name)):
                    result.add("error", bucket.key, "not_finite",
                               f"Derived field '{name}' is not finite")

    def _check_refund_costs(self, ordered, result: QAResult) -> None:
        for bucket in ordered:
            if bucket.refunds_and_chargebacks_cost < 0:
                result.add(
                    "error", bucket.key, "negative_refund_cost",
                    f"Refund cost {bucket.refunds_and_chargebacks_cost!r} is negative",
                )

    def _check_classification(self, records, arsenal, result: QAResult) -> None:
        """Classifying with two fresh resolvers must agree product by product."""
        first = self.engine.classify_snapshot(records, arsenal)
        second = self.engine.classify_snapshot(records, arsenal)
        for name, classification in first.items():
            if second.get(name) != classification:
                result.add("error", name, "determinism",
                           "Product classified differently between two runs")


# ---------------------------------------------------------------------------
# Arsenal validation
# ---------------------------------------------------------------------------

def _usable(rule) -> bool:
    return isinstance(rule.value, str) and bool(rule.value.strip())


def validate_arsenal(arsenal: Arsenal) -> QAResult:
    """Check an arsenal for configuration mistakes before it is used."""
    result = QAResult()
    if not arsenal.name.strip():
        result.add("error", arsenal.id, "missing_name", "Arsenal name is required")

    seen_ids: set[str] = set()
    seen_orders: dict[int, str] = {}
    for group in arsenal.custom_groups:
        if group.id in seen_ids:
            result.add("error", group.id, "duplicate_group",
                       f"Group id '{group.id}' is used more than once")
        seen_ids.add(group.id)

        if not group.name.strip():
            result.add("error", group.id, "missing_name", "Group name is required")

        if not any(_usable(r) for r in group.match_rules):
            result.add("error", group.id, "no_rules",
                       f"Group '{group.name}' has no usable match rule and never matches")

        for rule in group.match_rules:
            if not _usable(rule):
                result.add("warning", group.id, "empty_rule",
                           f"Group '{group.name}' has an empty {rule.kind.value} rule")
            elif rule.kind is MatchRuleKind.REGEX:
                _check_regex(rule.value, group.id, result)

        for offer in group.offers:
            if not any(_usable(r) for r in offer.match_rules):
                result.add("warning", offer.id, "no_rules",
                           f"Offer '{offer.name}' in '{group.name}' never matches")

        if group.is_active and group.order in seen_orders:
            result.add(
                "warning", group.id, "duplicate_order",
                f"Group '{group.name}' shares order {group.order} with "
                f"'{seen_orders[group.order]}'; list position breaks the tie",
            )
        if group.is_active:
            seen_orders.setdefault(group.order, group.name)

    return result


def _check_regex(pattern: str, subject: str, result: QAResult) -> None:
    try:
        re.compile(pattern)
    except re.error as exc:
        result.add("warning", subject, "invalid_regex",
                   f"Regex {pattern!r} is invalid and never matches: {exc}")
