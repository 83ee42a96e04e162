"""Rollup report — the recompute-on-demand entry point.

Ties the pieces together for one query:

    records --(resolver / key fn)--> aggregate --> search --> sort --> paginate

The caller invokes :meth:`RollupEngine.compute` whenever its filters, date
range, grouping or arsenal change; nothing is cached between calls except
per-call classification.  Identical inputs give identical output.

Usage::

    engine = RollupEngine(FileArsenalStore("arsenals.yaml"))
    report = engine.compute(records, group_by="group",
                            sort_column="total_revenue", page=1, page_size=25)
    report.rows()          # list of row dicts for the current page
    report.page.page_total # footer for the visible rows
    report.page.grand_total
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

import pandas as pd

from src.classifier.resolver import ArsenalResolver, Classification
from src.classifier.similarity import extract_product_base_name
from src.schema.loader import ArsenalSource
from src.schema.models import Arsenal, EngineConfig

from .aggregator import (
    AggregateMetrics,
    aggregate,
    by_affiliate,
    by_group,
    by_item,
    by_offer,
    by_product,
)
from .paginate import COLUMNS, SORT_DESC, Page, paginate, sort_rows


logger = logging.getLogger(__name__)


class GroupBy(Enum):
    """Which dimension a report rolls up by."""
    AFFILIATE = "affiliate"
    PRODUCT = "product"      # Raw product name, arsenal ignored
    GROUP = "group"          # Arsenal group
    OFFER = "offer"          # Arsenal group split by offer
    ITEM = "item"            # Product name x back sale x platform


def uses_arsenal(group_by: GroupBy | str) -> bool:
    """True for the groupings keyed by arsenal classification."""
    return GroupBy(group_by) in (GroupBy.GROUP, GroupBy.OFFER)


def filter_buckets(buckets, search: str | None) -> list[AggregateMetrics]:
    """Keep buckets whose key, label or platform contains *search* (any case)."""
    buckets = list(buckets)
    term = (search or "").strip().lower()
    if not term:
        return buckets
    return [b for b in buckets
            if term in b.key.lower()
            or term in b.label.lower()
            or term in b.platform.lower()]


# ---------------------------------------------------------------------------
# Result container
# ---------------------------------------------------------------------------

@dataclass
class RollupReport:
    """Output of :meth:`RollupEngine.compute`."""
    group_by: GroupBy
    page: Page
    arsenal_id: str | None = None
    warnings: list[str] = field(default_factory=list)

    def rows(self) -> list[dict[str, Any]]:
        """Current page rows as flat dicts (sums and derived figures)."""
        return [b.to_dict() for b in self.page.rows]

    def totals(self) -> dict[str, dict[str, Any]]:
        """Page and grand totals as flat dicts, for table footers."""
        return {
            "page": self.page.page_total.to_dict(),
            "grand": self.page.grand_total.to_dict(),
        }

    def to_frame(self, columns: list[str] | None = None) -> pd.DataFrame:
        """Current page as a DataFrame, one row per bucket."""
        columns = columns or list(COLUMNS)
        data = [{c: getattr(b, c) for c in columns} for b in self.page.rows]
        return pd.DataFrame(data, columns=columns)


# ---------------------------------------------------------------------------
# RollupEngine
# ---------------------------------------------------------------------------

class RollupEngine:
    """Computes paginated financial rollups from transaction records.

    Args:
        arsenal_source: Supplies the active arsenal; None means no grouping
            rules (every product stands alone).
        config: Engine constants (allowance rate, page size...).
        fallback: Auto-grouping strategy for products no group claims.
    """

    def __init__(self, arsenal_source: ArsenalSource | None = None,
                 config: EngineConfig | None = None,
                 fallback: Callable[[str], str] = extract_product_base_name) -> None:
        self.arsenal_source = arsenal_source
        self.config = config or EngineConfig()
        self.fallback = fallback

    def load_arsenal(self) -> Arsenal | None:
        """Take a fresh snapshot of the active arsenal."""
        if self.arsenal_source is None:
            return None
        return self.arsenal_source.load_active()

    def snapshot_for(self, group_by: GroupBy | str) -> Arsenal | None:
        """Arsenal snapshot needed by *group_by*; the source is only read for group/offer."""
        if not uses_arsenal(group_by):
            return None
        return self.load_arsenal()

    def resolver(self, arsenal: Arsenal | None) -> ArsenalResolver:
        """Resolver over an already-loaded snapshot (None: no grouping rules)."""
        return ArsenalResolver(arsenal, fallback=self.fallback)

    def key_function(self, group_by: GroupBy, arsenal: Arsenal | None):
        if group_by is GroupBy.AFFILIATE:
            return by_affiliate
        if group_by is GroupBy.PRODUCT:
            return by_product
        if group_by is GroupBy.GROUP:
            return by_group(self.resolver(arsenal))
        if group_by is GroupBy.OFFER:
            return by_offer(self.resolver(arsenal))
        return by_item

    def aggregate(self, records, group_by: GroupBy | str = GroupBy.AFFILIATE,
                  arsenal: Arsenal | None = None) -> dict[str, AggregateMetrics]:
        """Unsorted buckets for *records*, keyed by the grouping dimension.

        The active arsenal is loaded only when *arsenal* is None and the
        grouping needs one.
        """
        group_by = GroupBy(group_by)
        if arsenal is None:
            arsenal = self.snapshot_for(group_by)
        return self.aggregate_snapshot(records, group_by, arsenal)

    def aggregate_snapshot(self, records, group_by: GroupBy | str,
                           arsenal: Arsenal | None) -> dict[str, AggregateMetrics]:
        """Like :meth:`aggregate` but never reads the arsenal source."""
        group_by = GroupBy(group_by)
        key_fn = self.key_function(group_by, arsenal)
        return aggregate(records, key_fn, self.config)

    def classify(self, records, arsenal: Arsenal | None = None) -> dict[str, Classification]:
        """Classification for every distinct product name, in first-seen order."""
        if arsenal is None:
            arsenal = self.load_arsenal()
        return self.classify_snapshot(records, arsenal)

    def classify_snapshot(self, records,
                          arsenal: Arsenal | None) -> dict[str, Classification]:
        """Like :meth:`classify` but never reads the arsenal source."""
        resolver = self.resolver(arsenal)
        result: dict[str, Classification] = {}
        for record in records:
            if record.product_name not in result:
                result[record.product_name] = resolver.resolve(record)
        return result

    def compute(self, records, group_by: GroupBy | str = GroupBy.AFFILIATE,
                sort_column: str = "total_revenue",
                sort_direction: str = SORT_DESC,
                page: int = 1,
                page_size: int | None = None,
                search: str | None = None,
                arsenal: Arsenal | None = None) -> RollupReport:
        """Aggregate, filter, sort and paginate *records* in one pass.

        Args:
            records: TransactionRecords already filtered by the data layer.
            group_by: Rollup dimension (GroupBy or its string value).
            sort_column: Any name in :data:`src.processor.paginate.COLUMNS`.
            sort_direction: "asc" or "desc".
            page: 1-based page number.
            page_size: Rows per page (default from config).
            search: Optional case-insensitive filter on key/label/platform.
            arsenal: Explicit arsenal snapshot; loaded from the source if None.
        """
        group_by = GroupBy(group_by)
        page_size = page_size or self.config.default_page_size
        warnings: list[str] = []

        if arsenal is None and uses_arsenal(group_by):
            arsenal = self.load_arsenal()
            if arsenal is None:
                warnings.append("No active arsenal; products are shown individually")

        if page_size not in self.config.page_size_options:
            warnings.append(
                f"Page size {page_size} is not one of "
                f"{list(self.config.page_size_options)}"
            )

        records = list(records)
        buckets = self.aggregate_snapshot(records, group_by, arsenal)
        visible = filter_buckets(buckets.values(), search)
        ordered = sort_rows(visible, sort_column, sort_direction)
        result = paginate(ordered, page, page_size)
        result.sort_column = sort_column
        result.sort_direction = sort_direction

        logger.debug(
            "Rollup by %s: %d records, %d buckets, %d after search, page %d/%d",
            group_by.value, len(records), len(buckets), len(visible),
            result.page, result.total_pages,
        )
        return RollupReport(
            group_by=group_by,
            page=result,
            arsenal_id=arsenal.id if arsenal else None,
            warnings=warnings,
        )
