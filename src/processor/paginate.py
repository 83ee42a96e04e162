"""Sorting and pagination of aggregated buckets.

Sorting is stable: rows that compare equal keep their incoming (first-seen)
order, so re-sorting the same data is idempotent.  Page and grand totals are
both produced by :func:`src.processor.aggregator.sum_buckets` over the same
bucket objects the rows come from, so for every additive column the page
totals of all pages add up to the grand total.
"""

import math
from dataclasses import dataclass, field

from src.schema.models import FormatType

from .aggregator import AggregateMetrics, sum_buckets


SORT_ASC = "asc"
SORT_DESC = "desc"


# ---------------------------------------------------------------------------
# Column registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Column:
    """A sortable report column."""
    name: str                # Attribute on AggregateMetrics
    header: str              # Display header text
    format_type: FormatType
    additive: bool = True    # Footer value is a plain sum of the rows

    @property
    def is_numeric(self) -> bool:
        return self.format_type is not FormatType.TEXT


def _col(name, header, format_type=FormatType.CURRENCY, additive=True):
    return Column(name=name, header=header, format_type=format_type, additive=additive)


COLUMNS: dict[str, Column] = {c.name: c for c in (
    _col("key", "Key", FormatType.TEXT, additive=False),
    _col("label", "Name", FormatType.TEXT, additive=False),
    _col("platform", "Platform", FormatType.TEXT, additive=False),
    _col("sales_count", "Sales", FormatType.INTEGER),
    _col("front_sales_count", "Front Sales", FormatType.INTEGER),
    _col("back_sales_count", "Back Sales", FormatType.INTEGER),
    _col("unique_customer_count", "Customers", FormatType.INTEGER),
    _col("total_revenue", "Revenue"),
    _col("gross_sales", "Gross Sales"),
    _col("taxes", "Taxes"),
    _col("platform_fee_percent_amount", "Platform Fee (%)"),
    _col("platform_fee_fixed_amount", "Platform Fee ($)"),
    _col("commission_paid", "Commission"),
    _col("net_sales", "Net Sales"),
    _col("refund_count", "Refunds", FormatType.INTEGER),
    _col("chargeback_count", "Chargebacks", FormatType.INTEGER),
    _col("refunds_and_chargebacks_cost", "R+CB"),
    _col("total_refund_amount", "Refunded Amount"),
    _col("net", "Net"),
    _col("cogs", "COGS"),
    _col("profit", "Profit"),
    _col("allowance", "Allowance"),
    _col("cash_flow", "Cash Flow"),
    _col("aov", "AOV", additive=False),
    _col("refund_rate", "Refund Rate", FormatType.PERCENTAGE, additive=False),
    _col("chargeback_rate", "Chargeback Rate", FormatType.PERCENTAGE, additive=False),
    _col("platform_fee_rate", "Platform Fee Rate", FormatType.PERCENTAGE, additive=False),
    _col("commission_rate", "Commission Rate", FormatType.PERCENTAGE, additive=False),
    _col("health_score", "Health", FormatType.INTEGER, additive=False),
)}

ADDITIVE_COLUMNS = tuple(name for name, c in COLUMNS.items() if c.additive)


def get_column(name: str) -> Column:
    """Look up a column by name; raises KeyError for unknown columns."""
    try:
        return COLUMNS[name]
    except KeyError:
        raise KeyError(
            f"Unknown sort column: {name!r}. "
            f"Valid columns: {', '.join(COLUMNS)}"
        ) from None


# ---------------------------------------------------------------------------
# Sorting
# ---------------------------------------------------------------------------

def _sort_value(bucket: AggregateMetrics, column: Column):
    value = getattr(bucket, column.name)
    if column.is_numeric:
        value = float(value or 0)
        return 0.0 if math.isnan(value) else value
    return "" if value is None else str(value)


def sort_rows(buckets, column: str, direction: str = SORT_DESC) -> list[AggregateMetrics]:
    """Order buckets by one column.

    Text columns compare lexicographically, numeric columns numerically.
    Ties keep their incoming order in both directions.
    """
    col = get_column(column)
    if direction not in (SORT_ASC, SORT_DESC):
        raise ValueError(f"Sort direction must be 'asc' or 'desc', got {direction!r}")
    return sorted(buckets, key=lambda b: _sort_value(b, col),
                  reverse=direction == SORT_DESC)


# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------

@dataclass
class Page:
    """One window of sorted rows with its footer totals."""
    rows: list[AggregateMetrics]
    page: int
    page_size: int
    total_rows: int
    page_total: AggregateMetrics
    grand_total: AggregateMetrics
    sort_column: str | None = None
    sort_direction: str | None = None
    extra: dict = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return max(1, math.ceil(self.total_rows / self.page_size))

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def first_row_number(self) -> int:
        """1-based position of the first row on this page (0 when empty)."""
        if not self.rows:
            return 0
        return (self.page - 1) * self.page_size + 1


def paginate(ordered, page: int, page_size: int) -> Page:
    """Slice *ordered* to a 1-based page and total both the page and the whole list.

    A page past the end is empty and its totals are zero.
    """
    if page < 1:
        raise ValueError(f"Page must be >= 1, got {page}")
    if page_size < 1:
        raise ValueError(f"Page size must be >= 1, got {page_size}")
    ordered = list(ordered)
    start = (page - 1) * page_size
    rows = ordered[start:start + page_size]
    grand_total = sum_buckets(ordered, key="grand_total", label="Total")
    page_total = sum_buckets(rows, key="page_total", label="Page Total",
                             allowance_rate=grand_total.allowance_rate)
    return Page(
        rows=rows,
        page=page,
        page_size=page_size,
        total_rows=len(ordered),
        page_total=page_total,
        grand_total=grand_total,
    )


def iter_pages(ordered, page_size: int):
    """Yield every page of *ordered* (at least one, possibly empty)."""
    if page_size < 1:
        raise ValueError(f"Page size must be >= 1, got {page_size}")
    ordered = list(ordered)
    total_pages = max(1, math.ceil(len(ordered) / page_size))
    for page in range(1, total_pages + 1):
        yield paginate(ordered, page, page_size)
