"""Data processor module for the rollup engine."""

from .aggregator import (
    AggregateMetrics,
    BucketKey,
    aggregate,
    by_affiliate,
    by_group,
    by_item,
    by_offer,
    by_product,
    sum_buckets,
)
from .ingestion import (
    ingest_transactions,
    records_from_dicts,
    records_from_frame,
    read_table,
    parse_numeric,
    parse_optional,
    parse_quantity,
    clean_columns,
    read_csv_auto,
    detect_encoding,
)
from .paginate import (
    COLUMNS,
    Page,
    iter_pages,
    paginate,
    sort_rows,
)
from .refunds import (
    RefundCostBreakdown,
    refund_cost,
    refund_cost_breakdown,
)
from .report import (
    GroupBy,
    RollupEngine,
    RollupReport,
)
