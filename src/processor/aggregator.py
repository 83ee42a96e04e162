"""Metrics aggregation — single-pass rollup of transactions into buckets.

``aggregate(records, key_fn)`` walks the records once, creates a bucket the
first time a key is seen, and accumulates the additive sums:

- completed SALE rows: sales count, revenue, commission, taxes, platform
  fees, COGS, front/back sale counts
- REFUND / CHARGEBACK rows: refund cost (see :mod:`src.processor.refunds`),
  refund/chargeback counts, refunded amount
- SALE (any status) and REBILL rows with a customer id: unique customers

Derived figures (gross sales, profit, rates...) are properties computed from
the sums on every read via :mod:`src.processor.metrics`.

Buckets keep first-seen order, which is the tie-break order for sorting.
"""

import logging
from dataclasses import dataclass, fields
from typing import Callable

from src.classifier.resolver import UNKNOWN_ITEM, ArsenalResolver
from src.schema.models import EngineConfig, TransactionRecord, TransactionType

from . import metrics
from .refunds import refund_cost


logger = logging.getLogger(__name__)


NO_AFFILIATE = "N/A"


# ---------------------------------------------------------------------------
# Bucket keys
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BucketKey:
    """Identity and display data for one aggregation bucket."""
    key: str
    label: str
    platform: str = ""


KeyFunc = Callable[[TransactionRecord], "BucketKey | str"]


def _as_bucket_key(value) -> BucketKey:
    if isinstance(value, BucketKey):
        return value
    return BucketKey(key=str(value), label=str(value))


def by_affiliate(record: TransactionRecord) -> BucketKey:
    affiliate = record.affiliate_id or NO_AFFILIATE
    return BucketKey(key=affiliate, label=affiliate)


def by_product(record: TransactionRecord) -> BucketKey:
    """Raw product name, no arsenal applied."""
    name = record.product_name or UNKNOWN_ITEM
    return BucketKey(key=name, label=name)


def by_item(record: TransactionRecord) -> BucketKey:
    """Product name x back-sale flag x platform, as in the items report."""
    name = record.product_name or UNKNOWN_ITEM
    platform = record.platform or "N/A"
    is_upsell = "true" if record.is_back_sale else "false"
    return BucketKey(key=f"{name}-{is_upsell}-{platform}", label=name, platform=platform)


def by_group(resolver: ArsenalResolver) -> KeyFunc:
    """Arsenal group; offers roll up into their group."""
    def key_fn(record: TransactionRecord) -> BucketKey:
        c = resolver.resolve(record)
        return BucketKey(key=c.group_key, label=c.group_label)
    return key_fn


def by_offer(resolver: ArsenalResolver) -> KeyFunc:
    """Arsenal group split by offer (frontend rows stay on the group key)."""
    def key_fn(record: TransactionRecord) -> BucketKey:
        c = resolver.resolve(record)
        return BucketKey(key=c.offer_bucket_key, label=c.offer_bucket_label)
    return key_fn


# ---------------------------------------------------------------------------
# AggregateMetrics
# ---------------------------------------------------------------------------

@dataclass
class AggregateMetrics:
    """Running sums for one bucket plus derived figures computed on read."""
    key: str
    label: str = ""
    platform: str = ""

    # Additive sums
    sales_count: int = 0
    front_sales_count: int = 0
    back_sales_count: int = 0
    refund_count: int = 0
    chargeback_count: int = 0
    total_revenue: float = 0.0
    commission_paid: float = 0.0
    taxes: float = 0.0
    platform_fee_percent_amount: float = 0.0
    platform_fee_fixed_amount: float = 0.0
    refunds_and_chargebacks_cost: float = 0.0
    total_refund_amount: float = 0.0
    cogs: float = 0.0
    unique_customer_count: int = 0

    allowance_rate: float = metrics.DEFAULT_ALLOWANCE_RATE

    # -- waterfall -----------------------------------------------------

    @property
    def gross_sales(self) -> float:
        return metrics.gross_sales(self.total_revenue, self.taxes,
                                   self.platform_fee_percent_amount,
                                   self.platform_fee_fixed_amount)

    @property
    def net_sales(self) -> float:
        return metrics.net_sales(self.gross_sales, self.commission_paid)

    @property
    def net(self) -> float:
        return metrics.net(self.net_sales, self.refunds_and_chargebacks_cost)

    @property
    def profit(self) -> float:
        return metrics.profit(self.net, self.cogs)

    @property
    def allowance(self) -> float:
        return metrics.allowance(self.gross_sales, self.allowance_rate)

    @property
    def cash_flow(self) -> float:
        return metrics.cash_flow(self.profit, self.allowance)

    # -- ratios ----------------------------------------------------------

    @property
    def aov(self) -> float:
        return metrics.aov(self.total_revenue, self.unique_customer_count)

    @property
    def refund_rate(self) -> float:
        return metrics.refund_rate(self.refund_count, self.sales_count)

    @property
    def chargeback_rate(self) -> float:
        return metrics.chargeback_rate(self.chargeback_count, self.sales_count)

    @property
    def platform_fee_rate(self) -> float:
        return metrics.platform_fee_rate(self.platform_fee_percent_amount,
                                         self.platform_fee_fixed_amount,
                                         self.total_revenue)

    @property
    def commission_rate(self) -> float:
        return metrics.commission_rate(self.commission_paid, self.total_revenue)

    @property
    def health_score(self) -> float:
        return metrics.health_score(self.sales_count, self.refund_rate,
                                    self.chargeback_rate)

    @property
    def health_status(self) -> str:
        return metrics.health_status(self.health_score)

    # -- accumulation ----------------------------------------------------

    def add_sale(self, record: TransactionRecord) -> None:
        """Accumulate a completed sale."""
        gross = record.gross_amount or 0.0
        self.sales_count += 1
        if record.is_back_sale:
            self.back_sales_count += 1
        else:
            self.front_sales_count += 1
        self.total_revenue += gross
        self.commission_paid += record.affiliate_commission or 0.0
        self.taxes += record.tax_amount or 0.0
        self.platform_fee_percent_amount += gross * (record.platform_fee_percent or 0.0)
        self.platform_fee_fixed_amount += record.platform_fee_fixed or 0.0
        quantity = 1 if record.quantity is None else record.quantity
        self.cogs += quantity * (record.product_cogs_per_unit or 0.0)

    def add_refund(self, record: TransactionRecord) -> None:
        """Accumulate a refund or chargeback."""
        if record.type is TransactionType.CHARGEBACK:
            self.chargeback_count += 1
        else:
            self.refund_count += 1
        self.refunds_and_chargebacks_cost += refund_cost(record)
        self.total_refund_amount += abs(record.refund_amount or 0.0)

    def absorb(self, other: "AggregateMetrics") -> None:
        """Add another bucket's sums into this one."""
        for name in ADDITIVE_FIELDS:
            setattr(self, name, getattr(self, name) + getattr(other, name))

    def to_dict(self) -> dict:
        """Sums and derived figures as a flat row dict."""
        d = {"key": self.key, "label": self.label, "platform": self.platform}
        for name in ADDITIVE_FIELDS:
            d[name] = getattr(self, name)
        for name in DERIVED_FIELDS:
            d[name] = getattr(self, name)
        return d


ADDITIVE_FIELDS = tuple(
    f.name for f in fields(AggregateMetrics)
    if f.name not in ("key", "label", "platform", "allowance_rate")
)

DERIVED_FIELDS = (
    "gross_sales", "net_sales", "net", "profit", "allowance", "cash_flow",
    "aov", "refund_rate", "chargeback_rate", "platform_fee_rate",
    "commission_rate", "health_score", "health_status",
)


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def aggregate(records, key_fn: KeyFunc,
              config: EngineConfig | None = None) -> dict[str, AggregateMetrics]:
    """Roll *records* up into one :class:`AggregateMetrics` per key.

    Args:
        records: Iterable of TransactionRecord, already row-filtered.
        key_fn: Maps a record to its bucket (a BucketKey or a plain string).
        config: Engine constants; only ``allowance_rate`` is used here.

    Returns:
        Dict of bucket key -> metrics, in first-seen order.
    """
    config = config or EngineConfig()
    buckets: dict[str, AggregateMetrics] = {}
    customers: dict[str, set[str]] = {}
    count = 0

    for record in records:
        count += 1
        bk = _as_bucket_key(key_fn(record))
        bucket = buckets.get(bk.key)
        if bucket is None:
            bucket = AggregateMetrics(key=bk.key, label=bk.label, platform=bk.platform,
                                      allowance_rate=config.allowance_rate)
            buckets[bk.key] = bucket
            customers[bk.key] = set()

        if record.type is TransactionType.SALE and record.is_completed:
            bucket.add_sale(record)
        elif record.is_refund:
            bucket.add_refund(record)

        if (record.type in (TransactionType.SALE, TransactionType.REBILL)
                and record.customer_id):
            customers[bk.key].add(record.customer_id)

    for key, bucket in buckets.items():
        bucket.unique_customer_count = len(customers[key])

    logger.debug("Aggregated %d records into %d buckets", count, len(buckets))
    return buckets


def sum_buckets(buckets, key: str = "total", label: str = "Total",
                allowance_rate: float | None = None) -> AggregateMetrics:
    """Total of several buckets, column by column.

    Unique customers are summed per bucket, matching a table footer.
    """
    buckets = list(buckets)
    if allowance_rate is None:
        allowance_rate = (buckets[0].allowance_rate if buckets
                          else metrics.DEFAULT_ALLOWANCE_RATE)
    total = AggregateMetrics(key=key, label=label, allowance_rate=allowance_rate)
    for bucket in buckets:
        total.absorb(bucket)
    return total
