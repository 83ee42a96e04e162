"""Tests for the rollup engine (aggregate -> search -> sort -> paginate)."""

import pandas as pd
import pytest

from src.classifier.resolver import ClassificationKind
from src.processor.report import (
    GroupBy,
    RollupEngine,
    RollupReport,
    filter_buckets,
    uses_arsenal,
)
from src.processor.aggregator import AggregateMetrics
from src.schema.defaults import build_default_arsenal, build_frontend_upsell_arsenal
from src.schema.loader import FileArsenalStore, StaticArsenalSource
from src.schema.models import EngineConfig, OfferType, TransactionRecord, TransactionType


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _sale(tx_id, product, revenue, affiliate="aff-1", **kwargs):
    return TransactionRecord(id=tx_id, type=TransactionType.SALE, product_name=product,
                             gross_amount=revenue, affiliate_id=affiliate,
                             customer_id=f"cust-{tx_id}", **kwargs)


@pytest.fixture
def records():
    return [
        _sale("1", "Men Balance Pro", 100, platform="CLICKBANK"),
        _sale("2", "Men Balance + T-Max", 40, affiliate="aff-2",
              offer_type=OfferType.UPSELL, platform="CLICKBANK"),
        _sale("3", "GLPro 3 bottles", 200, affiliate="aff-3", platform="BUYGOODS"),
        _sale("4", "Mystery Tea", 10, affiliate="aff-2"),
        _sale("5", "Men Balance Pro", 100),
        TransactionRecord(id="6", type=TransactionType.REFUND,
                          product_name="GLPro 3 bottles", affiliate_id="aff-3",
                          platform="BUYGOODS", gross_amount=200,
                          affiliate_commission=50),
    ]


@pytest.fixture
def engine():
    return RollupEngine(StaticArsenalSource(build_frontend_upsell_arsenal()))


# ---------------------------------------------------------------------------
# filter_buckets()
# ---------------------------------------------------------------------------

class TestFilterBuckets:
    def test_blank_search_keeps_all(self):
        buckets = [AggregateMetrics(key="a"), AggregateMetrics(key="b")]
        assert filter_buckets(buckets, None) == buckets
        assert filter_buckets(buckets, "  ") == buckets

    def test_matches_key_label_platform(self):
        buckets = [
            AggregateMetrics(key="x1", label="Men Balance"),
            AggregateMetrics(key="glpro-id", label="Other"),
            AggregateMetrics(key="y", label="Y", platform="BUYGOODS"),
            AggregateMetrics(key="z", label="Z"),
        ]
        assert [b.key for b in filter_buckets(buckets, "balance")] == ["x1"]
        assert [b.key for b in filter_buckets(buckets, "GLPRO")] == ["glpro-id"]
        assert [b.key for b in filter_buckets(buckets, "buygoods")] == ["y"]


# ---------------------------------------------------------------------------
# compute()
# ---------------------------------------------------------------------------

class TestCompute:
    def test_by_affiliate_sorted_by_revenue(self, engine, records):
        report = engine.compute(records, group_by="affiliate")
        assert isinstance(report, RollupReport)
        assert report.group_by is GroupBy.AFFILIATE
        assert [r["key"] for r in report.rows()] == ["aff-1", "aff-3", "aff-2"]

    def test_by_group(self, engine, records):
        report = engine.compute(records, group_by=GroupBy.GROUP)
        rows = {r["key"]: r for r in report.rows()}
        assert rows["group-men-balance"]["total_revenue"] == pytest.approx(240)
        assert rows["group-glpro"]["refunds_and_chargebacks_cost"] == pytest.approx(150)
        assert rows["Mystery Tea"]["label"] == "Mystery Tea"
        assert report.arsenal_id == "frontend-upsell"

    def test_by_offer(self, engine, records):
        report = engine.compute(records, group_by="offer")
        keys = {r["key"] for r in report.rows()}
        assert "group-men-balance" in keys
        assert "group-men-balance/offer-tmax-1" in keys

    def test_by_product_ignores_arsenal(self, engine, records):
        report = engine.compute(records, group_by="product")
        keys = {r["key"] for r in report.rows()}
        assert keys == {"Men Balance Pro", "Men Balance + T-Max",
                        "GLPro 3 bottles", "Mystery Tea"}

    def test_by_item(self, engine, records):
        report = engine.compute(records, group_by="item", sort_column="label",
                                sort_direction="asc")
        keys = [r["key"] for r in report.rows()]
        assert "Men Balance + T-Max-true-CLICKBANK" in keys
        assert "Men Balance Pro-false-N/A" in keys

    def test_explicit_arsenal(self, records):
        engine = RollupEngine()
        report = engine.compute(records, group_by="group",
                                arsenal=build_default_arsenal())
        keys = {r["key"] for r in report.rows()}
        assert "Men Balance" in keys
        assert report.arsenal_id == "default"
        assert report.warnings == []

    def test_no_arsenal_warns(self, records):
        report = RollupEngine().compute(records, group_by="group")
        assert any("No active arsenal" in w for w in report.warnings)
        assert {r["key"] for r in report.rows()} >= {"Men Balance Pro", "Mystery Tea"}

    def test_unusual_page_size_warns(self, engine, records):
        report = engine.compute(records, page_size=7)
        assert any("Page size 7" in w for w in report.warnings)
        assert report.page.page_size == 7

    def test_default_page_size_from_config(self, records):
        engine = RollupEngine(config=EngineConfig(default_page_size=10))
        assert engine.compute(records).page.page_size == 10

    def test_pagination_and_totals(self, engine, records):
        report = engine.compute(records, page=2, page_size=1)
        assert len(report.rows()) == 1
        assert report.page.total_rows == 3
        totals = report.totals()
        assert totals["grand"]["total_revenue"] == pytest.approx(450)
        assert totals["page"]["total_revenue"] == report.rows()[0]["total_revenue"]

    def test_search(self, engine, records):
        report = engine.compute(records, group_by="product", search="men balance")
        assert {r["key"] for r in report.rows()} == {"Men Balance Pro",
                                                     "Men Balance + T-Max"}
        assert report.page.grand_total.total_revenue == pytest.approx(240)

    def test_sort_metadata(self, engine, records):
        report = engine.compute(records, sort_column="profit", sort_direction="asc")
        assert report.page.sort_column == "profit"
        assert report.page.sort_direction == "asc"

    def test_unknown_sort_column(self, engine, records):
        with pytest.raises(KeyError):
            engine.compute(records, sort_column="bogus")

    def test_invalid_group_by(self, engine, records):
        with pytest.raises(ValueError):
            engine.compute(records, group_by="platform")

    def test_deterministic(self, engine, records):
        a = engine.compute(records, group_by="offer")
        b = engine.compute(records, group_by="offer")
        assert a.rows() == b.rows()
        assert a.totals() == b.totals()

    def test_empty_records(self, engine):
        report = engine.compute([], group_by="group")
        assert report.rows() == []
        assert report.totals()["grand"]["total_revenue"] == 0


# ---------------------------------------------------------------------------
# Export and classification
# ---------------------------------------------------------------------------

class TestExport:
    def test_to_frame(self, engine, records):
        frame = engine.compute(records).to_frame()
        assert isinstance(frame, pd.DataFrame)
        assert len(frame) == 3
        assert "cash_flow" in frame.columns

    def test_to_frame_columns(self, engine, records):
        frame = engine.compute(records).to_frame(["key", "total_revenue"])
        assert list(frame.columns) == ["key", "total_revenue"]
        assert frame["total_revenue"].sum() == pytest.approx(450)

    def test_classify(self, engine, records):
        result = engine.classify(records)
        assert list(result) == ["Men Balance Pro", "Men Balance + T-Max",
                                "GLPro 3 bottles", "Mystery Tea"]
        assert result["GLPro 3 bottles"].group_key == "group-glpro"
        assert result["Mystery Tea"].kind is ClassificationKind.INDIVIDUAL


# ---------------------------------------------------------------------------
# Arsenal source access
# ---------------------------------------------------------------------------

class CountingSource:
    """ArsenalSource that records how often the active arsenal is read."""

    def __init__(self, arsenal):
        self.arsenal = arsenal
        self.calls = 0

    def load_active(self):
        self.calls += 1
        return self.arsenal


class TestArsenalLoading:
    @pytest.mark.parametrize("group_by, expected", [
        ("affiliate", False), ("product", False), ("item", False),
        ("group", True), ("offer", True),
    ])
    def test_uses_arsenal(self, group_by, expected):
        assert uses_arsenal(group_by) is expected

    @pytest.mark.parametrize("group_by", ["affiliate", "product", "item"])
    def test_source_not_read_without_arsenal_grouping(self, records, group_by):
        source = CountingSource(build_frontend_upsell_arsenal())
        engine = RollupEngine(source)
        engine.compute(records, group_by=group_by)
        engine.aggregate(records, group_by)
        assert source.calls == 0

    @pytest.mark.parametrize("group_by", ["group", "offer"])
    def test_source_read_once_per_compute(self, records, group_by):
        source = CountingSource(build_frontend_upsell_arsenal())
        RollupEngine(source).compute(records, group_by=group_by)
        assert source.calls == 1

    def test_source_read_once_without_arsenal(self, records):
        source = CountingSource(None)
        report = RollupEngine(source).compute(records, group_by="group")
        assert source.calls == 1
        assert report.warnings

    def test_snapshot_methods_never_read_source(self, records):
        source = CountingSource(build_frontend_upsell_arsenal())
        engine = RollupEngine(source)
        engine.aggregate_snapshot(records, "group", None)
        engine.classify_snapshot(records, None)
        assert source.calls == 0

    def test_malformed_arsenal_file_ignored_by_affiliate_report(self, records, tmp_path):
        path = tmp_path / "arsenals.yaml"
        path.write_text("- 1\n- 2\n")
        engine = RollupEngine(FileArsenalStore(path))
        report = engine.compute(records, group_by="affiliate")
        assert len(report.rows()) == 3
        with pytest.raises(ValueError, match="Arsenal entry 0"):
            engine.compute(records, group_by="group")
