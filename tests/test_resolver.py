"""Tests for the arsenal resolver (product -> group / offer classification)."""

import pytest

from src.classifier.resolver import (
    UNGROUPED_KEY,
    UNKNOWN_ITEM,
    ArsenalResolver,
    Classification,
    ClassificationKind,
)
from src.schema.defaults import (
    build_default_arsenal,
    build_frontend_upsell_arsenal,
)
from src.schema.models import (
    Arsenal,
    ArsenalConfig,
    CustomProductGroup,
    MatchRule,
    OfferRule,
    OfferType,
    TransactionRecord,
    TransactionType,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

def _group(gid, name, *values, order=0, offers=(), is_active=True):
    return CustomProductGroup(
        id=gid, name=name, order=order, is_active=is_active, offers=offers,
        match_rules=tuple(MatchRule.contains(v) for v in values),
    )


def _offer(oid, name, *values, order=0, offer_type=OfferType.UPSELL):
    return OfferRule(id=oid, name=name, offer_type=offer_type, order=order,
                     match_rules=tuple(MatchRule.contains(v) for v in values))


def _arsenal(*groups, **config):
    return Arsenal(id="test", name="Test", custom_groups=groups,
                   config=ArsenalConfig(**config))


@pytest.fixture
def upsell_resolver():
    return ArsenalResolver(build_frontend_upsell_arsenal())


# ---------------------------------------------------------------------------
# Custom groups
# ---------------------------------------------------------------------------

class TestCustomGroups:
    def test_frontend_match(self, upsell_resolver):
        c = upsell_resolver.resolve_name("MEN BALANCE PRO")
        assert c.group_key == "group-men-balance"
        assert c.group_label == "Men Balance"
        assert c.kind is ClassificationKind.CUSTOM_GROUP
        assert c.offer_key is None
        assert c.offer_type is OfferType.FRONTEND
        assert c.is_grouped

    def test_offer_match(self, upsell_resolver):
        c = upsell_resolver.resolve_name("Men Balance + T-Max")
        assert c.group_key == "group-men-balance"
        assert c.offer_key == "offer-tmax-1"
        assert c.offer_type is OfferType.UPSELL
        assert c.offer_bucket_key == "group-men-balance/offer-tmax-1"
        assert c.offer_bucket_label == "Men Balance / T-Max"

    def test_group_without_offers(self, upsell_resolver):
        c = upsell_resolver.resolve_name("Free Sugar Pro 3 bottles")
        assert c.group_key == "group-free-sugar"
        assert c.offer_bucket_key == "group-free-sugar"

    def test_lower_order_wins(self):
        arsenal = _arsenal(
            _group("late", "Late", "balance", order=5),
            _group("early", "Early", "men", order=1),
        )
        resolver = ArsenalResolver(arsenal)
        assert resolver.resolve_name("Men Balance").group_key == "early"

    def test_priority_stable_across_runs(self):
        arsenal = _arsenal(
            _group("a", "A", "men", order=1),
            _group("b", "B", "balance", order=1),
        )
        keys = {ArsenalResolver(arsenal).resolve_name("Men Balance").group_key
                for _ in range(5)}
        assert keys == {"a"}

    def test_inactive_group_ignored(self):
        arsenal = _arsenal(
            _group("off", "Off", "men", order=0, is_active=False),
            _group("on", "On", "men", order=1),
        )
        assert ArsenalResolver(arsenal).resolve_name("Men Balance").group_key == "on"

    def test_first_offer_by_order_wins(self):
        arsenal = _arsenal(_group(
            "g", "G", "grr",
            offers=(_offer("second", "Second", "bundle", order=2),
                    _offer("first", "First", "bundle", order=1)),
        ))
        c = ArsenalResolver(arsenal).resolve_name("GRR bundle")
        assert c.offer_key == "first"

    def test_offer_without_group_match_is_not_attached(self):
        arsenal = _arsenal(_group("g", "G", "grr",
                                  offers=(_offer("o", "O", "elixir"),)))
        c = ArsenalResolver(arsenal).resolve_name("Glucose Harmony Elixir")
        assert c.kind is ClassificationKind.INDIVIDUAL
        assert c.offer_key is None

    def test_empty_rule_group_never_matches(self):
        arsenal = _arsenal(_group("empty", "Empty", "", order=0),
                           _group("real", "Real", "men", order=1))
        assert ArsenalResolver(arsenal).resolve_name("Men").group_key == "real"

    def test_shared_group_id_keeps_each_groups_offers(self):
        arsenal = _arsenal(
            _group("g", "Alpha", "alpha", order=0, offers=(_offer("oa", "Up", "up"),)),
            _group("g", "Beta", "beta", order=1),
        )
        resolver = ArsenalResolver(arsenal)
        alpha = resolver.resolve_name("Alpha Up")
        assert (alpha.group_label, alpha.offer_key) == ("Alpha", "oa")
        beta = resolver.resolve_name("Beta Up")
        assert (beta.group_label, beta.offer_key) == ("Beta", None)

    def test_resolve_record(self, upsell_resolver):
        record = TransactionRecord(id="t1", type=TransactionType.SALE,
                                   product_name="GL Pro 6 bottles")
        assert upsell_resolver.resolve(record).group_key == "group-glpro"


# ---------------------------------------------------------------------------
# Unmatched products
# ---------------------------------------------------------------------------

class TestUnmatched:
    def test_individual_by_default(self, upsell_resolver):
        c = upsell_resolver.resolve_name("Mystery Tea")
        assert c == Classification(group_key="Mystery Tea", group_label="Mystery Tea",
                                   kind=ClassificationKind.INDIVIDUAL)
        assert not c.is_grouped

    def test_no_arsenal(self):
        c = ArsenalResolver(None).resolve_name("Men Balance")
        assert c.group_key == "Men Balance"
        assert c.kind is ClassificationKind.INDIVIDUAL

    def test_auto_group(self):
        resolver = ArsenalResolver(build_default_arsenal())
        a = resolver.resolve_name("Free Sugar Pro 3 bottles")
        b = resolver.resolve_name("Free Sugar Pro 6 bottles + 3 free")
        assert a.group_key == b.group_key == "Free Sugar"
        assert a.kind is ClassificationKind.AUTO_GROUP

    def test_custom_fallback(self):
        resolver = ArsenalResolver(_arsenal(auto_group_ungrouped=True),
                                   fallback=lambda name: name[:3].upper())
        assert resolver.resolve_name("Vigor Boost").group_key == "VIG"

    def test_collapsed_into_ungrouped(self):
        resolver = ArsenalResolver(_arsenal(show_individual_products=False))
        c = resolver.resolve_name("Mystery Tea")
        assert c.group_key == UNGROUPED_KEY
        assert c.group_label == "Ungrouped"

    def test_empty_name(self):
        c = ArsenalResolver(build_default_arsenal()).resolve_name("")
        assert c.group_key == UNGROUPED_KEY

    @pytest.mark.parametrize("name", ["", None])
    def test_empty_name_shown_individually(self, upsell_resolver, name):
        for resolver in (upsell_resolver, ArsenalResolver(None)):
            c = resolver.resolve_name(name)
            assert c.group_key == c.group_label == UNKNOWN_ITEM
            assert c.kind is ClassificationKind.INDIVIDUAL


# ---------------------------------------------------------------------------
# Memoization
# ---------------------------------------------------------------------------

class TestCache:
    def test_results_memoized(self, upsell_resolver):
        first = upsell_resolver.resolve_name("GRR 3 bottles")
        assert upsell_resolver.resolve_name("GRR 3 bottles") is first

    def test_fallback_called_once_per_name(self):
        calls = []

        def fallback(name):
            calls.append(name)
            return name.lower()

        resolver = ArsenalResolver(_arsenal(auto_group_ungrouped=True), fallback=fallback)
        for _ in range(3):
            resolver.resolve_name("Vigor Boost")
        assert calls == ["Vigor Boost"]
