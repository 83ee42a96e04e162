"""Arsenal resolver — classifies a product name into a group and offer.

Resolution order for one product name:

1. Active custom groups in ascending ``order`` (ties keep list position).
   The first group with any matching rule wins.
2. Inside the winning group, offers in ascending ``order``; the first
   matching offer is attached.  No matching offer means the product is the
   group's frontend and is never handed to another group.
3. No group matched:
   - ``auto_group_ungrouped``: the pluggable fallback (name similarity by
     default) supplies the key;
   - ``show_individual_products`` off: one shared "Ungrouped" bucket;
   - otherwise the product is emitted under its own name.

Resolution is a pure function of (product name, arsenal snapshot); results
are memoized per resolver instance.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from src.schema.models import Arsenal, OfferType, TransactionRecord

from .rules import matches_any
from .similarity import extract_product_base_name


UNGROUPED_KEY = "__ungrouped__"
UNGROUPED_LABEL = "Ungrouped"
UNKNOWN_ITEM = "Unknown Item"


class ClassificationKind(Enum):
    """Where a classification came from."""
    CUSTOM_GROUP = "custom-group"
    AUTO_GROUP = "auto-group"
    INDIVIDUAL = "individual"


@dataclass(frozen=True)
class Classification:
    """Canonical (group, offer) assignment for a product name."""
    group_key: str
    group_label: str
    kind: ClassificationKind
    offer_key: str | None = None
    offer_label: str | None = None
    offer_type: OfferType | None = None

    @property
    def is_grouped(self) -> bool:
        return self.kind is not ClassificationKind.INDIVIDUAL

    @property
    def offer_bucket_key(self) -> str:
        """Group key, split by offer when one matched."""
        if self.offer_key is None:
            return self.group_key
        return f"{self.group_key}/{self.offer_key}"

    @property
    def offer_bucket_label(self) -> str:
        if self.offer_label is None:
            return self.group_label
        return f"{self.group_label} / {self.offer_label}"


class ArsenalResolver:
    """Classifies product names against one arsenal snapshot.

    Args:
        arsenal: The active arsenal, or None to emit every product verbatim.
        fallback: Maps an unmatched product name to its auto-group key when
            the arsenal enables ``auto_group_ungrouped``.

    Usage::

        resolver = ArsenalResolver(arsenal)
        resolver.resolve_name("MEN BALANCE PRO + T-MAX")
        # Classification(group_key="group-men-balance", offer_key="offer-tmax-1", ...)
    """

    def __init__(self, arsenal: Arsenal | None,
                 fallback: Callable[[str], str] = extract_product_base_name) -> None:
        self.arsenal = arsenal
        self.fallback = fallback
        # (group, offers by order) in evaluation order; group ids may repeat
        self._groups = [
            (g, sorted(g.offers, key=lambda o: o.order))
            for g in (arsenal.active_groups() if arsenal else [])
        ]
        self._cache: dict[str, Classification] = {}

    def resolve(self, record: TransactionRecord) -> Classification:
        """Classify a transaction by its product name."""
        return self.resolve_name(record.product_name)

    def resolve_name(self, product_name: str | None) -> Classification:
        name = product_name or ""
        cached = self._cache.get(name)
        if cached is None:
            cached = self._classify(name)
            self._cache[name] = cached
        return cached

    def _classify(self, name: str) -> Classification:
        for group, offers in self._groups:
            if not matches_any(group.match_rules, name):
                continue
            for offer in offers:
                if matches_any(offer.match_rules, name):
                    return Classification(
                        group_key=group.id,
                        group_label=group.name,
                        kind=ClassificationKind.CUSTOM_GROUP,
                        offer_key=offer.id,
                        offer_label=offer.name,
                        offer_type=offer.offer_type,
                    )
            return Classification(
                group_key=group.id,
                group_label=group.name,
                kind=ClassificationKind.CUSTOM_GROUP,
                offer_type=OfferType.FRONTEND,
            )
        return self._unmatched(name)

    def _unmatched(self, name: str) -> Classification:
        config = self.arsenal.config if self.arsenal else None
        if config is not None and config.auto_group_ungrouped and name:
            base = self.fallback(name)
            return Classification(
                group_key=base,
                group_label=base,
                kind=ClassificationKind.AUTO_GROUP,
            )
        if config is not None and not config.show_individual_products:
            return Classification(
                group_key=UNGROUPED_KEY,
                group_label=UNGROUPED_LABEL,
                kind=ClassificationKind.INDIVIDUAL,
            )
        name = name or UNKNOWN_ITEM
        return Classification(
            group_key=name,
            group_label=name,
            kind=ClassificationKind.INDIVIDUAL,
        )
