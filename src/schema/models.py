"""Rollup engine models - the contract between ingestion, classifier, and processor.

Defines the typed structure of the engine's inputs and configuration:
transaction records supplied by the data layer, the user-owned "Arsenal"
grouping configuration (groups, offers, match rules), and the named engine
constants.  Every configuration object round-trips through plain dicts so it
can be stored as YAML or JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TransactionType(Enum):
    """What kind of money movement a transaction row records."""
    SALE = "SALE"
    REFUND = "REFUND"
    CHARGEBACK = "CHARGEBACK"
    REBILL = "REBILL"


class TransactionStatus(Enum):
    """Settlement status reported by the platform."""
    COMPLETED = "COMPLETED"
    PENDING = "PENDING"
    FAILED = "FAILED"
    REFUNDED = "REFUNDED"
    CHARGEBACK = "CHARGEBACK"


class Platform(Enum):
    """Known sales platforms.  Records carry the platform as a plain string."""
    BUYGOODS = "BUYGOODS"
    CLICKBANK = "CLICKBANK"
    CARTPANDA = "CARTPANDA"
    DIGISTORE = "DIGISTORE"


class OfferType(Enum):
    """Position of a product in the sales funnel."""
    FRONTEND = "FRONTEND"
    UPSELL = "UPSELL"
    DOWNSELL = "DOWNSELL"
    ORDER_BUMP = "ORDER_BUMP"


class MatchRuleKind(Enum):
    """How a MatchRule compares its value against a product name."""
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    EXACT = "exact"
    REGEX = "regex"


class FormatType(Enum):
    """How to format a column value for display."""
    CURRENCY = "currency"        # $1,234.56
    COMPACT_CURRENCY = "compact_currency"  # <1k=$XXX, 1k-999k=$XXXk, 1m+=$X.Xm
    PERCENTAGE = "percentage"    # X.X%
    INTEGER = "integer"          # Whole number with comma separators
    TEXT = "text"                # Plain text, no formatting


class Severity(Enum):
    """Refund-rate health bucket shown next to a rate."""
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


REFUND_TYPES = (TransactionType.REFUND, TransactionType.CHARGEBACK)
BACK_SALE_OFFERS = (OfferType.UPSELL, OfferType.DOWNSELL, OfferType.ORDER_BUMP)

# Spellings used by stored configurations that predate the snake_case names
_RULE_KIND_ALIASES = {
    "startsWith": MatchRuleKind.STARTS_WITH,
    "endsWith": MatchRuleKind.ENDS_WITH,
}


def _parse_enum(enum_cls, value, default=None):
    """Look up *value* in *enum_cls* by value, returning *default* if unknown."""
    if value is None:
        return default
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError:
        return default


# ---------------------------------------------------------------------------
# TransactionRecord — one row supplied by the data layer
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransactionRecord:
    """An immutable transaction row, already joined with product data.

    Monetary fields that the platform may omit are nullable; the engine
    treats a missing value as 0.  ``platform_fee_percent`` is a decimal
    rate (0.05 = 5%).
    """
    id: str
    type: TransactionType
    product_name: str
    platform: str = ""
    status: str = TransactionStatus.COMPLETED.value
    occurred_at: datetime | None = None
    product_id: str | None = None
    affiliate_id: str | None = None
    customer_id: str | None = None
    gross_amount: float = 0.0
    net_amount: float | None = None
    tax_amount: float | None = None
    platform_fee_percent: float | None = None
    platform_fee_fixed: float | None = None
    affiliate_commission: float | None = None
    merchant_commission: float | None = None   # Refund rows only
    refund_amount: float | None = None
    quantity: int | float | None = None      # Fractional counts are kept as float
    product_cogs_per_unit: float | None = None
    offer_type: OfferType | None = None
    currency: str = "USD"

    @property
    def is_refund(self) -> bool:
        return self.type in REFUND_TYPES

    @property
    def is_completed(self) -> bool:
        return str(self.status).upper() == TransactionStatus.COMPLETED.value

    @property
    def is_back_sale(self) -> bool:
        return self.offer_type in BACK_SALE_OFFERS

    @property
    def platform_code(self) -> str:
        """Upper-cased platform for comparisons ("buygoods" == "BUYGOODS")."""
        return (self.platform or "").strip().upper()

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "status": self.status,
            "platform": self.platform,
            "product_name": self.product_name,
            "gross_amount": self.gross_amount,
            "currency": self.currency,
        }
        if self.occurred_at is not None:
            d["occurred_at"] = self.occurred_at.isoformat()
        if self.offer_type is not None:
            d["offer_type"] = self.offer_type.value
        for name in ("product_id", "affiliate_id", "customer_id", "net_amount",
                     "tax_amount", "platform_fee_percent", "platform_fee_fixed",
                     "affiliate_commission", "merchant_commission",
                     "refund_amount", "quantity", "product_cogs_per_unit"):
            value = getattr(self, name)
            if value is not None:
                d[name] = value
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "TransactionRecord":
        occurred = d.get("occurred_at")
        if isinstance(occurred, str):
            occurred = datetime.fromisoformat(occurred)
        return cls(
            id=str(d["id"]),
            type=TransactionType(str(d["type"]).strip().upper()),
            product_name=d.get("product_name") or "",
            platform=d.get("platform") or "",
            status=d.get("status") or TransactionStatus.COMPLETED.value,
            occurred_at=occurred,
            product_id=d.get("product_id"),
            affiliate_id=d.get("affiliate_id"),
            customer_id=d.get("customer_id"),
            gross_amount=d.get("gross_amount") or 0.0,
            net_amount=d.get("net_amount"),
            tax_amount=d.get("tax_amount"),
            platform_fee_percent=d.get("platform_fee_percent"),
            platform_fee_fixed=d.get("platform_fee_fixed"),
            affiliate_commission=d.get("affiliate_commission"),
            merchant_commission=d.get("merchant_commission"),
            refund_amount=d.get("refund_amount"),
            quantity=d.get("quantity"),
            product_cogs_per_unit=d.get("product_cogs_per_unit"),
            offer_type=_parse_enum(OfferType, d.get("offer_type")),
            currency=d.get("currency", "USD"),
        )


# ---------------------------------------------------------------------------
# Match rules
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class MatchRule:
    """A single product-name test inside a group or offer."""
    kind: MatchRuleKind
    value: str
    case_sensitive: bool = False

    def to_dict(self) -> dict:
        return {"type": self.kind.value, "value": self.value,
                "caseSensitive": self.case_sensitive}

    @classmethod
    def from_dict(cls, d: dict) -> "MatchRule":
        raw_kind = d.get("type", "contains")
        kind = _RULE_KIND_ALIASES.get(raw_kind)
        if kind is None:
            kind = MatchRuleKind(str(raw_kind).strip().lower())
        value = d.get("value")
        return cls(
            kind=kind,
            value="" if value is None else str(value),
            case_sensitive=bool(d.get("caseSensitive", d.get("case_sensitive", False))),
        )

    @classmethod
    def contains(cls, value: str, case_sensitive: bool = False) -> "MatchRule":
        return cls(MatchRuleKind.CONTAINS, value, case_sensitive)


def _rules_from_dicts(items) -> tuple[MatchRule, ...]:
    """Parse rule dicts, dropping unknown rule kinds (they could never match)."""
    rules = []
    for item in items or []:
        try:
            rules.append(MatchRule.from_dict(item))
        except ValueError:
            continue
    return tuple(rules)


# ---------------------------------------------------------------------------
# Offers and groups
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class OfferRule:
    """An upsell / downsell / order bump classified under a product group."""
    id: str
    name: str
    offer_type: OfferType
    match_rules: tuple[MatchRule, ...] = ()
    order: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "offerType": self.offer_type.value,
            "matchRules": [r.to_dict() for r in self.match_rules],
            "order": self.order,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "OfferRule":
        return cls(
            id=str(d["id"]),
            name=d.get("name", ""),
            offer_type=_parse_enum(OfferType, d.get("offerType", d.get("offer_type")),
                                   OfferType.UPSELL),
            match_rules=_rules_from_dicts(d.get("matchRules", d.get("match_rules"))),
            order=int(d.get("order", 0)),
        )


@dataclass(frozen=True)
class CustomProductGroup:
    """A logical product with its own match rules and nested offers."""
    id: str
    name: str
    match_rules: tuple[MatchRule, ...] = ()
    offers: tuple[OfferRule, ...] = ()
    order: int = 0
    is_active: bool = True
    description: str = ""
    color: str | None = None
    icon: str | None = None

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "matchRules": [r.to_dict() for r in self.match_rules],
            "offers": [o.to_dict() for o in self.offers],
            "order": self.order,
            "isActive": self.is_active,
        }
        if self.description:
            d["description"] = self.description
        if self.color:
            d["color"] = self.color
        if self.icon:
            d["icon"] = self.icon
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "CustomProductGroup":
        return cls(
            id=str(d["id"]),
            name=d.get("name", ""),
            match_rules=_rules_from_dicts(d.get("matchRules", d.get("match_rules"))),
            offers=tuple(OfferRule.from_dict(o) for o in d.get("offers", [])),
            order=int(d.get("order", 0)),
            is_active=bool(d.get("isActive", d.get("is_active", True))),
            description=d.get("description", ""),
            color=d.get("color"),
            icon=d.get("icon"),
        )


# ---------------------------------------------------------------------------
# Arsenal — a named grouping configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ArsenalConfig:
    """Behaviour switches for products no custom group claims."""
    auto_group_ungrouped: bool = False
    show_individual_products: bool = True
    sort_by: str = "name"                # name, revenue, sales, custom

    def to_dict(self) -> dict:
        return {
            "autoGroupUngrouped": self.auto_group_ungrouped,
            "showIndividualProducts": self.show_individual_products,
            "sortBy": self.sort_by,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "ArsenalConfig":
        return cls(
            auto_group_ungrouped=bool(d.get("autoGroupUngrouped",
                                            d.get("auto_group_ungrouped", False))),
            show_individual_products=bool(d.get("showIndividualProducts",
                                                d.get("show_individual_products", True))),
            sort_by=d.get("sortBy", d.get("sort_by", "name")),
        )


@dataclass(frozen=True)
class Arsenal:
    """User-owned product/offer grouping configuration.

    The engine only reads an Arsenal; instances are frozen so a snapshot
    cannot change while a rollup is being computed.
    """
    id: str
    name: str
    custom_groups: tuple[CustomProductGroup, ...] = ()
    config: ArsenalConfig = field(default_factory=ArsenalConfig)
    description: str = ""
    is_default: bool = False
    user_id: str | None = None

    def get_group(self, group_id: str) -> CustomProductGroup | None:
        """Look up a group by its id."""
        for g in self.custom_groups:
            if g.id == group_id:
                return g
        return None

    def active_groups(self) -> list[CustomProductGroup]:
        """Active groups in evaluation order (ascending ``order``, then position)."""
        return sorted((g for g in self.custom_groups if g.is_active),
                      key=lambda g: g.order)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "isDefault": self.is_default,
            "customGroups": [g.to_dict() for g in self.custom_groups],
            "config": self.config.to_dict(),
        }
        if self.description:
            d["description"] = self.description
        if self.user_id:
            d["userId"] = self.user_id
        return d

    @classmethod
    def from_dict(cls, d: dict) -> "Arsenal":
        return cls(
            id=str(d["id"]),
            name=d.get("name", ""),
            custom_groups=tuple(CustomProductGroup.from_dict(g)
                                for g in d.get("customGroups", d.get("custom_groups", []))),
            config=ArsenalConfig.from_dict(d.get("config", {})),
            description=d.get("description", ""),
            is_default=bool(d.get("isDefault", d.get("is_default", False))),
            user_id=d.get("userId", d.get("user_id")),
        )


# ---------------------------------------------------------------------------
# EngineConfig — named constants
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EngineConfig:
    """Constants that shape derived metrics and their presentation."""
    allowance_rate: float = 0.10              # Share of gross sales held back from cash flow
    refund_rate_good_below: float = 1.0       # Refund rate (%) under this is "good"
    refund_rate_critical_above: float = 3.0   # Refund rate (%) over this is "critical"
    default_page_size: int = 25
    page_size_options: tuple[int, ...] = (10, 25, 50, 100)

    def to_dict(self) -> dict:
        return {
            "allowance_rate": self.allowance_rate,
            "refund_rate_thresholds": {
                "good_below": self.refund_rate_good_below,
                "critical_above": self.refund_rate_critical_above,
            },
            "pagination": {
                "default_page_size": self.default_page_size,
                "page_size_options": list(self.page_size_options),
            },
        }

    @classmethod
    def from_dict(cls, d: dict) -> "EngineConfig":
        thresholds = d.get("refund_rate_thresholds", {})
        pagination = d.get("pagination", {})
        return cls(
            allowance_rate=float(d.get("allowance_rate", 0.10)),
            refund_rate_good_below=float(thresholds.get("good_below", 1.0)),
            refund_rate_critical_above=float(thresholds.get("critical_above", 3.0)),
            default_page_size=int(pagination.get("default_page_size", 25)),
            page_size_options=tuple(pagination.get("page_size_options", (10, 25, 50, 100))),
        )
