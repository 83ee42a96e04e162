"""Built-in system arsenals.

Every account starts with two read-only arsenals:

- ``default``: no custom groups, every product auto-grouped by name
  similarity.  Good for a quick overview.
- ``frontend-upsell``: the house product lines with their upsell offers
  broken out, unmatched products shown individually.
"""

from .models import (
    Arsenal,
    ArsenalConfig,
    CustomProductGroup,
    MatchRule,
    OfferRule,
    OfferType,
)


DEFAULT_ARSENAL_ID = "default"
FRONTEND_UPSELL_ARSENAL_ID = "frontend-upsell"


def _contains(*values: str) -> tuple[MatchRule, ...]:
    return tuple(MatchRule.contains(v) for v in values)


def _upsell(offer_id: str, name: str, *values: str, order: int) -> OfferRule:
    return OfferRule(
        id=offer_id,
        name=name,
        offer_type=OfferType.UPSELL,
        match_rules=_contains(*values),
        order=order,
    )


def build_default_arsenal(user_id: str | None = None) -> Arsenal:
    """Arsenal that groups every product automatically by similar name."""
    return Arsenal(
        id=DEFAULT_ARSENAL_ID,
        name="Automatic grouping",
        description=(
            "System arsenal. Groups all products by similar names without "
            "separating frontend from upsells."
        ),
        is_default=True,
        user_id=user_id,
        custom_groups=(),
        config=ArsenalConfig(
            auto_group_ungrouped=True,
            show_individual_products=False,
            sort_by="name",
        ),
    )


def build_frontend_upsell_arsenal(user_id: str | None = None) -> Arsenal:
    """Arsenal that separates the main products from their upsells."""
    groups = (
        CustomProductGroup(
            id="group-men-balance",
            name="Men Balance",
            description="Men Balance and its upsells",
            match_rules=_contains("men balance"),
            offers=(
                _upsell("offer-tmax-1", "T-Max", "t-max", "tmax", order=1),
                _upsell("offer-vigor-1", "Vigor Boost", "vigor boost", order=2),
            ),
            color="#3b82f6",
            order=1,
        ),
        CustomProductGroup(
            id="group-free-sugar",
            name="Free Sugar Pro",
            description="Free Sugar Pro and its upsells",
            match_rules=_contains("free sugar"),
            color="#10b981",
            order=2,
        ),
        CustomProductGroup(
            id="group-glpro",
            name="GLPro",
            description="GLPro and its upsells",
            match_rules=_contains("glpro", "gl pro"),
            offers=(
                _upsell("offer-vigor-2", "Vigor Boost", "vigor boost", order=1),
                _upsell("offer-tmax-2", "T-Max", "t-max", "tmax", order=2),
            ),
            color="#8b5cf6",
            order=3,
        ),
        CustomProductGroup(
            id="group-grr",
            name="Glucose Reset Ritual",
            description="GRR and its upsells",
            match_rules=_contains("glucose reset ritual", "grr"),
            offers=(
                _upsell("offer-metabolic", "Metabolic Defense Accelerator",
                        "metabolic defense accelerator", order=1),
                _upsell("offer-harmony", "Glucose Harmony Elixir",
                        "glucose harmony elixir", order=2),
                _upsell("offer-21day", "21-Day Wellness Reset",
                        "21-day wellness reset", "21 day wellness reset", order=3),
            ),
            color="#f59e0b",
            order=4,
        ),
    )
    return Arsenal(
        id=FRONTEND_UPSELL_ARSENAL_ID,
        name="Frontend + Upsells",
        description=(
            "System arsenal. Separates the main (frontend) products from their "
            "upsells: Men Balance, Free Sugar Pro, GLPro and Glucose Reset Ritual."
        ),
        is_default=True,
        user_id=user_id,
        custom_groups=groups,
        config=ArsenalConfig(
            auto_group_ungrouped=False,
            show_individual_products=True,
            sort_by="name",
        ),
    )


def build_system_arsenals(user_id: str | None = None) -> list[Arsenal]:
    """Both system arsenals, automatic grouping first."""
    return [build_default_arsenal(user_id), build_frontend_upsell_arsenal(user_id)]
