"""Derived metrics — non-additive figures computed from aggregated sums.

Every function here takes the running sums of one bucket and returns a
derived value.  Nothing derived is ever stored: rows, page footers and grand
totals all call these same functions, so they cannot drift apart.

Waterfall (all amounts in the report currency):

    gross sales = revenue - taxes - platform fee (%) - platform fee ($)
    net sales   = gross sales - commission
    net         = net sales - refund/chargeback cost
    profit      = net - COGS
    allowance   = gross sales * allowance rate (10%)
    cash flow   = profit - allowance

Rates are returned in percent (3.5 means 3.5%).  Zero denominators yield 0.
"""

import math

from src.schema.models import EngineConfig


DEFAULT_ALLOWANCE_RATE = EngineConfig().allowance_rate

HEALTH_STATUS_TIERS = (
    (95, "excellent"),
    (85, "good"),
    (75, "fair"),
    (50, "poor"),
)


# ---------------------------------------------------------------------------
# Safe math helpers
# ---------------------------------------------------------------------------

def safe_div(numerator, denominator, default=0.0):
    """Divide safely, returning *default* on a zero/missing/NaN denominator."""
    if denominator is None or denominator == 0:
        return default
    if isinstance(denominator, float) and math.isnan(denominator):
        return default
    if numerator is None or (isinstance(numerator, float) and math.isnan(numerator)):
        return default
    result = numerator / denominator
    if math.isinf(result):
        return default
    return result


def safe_pct(numerator, denominator) -> float:
    """``numerator / denominator * 100`` or 0."""
    return safe_div(numerator, denominator) * 100


# ---------------------------------------------------------------------------
# Waterfall
# ---------------------------------------------------------------------------

def gross_sales(total_revenue: float, taxes: float,
                platform_fee_percent_amount: float,
                platform_fee_fixed_amount: float) -> float:
    """Revenue net of taxes and platform fees, before commission."""
    return total_revenue - taxes - platform_fee_percent_amount - platform_fee_fixed_amount


def net_sales(gross: float, commission_paid: float) -> float:
    return gross - commission_paid


def net(net_sales_value: float, refunds_and_chargebacks_cost: float) -> float:
    """Net sales minus refund cost (the cost is a positive loss)."""
    return net_sales_value - refunds_and_chargebacks_cost


def profit(net_value: float, cogs: float) -> float:
    return net_value - cogs


def allowance(gross: float, rate: float = DEFAULT_ALLOWANCE_RATE) -> float:
    """Flat operational allowance held back from gross sales."""
    return gross * rate


def cash_flow(profit_value: float, allowance_value: float) -> float:
    return profit_value - allowance_value


# ---------------------------------------------------------------------------
# Ratios
# ---------------------------------------------------------------------------

def aov(total_revenue: float, unique_customer_count: int) -> float:
    """Average order value: revenue per unique customer."""
    return safe_div(total_revenue, unique_customer_count)


def refund_rate(refund_count: int, sales_count: int) -> float:
    return safe_pct(refund_count, sales_count)


def chargeback_rate(chargeback_count: int, sales_count: int) -> float:
    return safe_pct(chargeback_count, sales_count)


def platform_fee_rate(platform_fee_percent_amount: float,
                      platform_fee_fixed_amount: float,
                      total_revenue: float) -> float:
    """Both platform fees as a share of revenue."""
    return safe_pct(platform_fee_percent_amount + platform_fee_fixed_amount, total_revenue)


def commission_rate(commission_paid: float, total_revenue: float) -> float:
    return safe_pct(commission_paid, total_revenue)


# ---------------------------------------------------------------------------
# Affiliate health
# ---------------------------------------------------------------------------

def health_score(sales_count: int, refund_rate_value: float,
                 chargeback_rate_value: float) -> float:
    """Traffic quality score from 0 to 100.

    Refunds cost 2 points per percent, chargebacks 3.  No sales scores 0.
    """
    if sales_count <= 0:
        return 0.0
    return max(0.0, 100 - refund_rate_value * 2 - chargeback_rate_value * 3)


def health_status(score: float) -> str:
    """Bucket a health score: excellent, good, fair, poor or critical."""
    for threshold, status in HEALTH_STATUS_TIERS:
        if score >= threshold:
            return status
    return "critical"
