"""Design system utilities — value formatting and severity classification.

Formatting rules used by report tables and footers:
- Currency: $1,234.56 (negative as -$1,234.56)
- Compact currency: <$1k=$XXX, $1k-$999k=$XXXk, $1m+=$X.Xm
- Percentages: X.X%
- Integers: X,XXX

Refund-rate severity boundaries come from EngineConfig
(<1% good, 1-3% warning, >3% critical by default).
"""

import math

from .models import EngineConfig, FormatType, Severity


SEVERITY_COLORS = {
    Severity.GOOD: "#00AA00",
    Severity.WARNING: "#E0A800",
    Severity.CRITICAL: "#CC0000",
}


def _is_missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def format_currency(value: float | int | None) -> str:
    """Format a dollar value with cents and thousands separators."""
    if _is_missing(value):
        return "N/A"
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_compact_currency(value: float | int | None) -> str:
    """Format a dollar value using tiered abbreviation."""
    if _is_missing(value):
        return "N/A"
    v = abs(value)
    sign = "-" if value < 0 else ""
    if v < 1_000:
        return f"{sign}${v:,.0f}"
    if v < 999_950:
        k = v / 1_000
        # Clean trailing zeros: $12.0k -> $12k, $12.5k stays
        formatted = f"{k:.1f}"
        if formatted.endswith(".0"):
            formatted = formatted[:-2]
        return f"{sign}${formatted}k"
    m = v / 1_000_000
    return f"{sign}${m:.1f}m"


def format_percentage(value: float | int | None) -> str:
    """Format a rate already expressed in percent as X.X%."""
    if _is_missing(value):
        return "N/A"
    return f"{value:.1f}%"


def format_integer(value: float | int | None) -> str:
    """Format a whole number with comma separators."""
    if _is_missing(value):
        return "N/A"
    return f"{int(value):,}"


def format_value(value: float | int | str | None, format_type: FormatType) -> str:
    """Format a value according to its FormatType."""
    if isinstance(value, str):
        return value
    formatters = {
        FormatType.CURRENCY: format_currency,
        FormatType.COMPACT_CURRENCY: format_compact_currency,
        FormatType.PERCENTAGE: format_percentage,
        FormatType.INTEGER: format_integer,
        FormatType.TEXT: lambda v: str(v) if v is not None else "N/A",
    }
    formatter = formatters.get(format_type, str)
    return formatter(value)


# ---------------------------------------------------------------------------
# Refund-rate severity
# ---------------------------------------------------------------------------

def refund_rate_severity(rate: float | None,
                         config: EngineConfig | None = None) -> Severity:
    """Classify a refund rate (in percent) as good, warning or critical.

    A rate below ``refund_rate_good_below`` is good, a rate above
    ``refund_rate_critical_above`` is critical, and anything between
    (boundaries included) is a warning.  A missing rate counts as good.
    """
    config = config or EngineConfig()
    if _is_missing(rate) or rate < config.refund_rate_good_below:
        return Severity.GOOD
    if rate > config.refund_rate_critical_above:
        return Severity.CRITICAL
    return Severity.WARNING


def severity_color(severity: Severity) -> str:
    """Return the color hex for a severity bucket."""
    return SEVERITY_COLORS[severity]
