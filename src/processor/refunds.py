"""Refund cost calculation.

The single place where the cost of a refund or chargeback is defined.
Rules, evaluated in order:

1. Exempt: ``refund_amount == tax_amount`` (both present) costs nothing,
   whatever the platform.
2. BuyGoods itemizes refund rows:
   ``|gross| - commission - taxes - |gross| * fee% - fixed fee``
3. Every other platform (including unknown ones) collapses the cost into a
   signed merchant commission: ``|merchant_commission|``

Missing amounts count as 0.  Costs are never negative.
"""

from dataclasses import dataclass, field

from src.schema.models import Platform, TransactionRecord


FORMULA_NOT_APPLICABLE = "not_applicable"
FORMULA_EXEMPT = "exempt"
FORMULA_BUYGOODS = "buygoods"
FORMULA_MERCHANT_COMMISSION = "merchant_commission"


def _amount(value) -> float:
    return 0.0 if value is None else float(value)


def is_tax_neutral(record: TransactionRecord) -> bool:
    """True when the refunded amount is exactly the tax charged."""
    return (record.refund_amount is not None
            and record.tax_amount is not None
            and record.refund_amount == record.tax_amount)


@dataclass(frozen=True)
class RefundCostBreakdown:
    """Itemized refund cost, as shown in the R+CB tooltip.

    ``components`` lists (label, amount, subtracted) in formula order.
    """
    formula: str
    total: float
    components: tuple[tuple[str, float, bool], ...] = field(default_factory=tuple)

    @property
    def is_exempt(self) -> bool:
        return self.formula == FORMULA_EXEMPT


def refund_cost_breakdown(record: TransactionRecord) -> RefundCostBreakdown:
    """Explain how :func:`refund_cost` arrives at its figure for *record*."""
    if not record.is_refund:
        return RefundCostBreakdown(FORMULA_NOT_APPLICABLE, 0.0)
    if is_tax_neutral(record):
        return RefundCostBreakdown(FORMULA_EXEMPT, 0.0)

    if record.platform_code == Platform.BUYGOODS.value:
        revenue = abs(_amount(record.gross_amount))
        commission = _amount(record.affiliate_commission)
        taxes = _amount(record.tax_amount)
        fee_percent_amount = revenue * _amount(record.platform_fee_percent)
        fee_fixed = _amount(record.platform_fee_fixed)
        cost = revenue - commission - taxes - fee_percent_amount - fee_fixed
        return RefundCostBreakdown(
            formula=FORMULA_BUYGOODS,
            total=max(cost, 0.0),
            components=(
                ("Revenue", revenue, False),
                ("Aff Commission", commission, True),
                ("Taxes", taxes, True),
                ("Platform Fee (%)", fee_percent_amount, True),
                ("Platform Fee ($)", fee_fixed, True),
            ),
        )

    merchant_commission = abs(_amount(record.merchant_commission))
    return RefundCostBreakdown(
        formula=FORMULA_MERCHANT_COMMISSION,
        total=merchant_commission,
        components=(("Merchant Commission", merchant_commission, False),),
    )


def refund_cost(record: TransactionRecord) -> float:
    """Monetary loss caused by a refund/chargeback row (0 for sales and rebills).

    Examples:
        BUYGOODS gross=100, commission=20, tax=5, fee%=0.05, fixed=1 -> 69.0
        CLICKBANK merchant_commission=-42.50 -> 42.5
        refund_amount == tax_amount -> 0.0
    """
    return refund_cost_breakdown(record).total
