"""
Money helpers for marketplace orders.

``net_amount`` is never set on its own: every write of a total or fee goes
through ``compute_totals`` so that ``net = total - (commission + shipping +
tax + other)`` holds on every stored order.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce API values (int, float, numeric strings, None) to a 2dp Decimal."""
    if value is None or value == "":
        return Decimal("0.00")
    if isinstance(value, Decimal):
        amount = value
    else:
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Invalid money amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class FeeBreakdown:
    commission: Decimal = Decimal("0.00")
    shipping: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    other: Decimal = Decimal("0.00")

    def __post_init__(self):
        for name in ("commission", "shipping", "tax", "other"):
            object.__setattr__(self, name, to_money(getattr(self, name)))

    @property
    def total(self) -> Decimal:
        return self.commission + self.shipping + self.tax + self.other


@dataclass(frozen=True)
class OrderTotals:
    total_amount: Decimal
    fees: FeeBreakdown
    total_fees: Decimal
    net_amount: Decimal


def compute_totals(total_amount, fees: FeeBreakdown) -> OrderTotals:
    total = to_money(total_amount)
    if total < 0:
        raise ValueError(f"Order total cannot be negative: {total}")
    total_fees = fees.total
    return OrderTotals(
        total_amount=total,
        fees=fees,
        total_fees=total_fees,
        net_amount=total - total_fees,
    )
