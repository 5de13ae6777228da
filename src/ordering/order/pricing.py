"""Order pricing — tax, shipping and totals.

All amounts are Decimals rounded half-up to cents. The invariants
``subtotal == sum(unit_price * quantity)`` and
``total == subtotal + tax + shipping - discount`` hold for every
:class:`OrderPricing` this module produces.
"""

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from shared.database import to_money

ZERO = Decimal("0.00")

TAX_RATES = {
    "CA": Decimal("0.08"),
    "NY": Decimal("0.07"),
    "TX": Decimal("0.06"),
    "FL": Decimal("0.05"),
}
DEFAULT_TAX_RATE = Decimal("0.05")

# Goods above this unit price, and anything in the CARS category, ship free.
BULKY_UNIT_PRICE = Decimal("1000")
BULKY_CATEGORIES = frozenset({"CARS"})


class ShippingMethod(Enum):
    STANDARD = "standard"
    EXPRESS = "express"
    OVERNIGHT = "overnight"


SHIPPING_RATES = {
    ShippingMethod.STANDARD: Decimal("10.00"),
    ShippingMethod.EXPRESS: Decimal("25.00"),
    ShippingMethod.OVERNIGHT: Decimal("50.00"),
}


@dataclass(frozen=True)
class PricedLine:
    unit_price: Decimal
    quantity: int
    category: str | None = None

    @property
    def total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    @property
    def is_bulky(self) -> bool:
        return self.unit_price > BULKY_UNIT_PRICE or self.category in BULKY_CATEGORIES


@dataclass(frozen=True)
class OrderPricing:
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    discount: Decimal
    total: Decimal


def tax_rate_for(state: str | None) -> Decimal:
    return TAX_RATES.get((state or "").upper(), DEFAULT_TAX_RATE)


def shipping_cost_for(lines: Iterable[PricedLine], method: ShippingMethod) -> Decimal:
    if any(line.is_bulky for line in lines):
        return ZERO
    return SHIPPING_RATES[method]


def price_order(
    lines: Iterable[PricedLine],
    shipping_method: ShippingMethod,
    shipping_state: str | None,
    discount: Decimal = ZERO,
) -> OrderPricing:
    lines = list(lines)
    subtotal = to_money(sum((line.total for line in lines), ZERO))
    tax = to_money(subtotal * tax_rate_for(shipping_state))
    shipping = shipping_cost_for(lines, shipping_method) if lines else ZERO
    discount = to_money(discount)
    total = to_money(subtotal + tax + shipping - discount)
    return OrderPricing(subtotal=subtotal, tax=tax, shipping=shipping, discount=discount, total=total)
