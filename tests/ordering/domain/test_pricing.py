"""Tests for order pricing: tax by state, shipping by method, totals."""

from decimal import Decimal

import pytest

from ordering.order.pricing import (
    DEFAULT_TAX_RATE,
    PricedLine,
    ShippingMethod,
    price_order,
    shipping_cost_for,
    tax_rate_for,
)


def _line(price="100.00", quantity=1, category="PARTS"):
    return PricedLine(unit_price=Decimal(price), quantity=quantity, category=category)


class TestTaxRate:
    @pytest.mark.parametrize(
        "state,rate",
        [("CA", "0.08"), ("NY", "0.07"), ("TX", "0.06"), ("FL", "0.05"), ("ca", "0.08")],
    )
    def test_known_states(self, state, rate):
        assert tax_rate_for(state) == Decimal(rate)

    def test_other_states_use_default(self):
        assert tax_rate_for("OR") == DEFAULT_TAX_RATE
        assert tax_rate_for(None) == DEFAULT_TAX_RATE


class TestShipping:
    @pytest.mark.parametrize(
        "method,cost",
        [(ShippingMethod.STANDARD, "10.00"), (ShippingMethod.EXPRESS, "25.00"), (ShippingMethod.OVERNIGHT, "50.00")],
    )
    def test_rate_by_method(self, method, cost):
        assert shipping_cost_for([_line()], method) == Decimal(cost)

    def test_vehicles_ship_free(self):
        assert shipping_cost_for([_line(category="CARS"), _line()], ShippingMethod.EXPRESS) == Decimal("0.00")

    def test_expensive_items_ship_free(self):
        assert shipping_cost_for([_line(price="1500.00")], ShippingMethod.STANDARD) == Decimal("0.00")


class TestPriceOrder:
    def test_two_units_standard_shipping(self):
        pricing = price_order([_line("100.00", 2)], ShippingMethod.STANDARD, "OR")

        assert pricing.subtotal == Decimal("200.00")
        assert pricing.tax == Decimal("10.00")
        assert pricing.shipping == Decimal("10.00")
        assert pricing.total == Decimal("220.00")

    def test_total_identity_holds_with_discount(self):
        pricing = price_order(
            [_line("19.99", 3), _line("5.55", 1)],
            ShippingMethod.EXPRESS,
            "CA",
            discount=Decimal("4.00"),
        )

        assert pricing.subtotal == Decimal("65.52")
        assert pricing.total == pricing.subtotal + pricing.tax + pricing.shipping - pricing.discount

    def test_tax_rounds_half_up(self):
        pricing = price_order([_line("0.25", 1)], ShippingMethod.STANDARD, "OR")
        # 0.25 * 0.05 = 0.0125
        assert pricing.tax == Decimal("0.01")

    def test_no_lines(self):
        pricing = price_order([], ShippingMethod.STANDARD, "CA")
        assert pricing.total == Decimal("0.00")
