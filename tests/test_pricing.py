"""Tests for the pricing engine."""

from datetime import datetime
from decimal import Decimal

import pytest

from shop_service.errors import EmptyCart, InvalidQuantity, ValidationError
from shop_service.pricing import PricedLine, PromocodeSnapshot, compute_price

NOW = datetime(2026, 10, 19, 12, 0, 0)


def cart(*prices_and_quantities):
    return [
        PricedLine(slug=f"p{i}", title=f"Product {i}", unit_price=Decimal(str(price)), quantity=quantity)
        for i, (price, quantity) in enumerate(prices_and_quantities)
    ]


def promo(type="order", percent=10, usages=1, **kwargs):
    return PromocodeSnapshot(name="PROMO", type=type, percent_discount=Decimal(percent), available_usages=usages, **kwargs)


class TestBaseDiscountTiers:
    @pytest.mark.parametrize(
        "subtotal, expected",
        [
            ("0.01", "0"),
            ("699.99", "0"),
            ("700.00", "35.00"),
            ("1499.99", "74.9995"),
            ("1500.00", "300.00"),
            ("2000", "400"),
        ],
    )
    def test_tier_boundaries(self, subtotal, expected):
        breakdown = compute_price(cart((subtotal, 1)), "shipping")
        assert breakdown.base_discount == Decimal(expected)

    def test_tiers_do_not_stack(self):
        breakdown = compute_price(cart((1000, 2)), "shipping")
        assert breakdown.base_discount == Decimal("400")
        assert breakdown.discount_description.startswith("20%")

    def test_subtotal_sums_all_lines(self):
        breakdown = compute_price(cart((100, 2), ("49.50", 3)), "shipping")
        assert breakdown.subtotal == Decimal("348.50")


class TestShipping:
    @pytest.mark.parametrize(
        "subtotal, fee, free",
        [("399.99", "20", False), ("400.00", "0", True), ("450", "0", True)],
    )
    def test_fee_boundary(self, subtotal, fee, free):
        breakdown = compute_price(cart((subtotal, 1)), "shipping")
        assert breakdown.shipping_cost == Decimal(fee)
        assert breakdown.free_shipping_applied is free

    def test_self_pickup_stacks_three_percent(self):
        breakdown = compute_price(cart((1000, 1)), "selfShipping")
        assert breakdown.base_discount == Decimal("50")
        assert breakdown.self_pickup_discount == Decimal("30")
        assert breakdown.total_amount == Decimal("920")
        assert breakdown.shipping_cost == 0
        assert breakdown.free_shipping_applied is False

    def test_self_pickup_below_free_shipping_has_no_fee(self):
        breakdown = compute_price(cart((100, 1)), "selfShipping")
        assert breakdown.shipping_cost == 0
        assert breakdown.total_amount == Decimal("97")

    def test_unknown_shipping_type(self):
        with pytest.raises(ValidationError):
            compute_price(cart((100, 1)), "drone")


class TestScenarios:
    def test_scenario_a_delivery_800(self):
        result = compute_price(cart((400, 2)), "shipping").as_dict()
        assert result["discount"]["baseDiscount"] == 40.0
        assert result["shippingCost"] == 0.0
        assert result["freeShipping"] is True
        assert result["totalAmount"] == 760.0

    def test_scenario_b_self_pickup_1600(self):
        result = compute_price(cart((800, 2)), "selfShipping").as_dict()
        assert result["discount"]["baseDiscount"] == 320.0
        assert result["discount"]["selfShippingDiscount"] == 48.0
        assert result["discount"]["totalDiscount"] == 368.0
        assert result["totalAmount"] == 1232.0

    def test_scenario_c_delivery_300(self):
        result = compute_price(cart((300, 1)), "shipping").as_dict()
        assert result["discount"]["baseDiscount"] == 0.0
        assert result["shippingCost"] == 20.0
        assert result["totalAmount"] == 320.0


class TestPromocodes:
    def test_order_promocode_uses_subtotal(self):
        breakdown = compute_price(cart((800, 1)), "shipping", promo("order", 10), now=NOW)
        # 800 - 40 (tier) - 80 (10% of subtotal)
        assert breakdown.promocode_discount == Decimal("80")
        assert breakdown.total_amount == Decimal("680")

    def test_whole_promocode_uses_running_total(self):
        breakdown = compute_price(cart((800, 1)), "shipping", promo("whole", 10), now=NOW)
        assert breakdown.promocode_discount == Decimal("76")
        assert breakdown.total_amount == Decimal("684")

    def test_shipping_promocode_discounts_fee(self):
        breakdown = compute_price(cart((100, 1)), "shipping", promo("shipping", 50), now=NOW)
        assert breakdown.promocode_discount == Decimal("10")
        assert breakdown.total_amount == Decimal("110")

    @pytest.mark.parametrize("shipping_type, price", [("shipping", 500), ("selfShipping", 100)])
    def test_shipping_promocode_without_fee_is_noop(self, shipping_type, price):
        breakdown = compute_price(cart((price, 1)), shipping_type, promo("shipping", 100), now=NOW)
        assert breakdown.promocode_discount == 0
        assert breakdown.as_dict()["promocodeDiscount"] == 0.0

    @pytest.mark.parametrize(
        "snapshot",
        [
            promo(is_actual=False),
            promo(usages=0),
            promo(valid_until=datetime(2026, 10, 19, 12, 0, 0)),
            promo(type="mystery"),
        ],
    )
    def test_unusable_promocode_is_ignored(self, snapshot):
        breakdown = compute_price(cart((800, 1)), "shipping", snapshot, now=NOW)
        assert breakdown.promocode_discount == 0
        assert breakdown.promocode is None
        assert breakdown.total_amount == Decimal("760")

    def test_promocode_valid_until_in_future(self):
        snapshot = promo(valid_until=datetime(2026, 10, 20))
        assert compute_price(cart((800, 1)), "shipping", snapshot, now=NOW).promocode is snapshot


class TestValidationAndRounding:
    def test_empty_cart(self):
        with pytest.raises(EmptyCart):
            compute_price([], "shipping")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_invalid_quantity(self, quantity):
        with pytest.raises(InvalidQuantity):
            compute_price(cart((100, quantity)), "shipping")

    def test_rounding_only_on_output(self):
        # 3 x 233.33 = 699.99 -> no tier; self-pickup 3% = 20.9997
        breakdown = compute_price(cart(("233.33", 3)), "selfShipping")
        assert breakdown.self_pickup_discount == Decimal("20.9997")
        assert breakdown.total_amount == Decimal("678.9903")
        result = breakdown.as_dict()
        assert result["discount"]["selfShippingDiscount"] == 21.0
        assert result["totalAmount"] == 678.99
