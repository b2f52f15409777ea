from decimal import Decimal

import pytest

from checkout_service.draft import OrderDraft
from checkout_service.models import CartLineItem, CatalogItem, DeliveryOption, PromoCode
from checkout_service.pricing import (
    calculate_delivery_fee,
    calculate_summary,
    calculate_tax,
    price_configuration,
    price_line_item,
    resolve_variation_choices,
    to_cents,
)


def test_line_item_with_addon_and_quantity(meal_line):
    assert price_line_item(meal_line) == Decimal("36.00")


def test_required_variation_defaults_to_first_option(burger):
    assert resolve_variation_choices(burger, {}) == {"Size": 0}
    # optional "Sauce" stays unselected and adds nothing
    assert price_configuration(burger, {}, set(), 1) == Decimal("10.00")


def test_variations_and_addons_are_added(burger):
    price = price_configuration(burger, {"Size": 1, "Sauce": 0}, {0, 1}, 2)
    # (10 + 2.50 + 0.50 + 2.00 + 1.50) * 2
    assert price == Decimal("33.00")


def test_discount_percentage_applied_before_quantity():
    item = CatalogItem(id="pizza", base_price=Decimal("14.50"), discount_percent=Decimal("10"))
    assert price_configuration(item, {}, set(), 2) == Decimal("26.10")


def test_rounding_happens_once_at_the_end():
    item = CatalogItem(id="odd", base_price=Decimal("3.335"))
    # rounding per unit would give 3.34 * 3 = 10.02
    assert price_configuration(item, {}, set(), 3) == Decimal("10.01")


def test_quantity_is_clamped_to_one(simple_item):
    assert price_configuration(simple_item, {}, set(), 0) == Decimal("10.00")
    assert price_configuration(simple_item, {}, set(), -4) == Decimal("10.00")


@pytest.mark.parametrize("discount", ["0", "25", "100"])
def test_price_is_non_negative_and_monotonic_in_quantity(burger, discount):
    item = burger.model_copy(update={"discount_percent": Decimal(discount)})
    prices = [price_configuration(item, {"Size": 1}, {0}, q) for q in range(1, 8)]
    assert all(p >= 0 for p in prices)
    assert prices == sorted(prices)


def test_invalid_addon_index_is_rejected(simple_item):
    with pytest.raises(ValueError):
        CartLineItem(item=simple_item, addon_indices={3})


def test_invalid_variation_choice_is_rejected(burger):
    with pytest.raises(ValueError):
        CartLineItem(item=burger, variation_choices={"Size": 2})
    with pytest.raises(ValueError):
        CartLineItem(item=burger, variation_choices={"Crust": 0})


def test_summary_scenario_with_fallback_tax(meal_line, standard):
    draft = OrderDraft(line_items=[meal_line], delivery_options=[standard])
    summary = calculate_summary(draft)
    assert summary.subtotal == Decimal("36.00")
    assert summary.delivery_fee == Decimal("5.00")
    assert summary.tax == Decimal("2.97")
    assert summary.tip == Decimal("0")
    assert summary.discount == Decimal("0")
    assert summary.total == Decimal("43.97")


def test_summary_is_idempotent(draft):
    draft.set_tip(3)
    assert calculate_summary(draft) == calculate_summary(draft)
    assert draft.summary == draft.summary


def test_server_tax_overrides_fallback(meal_line, standard):
    draft = OrderDraft(line_items=[meal_line], delivery_options=[standard], server_tax=Decimal("3.10"))
    assert draft.summary.tax == Decimal("3.10")
    assert draft.summary.total == Decimal("44.10")


def test_total_is_floored_at_zero(meal_line, standard):
    draft = OrderDraft(line_items=[meal_line], delivery_options=[standard], tip=2)
    draft.promo_code = PromoCode(code="HUGE", discount_amount=Decimal("500"), confirmed=True)
    summary = draft.summary
    assert summary.discount == Decimal("500.00")
    assert summary.total == Decimal("0")


def test_total_formula(meal_line, standard):
    draft = OrderDraft(line_items=[meal_line], delivery_options=[standard], tip=Decimal("4.50"))
    draft.promo_code = PromoCode(code="SAVE", discount_amount=Decimal("7.20"), confirmed=True)
    s = draft.summary
    assert s.total == max(Decimal("0"), s.subtotal + s.delivery_fee + s.tax + s.tip - s.discount)


def test_empty_draft_has_zero_totals():
    summary = OrderDraft().summary
    assert summary.subtotal == 0
    assert summary.delivery_fee == 0
    assert summary.total == 0


def test_free_delivery_threshold():
    option = DeliveryOption(id="standard", price=Decimal("3.99"), min_order_free_delivery=Decimal("30"))
    assert calculate_delivery_fee(option, Decimal("29.99")) == Decimal("3.99")
    assert calculate_delivery_fee(option, Decimal("30.00")) == Decimal("0")
    assert calculate_delivery_fee(None, Decimal("10")) == Decimal("0")


def test_tax_fallback_rate_and_cents():
    assert calculate_tax(Decimal("100.00")) == Decimal("8.25")
    assert calculate_tax(Decimal("100.00"), fallback_rate=Decimal("0.07")) == Decimal("7.00")
    assert to_cents(Decimal("43.97")) == 4397
