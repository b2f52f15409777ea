"""
pricing.py — Line Item Pricer and Pricing Summary Calculator

This module contains the pure pricing functions of the checkout core. Nothing in here
holds state: every function returns the same result for the same input and can be
called any number of times.

Pricing rules:
    1. Line item: (base + chosen variation deltas + chosen add-on deltas),
       minus the per-item discount percentage, times quantity.
       Rounded to cents only at the very end.
    2. Summary: subtotal, delivery fee, tax, tip, discount and a total that is
       never negative.
"""

import logging
import os
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Optional

from .models import CartLineItem, CatalogItem, DeliveryOption, PricingSummary, PromoCode

log = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")

# Vorläufiger Steuersatz, solange der Order Service noch keine Steuer geliefert hat
FALLBACK_TAX_RATE = Decimal(os.environ.get("FALLBACK_TAX_RATE", "0.0825"))


def to_money(value) -> Decimal:
    """Rounds a Decimal (or int/str/float) to currency precision."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def resolve_variation_choices(item: CatalogItem, variation_choices: Mapping[str, int]) -> dict:
    """
    Returns the effective option index per variation.

    Required variations without a choice default to their first option (index 0).
    Optional variations without a choice are left out and add nothing to the price.
    """
    resolved = {}
    for variation in item.variations:
        if variation.name in variation_choices:
            resolved[variation.name] = variation_choices[variation.name]
        elif variation.required:
            resolved[variation.name] = 0
    return resolved


def unit_price(item: CatalogItem, variation_choices: Mapping[str, int], addon_indices: Iterable[int]) -> Decimal:
    """
    Computes the unrounded price of a single unit, discount included.

    Args:
        item (CatalogItem): Catalog configuration data.
        variation_choices (Mapping[str, int]): Variation name -> chosen option index.
        addon_indices (Iterable[int]): Chosen add-on indices.

    Returns:
        Decimal: Unit price at full precision.

    Raises:
        KeyError / IndexError: If a choice does not reference an existing option.
    """
    price = item.base_price
    for name, index in resolve_variation_choices(item, variation_choices).items():
        variation = item.variation(name)
        if variation is None:
            raise KeyError(f"unknown variation '{name}' for item {item.id}")
        price += variation.options[index].price
    for index in set(addon_indices):
        price += item.addons[index].price

    if item.discount_percent:
        price *= (Decimal("1") - item.discount_percent / Decimal("100"))
    return price


def price_configuration(item: CatalogItem, variation_choices: Mapping[str, int],
                        addon_indices: Iterable[int], quantity: int) -> Decimal:
    """
    Prices one configured catalog item.

    Quantity is clamped to at least 1. The result is rounded to two decimals only
    after the quantity multiplication, so rounding errors do not compound.

    Returns:
        Decimal: Non-negative line price in currency units.
    """
    quantity = max(1, int(quantity))
    price = unit_price(item, variation_choices, addon_indices) * quantity
    return max(ZERO, to_money(price))


def price_line_item(line: CartLineItem) -> Decimal:
    return price_configuration(line.item, line.variation_choices, line.addon_indices, line.quantity)


def calculate_subtotal(line_items: Iterable[CartLineItem]) -> Decimal:
    return sum((price_line_item(line) for line in line_items), ZERO)


def calculate_delivery_fee(option: Optional[DeliveryOption], subtotal: Decimal) -> Decimal:
    if option is None:
        return ZERO
    if option.min_order_free_delivery is not None and subtotal >= option.min_order_free_delivery:
        return ZERO
    return to_money(option.price)


def calculate_tax(subtotal: Decimal, server_tax: Optional[Decimal] = None,
                  fallback_rate: Decimal = FALLBACK_TAX_RATE) -> Decimal:
    """
    Returns the server-provided tax if present, otherwise the fallback rate applied
    to the subtotal. The fallback is a preview value only; the authoritative total
    comes from the order service at submission time.
    """
    if server_tax is not None:
        return to_money(server_tax)
    return to_money(subtotal * fallback_rate)


def calculate_discount(promo_code: Optional[PromoCode]) -> Decimal:
    if promo_code is None or not promo_code.applied:
        return ZERO
    return to_money(promo_code.discount_amount)


def calculate_summary(draft, fallback_rate: Decimal = FALLBACK_TAX_RATE) -> PricingSummary:
    """
    Derives the pricing summary from an order draft.

    The draft is only read. The summary is always rebuilt from scratch from the
    draft's current values and never patched incrementally.

    Args:
        draft: Any object exposing `line_items`, `delivery_option`, `tip`,
            `promo_code` and `server_tax` (normally an `OrderDraft`).
        fallback_rate (Decimal): Tax rate used while no server tax is known.

    Returns:
        PricingSummary: subtotal, delivery_fee, tax, tip, discount and total, where
            total = max(0, subtotal + delivery_fee + tax + tip - discount).
    """
    subtotal = calculate_subtotal(draft.line_items)
    delivery_fee = calculate_delivery_fee(draft.delivery_option, subtotal)
    tax = calculate_tax(subtotal, draft.server_tax, fallback_rate)
    tip = to_money(draft.tip)
    discount = calculate_discount(draft.promo_code)

    total = subtotal + delivery_fee + tax + tip - discount
    if total < ZERO:
        log.debug(f"Rabatt {discount} übersteigt Bestellwert, Gesamtbetrag auf 0 begrenzt.")
        total = ZERO

    return PricingSummary(
        subtotal=subtotal,
        delivery_fee=delivery_fee,
        tax=tax,
        tip=tip,
        discount=discount,
        total=to_money(total),
    )


def to_cents(amount: Decimal) -> int:
    # Conversion of Decimal (e.g., 43.97) to cents (4397)
    return int((to_money(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))
