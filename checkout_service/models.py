"""
models.py — Data Models for the Checkout Core

This module defines the data structures used by the order-composition and pricing engine.
It uses Pydantic models to ensure type safety and automatic validation of catalog data,
selections and the payloads exchanged with the remote order service.

Models:
    - VariationOption / Variation / AddOn / CatalogItem: read-only catalog configuration.
    - CartLineItem: One catalog item plus its chosen configuration and quantity.
    - Address, DeliveryOption, PaymentMethod: Selectable values from the checkout catalog.
    - PromoCode: The (at most one) promo code applied to the draft.
    - PromoOffer: A promo rule as known by the order service.
    - PricingSummary: Derived totals of an order draft.
    - CheckoutDefaults: Selectable lists and server defaults at checkout start.
    - SubmitOrderRequest / OrderConfirmation: Final submission payload and its result.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, model_validator

TIP_OPTIONS = (0, 2, 3, 5, 10)


class VariationOption(BaseModel):
    """
    A single choosable option of a variation (e.g. "Large" for "Size").

    Attributes:
        name (str): Display name of the option.
        price (Decimal): Price delta added to the base price when chosen.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    price: Decimal = Decimal("0")


class Variation(BaseModel):
    """
    A named group of mutually exclusive options (exactly one is chosen).

    Attributes:
        name (str): Variation name, used as key in the line item configuration.
        required (bool): Required variations default to their first option when unselected.
        options (List[VariationOption]): The priced options, at least one.
    """
    model_config = ConfigDict(frozen=True)

    name: str
    required: bool = False
    options: List[VariationOption] = Field(..., min_length=1)


class AddOn(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    price: Decimal = Decimal("0")


class CatalogItem(BaseModel):
    """
    Line-item configuration data provided by the catalog collaborator.

    Attributes:
        id (str): Catalog item identifier.
        name (str): Display name.
        base_price (Decimal): Unit base price before variations and add-ons.
        variations (List[Variation]): Variation groups with priced options.
        addons (List[AddOn]): Optional priced add-ons.
        discount_percent (Decimal): Per-item discount between 0 and 100.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    base_price: Decimal = Field(..., ge=0)
    variations: List[Variation] = Field(default_factory=list)
    addons: List[AddOn] = Field(default_factory=list)
    discount_percent: Decimal = Field(Decimal("0"), ge=0, le=100)

    def variation(self, name: str) -> Optional[Variation]:
        for variation in self.variations:
            if variation.name == name:
                return variation
        return None


class CartLineItem(BaseModel):
    """
    One catalog item plus its chosen configuration and quantity within the cart.

    Attributes:
        item (CatalogItem): Snapshot of the catalog data the line was configured from.
        quantity (int): Number of units, always >= 1.
        variation_choices (Dict[str, int]): Variation name -> chosen option index.
        addon_indices (Set[int]): Indices of the chosen add-ons.
        instructions (str): Free-text note for this line (e.g. "no onions").

    Raises:
        pydantic.ValidationError: If a variation or add-on index does not reference an
            existing option on the catalog item.
    """
    model_config = ConfigDict(validate_assignment=True)

    item: CatalogItem
    quantity: int = Field(1, ge=1)
    variation_choices: Dict[str, int] = Field(default_factory=dict)
    addon_indices: Set[int] = Field(default_factory=set)
    instructions: str = ""

    @model_validator(mode="after")
    def _check_indices(self):
        for name, index in self.variation_choices.items():
            variation = self.item.variation(name)
            if variation is None:
                raise ValueError(f"unknown variation '{name}' for item {self.item.id}")
            if not 0 <= index < len(variation.options):
                raise ValueError(f"option index {index} out of range for variation '{name}'")
        for index in self.addon_indices:
            if not 0 <= index < len(self.item.addons):
                raise ValueError(f"add-on index {index} out of range for item {self.item.id}")
        return self

    @property
    def item_id(self) -> str:
        return self.item.id


class Address(BaseModel):
    """
    A delivery address from the customer's address book. Never mutated by the core.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    label: str = ""
    recipient: str = ""
    address_line1: str = ""
    address_line2: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = ""
    phone: str = ""
    delivery_instructions: str = ""
    is_default: bool = False


class DeliveryOption(BaseModel):
    """
    A delivery option offered at checkout.

    Attributes:
        id (str): Option identifier (e.g. 'standard', 'express').
        name (str): Display name.
        price (Decimal): Flat delivery fee.
        is_default (bool): Server-flagged default option.
        min_order_free_delivery (Optional[Decimal]): Subtotal from which delivery is free.
        schedule_slots (Dict[str, List[str]]): Optional time slots for scheduled delivery.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    description: str = ""
    price: Decimal = Field(Decimal("0"), ge=0)
    is_default: bool = False
    min_order_free_delivery: Optional[Decimal] = None
    schedule_slots: Dict[str, List[str]] = Field(default_factory=dict)


class PaymentKind(str, Enum):
    CARD = "card"
    WALLET = "wallet"
    CASH = "cash"
    OTHER = "other"


class PaymentMethod(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    kind: PaymentKind = PaymentKind.OTHER
    label: str = ""
    brand: str = ""
    last4: str = ""
    is_default: bool = False


class PromoCode(BaseModel):
    """
    The promo code applied to an order draft.

    While the remote service has not yet confirmed the code, `confirmed` is False and
    `discount_amount` is 0: the UI may show the code as applied, but no discount is
    granted before confirmation.
    """
    model_config = ConfigDict(frozen=True)

    code: str
    discount_amount: Decimal = Field(Decimal("0"), ge=0)
    description: str = ""
    applied: bool = True
    confirmed: bool = False


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    FREE_SHIPPING = "free_shipping"


class PromoOffer(BaseModel):
    """
    A promo rule as evaluated by the order service.

    Attributes:
        code (str): The code customers type in.
        description (str): Human readable description.
        discount_type (DiscountType): percentage, fixed amount or free shipping.
        discount_value (Decimal): Percentage or currency amount, depending on type.
        min_order_value (Decimal): Minimum subtotal for the code to be valid.
        is_active (bool): Inactive offers are always rejected.
    """
    code: str
    description: str = ""
    discount_type: DiscountType
    discount_value: Decimal = Decimal("0")
    min_order_value: Decimal = Decimal("0")
    is_active: bool = True

    def discount_for(self, subtotal: Decimal, delivery_fee: Decimal) -> Decimal:
        """Returns the discount amount this offer grants for the given order values."""
        if self.discount_type == DiscountType.PERCENTAGE:
            amount = subtotal * self.discount_value / Decimal("100")
        elif self.discount_type == DiscountType.FIXED:
            amount = self.discount_value
        else:
            amount = delivery_fee
        return amount.quantize(Decimal("0.01"))


class PromoValidation(BaseModel):
    """Result of a promo-code validation by the order service."""
    code: str
    valid: bool
    discount_amount: Decimal = Decimal("0")
    description: str = ""
    reason: str = ""


class PricingSummary(BaseModel):
    """
    Derived totals of an order draft. Never stored independently of the draft.
    """
    model_config = ConfigDict(frozen=True)

    subtotal: Decimal
    delivery_fee: Decimal
    tax: Decimal
    tip: Decimal
    discount: Decimal
    total: Decimal


class CheckoutDefaults(BaseModel):
    """
    Selectable lists and server-chosen defaults provided at checkout start.
    """
    addresses: List[Address] = Field(default_factory=list)
    payment_methods: List[PaymentMethod] = Field(default_factory=list)
    delivery_options: List[DeliveryOption] = Field(default_factory=list)
    default_address_id: Optional[str] = None
    default_payment_method_id: Optional[str] = None
    tip_options: List[Decimal] = Field(default_factory=lambda: [Decimal(t) for t in TIP_OPTIONS])
    tax: Optional[Decimal] = None


class SubmitLineItem(BaseModel):
    itemId: str
    quantity: int = Field(..., gt=0)
    variations: Dict[str, int] = Field(default_factory=dict)
    addons: List[int] = Field(default_factory=list)
    instructions: str = ""
    lineTotal: Decimal


class SubmitOrderRequest(BaseModel):
    """
    The final submission payload carrying the full order draft.

    Amounts are sent in the smallest currency units (cents), the same way the
    payment side of the platform expects them.
    """
    checkoutId: str
    addressId: str
    paymentMethodId: str
    deliveryOptionId: Optional[str] = None
    promoCode: Optional[str] = None
    tipCents: int = Field(0, ge=0)
    totalCents: int = Field(..., ge=0)
    specialInstructions: str = ""
    items: List[SubmitLineItem]


class OrderConfirmation(BaseModel):
    """
    Order confirmation returned by the order service; rendered by the tracking view.
    """
    orderId: str
    status: str = "confirmed"
    estimatedDelivery: Optional[str] = None
    trackingReference: Optional[str] = None
    totalCents: Optional[int] = None
