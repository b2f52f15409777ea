"""
draft.py — Order Draft Aggregator

The `OrderDraft` is the single source of truth for an in-progress order. It holds
the cart line items and every checkout selection, and it is only ever changed
through the mutation methods below.

All mutations are synchronous and always succeed locally: the draft reflects the
user's latest intent immediately. Remote rejections are reconciled afterwards by
the sync adapter through `confirm_promo_code` / `revert_promo_code`.

After each mutation the pricing summary is rebuilt from the current draft and
handed to all subscribers.
"""

import logging
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

from .models import (
    Address,
    CartLineItem,
    CheckoutDefaults,
    DeliveryOption,
    PaymentMethod,
    PricingSummary,
    PromoCode,
)
from .pricing import ZERO, calculate_summary, to_money

log = logging.getLogger(__name__)


def resolve_default(options: Sequence, preferred_id: Optional[str] = None):
    """
    Default-resolution rule for selectable catalogs.

    Returns the option whose id equals `preferred_id` (server-chosen default), else
    the first option flagged `is_default`, else the first option, else None.
    """
    if preferred_id is not None:
        for option in options:
            if option.id == preferred_id:
                return option
    for option in options:
        if option.is_default:
            return option
    return options[0] if options else None


class OrderDraft:
    """
    Mutable aggregate root of a checkout session.

    Attributes:
        line_items (List[CartLineItem]): Ordered cart lines.
        address (Optional[Address]): Selected delivery address.
        delivery_option (Optional[DeliveryOption]): Selected delivery option. Always set
            when at least one option is offered.
        payment_method (Optional[PaymentMethod]): Selected payment method (at most one).
        tip (Decimal): Tip amount, >= 0.
        special_instructions (str): Free text for the restaurant/courier.
        promo_code (Optional[PromoCode]): The applied promo code, if any.
        server_tax (Optional[Decimal]): Tax as priced by the order service.
        revision (int): Incremented on every mutation.
    """

    def __init__(self, line_items: Optional[List[CartLineItem]] = None,
                 delivery_options: Optional[List[DeliveryOption]] = None,
                 address: Optional[Address] = None,
                 payment_method: Optional[PaymentMethod] = None,
                 delivery_option: Optional[DeliveryOption] = None,
                 tip=ZERO,
                 special_instructions: str = "",
                 server_tax: Optional[Decimal] = None):
        self.line_items: List[CartLineItem] = list(line_items or [])
        self.delivery_options: List[DeliveryOption] = list(delivery_options or [])
        self.address = address
        self.payment_method = payment_method
        self.delivery_option = delivery_option or resolve_default(self.delivery_options)
        self.tip = to_money(max(Decimal(str(tip)), ZERO))
        self.special_instructions = special_instructions
        self.promo_code: Optional[PromoCode] = None
        self.server_tax = server_tax
        self.revision = 0
        self._listeners: List[Callable[["OrderDraft", PricingSummary], None]] = []

    @classmethod
    def from_defaults(cls, defaults: CheckoutDefaults, line_items: List[CartLineItem]) -> "OrderDraft":
        """
        Creates a draft at checkout start, seeded from the server-provided defaults.
        """
        return cls(
            line_items=line_items,
            delivery_options=defaults.delivery_options,
            address=resolve_default(defaults.addresses, defaults.default_address_id),
            payment_method=resolve_default(defaults.payment_methods, defaults.default_payment_method_id),
            server_tax=defaults.tax,
        )

    # --- derived state ---

    @property
    def summary(self) -> PricingSummary:
        return calculate_summary(self)

    def subscribe(self, callback: Callable[["OrderDraft", PricingSummary], None]):
        """Registers a callback invoked with (draft, fresh summary) after every mutation."""
        self._listeners.append(callback)

    def _changed(self, what: str):
        self.revision += 1
        log.debug(f"Draft geändert ({what}), Revision {self.revision}.")
        if not self._listeners:
            return
        summary = calculate_summary(self)
        for callback in list(self._listeners):
            callback(self, summary)

    # --- selections ---

    def set_address(self, address: Address):
        self.address = address
        self._changed("address")

    def set_payment_method(self, payment_method: PaymentMethod):
        # single assignment: the previous method is deselected in the same step
        self.payment_method = payment_method
        self._changed("payment_method")

    def set_delivery_option(self, option: DeliveryOption):
        self.delivery_option = option
        self._unconfirm_promo_code()
        self._changed("delivery_option")

    def set_tip(self, amount):
        """Sets the tip. Negative amounts are clamped to 0."""
        amount = Decimal(str(amount))
        if amount < ZERO:
            log.warning(f"Negatives Trinkgeld ({amount}) auf 0 gesetzt.")
            amount = ZERO
        self.tip = to_money(amount)
        self._changed("tip")

    def set_special_instructions(self, text: str):
        self.special_instructions = text or ""
        self._changed("special_instructions")

    def set_server_tax(self, amount: Optional[Decimal]):
        self.server_tax = None if amount is None else to_money(amount)
        self._changed("server_tax")

    # --- promo code ---

    def apply_promo_code(self, code: str) -> Optional[PromoCode]:
        """
        Optimistically applies a promo code, replacing any previously applied one.

        The code is shown as applied right away but grants no discount until the
        order service confirms it via `confirm_promo_code`.

        Returns:
            Optional[PromoCode]: The pending promo code, or None for an empty code.
        """
        code = (code or "").strip().upper()
        if not code:
            return None
        self.promo_code = PromoCode(code=code)
        self._changed("promo_code")
        return self.promo_code

    def confirm_promo_code(self, code: str, discount_amount: Decimal, description: str = "") -> bool:
        """
        Grants the confirmed discount if `code` is still the applied code.

        Returns:
            bool: False if the code was replaced or removed in the meantime.
        """
        if self.promo_code is None or self.promo_code.code != code:
            return False
        self.promo_code = PromoCode(
            code=code,
            discount_amount=to_money(discount_amount),
            description=description,
            confirmed=True,
        )
        self._changed("promo_code")
        return True

    def revert_promo_code(self, code: str) -> bool:
        """Reverts the applied state of `code`; a newer code is left untouched."""
        if self.promo_code is None or self.promo_code.code != code:
            return False
        self.promo_code = None
        self._changed("promo_code")
        return True

    def remove_promo_code(self):
        if self.promo_code is None:
            return
        self.promo_code = None
        self._changed("promo_code")

    def _unconfirm_promo_code(self):
        # a confirmed discount was granted for the old subtotal and delivery fee
        if self.promo_code is not None and self.promo_code.confirmed:
            log.info(f"Gutscheincode {self.promo_code.code} muss neu geprüft werden.")
            self.promo_code = PromoCode(code=self.promo_code.code)

    # --- cart ---

    def add_line_item(self, line: CartLineItem) -> int:
        """Appends a configured line item and returns its index."""
        self.line_items.append(line)
        # a server tax was priced for the old cart
        self.server_tax = None
        self._unconfirm_promo_code()
        self._changed("line_items")
        return len(self.line_items) - 1

    def update_line_item_quantity(self, index: int, quantity: int):
        """
        Sets the quantity of a line. Quantities below 1 are ignored (no-op, no error).

        Raises:
            IndexError: If there is no line at `index`.
        """
        line = self.line_items[index]
        if quantity < 1 or quantity == line.quantity:
            return
        line.quantity = quantity
        self.server_tax = None
        self._unconfirm_promo_code()
        self._changed("line_items")

    def increment_quantity(self, index: int):
        self.update_line_item_quantity(index, self.line_items[index].quantity + 1)

    def decrement_quantity(self, index: int):
        self.update_line_item_quantity(index, self.line_items[index].quantity - 1)

    def remove_line_item(self, index: int) -> CartLineItem:
        line = self.line_items.pop(index)
        self.server_tax = None
        self._unconfirm_promo_code()
        self._changed("line_items")
        return line

    def __repr__(self):
        return (f"OrderDraft(items={len(self.line_items)}, address={getattr(self.address, 'id', None)}, "
                f"payment={getattr(self.payment_method, 'id', None)}, revision={self.revision})")
