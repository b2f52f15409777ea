"""
sync.py — Remote Sync Adapter

Pushes selection changes with off-device consequences to the remote order service
and reconciles the outcome with the local order draft.

Per operation:
    • address / payment method — already applied locally; success publishes a
      confirmation, failure publishes a dismissible warning. The local selection is
      never rolled back. An older write that succeeds after a newer one is followed
      by the current selection once more.
    • promo code — applied optimistically without a discount; success grants the
      confirmed discount, rejection (or failure) reverts the applied state.
      The session validates it again whenever the cart or delivery option changes.
    • submission — never optimistic. Only one attempt may be in flight; duplicate
      triggers are ignored. A bounded timeout turns a hanging request into a
      retryable failure.

Every request is tagged with a per-operation generation. A result whose generation
is no longer the latest for its operation (or that arrives after `detach()`) is
discarded without touching the draft or the notification channel.
"""

import asyncio
import logging
import os
import uuid
from typing import Dict, Optional

import httpx

from .clients import error_message
from .draft import OrderDraft
from .errors import NotificationChannel, confirmed, promo_rejected, submission_failed, sync_failed
from .models import Address, OrderConfirmation, PaymentMethod, SubmitLineItem, SubmitOrderRequest
from .pricing import price_line_item, to_cents

SUBMIT_TIMEOUT = float(os.environ.get("SUBMIT_TIMEOUT_SECONDS", "15.0"))

log = logging.getLogger(__name__)

SELECTION_LABELS = {
    "address": "delivery address",
    "payment_method": "payment method",
}


def build_submit_request(draft: OrderDraft, checkout_id: str) -> SubmitOrderRequest:
    """
    Serializes the current draft into the final submission payload.

    Raises:
        ValueError: If address or payment method are missing. The step gate checks
            this before a submission is attempted.
    """
    if draft.address is None or draft.payment_method is None:
        raise ValueError("address and payment method are required for submission")

    summary = draft.summary
    items = [
        SubmitLineItem(
            itemId=line.item_id,
            quantity=line.quantity,
            variations=dict(line.variation_choices),
            addons=sorted(line.addon_indices),
            instructions=line.instructions,
            lineTotal=price_line_item(line),
        )
        for line in draft.line_items
    ]
    promo = draft.promo_code
    return SubmitOrderRequest(
        checkoutId=checkout_id,
        addressId=draft.address.id,
        paymentMethodId=draft.payment_method.id,
        deliveryOptionId=draft.delivery_option.id if draft.delivery_option else None,
        promoCode=promo.code if promo is not None and promo.confirmed else None,
        tipCents=to_cents(summary.tip),
        totalCents=to_cents(summary.total),
        specialInstructions=draft.special_instructions,
        items=items,
    )


class RemoteSyncAdapter:
    """
    Pass-through between the order draft and the order service.

    It keeps no order state of its own, only the bookkeeping of in-flight requests.

    Attributes:
        submitting (bool): True while a submission attempt is pending.
        detached (bool): True once the session was left; all late results are dropped.
    """

    def __init__(self, client, draft: OrderDraft, channel: NotificationChannel,
                 checkout_id: str, submit_timeout: float = SUBMIT_TIMEOUT):
        self.client = client
        self.draft = draft
        self.channel = channel
        self.checkout_id = checkout_id
        self.submit_timeout = submit_timeout
        self.submitting = False
        self.detached = False
        self._generations: Dict[str, int] = {}
        self._settled: Dict[str, int] = {}  # generation of the last confirmed selection write
        self._idempotency = None  # (draft revision, key) of the last failed attempt
        self.log_prefix = f"[Checkout: {checkout_id}]"

    # --- request bookkeeping ---

    def _issue(self, operation: str) -> int:
        generation = self._generations.get(operation, 0) + 1
        self._generations[operation] = generation
        return generation

    def _is_current(self, operation: str, generation: int) -> bool:
        return not self.detached and self._generations.get(operation) == generation

    def invalidate(self, operation: str):
        """Marks every in-flight request of `operation` as stale."""
        self._issue(operation)

    def detach(self):
        """Drops the results of all in-flight requests (navigation away, draft discarded)."""
        self.detached = True

    def _discard(self, operation: str):
        log.info(f"{self.log_prefix} Veraltete Antwort für '{operation}' verworfen.")

    # --- selections ---

    async def sync_selection(self, field: str, value_id: str) -> bool:
        """
        Persists an address or payment-method selection that was already applied locally.

        Returns:
            bool: True if the service confirmed the latest request for `field`.
        """
        generation = self._issue(field)
        label = SELECTION_LABELS.get(field, field)
        try:
            await self.client.update_selection(self.checkout_id, field, value_id)
        except httpx.HTTPError:
            if not self._is_current(field, generation):
                self._discard(field)
                return False
            # Auswahl bleibt lokal erhalten, Nutzer wird nur gewarnt
            self.channel.publish(sync_failed(
                field, f"Failed to update {label}. Your change may not be saved."))
            return False

        if not self._is_current(field, generation):
            self._discard(field)
            if self._settled.get(field, 0) > generation:
                await self._resend_selection(field)
            return False
        self._settled[field] = generation
        self.channel.publish(confirmed(field, f"Your {label} has been updated"))
        return True

    def _selected_id(self, field: str) -> Optional[str]:
        selection = self.draft.address if field == "address" else self.draft.payment_method
        return selection.id if selection is not None else None

    async def _resend_selection(self, field: str):
        """
        Writes the current selection again after an older request succeeded late.

        The service may have stored the older value after the newer one, so the
        latest local selection is sent once more. No confirmation is published, the
        newer request already did that.
        """
        value_id = self._selected_id(field)
        if value_id is None or self.detached:
            return
        generation = self._generations[field]
        log.info(f"{self.log_prefix} Sende '{field}' erneut ({value_id}), ältere Antwort kam zuletzt.")
        try:
            await self.client.update_selection(self.checkout_id, field, value_id)
        except httpx.HTTPError:
            if self._is_current(field, generation):
                label = SELECTION_LABELS.get(field, field)
                self.channel.publish(sync_failed(
                    field, f"Failed to update {label}. Your change may not be saved."))

    async def sync_address(self, address: Address) -> bool:
        return await self.sync_selection("address", address.id)

    async def sync_payment_method(self, payment_method: PaymentMethod) -> bool:
        return await self.sync_selection("payment_method", payment_method.id)

    # --- promo code ---

    def _promo_current(self, code: str, generation: int) -> bool:
        # superseded by a newer request, or the code was replaced/removed meanwhile
        promo = self.draft.promo_code
        return self._is_current("promo_code", generation) and promo is not None and promo.code == code

    async def validate_promo_code(self, code: str) -> bool:
        """
        Validates an optimistically applied promo code with the order service.

        On success the confirmed discount is granted; on rejection or any remote
        failure the applied state is reverted so no unconfirmed discount is shown.

        Returns:
            bool: True if the code was confirmed and is still the applied code.
        """
        generation = self._issue("promo_code")
        summary = self.draft.summary
        try:
            result = await self.client.validate_promo_code(
                self.checkout_id, code, summary.subtotal, summary.delivery_fee)
        except httpx.HTTPError:
            if not self._promo_current(code, generation):
                self._discard("promo_code")
                return False
            self.draft.revert_promo_code(code)
            self.channel.publish(promo_rejected("Promo code could not be verified. Please try again."))
            return False

        if not self._promo_current(code, generation):
            self._discard("promo_code")
            return False

        if not result.valid:
            self.draft.revert_promo_code(code)
            self.channel.publish(promo_rejected(result.reason or f"Promo code {code} is not valid"))
            return False

        if not self.draft.confirm_promo_code(code, result.discount_amount, result.description):
            return False
        log.info(f"{self.log_prefix} Gutscheincode {code} bestätigt (Rabatt: {result.discount_amount}).")
        self.channel.publish(confirmed("promo_code", f"Promo code {code} applied"))
        return True

    # --- submission ---

    def _idempotency_key(self) -> str:
        # Retries of an unchanged draft reuse the key, a changed draft gets a new one
        revision = self.draft.revision
        if self._idempotency is None or self._idempotency[0] != revision:
            self._idempotency = (revision, str(uuid.uuid4()))
        return self._idempotency[1]

    async def submit(self) -> Optional[OrderConfirmation]:
        """
        Submits the order and waits for the service's verdict.

        Returns:
            Optional[OrderConfirmation]: The confirmation, or None if the attempt was
                ignored (another one is pending), failed, or became irrelevant.
                Failures are published as `submission_failed` notices.
        """
        if self.submitting:
            log.warning(f"{self.log_prefix} Bestellung wird bereits übermittelt, doppelter Submit ignoriert.")
            return None
        if self.detached:
            return None

        self.submitting = True
        generation = self._issue("submit")
        try:
            request = build_submit_request(self.draft, self.checkout_id)
            key = self._idempotency_key()
            log.info(f"{self.log_prefix} Übermittle Bestellung (Summe: {request.totalCents} Cent).")
            confirmation = await asyncio.wait_for(
                self.client.submit_order(request, idempotency_key=key),
                timeout=self.submit_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            log.error(f"{self.log_prefix} Keine Antwort auf Bestellung innerhalb von {self.submit_timeout}s.")
            self._publish_submit_failure(
                generation, "The order service did not respond in time. Please try again.")
            return None
        except httpx.HTTPStatusError as e:
            self._publish_submit_failure(
                generation, error_message(e.response, "Your order could not be placed."))
            return None
        except httpx.HTTPError as e:
            log.error(f"{self.log_prefix} Übermittlung fehlgeschlagen: {e!r}")
            self._publish_submit_failure(
                generation, "Could not reach the order service. Please check your connection and try again.")
            return None
        finally:
            self.submitting = False

        self._idempotency = None
        if not self._is_current("submit", generation):
            # Bestellung wurde trotzdem angelegt, nur die Anzeige entfällt
            log.warning(f"{self.log_prefix} Bestätigung {confirmation.orderId} nach Verlassen des Checkouts erhalten.")
            return None
        return confirmation

    def _publish_submit_failure(self, generation: int, message: str):
        if not self._is_current("submit", generation):
            self._discard("submit")
            return
        self.channel.publish(submission_failed(message))
