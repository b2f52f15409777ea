"""
session.py — Checkout Session

Ties the checkout core together for one customer checkout:

    user intent → OrderDraft mutation (synchronous)
                → PricingSummary recomputed from the current draft
                → StepGate re-evaluated on the next navigation attempt
                → RemoteSyncAdapter persists the change in the background

The session owns the draft exclusively. All user intents are plain synchronous
methods; the network calls they trigger run as background tasks on the running
event loop. Only `submit()` is awaited by the caller, since a submission is never
optimistic.

Lifecycle:
    1. `CheckoutSession.start()` loads the server defaults and seeds the draft.
    2. Selection events mutate the draft for the duration of the session.
    3. A successful submission discards the draft and closes the session;
       `close()` (navigation away) does the same without submitting.
"""

import asyncio
import logging
import uuid
from typing import List, Optional, Set

from .draft import OrderDraft
from .errors import NotificationChannel
from .models import (
    Address,
    CartLineItem,
    CheckoutDefaults,
    DeliveryOption,
    OrderConfirmation,
    PaymentMethod,
    PricingSummary,
)
from .sync import SUBMIT_TIMEOUT, RemoteSyncAdapter
from .wizard import StepGate, WizardStep

log = logging.getLogger(__name__)


class SessionClosedError(RuntimeError):
    """Raised when a closed checkout session receives a user intent."""


class CheckoutSession:
    """
    One checkout, from the first step to the order confirmation.

    Attributes:
        checkout_id (str): Identifier sent with every request to the order service.
        draft (Optional[OrderDraft]): The order draft; None once the session is closed.
        gate (StepGate): The wizard step state machine.
        sync (RemoteSyncAdapter): Remote persistence of selections and submission.
        channel (NotificationChannel): Where all notices are published.
        confirmation (Optional[OrderConfirmation]): Set after a successful submission.
    """

    def __init__(self, draft: OrderDraft, client, channel: NotificationChannel = None,
                 checkout_id: str = None, submit_timeout: float = SUBMIT_TIMEOUT,
                 defaults: CheckoutDefaults = None):
        self.checkout_id = checkout_id or f"chk-{uuid.uuid4().hex[:12]}"
        self.channel = channel or NotificationChannel()
        self.draft: Optional[OrderDraft] = draft
        self.defaults = defaults
        self.gate = StepGate(draft, self.channel)
        self.sync = RemoteSyncAdapter(client, draft, self.channel, self.checkout_id, submit_timeout)
        self.confirmation: Optional[OrderConfirmation] = None
        self.closed = False
        self._tasks: Set[asyncio.Task] = set()
        self.log_prefix = f"[Checkout: {self.checkout_id}]"

    @classmethod
    async def start(cls, client, line_items: List[CartLineItem], **kwargs) -> "CheckoutSession":
        """
        Begins a checkout: loads the checkout catalog and seeds the draft from the
        server-chosen defaults.

        Raises:
            httpx.HTTPError: If the checkout data cannot be loaded.
        """
        defaults = await client.get_checkout_defaults()
        draft = OrderDraft.from_defaults(defaults, line_items)
        session = cls(draft, client, defaults=defaults, **kwargs)
        log.info(f"{session.log_prefix} Checkout gestartet ({len(line_items)} Positionen).")
        return session

    # --- view models ---

    @property
    def summary(self) -> PricingSummary:
        self._ensure_open()
        return self.draft.summary

    @property
    def step(self) -> WizardStep:
        return self.gate.current

    @property
    def is_submitting(self) -> bool:
        return self.sync.submitting

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # --- internals ---

    def _ensure_open(self):
        if self.closed:
            raise SessionClosedError(f"checkout {self.checkout_id} is closed")

    def _spawn(self, loop: asyncio.AbstractEventLoop, coro):
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _promo_loop(self) -> Optional[asyncio.AbstractEventLoop]:
        # looked up before the draft changes, so a missing loop leaves it untouched
        return asyncio.get_running_loop() if self.draft.promo_code is not None else None

    def _revalidate_promo_code(self, loop: Optional[asyncio.AbstractEventLoop]):
        promo = self.draft.promo_code
        if loop is None or promo is None or promo.confirmed:
            return None
        return self._spawn(loop, self.sync.validate_promo_code(promo.code))

    # --- user intents ---

    def select_address(self, address: Address):
        self._ensure_open()
        loop = asyncio.get_running_loop()
        self.draft.set_address(address)
        return self._spawn(loop, self.sync.sync_address(address))

    def select_payment_method(self, payment_method: PaymentMethod):
        self._ensure_open()
        loop = asyncio.get_running_loop()
        self.draft.set_payment_method(payment_method)
        return self._spawn(loop, self.sync.sync_payment_method(payment_method))

    def select_delivery_option(self, option: DeliveryOption):
        """Changes the delivery option; an applied promo code is validated again."""
        self._ensure_open()
        loop = self._promo_loop()
        self.draft.set_delivery_option(option)
        return self._revalidate_promo_code(loop)

    def set_tip(self, amount):
        self._ensure_open()
        self.draft.set_tip(amount)

    def set_special_instructions(self, text: str):
        self._ensure_open()
        self.draft.set_special_instructions(text)

    def apply_promo_code(self, code: str):
        """
        Applies a promo code optimistically and validates it in the background.

        Returns:
            Optional[asyncio.Task]: The validation task, or None for an empty code.
        """
        self._ensure_open()
        loop = asyncio.get_running_loop()
        promo = self.draft.apply_promo_code(code)
        if promo is None:
            return None
        return self._spawn(loop, self.sync.validate_promo_code(promo.code))

    def remove_promo_code(self):
        self._ensure_open()
        # a late confirmation must not bring the code back
        self.sync.invalidate("promo_code")
        self.draft.remove_promo_code()

    # Cart changes move the subtotal, so an applied promo code is validated again.

    def add_line_item(self, line: CartLineItem) -> int:
        self._ensure_open()
        loop = self._promo_loop()
        index = self.draft.add_line_item(line)
        self._revalidate_promo_code(loop)
        return index

    def update_line_item_quantity(self, index: int, quantity: int):
        self._ensure_open()
        loop = self._promo_loop()
        revision = self.draft.revision
        self.draft.update_line_item_quantity(index, quantity)
        if self.draft.revision != revision:
            self._revalidate_promo_code(loop)

    def remove_line_item(self, index: int):
        self._ensure_open()
        loop = self._promo_loop()
        line = self.draft.remove_line_item(index)
        self._revalidate_promo_code(loop)
        return line

    def next_step(self) -> bool:
        self._ensure_open()
        return self.gate.advance()

    def previous_step(self) -> bool:
        self._ensure_open()
        return self.gate.back()

    async def submit(self) -> Optional[OrderConfirmation]:
        """
        Places the order.

        Duplicate calls while a submission is pending are ignored. On failure the
        session stays on the review step with the draft intact, so the user can retry.

        Returns:
            Optional[OrderConfirmation]: The confirmation on success, else None.
        """
        if self.closed:
            return None
        if self.sync.submitting:
            log.warning(f"{self.log_prefix} Submit ignoriert, Bestellung ist bereits unterwegs.")
            return None
        if not self.gate.validate_submit():
            return None

        confirmation = await self.sync.submit()
        if confirmation is None:
            return None

        self.confirmation = confirmation
        log.info(f"{self.log_prefix} Bestellung {confirmation.orderId} aufgegeben, Draft verworfen.")
        self._discard()
        return confirmation

    def close(self):
        """Leaves the checkout: the draft is discarded and late results are dropped."""
        if self.closed:
            return
        log.info(f"{self.log_prefix} Checkout verlassen.")
        self._discard()

    def _discard(self):
        self.sync.detach()
        for task in list(self._tasks):
            task.cancel()
        self.draft = None
        self.closed = True

    async def drain(self):
        """Waits until all background sync tasks have finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
