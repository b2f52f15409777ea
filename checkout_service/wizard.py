"""
wizard.py — Step Gate for the Checkout Wizard

Governs the three checkout steps and the final submit action:

    DELIVERY → PAYMENT → REVIEW → (submit)

Forward moves are guarded by the current draft selections; a failed guard leaves
the step unchanged and publishes a validation notice. Backward moves are always
allowed and never clear selections. Validation happens locally and never reaches
the network.
"""

import logging
from enum import IntEnum
from typing import Optional

from .draft import OrderDraft
from .errors import Notice, NotificationChannel, validation_error

log = logging.getLogger(__name__)


class WizardStep(IntEnum):
    DELIVERY = 1
    PAYMENT = 2
    REVIEW = 3


MISSING_ADDRESS = "Please select a delivery address"
MISSING_PAYMENT_METHOD = "Please select a payment method"


class StepGate:
    """
    State machine over `WizardStep`.

    The current step is UI-local state; it lives here, not on the draft.

    Attributes:
        current (WizardStep): The active step, initially DELIVERY.
        error (Optional[Notice]): The validation notice of the last failed transition,
            cleared by the next successful one.
    """

    def __init__(self, draft: OrderDraft, channel: Optional[NotificationChannel] = None):
        self.draft = draft
        self.channel = channel or NotificationChannel()
        self.current = WizardStep.DELIVERY
        self.error: Optional[Notice] = None

    def _guard(self, step: WizardStep) -> Optional[Notice]:
        """Returns the validation notice blocking a move away from `step`, or None."""
        needs_address = step in (WizardStep.DELIVERY, WizardStep.REVIEW)
        needs_payment = step in (WizardStep.PAYMENT, WizardStep.REVIEW)
        if needs_address and self.draft.address is None:
            return validation_error("address", MISSING_ADDRESS)
        if needs_payment and self.draft.payment_method is None:
            return validation_error("payment_method", MISSING_PAYMENT_METHOD)
        return None

    def can_advance(self) -> bool:
        return self.current < WizardStep.REVIEW and self._guard(self.current) is None

    def advance(self) -> bool:
        """
        Moves one step forward if the guard of the current step passes.

        Returns:
            bool: True if the step changed. On False the step is unchanged and the
                validation notice is stored in `error` and published on the channel.
        """
        if self.current == WizardStep.REVIEW:
            return False
        notice = self._guard(self.current)
        if notice is not None:
            self._fail(notice)
            return False
        self.current = WizardStep(self.current + 1)
        self.error = None
        log.debug(f"Checkout-Schritt gewechselt zu {self.current.name}.")
        return True

    def back(self) -> bool:
        if self.current == WizardStep.DELIVERY:
            return False
        self.current = WizardStep(self.current - 1)
        self.error = None
        return True

    def can_submit(self) -> bool:
        return self.current == WizardStep.REVIEW and self._guard(WizardStep.REVIEW) is None

    def validate_submit(self) -> bool:
        """
        Re-validates address and payment method right before submission.

        Selections are not re-checked between steps, so both are verified again here.
        """
        if self.current != WizardStep.REVIEW:
            self._fail(validation_error("submit", "Please review your order before placing it"))
            return False
        notice = self._guard(WizardStep.REVIEW)
        if notice is not None:
            self._fail(notice)
            return False
        self.error = None
        return True

    def _fail(self, notice: Notice):
        self.error = notice
        log.info(f"Schrittwechsel von {self.current.name} blockiert: {notice.message}")
        self.channel.publish(notice)
