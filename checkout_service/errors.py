"""
errors.py — Structured Notices and the Notification Channel

The checkout core never displays anything itself. Every outcome the user has to
see (validation problems, rejected promo codes, failed syncs, failed submissions
and confirmations) is emitted as a `Notice` value on a `NotificationChannel`.
The presentation layer subscribes to the channel and decides how to render it
(inline message, toast, dialog).

Notice kinds:
    • validation         — local only, blocks the attempted step transition
    • promo_rejected     — field-scoped, the optimistic promo state was reverted
    • sync_failed        — transient and dismissible, local selection is kept
    • submission_failed  — blocks the current submission attempt, retryable
    • confirmed          — non-blocking confirmation of a remote update
"""

import logging
from enum import Enum
from typing import Callable, List, Optional

from pydantic import BaseModel

log = logging.getLogger(__name__)


class NoticeKind(str, Enum):
    VALIDATION = "validation"
    PROMO_REJECTED = "promo_rejected"
    SYNC_FAILED = "sync_failed"
    SUBMISSION_FAILED = "submission_failed"
    CONFIRMED = "confirmed"


class Notice(BaseModel):
    """
    A user-visible outcome produced by the checkout core.

    Attributes:
        kind (NoticeKind): Error class (or confirmation).
        message (str): Human readable message.
        field (Optional[str]): The draft field the notice belongs to ('address',
            'payment_method', 'promo_code', 'submit', ...).
        blocking (bool): Whether the notice blocks the action it relates to.
        dismissible (bool): Whether the user may dismiss it.
        retryable (bool): Whether retrying the same action may succeed.
    """
    kind: NoticeKind
    message: str
    field: Optional[str] = None
    blocking: bool = False
    dismissible: bool = True
    retryable: bool = False

    @property
    def is_error(self) -> bool:
        return self.kind != NoticeKind.CONFIRMED


def validation_error(field: str, message: str) -> Notice:
    return Notice(kind=NoticeKind.VALIDATION, field=field, message=message,
                  blocking=True, dismissible=False)


def promo_rejected(reason: str) -> Notice:
    return Notice(kind=NoticeKind.PROMO_REJECTED, field="promo_code", message=reason,
                  blocking=False, dismissible=True)


def sync_failed(field: str, message: str) -> Notice:
    return Notice(kind=NoticeKind.SYNC_FAILED, field=field, message=message,
                  blocking=False, dismissible=True, retryable=True)


def submission_failed(message: str, retryable: bool = True) -> Notice:
    return Notice(kind=NoticeKind.SUBMISSION_FAILED, field="submit", message=message,
                  blocking=True, dismissible=True, retryable=retryable)


def confirmed(field: str, message: str) -> Notice:
    return Notice(kind=NoticeKind.CONFIRMED, field=field, message=message)


class NotificationChannel:
    """
    Fan-out channel for notices.

    Subscribers are called synchronously in subscription order. Every published
    notice is also kept in `history`, so tests and late subscribers can inspect
    what was surfaced.
    """

    def __init__(self):
        self._subscribers: List[Callable[[Notice], None]] = []
        self.history: List[Notice] = []

    def subscribe(self, callback: Callable[[Notice], None]) -> Callable[[], None]:
        """
        Registers a subscriber.

        Returns:
            Callable[[], None]: A function that removes the subscription again.
        """
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def publish(self, notice: Notice):
        self.history.append(notice)
        if notice.is_error:
            log.info(f"[Notice] {notice.kind.value} ({notice.field}): {notice.message}")
        for callback in list(self._subscribers):
            callback(notice)

    def errors(self, kind: Optional[NoticeKind] = None) -> List[Notice]:
        return [n for n in self.history if n.is_error and (kind is None or n.kind == kind)]
