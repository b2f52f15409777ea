"""
This module provides the communication client for the remote order service used by
the checkout core:
- Checkout catalog (addresses, payment methods, delivery options, server defaults)
- Selection updates (address, payment method)
- Promo-code validation
- Final order submission
The client encapsulates the REST protocol, timeouts and error logging. Errors are
logged and re-raised; the sync adapter decides what the user gets to see.
"""

import logging
import os
import uuid
from decimal import Decimal

import httpx

from .models import CheckoutDefaults, OrderConfirmation, PromoValidation, SubmitOrderRequest

# Service-Adresse (normalerweise aus Env Vars)
ORDER_SERVICE_URL = os.environ.get("ORDER_SERVICE_URL", "http://order_service:8002")
CONNECT_TIMEOUT = float(os.environ.get("ORDER_SERVICE_CONNECT_TIMEOUT", "5.0"))
READ_TIMEOUT = float(os.environ.get("ORDER_SERVICE_READ_TIMEOUT", "8.0"))

log = logging.getLogger(__name__)

# Status codes the service uses to reject a promo code
PROMO_REJECTION_STATUS = (404, 422)


def error_message(response: httpx.Response, default: str = "") -> str:
    """
    Extracts the human readable message from a structured error response.

    The service answers errors as {"detail": {"errorCode": ..., "message": ...}};
    plain string details are accepted as well.
    """
    try:
        body = response.json()
    except ValueError:
        return default or response.text
    detail = body.get("detail") if isinstance(body, dict) else None
    if isinstance(detail, dict):
        return detail.get("message") or default
    if isinstance(detail, str):
        return detail
    return default


class OrderServiceClient:
    """
    Client for the remote order service (REST API).
    """

    def __init__(self, base_url: str = ORDER_SERVICE_URL, transport: httpx.AsyncBaseTransport = None):
        """
        Initializes the HTTP client with proper timeout configuration.

        Args:
            base_url (str): Base URL of the order service.
            transport (httpx.AsyncBaseTransport): Optional transport, e.g. an
                `httpx.ASGITransport` wrapping the mock service.
        """
        timeout_config = httpx.Timeout(CONNECT_TIMEOUT, read=READ_TIMEOUT)
        self.client = httpx.AsyncClient(base_url=base_url, timeout=timeout_config, transport=transport)

    async def close(self):
        """Closes the HTTP client session."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def get_checkout_defaults(self) -> CheckoutDefaults:
        """
        Loads the selectable lists and the server-chosen defaults for a new checkout.

        Raises:
            httpx.HTTPStatusError: If the service returns an error status.
            httpx.TransportError: If the service is unreachable.
        """
        try:
            response = await self.client.get("/v1/checkout")
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.error(f"Checkout-Daten konnten nicht geladen werden: {e}")
            raise
        return CheckoutDefaults.model_validate(response.json())

    async def update_selection(self, checkout_id: str, field: str, value: str) -> dict:
        """
        Persists a single selection change.

        Args:
            checkout_id (str): Checkout session identifier.
            field (str): 'address' or 'payment_method'.
            value (str): Identifier of the selected address / payment method.

        Returns:
            dict: The service acknowledgement.

        Raises:
            ValueError: If `field` is not a syncable selection.
            httpx.HTTPStatusError: If the service rejects the update (4xx or 5xx).
            httpx.TimeoutException: If the service does not respond in time.
        """
        if field == "address":
            path, payload = "/v1/checkout/address", {"checkoutId": checkout_id, "addressId": value}
        elif field == "payment_method":
            path, payload = "/v1/checkout/payment-method", {"checkoutId": checkout_id, "paymentMethodId": value}
        else:
            raise ValueError(f"field '{field}' cannot be synchronized")

        try:
            response = await self.client.put(path, json=payload)
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as e:
            log.warning(f"[Checkout: {checkout_id}] Update '{field}' abgelehnt "
                        f"(HTTP {e.response.status_code}): {error_message(e.response)}")
            raise
        except httpx.HTTPError as e:
            log.error(f"[Checkout: {checkout_id}] Update '{field}' fehlgeschlagen: {e!r}")
            raise

    async def validate_promo_code(self, checkout_id: str, code: str,
                                  subtotal: Decimal, delivery_fee: Decimal) -> PromoValidation:
        """
        Asks the service whether a promo code is valid for the current order values.

        A rejected code (HTTP 404/422) is not an exception but a
        `PromoValidation(valid=False)` carrying the rejection reason.

        Raises:
            httpx.HTTPStatusError: For any other error status.
            httpx.TimeoutException / httpx.TransportError: On transport problems.
        """
        payload = {
            "checkoutId": checkout_id,
            "code": code,
            "subtotal": str(subtotal),
            "deliveryFee": str(delivery_fee),
        }
        try:
            response = await self.client.post("/v1/checkout/promo-code", json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if e.response.status_code in PROMO_REJECTION_STATUS:
                reason = error_message(e.response, "Invalid promo code")
                log.info(f"[Checkout: {checkout_id}] Gutscheincode {code} abgelehnt: {reason}")
                return PromoValidation(code=code, valid=False, reason=reason)
            log.error(f"[Checkout: {checkout_id}] HTTP-Fehler bei Gutscheinprüfung: {e}")
            raise
        except httpx.HTTPError as e:
            log.error(f"[Checkout: {checkout_id}] Gutscheinprüfung fehlgeschlagen: {e!r}")
            raise
        return PromoValidation.model_validate(response.json())

    async def submit_order(self, request: SubmitOrderRequest, idempotency_key: str = None) -> OrderConfirmation:
        """
        Submits the final order.

        Args:
            request (SubmitOrderRequest): The full order draft payload.
            idempotency_key (str): Key identifying this submission; retries of the same
                draft must reuse it so the service never creates the order twice.

        Returns:
            OrderConfirmation: Confirmation used to render the tracking view.

        Raises:
            httpx.TimeoutException: If the service does not respond within the timeout.
            httpx.HTTPStatusError: If the service rejects the order (4xx or 5xx).
        """
        headers = {"Idempotency-Key": idempotency_key or str(uuid.uuid4())}
        log_prefix = f"[Checkout: {request.checkoutId}]"

        try:
            response = await self.client.post("/v1/orders", json=request.model_dump(mode="json"), headers=headers)
            response.raise_for_status()  # Löst HTTPStatusError bei 4xx/5xx aus
        except httpx.TimeoutException:
            log.error(f"{log_prefix} Order Service Timeout. Status der Bestellung unbekannt.")
            # Idempotenz-Key ist überlebenswichtig: ein Retry mit gleichem Key legt keine zweite Bestellung an.
            raise
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 402:
                log.warning(f"{log_prefix} Zahlung abgelehnt: {error_message(e.response)}")
            else:
                log.error(f"{log_prefix} HTTP-Fehler bei Bestellung: {e}")
            raise  # Fehler wird im Sync Adapter behandelt
        except httpx.HTTPError as e:
            log.error(f"{log_prefix} Order Service nicht erreichbar: {e!r}")
            raise

        confirmation = OrderConfirmation.model_validate(response.json())
        log.info(f"{log_prefix} Bestellung bestätigt (Order: {confirmation.orderId}).")
        return confirmation
