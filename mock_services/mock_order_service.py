"""
mock_order_service.py — Mock Implementation of the Remote Order Service (REST API)

This module provides a simulated order service for local runs and client tests.
It exposes a FastAPI application that mimics the checkout endpoints of the real
backend, including promo-code evaluation and idempotent order creation.

Simulation Scenarios:
    • Successful selection updates and order placement
    • Selection update failure (id starts with "fail_" → HTTP 503)
    • Unknown promo code (HTTP 404), promo below minimum order / inactive (HTTP 422)
    • Declined payment (payment method id starts with "pm_decline_" → HTTP 402)
    • Timeout simulation (payment method id starts with "pm_timeout_")

Endpoints:
    GET  /v1/checkout                  — Checkout catalog and server defaults.
    PUT  /v1/checkout/address          — Persist the selected address.
    PUT  /v1/checkout/payment-method   — Persist the selected payment method.
    POST /v1/checkout/promo-code       — Validate a promo code.
    POST /v1/orders                    — Create the order (Idempotency-Key required).

Port:
    Default: 8002 (HTTP)
"""

import asyncio
import logging
import time
import uuid
from decimal import Decimal

from fastapi import FastAPI, Header, HTTPException
from pydantic import BaseModel

from checkout_service.models import (
    Address,
    CheckoutDefaults,
    DeliveryOption,
    DiscountType,
    PaymentKind,
    PaymentMethod,
    PromoOffer,
    SubmitOrderRequest,
)

app = FastAPI(title="Mock Order Service")
logging.basicConfig(level=logging.INFO)
log = logging.getLogger(__name__)

ADDRESSES = [
    Address(id="addr_home", label="Home", recipient="John Doe", address_line1="123 Main Street",
            address_line2="Apt 4B", city="New York", state="NY", postal_code="10001",
            country="United States", phone="+1 (555) 123-4567",
            delivery_instructions="Doorman building, please call upon arrival", is_default=True),
    Address(id="addr_work", label="Work", recipient="John Doe", address_line1="456 Business Ave",
            address_line2="15th Floor", city="New York", state="NY", postal_code="10022",
            country="United States", phone="+1 (555) 987-6543",
            delivery_instructions="Please check in at reception"),
    Address(id="fail_addr_apartment", label="Apartment", recipient="John Doe",
            address_line1="789 Residential Blvd", address_line2="Unit 303", city="Brooklyn",
            state="NY", postal_code="11201", country="United States",
            delivery_instructions="Gate code: 1234"),
]

PAYMENT_METHODS = [
    PaymentMethod(id="card_visa_1234", kind=PaymentKind.CARD, brand="visa", last4="1234",
                  label="Visa ending in 1234", is_default=True),
    PaymentMethod(id="card_mastercard_5678", kind=PaymentKind.CARD, brand="mastercard", last4="5678",
                  label="Mastercard ending in 5678"),
    PaymentMethod(id="paypal_johndoe", kind=PaymentKind.WALLET, brand="paypal", label="PayPal"),
    PaymentMethod(id="cash_on_delivery", kind=PaymentKind.CASH, label="Cash on delivery"),
    PaymentMethod(id="pm_decline_card", kind=PaymentKind.CARD, brand="visa", last4="0002",
                  label="Visa ending in 0002"),
]

DELIVERY_OPTIONS = [
    DeliveryOption(id="standard", name="Standard Delivery", description="Estimated delivery: 30-45 minutes",
                   price=Decimal("3.99"), is_default=True, min_order_free_delivery=Decimal("30.00")),
    DeliveryOption(id="express", name="Express Delivery", description="Estimated delivery: 15-25 minutes",
                   price=Decimal("7.99"), min_order_free_delivery=Decimal("50.00")),
    DeliveryOption(id="scheduled", name="Scheduled Delivery", description="Choose a specific time for delivery",
                   price=Decimal("3.99"), min_order_free_delivery=Decimal("30.00"),
                   schedule_slots={
                       "today": ["11:00 AM", "12:00 PM", "1:00 PM", "6:00 PM", "7:00 PM", "8:00 PM"],
                       "tomorrow": ["10:00 AM", "11:00 AM", "12:00 PM", "1:00 PM", "6:00 PM", "7:00 PM"],
                   }),
]

PROMO_OFFERS = {
    offer.code: offer for offer in [
        PromoOffer(code="WELCOME20", description="20% off your first order",
                   discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("20"),
                   min_order_value=Decimal("25.00")),
        PromoOffer(code="FREESHIP", description="Free shipping on all orders",
                   discount_type=DiscountType.FREE_SHIPPING),
        PromoOffer(code="SAVE10", description="$10 off orders of $50+",
                   discount_type=DiscountType.FIXED, discount_value=Decimal("10"),
                   min_order_value=Decimal("50.00")),
        PromoOffer(code="SUMMER15", description="15% off (expired)",
                   discount_type=DiscountType.PERCENTAGE, discount_value=Decimal("15"), is_active=False),
    ]
}

# In-memory state of the mock
ORDERS = {}
IDEMPOTENCY_CACHE = {}
SELECTIONS = {}


class AddressUpdate(BaseModel):
    checkoutId: str
    addressId: str


class PaymentMethodUpdate(BaseModel):
    checkoutId: str
    paymentMethodId: str


class PromoCodeRequest(BaseModel):
    """
    Represents a promo-code validation request.

    Attributes:
        checkoutId (str): Checkout session identifier.
        code (str): The code entered by the customer.
        subtotal (Decimal): Current cart subtotal.
        deliveryFee (Decimal): Current delivery fee (relevant for free shipping codes).
    """
    checkoutId: str
    code: str
    subtotal: Decimal
    deliveryFee: Decimal = Decimal("0")


def reset():
    """Clears the in-memory state (used between tests)."""
    ORDERS.clear()
    IDEMPOTENCY_CACHE.clear()
    SELECTIONS.clear()


@app.get("/v1/checkout")
def get_checkout():
    return CheckoutDefaults(
        addresses=ADDRESSES,
        payment_methods=PAYMENT_METHODS,
        delivery_options=DELIVERY_OPTIONS,
        default_address_id="addr_home",
        default_payment_method_id="card_visa_1234",
    ).model_dump(mode="json")


def _update_selection(checkout_id: str, field: str, value: str, known_ids):
    log.info(f"[OS] {checkout_id}: {field} -> {value}")
    if value.startswith("fail_"):
        raise HTTPException(
            status_code=503,
            detail={"errorCode": "update_failed", "message": f"Could not save {field}."}
        )
    if value not in known_ids:
        raise HTTPException(
            status_code=404,
            detail={"errorCode": "not_found", "message": f"Unknown {field} '{value}'."}
        )
    SELECTIONS.setdefault(checkout_id, {})[field] = value
    return {"checkoutId": checkout_id, field: value, "status": "updated"}


@app.put("/v1/checkout/address")
def update_address(request: AddressUpdate):
    return _update_selection(request.checkoutId, "address", request.addressId, {a.id for a in ADDRESSES})


@app.put("/v1/checkout/payment-method")
def update_payment_method(request: PaymentMethodUpdate):
    return _update_selection(request.checkoutId, "payment_method", request.paymentMethodId,
                             {m.id for m in PAYMENT_METHODS})


@app.post("/v1/checkout/promo-code")
def validate_promo_code(request: PromoCodeRequest):
    """
    Validates a promo code against the current order values.

    Returns:
        dict: code, valid, discount_amount and description on success.

    Raises:
        HTTPException(404): If the code is unknown.
        HTTPException(422): If the code is inactive or the minimum order value is not reached.
    """
    code = request.code.strip().upper()
    offer = PROMO_OFFERS.get(code)
    if offer is None:
        raise HTTPException(status_code=404, detail={"errorCode": "promo_not_found",
                                                     "message": f"Promo code {code} does not exist."})
    if not offer.is_active:
        raise HTTPException(status_code=422, detail={"errorCode": "promo_expired",
                                                     "message": f"Promo code {code} has expired."})
    if request.subtotal < offer.min_order_value:
        raise HTTPException(status_code=422, detail={
            "errorCode": "promo_min_order",
            "message": f"Promo code {code} requires a minimum order of ${offer.min_order_value}."})

    discount = offer.discount_for(request.subtotal, request.deliveryFee)
    log.info(f"[OS] {request.checkoutId}: Gutschein {code} gültig, Rabatt {discount}.")
    return {"code": code, "valid": True, "discount_amount": str(discount), "description": offer.description}


@app.post("/v1/orders", status_code=201)
async def create_order(
        request: SubmitOrderRequest,
        idempotency_key: str = Header(..., alias="Idempotency-Key")
):
    """
    Creates an order.

    This endpoint simulates different outcomes based on the `paymentMethodId`:
        - Starts with "pm_decline_" → Payment declined (HTTP 402)
        - Starts with "pm_timeout_" → Simulated timeout (long-running process)
        - Any other id → Order created

    A repeated request with the same Idempotency-Key returns the original order
    instead of creating a new one.

    Raises:
        HTTPException(402): If the payment is declined.
        HTTPException(422): If the order has no items.
    """
    log.info(f"[OS] Bestellung für {request.checkoutId} (Idempotenz: {idempotency_key})")

    if idempotency_key in IDEMPOTENCY_CACHE:
        log.info(f"[OS] Idempotenz-Treffer für {request.checkoutId}.")
        return IDEMPOTENCY_CACHE[idempotency_key]

    if not request.items:
        raise HTTPException(status_code=422, detail={"errorCode": "empty_order", "message": "Your cart is empty."})

    # Scenario simulation
    if request.paymentMethodId.startswith("pm_decline_"):
        log.warning(f"[OS] Zahlung für {request.checkoutId} abgelehnt.")
        raise HTTPException(
            status_code=402,
            detail={"errorCode": "payment_declined", "message": "Your card was declined."}
        )

    if request.paymentMethodId.startswith("pm_timeout_"):
        log.info(f"[OS] Simuliere Timeout für {request.checkoutId}...")
        await asyncio.sleep(10)

    order_id = f"ORD-{uuid.uuid4().hex[:8].upper()}"
    confirmation = {
        "orderId": order_id,
        "status": "confirmed",
        "estimatedDelivery": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time() + 45 * 60)),
        "trackingReference": f"trk_{uuid.uuid4().hex[:10]}",
        "totalCents": request.totalCents,
    }
    ORDERS[order_id] = request.model_dump(mode="json")
    IDEMPOTENCY_CACHE[idempotency_key] = confirmation
    log.info(f"[OS] Bestellung {order_id} angelegt.")
    return confirmation


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8002)
