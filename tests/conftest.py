import asyncio
import os
from decimal import Decimal

# keep test runs from writing a log file
os.environ.setdefault("CHECKOUT_LOG_FILE", "")

import httpx
import pytest

from checkout_service.draft import OrderDraft
from checkout_service.models import (
    AddOn,
    Address,
    CartLineItem,
    CatalogItem,
    CheckoutDefaults,
    DeliveryOption,
    OrderConfirmation,
    PaymentKind,
    PaymentMethod,
    PromoValidation,
    Variation,
    VariationOption,
)


class FakeOrderClient:
    """
    In-memory stand-in for OrderServiceClient.

    Calls can be held back with `hold(key)` (key = selection id, promo code or
    "submit") and released by setting the returned event, which lets a test decide
    in which order concurrent requests complete.
    """

    def __init__(self, defaults=None):
        self.defaults = defaults
        self.calls = []
        self.gates = {}
        self.failing = set()
        self.promo_results = {}
        self.submit_requests = []
        self.submit_error = None

    def hold(self, key):
        event = asyncio.Event()
        self.gates[key] = event
        return event

    async def _wait(self, key):
        event = self.gates.get(key)
        if event is not None:
            await event.wait()

    async def get_checkout_defaults(self):
        return self.defaults

    async def update_selection(self, checkout_id, field, value):
        self.calls.append((field, value))
        await self._wait(value)
        if value in self.failing:
            request = httpx.Request("PUT", "http://order-service/v1/checkout")
            raise httpx.HTTPStatusError("rejected", request=request,
                                        response=httpx.Response(503, request=request))
        return {"status": "updated"}

    async def validate_promo_code(self, checkout_id, code, subtotal, delivery_fee):
        self.calls.append(("promo_code", code))
        await self._wait(code)
        return self.promo_results.get(
            code, PromoValidation(code=code, valid=False, reason=f"Promo code {code} does not exist."))

    async def submit_order(self, request, idempotency_key=None):
        self.submit_requests.append((request, idempotency_key))
        await self._wait("submit")
        if self.submit_error is not None:
            raise self.submit_error
        return OrderConfirmation(orderId=f"ORD-{len(self.submit_requests)}", totalCents=request.totalCents)


@pytest.fixture
def burger():
    return CatalogItem(
        id="burger",
        name="Spicy Chicken Burger",
        base_price=Decimal("10.00"),
        variations=[
            Variation(name="Size", required=True, options=[
                VariationOption(name="Regular", price=Decimal("0")),
                VariationOption(name="Large", price=Decimal("2.50")),
            ]),
            Variation(name="Sauce", options=[
                VariationOption(name="BBQ", price=Decimal("0.50")),
            ]),
        ],
        addons=[
            AddOn(name="Cheese", price=Decimal("2.00")),
            AddOn(name="Bacon", price=Decimal("1.50")),
        ],
    )


@pytest.fixture
def simple_item():
    return CatalogItem(id="meal", name="Meal", base_price=Decimal("10"),
                       addons=[AddOn(name="Extra", price=Decimal("2"))])


@pytest.fixture
def home():
    return Address(id="addr_a", label="Home", is_default=True)


@pytest.fixture
def work():
    return Address(id="addr_b", label="Work")


@pytest.fixture
def visa():
    return PaymentMethod(id="card_visa", kind=PaymentKind.CARD, brand="visa", last4="1234")


@pytest.fixture
def paypal():
    return PaymentMethod(id="paypal", kind=PaymentKind.WALLET)


@pytest.fixture
def standard():
    return DeliveryOption(id="standard", name="Standard", price=Decimal("5.00"), is_default=True)


@pytest.fixture
def express():
    return DeliveryOption(id="express", name="Express", price=Decimal("7.99"))


@pytest.fixture
def meal_line(simple_item):
    # base $10 + one add-on $2, quantity 3
    return CartLineItem(item=simple_item, quantity=3, addon_indices={0})


@pytest.fixture
def defaults(home, work, visa, paypal, standard, express):
    return CheckoutDefaults(
        addresses=[home, work],
        payment_methods=[visa, paypal],
        delivery_options=[express, standard],
        default_address_id=home.id,
        default_payment_method_id=visa.id,
    )


@pytest.fixture
def draft(defaults, meal_line):
    return OrderDraft.from_defaults(defaults, [meal_line])


@pytest.fixture
def fake_client(defaults):
    return FakeOrderClient(defaults)
