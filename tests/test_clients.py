from decimal import Decimal

import httpx
import pytest

from checkout_service.clients import OrderServiceClient, error_message
from checkout_service.errors import NoticeKind
from checkout_service.models import CartLineItem, CatalogItem, SubmitLineItem, SubmitOrderRequest
from checkout_service.session import CheckoutSession
from checkout_service.wizard import WizardStep
from mock_services import mock_order_service

pytestmark = pytest.mark.asyncio


@pytest.fixture
async def client():
    mock_order_service.reset()
    transport = httpx.ASGITransport(app=mock_order_service.app)
    async with OrderServiceClient(base_url="http://order-service", transport=transport) as client:
        yield client


def order_request(payment_method_id="card_visa_1234"):
    return SubmitOrderRequest(
        checkoutId="chk-1",
        addressId="addr_home",
        paymentMethodId=payment_method_id,
        deliveryOptionId="standard",
        totalCents=4397,
        items=[SubmitLineItem(itemId="meal", quantity=3, lineTotal=Decimal("36.00"))],
    )


async def test_checkout_defaults(client):
    defaults = await client.get_checkout_defaults()
    assert defaults.default_address_id == "addr_home"
    assert defaults.default_payment_method_id == "card_visa_1234"
    assert [o.id for o in defaults.delivery_options] == ["standard", "express", "scheduled"]
    assert defaults.delivery_options[2].schedule_slots["today"]
    assert defaults.tip_options == [0, 2, 3, 5, 10]


async def test_update_selection(client):
    ack = await client.update_selection("chk-1", "address", "addr_work")
    assert ack["status"] == "updated"
    assert mock_order_service.SELECTIONS["chk-1"]["address"] == "addr_work"


async def test_update_selection_failure_is_raised(client):
    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await client.update_selection("chk-1", "address", "fail_addr_apartment")
    assert exc_info.value.response.status_code == 503
    assert error_message(exc_info.value.response) == "Could not save address."


async def test_update_unknown_field_is_refused(client):
    with pytest.raises(ValueError):
        await client.update_selection("chk-1", "tip", "5")


async def test_valid_promo_code(client):
    result = await client.validate_promo_code("chk-1", "WELCOME20", Decimal("40.00"), Decimal("3.99"))
    assert result.valid
    assert result.discount_amount == Decimal("8.00")


async def test_free_shipping_promo_discounts_delivery_fee(client):
    result = await client.validate_promo_code("chk-1", "FREESHIP", Decimal("12.00"), Decimal("3.99"))
    assert result.discount_amount == Decimal("3.99")


@pytest.mark.parametrize("code, reason", [
    ("SAVE10", "Promo code SAVE10 requires a minimum order of $50.00."),
    ("SUMMER15", "Promo code SUMMER15 has expired."),
    ("NOPE", "Promo code NOPE does not exist."),
])
async def test_rejected_promo_code_is_a_value(client, code, reason):
    result = await client.validate_promo_code("chk-1", code, Decimal("20.00"), Decimal("3.99"))
    assert not result.valid
    assert result.reason == reason


async def test_submit_order_is_idempotent(client):
    first = await client.submit_order(order_request(), idempotency_key="key-1")
    again = await client.submit_order(order_request(), idempotency_key="key-1")
    assert first.orderId == again.orderId
    assert first.totalCents == 4397
    assert len(mock_order_service.ORDERS) == 1


async def test_declined_payment_is_raised(client):
    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await client.submit_order(order_request("pm_decline_card"))
    assert exc_info.value.response.status_code == 402
    assert mock_order_service.ORDERS == {}


async def test_full_checkout_against_mock_service(client):
    item = CatalogItem(id="meal", base_price=Decimal("10"))
    session = await CheckoutSession.start(client, [CartLineItem(item=item, quantity=2)])
    # standard delivery, not yet free below $30
    assert session.summary.delivery_fee == Decimal("3.99")

    await session.apply_promo_code("SAVE10")
    assert session.draft.promo_code is None
    assert session.channel.errors(NoticeKind.PROMO_REJECTED)

    await session.apply_promo_code("FREESHIP")
    assert session.summary.discount == Decimal("3.99")

    decline = next(m for m in session.defaults.payment_methods if m.id == "pm_decline_card")
    assert await session.select_payment_method(decline)
    assert session.next_step() and session.next_step()

    assert await session.submit() is None
    [failure] = session.channel.errors(NoticeKind.SUBMISSION_FAILED)
    assert failure.message == "Your card was declined."
    assert session.step == WizardStep.REVIEW

    visa = next(m for m in session.defaults.payment_methods if m.id == "card_visa_1234")
    await session.select_payment_method(visa)
    confirmation = await session.submit()
    assert confirmation.orderId.startswith("ORD-")
    assert confirmation.totalCents == 2165
    stored = mock_order_service.ORDERS[confirmation.orderId]
    assert stored["promoCode"] == "FREESHIP"
    assert session.closed
