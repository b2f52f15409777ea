"""
main.py — FastAPI Entry Point for the Checkout Pricing Preview

This module provides the REST API through which the rendering layer obtains priced
view models without holding a checkout session itself.

Responsibilities:
    • Price a single configured catalog item (item detail page)
    • Price a complete draft snapshot (cart and checkout summary)
    • Provide system health information
"""

from decimal import Decimal
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .draft import OrderDraft
from .logging_config import get_logger, setup_logging
from .models import CartLineItem, DeliveryOption, PricingSummary, PromoCode, TIP_OPTIONS
from .pricing import price_line_item

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Checkout Pricing Preview")


class LineItemQuote(BaseModel):
    itemId: str
    quantity: int
    price: Decimal


class SummaryQuoteRequest(BaseModel):
    """
    A draft snapshot to be priced.

    Attributes:
        line_items (List[CartLineItem]): Configured cart lines.
        delivery_option (Optional[DeliveryOption]): Selected delivery option.
        tip (Decimal): Tip amount, >= 0.
        promo_code (Optional[PromoCode]): Promo code; only a confirmed code grants a discount.
        server_tax (Optional[Decimal]): Tax as priced by the order service, if known.
    """
    line_items: List[CartLineItem] = Field(default_factory=list)
    delivery_option: Optional[DeliveryOption] = None
    tip: Decimal = Field(Decimal("0"), ge=0)
    promo_code: Optional[PromoCode] = None
    server_tax: Optional[Decimal] = None


def draft_from_quote(request: SummaryQuoteRequest) -> OrderDraft:
    draft = OrderDraft(
        line_items=request.line_items,
        delivery_option=request.delivery_option,
        tip=request.tip,
        server_tax=request.server_tax,
    )
    promo = request.promo_code
    if promo is not None and promo.applied:
        pending = draft.apply_promo_code(promo.code)
        # a blank code is not applied at all
        if pending is not None and promo.confirmed:
            draft.confirm_promo_code(pending.code, promo.discount_amount, promo.description)
    return draft


@app.post("/v1/pricing/line-item", response_model=LineItemQuote)
def quote_line_item(line: CartLineItem):
    """
    Prices one configured catalog item.

    Args:
        line (CartLineItem): Catalog item plus chosen variations, add-ons and quantity.
            Invalid option indices are rejected with 422 by the model validation.

    Returns:
        LineItemQuote: item id, quantity and the rounded line price.
    """
    return LineItemQuote(itemId=line.item_id, quantity=line.quantity, price=price_line_item(line))


@app.post("/v1/pricing/summary", response_model=PricingSummary)
def quote_summary(request: SummaryQuoteRequest):
    """
    Prices a complete draft snapshot.

    Returns:
        PricingSummary: subtotal, delivery fee, tax, tip, discount and total.

    Raises:
        HTTPException(500): If an internal error occurs while pricing.
    """
    try:
        return draft_from_quote(request).summary
    except Exception as e:
        log.critical(f"Kritischer Fehler bei der Preisberechnung: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal server error while pricing order.")


@app.get("/v1/pricing/tip-options")
def tip_options():
    return {"tipOptions": list(TIP_OPTIONS)}


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Can be used by monitoring systems or container orchestrators
    (e.g., Docker, Kubernetes) to verify that the service is running.
    """
    return {"status": "ok"}
