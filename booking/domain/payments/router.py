"""Payments router - payment gateway webhook endpoint"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ...dependencies import get_payment_handler
from .handler import PaymentEventHandler
from .schemas import Outcome

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Webhooks"])


@router.post("/webhooks/stripe")
async def stripe_webhook(request: Request, handler: PaymentEventHandler = Depends(get_payment_handler)):
    """
    Checkout-completed notifications.
    200 acknowledges (including skips and duplicates), 400 rejects a bad
    signature, 500 asks the gateway to retry.
    """
    raw_body = await request.body()
    result = await handler.handle(raw_body, request.headers.get("stripe-signature"))

    if result.status_code == 200:
        body = {"received": True, "outcome": result.outcome.value}
    elif result.outcome == Outcome.REJECTED:
        body = {"error": f"Webhook Error: {result.detail}"}
    else:
        body = {"error": "Webhook processing failed", "message": result.detail}
    return JSONResponse(status_code=result.status_code, content=body)
