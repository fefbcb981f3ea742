"""
Stripe Webhook Handler

Receives Stripe deliveries and hands them to the WebhookProcessor.

Status codes drive Stripe's retry behaviour:
- 200: processed, already processed, or deliberately ignored
- 400: missing or invalid signature, malformed event (no retry helps)
- 503: store write or provider call failed transiently (Stripe retries)
- 500: anything else (Stripe retries)
"""

import logging

from fastapi import APIRouter, Request

from directory_billing.infrastructure.services.webhook_processor import get_webhook_processor


logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/billing")
async def billing_webhook(request: Request):
    """
    Handle Stripe webhook events.

    Verifies the signature before reading anything from the payload.
    """
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    return await get_webhook_processor().process(payload, signature)
