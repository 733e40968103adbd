# backend/casaora/routes/v1/webhooks_stripe.py
"""
Stripe webhook endpoint.

POST /api/v1/webhooks/stripe

Reads the raw body (the signature covers exact bytes) and the
Stripe-Signature header. Rejected deliveries get 400 and are not stored;
a failure while applying an accepted event gets 500 so Stripe redelivers.
"""

import asyncio
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ...core.exceptions import WebhookProcessingException, WebhookVerificationException
from ...schemas.webhook import WebhookAckResponse
from ...services.dependencies import get_stripe_webhook_service
from ...services.stripe_webhook_service import StripeWebhookService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/stripe", response_model=WebhookAckResponse)
async def handle_stripe_webhook(
    request: Request,
    webhook_service: StripeWebhookService = Depends(get_stripe_webhook_service),
) -> WebhookAckResponse:
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        result = await asyncio.to_thread(webhook_service.handle, payload, signature)
    except WebhookVerificationException as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
    except WebhookProcessingException:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to process webhook"
        )

    return WebhookAckResponse(
        received=result.received,
        duplicate=result.duplicate,
        event_type=result.event_type,
    )
