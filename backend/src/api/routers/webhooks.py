"""Stripe webhook endpoint."""
import json
import logging
from typing import Any

import stripe
from fastapi import APIRouter, Depends, HTTPException, Request, status

from api.dependencies import get_settings, get_sync_service
from core.config import Settings
from schemas.billing import WebhookAckResponse
from services.event_admission import Notification, admit
from services.exceptions import (
    CacheStoreUnavailableError,
    LockContentionError,
    UpstreamRequestError,
    UpstreamUnavailableError,
)
from services.subscription_sync_service import SubscriptionSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_stripe_event(payload: str, signature: str | None, settings: Settings) -> dict[str, Any]:
    """
    Verify a webhook signature and parse the event.

    Raises:
        HTTPException: 503 if no webhook secret is configured, 400 if the
            signature is missing or invalid or the body is not an event object.
    """
    if not settings.stripe_webhook_secret:
        logger.error("stripe_webhook_secret_missing")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe webhooks are not configured",
        )
    if not signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing Stripe signature",
        )
    try:
        stripe.WebhookSignature.verify_header(
            payload,
            signature,
            settings.stripe_webhook_secret,
            settings.stripe_webhook_tolerance_seconds,
        )
    except stripe.SignatureVerificationError as e:
        logger.warning("stripe_webhook_invalid_signature error=%s", e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    try:
        event = json.loads(payload)
    except json.JSONDecodeError:
        event = None
    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid webhook payload",
        )
    return event


def to_notification(event: dict[str, Any]) -> Notification:
    """Build a Notification from a Stripe event's type and data object."""
    data = event.get("data")
    payload = data.get("object") if isinstance(data, dict) else None
    return Notification(kind=event["type"], payload=payload if isinstance(payload, dict) else {})


@router.post("/stripe", response_model=WebhookAckResponse)
async def stripe_webhook(
    request: Request,
    settings: Settings = Depends(get_settings),
    sync_service: SubscriptionSyncService = Depends(get_sync_service),
) -> WebhookAckResponse:
    """
    Receive a Stripe event and resync the affected customer.

    Every verified event is acknowledged, including kinds that are ignored, so
    Stripe does not redeliver them. Transient failures return 503 so Stripe
    redelivers later; the resync is idempotent, so redelivery is harmless.
    """
    body = await request.body()
    event = verify_stripe_event(
        body.decode("utf-8", errors="replace"),
        request.headers.get("stripe-signature"),
        settings,
    )

    customer_id = admit(to_notification(event))
    if customer_id is None:
        return WebhookAckResponse(synced=False)

    logger.info(
        "stripe_webhook_resync event_id=%s kind=%s customer_id=%s",
        event.get("id"),
        event["type"],
        customer_id,
    )
    try:
        await sync_service.resync(customer_id)
    except (UpstreamUnavailableError, LockContentionError, CacheStoreUnavailableError) as e:
        logger.warning(
            "stripe_webhook_resync_retryable event_id=%s customer_id=%s error=%s",
            event.get("id"),
            customer_id,
            e,
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Temporary error, please retry",
        )
    except UpstreamRequestError as e:
        # Redelivering the same event cannot fix a rejected request
        logger.error(
            "stripe_webhook_resync_rejected event_id=%s customer_id=%s error=%s",
            event.get("id"),
            customer_id,
            e,
        )
        return WebhookAckResponse(synced=False)

    return WebhookAckResponse(synced=True)
