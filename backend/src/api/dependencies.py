"""FastAPI dependencies for injection."""
from fastapi import HTTPException, status

from core.config import get_settings
from db.session import get_async_session
from services import stripe_client, subscription_sync_service
from services.stripe_client import StripeClient
from services.subscription_sync_service import SubscriptionSyncService


def get_sync_service() -> SubscriptionSyncService:
    """Get the subscription sync service, 503 if startup has not configured it."""
    service = subscription_sync_service.get_sync_service()
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Subscription sync is not configured",
        )
    return service


def get_stripe_client() -> StripeClient:
    """Get the Stripe client, 503 if startup has not configured it."""
    client = stripe_client.get_stripe_client()
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe is not configured",
        )
    return client


__all__ = [
    "get_async_session",
    "get_settings",
    "get_stripe_client",
    "get_sync_service",
]
