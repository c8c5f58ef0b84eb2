"""Billing endpoints: customer setup, post-checkout sync, and cached state reads."""
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.dependencies import get_async_session, get_stripe_client, get_sync_service
from schemas.billing import (
    BillingStateResponse,
    CustomerCreate,
    CustomerResponse,
    SubscriptionRecordResponse,
)
from schemas.cache_record import CacheRecord
from services import customer_service
from services.exceptions import (
    CacheStoreUnavailableError,
    LockContentionError,
    UpstreamRequestError,
    UpstreamUnavailableError,
)
from services.stripe_client import StripeClient
from services.subscription_sync_service import SubscriptionSyncService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/billing/users/{user_id}", tags=["billing"])

UserId = Annotated[
    str,
    Path(min_length=1, max_length=255, description="Stable local user identifier"),
]


def _billing_state(
    customer_id: str,
    record: CacheRecord | None,
    stale: bool = False,
) -> BillingStateResponse:
    return BillingStateResponse(
        customer_id=customer_id,
        record=SubscriptionRecordResponse.from_record(record) if record is not None else None,
        stale=stale,
    )


@router.post("/customer", response_model=CustomerResponse)
async def ensure_customer(
    user_id: UserId,
    data: CustomerCreate,
    db: AsyncSession = Depends(get_async_session),
    stripe_client: StripeClient = Depends(get_stripe_client),
) -> CustomerResponse:
    """
    Get or create the user's Stripe customer.

    Called by the checkout flow before creating a checkout session, so every
    session is tied to the user's single customer.
    """
    try:
        customer_id = await customer_service.ensure_customer(
            db, stripe_client, user_id=user_id, email=data.email,
        )
    except UpstreamUnavailableError:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Stripe is temporarily unavailable, please retry",
        )
    except UpstreamRequestError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Stripe rejected the customer creation",
        )
    return CustomerResponse(customer_id=customer_id)


@router.get("/success", response_model=BillingStateResponse)
async def checkout_success(
    user_id: UserId,
    db: AsyncSession = Depends(get_async_session),
    sync_service: SubscriptionSyncService = Depends(get_sync_service),
) -> BillingStateResponse:
    """
    Sync the user's subscription after returning from checkout.

    Users without a customer never started a checkout; nothing is synced. If the
    sync fails, the last cached record is returned with stale=true instead of
    blocking the redirect.
    """
    customer_id = await customer_service.get_customer_id(db, user_id)
    if customer_id is None:
        return BillingStateResponse(customer_id=None, record=None)

    try:
        record = await sync_service.resync(customer_id)
    except (
        UpstreamUnavailableError,
        UpstreamRequestError,
        LockContentionError,
        CacheStoreUnavailableError,
    ) as e:
        logger.warning(
            "checkout_success_sync_failed user_id=%s customer_id=%s error=%s",
            user_id,
            customer_id,
            e,
        )
        cached = await sync_service.get_cached(customer_id)
        return _billing_state(customer_id, cached, stale=True)

    return _billing_state(customer_id, record)


@router.get("/subscription", response_model=BillingStateResponse)
async def get_subscription(
    user_id: UserId,
    db: AsyncSession = Depends(get_async_session),
    sync_service: SubscriptionSyncService = Depends(get_sync_service),
) -> BillingStateResponse:
    """
    Get the user's cached subscription state.

    Reads the cache only and never calls Stripe. The record may lag Stripe
    briefly; the next webhook or checkout return corrects it.
    """
    customer_id = await customer_service.get_customer_id(db, user_id)
    if customer_id is None:
        return BillingStateResponse(customer_id=None, record=None)

    return _billing_state(customer_id, await sync_service.get_cached(customer_id))
