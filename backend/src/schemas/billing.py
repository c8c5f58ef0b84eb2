"""Pydantic schemas for billing and webhook endpoints."""
from pydantic import BaseModel, Field

from schemas.cache_record import CacheRecord, SubscriptionStatus, record_to_dict


class CustomerCreate(BaseModel):
    """Schema for ensuring a Stripe customer exists for a user."""

    email: str | None = Field(
        default=None,
        max_length=255,
        description="Email to attach to the Stripe customer on creation",
    )


class CustomerResponse(BaseModel):
    """Stripe customer id mapped to a user."""

    customer_id: str


class PaymentMethodResponse(BaseModel):
    """Card summary of the default payment method."""

    brand: str | None
    last4: str | None


class SubscriptionRecordResponse(BaseModel):
    """
    Cached subscription record.

    A customer without a subscription has status "none" and every other field
    at its default.
    """

    status: SubscriptionStatus
    subscription_id: str | None = None
    price_id: str | None = None
    current_period_start: int | None = None
    current_period_end: int | None = None
    cancel_at_period_end: bool = False
    payment_method: PaymentMethodResponse | None = None

    @classmethod
    def from_record(cls, record: CacheRecord) -> "SubscriptionRecordResponse":
        """Build the response from a cache record."""
        return cls.model_validate(record_to_dict(record))


class BillingStateResponse(BaseModel):
    """
    Subscription state for a user.

    customer_id and record are null when the user never started a checkout.
    stale is true when a sync failed and the last cached record was returned.
    """

    customer_id: str | None
    record: SubscriptionRecordResponse | None
    stale: bool = False


class WebhookAckResponse(BaseModel):
    """Acknowledgement returned to Stripe for every accepted notification."""

    received: bool = True
    synced: bool = Field(
        default=False,
        description="Whether the notification triggered a resync",
    )
