"""Cached subscription record representation."""
import json
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import Any


class SubscriptionStatus(StrEnum):
    """Stripe subscription lifecycle states, plus NONE for no subscription."""

    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    UNPAID = "unpaid"
    PAUSED = "paused"
    NONE = "none"


@dataclass(frozen=True)
class PaymentMethod:
    """Card summary for the subscription's default payment method."""

    brand: str | None
    last4: str | None


@dataclass(frozen=True)
class NoSubscription:
    """The customer exists in Stripe but holds no subscription."""

    status: SubscriptionStatus = SubscriptionStatus.NONE


@dataclass(frozen=True)
class SubscriptionSnapshot:
    """
    Normalized snapshot of a customer's most recent Stripe subscription.

    IMPORTANT: When adding, removing, or renaming fields in this class, you MUST bump
    CACHE_SCHEMA_VERSION in core/cache_store.py so old cached entries are ignored
    instead of being decoded into the wrong shape.
    """

    subscription_id: str | None
    status: SubscriptionStatus
    price_id: str | None
    current_period_start: int | None
    current_period_end: int | None
    cancel_at_period_end: bool
    payment_method: PaymentMethod | None


CacheRecord = NoSubscription | SubscriptionSnapshot


def record_to_dict(record: CacheRecord) -> dict[str, Any]:
    """Convert a record into a JSON-compatible dict."""
    if isinstance(record, NoSubscription):
        return {"status": SubscriptionStatus.NONE.value}
    data = asdict(record)
    data["status"] = record.status.value
    return data


def serialize_record(record: CacheRecord) -> str:
    """
    Serialize a record to canonical JSON.

    Keys are sorted and separators fixed so equal records always produce
    byte-identical output.
    """
    return json.dumps(record_to_dict(record), sort_keys=True, separators=(",", ":"))


def deserialize_record(data: str | bytes) -> CacheRecord:
    """
    Deserialize a record produced by serialize_record.

    Raises:
        ValueError: If the data is not a valid serialized record.
    """
    try:
        d = json.loads(data)
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid cache record JSON: {e}") from e
    if not isinstance(d, dict):
        raise ValueError("Cache record must be a JSON object")

    status = SubscriptionStatus(d.get("status"))
    if status == SubscriptionStatus.NONE and "subscription_id" not in d:
        return NoSubscription()

    try:
        payment_method = d["payment_method"]
        return SubscriptionSnapshot(
            subscription_id=d["subscription_id"],
            status=status,
            price_id=d["price_id"],
            current_period_start=d["current_period_start"],
            current_period_end=d["current_period_end"],
            cancel_at_period_end=d["cancel_at_period_end"],
            payment_method=PaymentMethod(**payment_method) if payment_method else None,
        )
    except (KeyError, TypeError) as e:
        raise ValueError(f"Cache record missing fields: {e}") from e
