"""
Normalization of Stripe subscription list responses into cache records.

Stripe responses are nested, version-dependent, and sometimes partial. Everything
here is pure: a missing or malformed field degrades to its nullable default instead
of failing, so partial upstream data never blocks caching the fields that were present.
"""
import logging
from collections.abc import Mapping
from typing import Any

from schemas.cache_record import (
    CacheRecord,
    NoSubscription,
    PaymentMethod,
    SubscriptionSnapshot,
    SubscriptionStatus,
)

logger = logging.getLogger(__name__)


def normalize(raw: Any) -> CacheRecord:
    """
    Map a Stripe subscription list response to a CacheRecord.

    Args:
        raw: The list response (a mapping with a "data" list), a bare list of
            subscriptions, or None when Stripe returned nothing.

    Returns:
        NoSubscription if there is no subscription, otherwise a
        SubscriptionSnapshot built from the first (most recent) subscription.
    """
    subscriptions = _extract_list(raw)
    if not subscriptions:
        return NoSubscription()

    subscription = subscriptions[0]
    if not isinstance(subscription, Mapping):
        logger.warning("normalize_unexpected_subscription type=%s", type(subscription).__name__)
        return NoSubscription()

    first_item = _first_item(subscription)
    return SubscriptionSnapshot(
        subscription_id=_optional_str(subscription.get("id")),
        status=_parse_status(subscription.get("status")),
        price_id=_optional_str(_get_path(first_item, "price", "id")),
        current_period_start=_period_bound(subscription, first_item, "current_period_start"),
        current_period_end=_period_bound(subscription, first_item, "current_period_end"),
        cancel_at_period_end=subscription.get("cancel_at_period_end") is True,
        payment_method=_parse_payment_method(subscription.get("default_payment_method")),
    )


def _extract_list(raw: Any) -> list[Any]:
    """Return the list of subscriptions from a list response or bare list."""
    if raw is None:
        return []
    if isinstance(raw, Mapping):
        raw = raw.get("data")
    if isinstance(raw, list):
        return raw
    return []


def _first_item(subscription: Mapping[str, Any]) -> Mapping[str, Any] | None:
    """Return the first subscription item, if present."""
    items = _get_path(subscription, "items", "data")
    if isinstance(items, list) and items and isinstance(items[0], Mapping):
        return items[0]
    return None


def _get_path(obj: Any, *keys: str) -> Any:
    """Walk nested mappings, returning None as soon as a level is missing."""
    for key in keys:
        if not isinstance(obj, Mapping):
            return None
        obj = obj.get(key)
    return obj


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _optional_int(value: Any) -> int | None:
    # bool is an int subclass; a boolean period bound is malformed
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _parse_status(value: Any) -> SubscriptionStatus:
    """Map a Stripe status string 1:1, degrading unknown values to NONE."""
    try:
        return SubscriptionStatus(value)
    except ValueError:
        logger.warning("normalize_unknown_status status=%r", value)
        return SubscriptionStatus.NONE


def _period_bound(
    subscription: Mapping[str, Any],
    first_item: Mapping[str, Any] | None,
    field: str,
) -> int | None:
    """
    Read a billing period bound.

    Older Stripe API versions put period bounds on the subscription, newer ones on
    each subscription item. Prefer the subscription and fall back to the first item.
    """
    value = _optional_int(subscription.get(field))
    if value is None and first_item is not None:
        value = _optional_int(first_item.get(field))
    return value


def _parse_payment_method(value: Any) -> PaymentMethod | None:
    """
    Build a PaymentMethod from an expanded default_payment_method.

    Stripe returns either an opaque id string (not expanded) or the full object.
    Only the expanded object with card details yields a PaymentMethod.
    """
    if not isinstance(value, Mapping):
        return None
    card = value.get("card")
    if not isinstance(card, Mapping):
        return None
    brand = _optional_str(card.get("brand"))
    last4 = _optional_str(card.get("last4"))
    if brand is None and last4 is None:
        return None
    return PaymentMethod(brand=brand, last4=last4)
