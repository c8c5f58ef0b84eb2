"""
Admission filter for inbound Stripe notifications.

Decides which webhook events should trigger a resync and extracts the customer id
to resync. Payload content beyond the customer id is discarded: the resync re-reads
current state from Stripe, so duplicate or out-of-order delivery is harmless and
nothing here tracks delivery history.
"""
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

# Event kinds that can change a customer's subscription or payment state.
# Every other kind is acknowledged and ignored; resyncing on them would only
# spend Stripe rate limit.
ALLOWED_EVENT_KINDS: frozenset[str] = frozenset({
    "checkout.session.completed",
    "customer.subscription.created",
    "customer.subscription.updated",
    "customer.subscription.deleted",
    "customer.subscription.paused",
    "customer.subscription.resumed",
    "customer.subscription.pending_update_applied",
    "customer.subscription.pending_update_expired",
    "customer.subscription.trial_will_end",
    "invoice.paid",
    "invoice.payment_failed",
    "invoice.payment_action_required",
    "invoice.upcoming",
    "invoice.marked_uncollectible",
    "invoice.payment_succeeded",
    "payment_intent.succeeded",
    "payment_intent.payment_failed",
    "payment_intent.canceled",
})


@dataclass(frozen=True)
class Notification:
    """A verified inbound notification: its kind and the event's data object."""

    kind: str
    payload: Mapping[str, Any] = field(default_factory=dict)


def admit(notification: Notification) -> str | None:
    """
    Return the customer id to resync for a notification, or None to ignore it.

    Unrecognized kinds and malformed payloads (missing or non-string customer)
    return None; neither raises.
    """
    if notification.kind not in ALLOWED_EVENT_KINDS:
        logger.debug("notification_ignored kind=%s", notification.kind)
        return None

    payload = notification.payload
    customer_id = payload.get("customer") if isinstance(payload, Mapping) else None
    if not isinstance(customer_id, str) or not customer_id:
        logger.warning("notification_malformed kind=%s", notification.kind)
        return None

    return customer_id
