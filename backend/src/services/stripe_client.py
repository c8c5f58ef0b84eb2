"""Stripe client wrapper for the two upstream calls the sync service needs."""
import asyncio
import logging
from collections.abc import Awaitable, Mapping
from typing import Any, TypeVar

import stripe

from services.exceptions import UpstreamRequestError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Errors worth retrying later: network trouble, throttling, Stripe-side failures
TRANSIENT_STRIPE_ERRORS: tuple[type[stripe.StripeError], ...] = (
    stripe.APIConnectionError,
    stripe.RateLimitError,
    stripe.APIError,
)


class StripeClient:
    """
    Thin async wrapper over the Stripe SDK.

    Each call is made exactly once under a request-level timeout; retry policy
    belongs to the caller. Stripe SDK errors are translated into
    UpstreamUnavailableError (transient) or UpstreamRequestError (permanent).
    """

    def __init__(self, api_key: str, timeout_seconds: float = 20.0) -> None:
        self._api_key = api_key
        self._timeout_seconds = timeout_seconds

    async def create_customer(self, email: str | None, user_id: str) -> str:
        """
        Create a Stripe customer for a local user.

        The local user id is stored in the customer's metadata so customers can be
        tied back to users from the Stripe side.

        Returns:
            The new Stripe customer id.
        """
        customer = await self._call(
            "create_customer",
            stripe.Customer.create_async(
                api_key=self._api_key,
                email=email,
                metadata={"user_id": user_id},
            ),
        )
        logger.info("stripe_customer_created customer_id=%s user_id=%s", customer.id, user_id)
        return customer.id

    async def list_latest_subscription(
        self,
        customer_id: str,
        include_payment_method: bool = True,
    ) -> dict[str, Any] | None:
        """
        Fetch the customer's most recent subscription, whatever its status.

        Args:
            customer_id: Stripe customer id.
            include_payment_method: Expand default_payment_method inline so card
                details arrive without a second request.

        Returns:
            The list response as a plain dict ({"data": [...]}), or None if
            Stripe returned nothing.
        """
        params: dict[str, Any] = {
            "customer": customer_id,
            "limit": 1,
            "status": "all",
        }
        if include_payment_method:
            params["expand"] = ["data.default_payment_method"]

        response = await self._call(
            "list_subscriptions",
            stripe.Subscription.list_async(api_key=self._api_key, **params),
        )
        return _to_plain(response)

    async def _call(self, operation: str, request: Awaitable[T]) -> T:
        """Await a Stripe request under the timeout, translating failures."""
        try:
            async with asyncio.timeout(self._timeout_seconds):
                return await request
        except TimeoutError as e:
            logger.warning("stripe_timeout operation=%s timeout=%s", operation, self._timeout_seconds)
            raise UpstreamUnavailableError(operation, "timed out") from e
        except TRANSIENT_STRIPE_ERRORS as e:
            logger.warning("stripe_unavailable operation=%s error=%s", operation, e)
            raise UpstreamUnavailableError(operation, str(e)) from e
        except stripe.StripeError as e:
            logger.error("stripe_request_rejected operation=%s error=%s", operation, e)
            raise UpstreamRequestError(operation, str(e)) from e


def _to_plain(response: Any) -> dict[str, Any] | None:
    """Convert a StripeObject response into plain dicts and lists."""
    if response is None:
        return None
    if hasattr(response, "to_dict"):
        return response.to_dict()
    if isinstance(response, Mapping):
        return dict(response)
    return None


# Global Stripe client state using a container to avoid global statement
class _StripeClientState:
    """Container for global Stripe client state."""

    client: StripeClient | None = None


_state = _StripeClientState()


def get_stripe_client() -> StripeClient | None:
    """Get the global Stripe client instance."""
    return _state.client


def set_stripe_client(client: StripeClient | None) -> None:
    """Set the global Stripe client instance."""
    _state.client = client
