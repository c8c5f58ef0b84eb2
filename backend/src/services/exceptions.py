"""Shared exceptions for subscription sync operations."""


class SubscriptionSyncError(Exception):
    """Base exception for failures while syncing subscription state."""

    def __init__(self, message: str) -> None:
        super().__init__(message)


class UpstreamUnavailableError(SubscriptionSyncError):
    """
    Raised when Stripe cannot be reached or refuses the call temporarily.

    Covers timeouts, connection errors, rate limiting, and 5xx responses. The
    caller decides whether to retry (webhook redelivery, user revisiting a page).
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Stripe unavailable during {operation}: {reason}")


class UpstreamRequestError(SubscriptionSyncError):
    """
    Raised when Stripe rejects a call permanently.

    Invalid requests (e.g., unknown customer), authentication or permission
    failures. Retrying the same call will not succeed.
    """

    def __init__(self, operation: str, reason: str) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(f"Stripe rejected {operation}: {reason}")


class LockContentionError(SubscriptionSyncError):
    """Raised when another resync holds the customer's lock past the wait budget."""

    def __init__(self, customer_id: str, waited_seconds: float) -> None:
        self.customer_id = customer_id
        self.waited_seconds = waited_seconds
        super().__init__(
            f"Resync for {customer_id} still locked after {waited_seconds:.2f}s",
        )


class CacheStoreUnavailableError(SubscriptionSyncError):
    """Raised when the cache store cannot perform a write or lock operation."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"Cache store unavailable for {operation}")
