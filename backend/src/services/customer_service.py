"""Service layer for the user -> Stripe customer mapping."""
import logging
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from models.stripe_customer import StripeCustomer

logger = logging.getLogger(__name__)


class CustomerCreator(Protocol):
    """The upstream call ensure_customer depends on."""

    async def create_customer(self, email: str | None, user_id: str) -> str:
        """Create an upstream customer and return its id."""
        ...


async def get_customer_id(db: AsyncSession, user_id: str) -> str | None:
    """Return the Stripe customer id mapped to a user, or None if there is none."""
    result = await db.execute(
        select(StripeCustomer.customer_id).where(StripeCustomer.user_id == user_id),
    )
    return result.scalar_one_or_none()


async def ensure_customer(
    db: AsyncSession,
    stripe_client: CustomerCreator,
    user_id: str,
    email: str | None = None,
) -> str:
    """
    Get the user's Stripe customer id, creating the customer on first use.

    Idempotent: once a mapping exists it is returned unchanged without calling
    Stripe. If Stripe fails, nothing is written and the error propagates.

    Handles the race where two first checkouts for the same user run at once.
    Both may create a Stripe customer, but the unique user_id makes only one
    mapping insert succeed; the loser rolls back and returns the winner's id.
    The loser's customer is left unused in Stripe.

    Note: Uses flush(), not commit. Session generator handles commit at request end.
    The rollback on IntegrityError is safe because this runs before any other
    database work in the request.

    Raises:
        ValueError: If user_id is empty.
        UpstreamUnavailableError: If Stripe is unavailable.
        UpstreamRequestError: If Stripe rejects the customer creation.
    """
    if not user_id:
        raise ValueError("user_id must be a non-empty string")

    existing = await get_customer_id(db, user_id)
    if existing is not None:
        return existing

    customer_id = await stripe_client.create_customer(email=email, user_id=user_id)

    db.add(StripeCustomer(user_id=user_id, customer_id=customer_id))
    try:
        await db.flush()
    except IntegrityError:
        # Another request mapped this user between our SELECT and INSERT.
        await db.rollback()
        winner = await get_customer_id(db, user_id)
        if winner is None:
            raise
        logger.warning(
            "stripe_customer_orphaned user_id=%s orphaned_customer_id=%s customer_id=%s",
            user_id,
            customer_id,
            winner,
        )
        return winner

    logger.info("stripe_customer_mapped user_id=%s customer_id=%s", user_id, customer_id)
    return customer_id
