"""Mapping from local users to their Stripe customers."""
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from models.base import Base, CreatedAtMixin


class StripeCustomer(Base, CreatedAtMixin):
    """
    Binds a local user to exactly one Stripe customer.

    Created once at the user's first checkout attempt; never updated or deleted.
    The unique constraint on user_id makes the insert a conditional write, so
    concurrent first checkouts cannot leave two customer ids for one user.
    """

    __tablename__ = "stripe_customers"

    user_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        comment="Stable local user identifier",
    )
    customer_id: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        comment="Stripe customer id, e.g. 'cus_...'",
    )
