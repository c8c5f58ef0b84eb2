"""SQLAlchemy models."""
from models.base import Base, CreatedAtMixin
from models.stripe_customer import StripeCustomer

__all__ = [
    "Base",
    "CreatedAtMixin",
    "StripeCustomer",
]
