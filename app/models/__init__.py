"""SQLAlchemy models for the Kamerun payments gateway."""

from app.models.transaction import Transaction
from app.models.profile import Profile
from app.models.subscription import Subscription

__all__ = [
    "Transaction",
    "Profile",
    "Subscription",
]
