"""Premium subscription model, one row per successful payment."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, UniqueConstraint, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Subscription(Base):
    """Premium entitlement window granted by a completed transaction.

    The ``(user_id, transaction_reference)`` pair is unique so a duplicated
    webhook or a webhook racing a verify poll cannot create a second row.
    """

    __tablename__ = "subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    plan: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="active",
        comment="active | expired | cancelled",
    )
    transaction_reference: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
    )
    starts_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    expires_at: Mapped[datetime] = mapped_column(
        DateTime,
        nullable=False,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "transaction_reference",
            name="uq_subscriptions_user_reference",
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Subscription(user_id={self.user_id!r}, "
            f"reference={self.transaction_reference!r}, expires_at={self.expires_at})>"
        )
