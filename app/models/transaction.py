"""Payment transaction model, one row per initialized mobile-money payment."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, Index, JSON, Numeric, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Transaction(Base):
    """A payment request forwarded to the provider.

    Created in ``pending`` state at initialize time and moved to a terminal
    state by either the provider webhook or a user verification poll.
    Rows are never deleted.
    """

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        primary_key=True,
        default=uuid.uuid4,
    )
    reference: Mapped[str] = mapped_column(
        String(64),
        unique=True,
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(15, 2),
        nullable=False,
    )
    currency: Mapped[str] = mapped_column(
        String(3),
        nullable=False,
        default="XAF",
    )
    payment_method: Mapped[Optional[str]] = mapped_column(
        String(20),
        comment="mtn | orange | express-union",
    )
    phone: Mapped[Optional[str]] = mapped_column(
        String(20),
    )
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="pending | completed | failed | unknown",
    )
    metadata_json: Mapped[Optional[dict[str, Any]]] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=func.now(),
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
        onupdate=func.now(),
    )

    __table_args__ = (
        Index("ix_transactions_user_reference", "user_id", "reference"),
    )

    def __repr__(self) -> str:
        return (
            f"<Transaction(reference={self.reference!r}, "
            f"amount={self.amount}, status={self.status!r})>"
        )
