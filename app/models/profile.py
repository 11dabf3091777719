"""User profile model.

Profiles belong to the auth service; this service only writes the
premium entitlement columns.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(
        String(64),
        primary_key=True,
    )
    email: Mapped[Optional[str]] = mapped_column(
        String(255),
    )
    full_name: Mapped[Optional[str]] = mapped_column(
        String(255),
    )
    is_premium: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    payment_reference: Mapped[Optional[str]] = mapped_column(
        String(64),
        comment="Last transaction reference that granted premium",
    )
    last_payment_date: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime,
    )

    def __repr__(self) -> str:
        return f"<Profile(id={self.id!r}, is_premium={self.is_premium})>"
