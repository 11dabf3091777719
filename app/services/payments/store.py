"""Transaction store adapter.

Thin CRUD wrapper over the SQLAlchemy session for transactions, profiles
and subscriptions. Methods that only stage changes leave committing to the
caller so that a status transition and the premium grant it triggers land
in one database transaction.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import NotFoundError, StoreError
from app.core.logging import get_logger
from app.models.profile import Profile
from app.models.subscription import Subscription
from app.models.transaction import Transaction
from app.services.payments.status import LocalStatus

logger = get_logger(__name__)


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TransactionStore:
    """CRUD access to transactions, profiles and subscriptions."""

    def __init__(self, db: Session) -> None:
        self.db = db

    # ── Unit of work ─────────────────────────────────────────────────

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Commit failed")
            raise StoreError(f"Database commit failed: {exc}") from exc

    def rollback(self) -> None:
        self.db.rollback()

    # ── Transactions ─────────────────────────────────────────────────

    def insert_transaction(
        self,
        *,
        reference: str,
        user_id: str,
        amount: Decimal,
        currency: str,
        payment_method: Optional[str] = None,
        phone: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Transaction:
        """Insert and commit a new ``pending`` transaction."""
        txn = Transaction(
            reference=reference,
            user_id=user_id,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            phone=phone,
            status=LocalStatus.PENDING.value,
            metadata_json=metadata or {},
        )
        try:
            self.db.add(txn)
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Failed to insert transaction %s", reference)
            raise StoreError(f"Could not create transaction: {exc}") from exc
        self.db.refresh(txn)
        return txn

    def get_transaction(
        self,
        reference: str,
        user_id: Optional[str] = None,
    ) -> Optional[Transaction]:
        """Look up a transaction by reference, optionally scoped to its owner."""
        stmt = select(Transaction).where(Transaction.reference == reference)
        if user_id is not None:
            stmt = stmt.where(Transaction.user_id == user_id)
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError(f"Transaction lookup failed: {exc}") from exc

    def require_transaction(
        self,
        reference: str,
        user_id: Optional[str] = None,
    ) -> Transaction:
        txn = self.get_transaction(reference, user_id=user_id)
        if txn is None:
            raise NotFoundError("Transaction not found")
        return txn

    def get_status(self, reference: str) -> Optional[str]:
        """Stored status of *reference*, read from the database rather than the session."""
        stmt = select(Transaction.status).where(Transaction.reference == reference)
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError(f"Status lookup failed for {reference}: {exc}") from exc

    def update_transaction(self, txn: Transaction, **fields: Any) -> Transaction:
        """Stage plain field updates on *txn*. ``metadata`` is merged, not replaced."""
        metadata = fields.pop("metadata", None)
        for key, value in fields.items():
            setattr(txn, key, value)
        if metadata:
            txn.metadata_json = {**(txn.metadata_json or {}), **metadata}
        txn.updated_at = utcnow()
        self.db.add(txn)
        return txn

    def transition_status(
        self,
        reference: str,
        target: LocalStatus,
        allowed_from: Iterable[LocalStatus],
    ) -> bool:
        """Conditionally move a transaction to *target*.

        Issues ``UPDATE ... WHERE reference = :ref AND status IN (:allowed)``
        and reports whether a row was affected. Of two concurrent callers
        only one can win a transition; the other gets ``False``.
        """
        stmt = (
            update(Transaction)
            .where(Transaction.reference == reference)
            .where(Transaction.status.in_([s.value for s in allowed_from]))
            .values(status=target.value, updated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Status update failed for {reference}: {exc}") from exc
        return result.rowcount > 0

    # ── Profiles ─────────────────────────────────────────────────────

    def get_profile(self, user_id: str) -> Optional[Profile]:
        try:
            return self.db.get(Profile, user_id)
        except SQLAlchemyError as exc:
            raise StoreError(f"Profile lookup failed: {exc}") from exc

    def activate_profile(
        self,
        user_id: str,
        reference: str,
        paid_at: datetime,
    ) -> Profile:
        """Stage the premium flag on a profile. Flat overwrite, safe to repeat."""
        profile = self.get_profile(user_id)
        if profile is None:
            raise NotFoundError(f"Profile {user_id} not found")
        profile.is_premium = True
        profile.payment_reference = reference
        profile.last_payment_date = paid_at
        profile.updated_at = paid_at
        self.db.add(profile)
        return profile

    # ── Subscriptions ────────────────────────────────────────────────

    def get_subscription(self, user_id: str, reference: str) -> Optional[Subscription]:
        stmt = select(Subscription).where(
            Subscription.user_id == user_id,
            Subscription.transaction_reference == reference,
        )
        try:
            return self.db.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreError(f"Subscription lookup failed: {exc}") from exc

    def insert_subscription(
        self,
        *,
        user_id: str,
        reference: str,
        plan: str,
        starts_at: datetime,
        expires_at: datetime,
    ) -> Optional[Subscription]:
        """Insert and commit a subscription row.

        Returns ``None`` when the ``(user_id, reference)`` pair already
        exists, which is how a concurrent insert shows up.
        """
        sub = Subscription(
            user_id=user_id,
            plan=plan,
            status="active",
            transaction_reference=reference,
            starts_at=starts_at,
            expires_at=expires_at,
        )
        try:
            self.db.add(sub)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.info(
                "Subscription for user=%s reference=%s already exists", user_id, reference
            )
            return None
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise StoreError(f"Could not create subscription: {exc}") from exc
        return sub
