"""Payment reconciliation: the part of the gateway with real state.

Both the provider webhook and the user verification poll end up here with
a reference and a provider status. The reconciler:

  1. Maps the provider status onto the local vocabulary.
  2. Applies the transition with a conditional UPDATE, so that of two
     racing callers only one "wins" a given transition.
  3. On the winning transition to ``completed``, grants premium on the
     profile in the same database transaction.
  4. Ensures exactly one subscription row per (user, reference). This also
     runs when the transaction was already completed, which heals a crash
     between the status commit and the subscription insert.

Duplicate or reordered events are therefore no-ops: they never rewrite the
profile, never move a completed transaction, and never add a second
subscription.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional

from app.core.config import Settings
from app.core.errors import NotFoundError, StoreError
from app.core.logging import get_logger
from app.models.transaction import Transaction
from app.services.payments.status import (
    ALLOWED_PRIOR,
    LocalStatus,
    can_transition,
    map_provider_status,
)
from app.services.payments.store import TransactionStore, utcnow

logger = get_logger(__name__)

PLACEHOLDER_USER_IDS = frozenset({"", "null", "none", "undefined", "anonymous"})


@dataclass
class ReconciliationOutcome:
    """What a single reconciliation call did."""

    reference: str
    previous_status: str
    status: str
    provider_status: Optional[str]
    transitioned: bool = False
    premium_activated: bool = False
    subscription_created: bool = False


class PaymentReconciler:
    """Synchronizes a local transaction with the provider-reported status."""

    def __init__(self, store: TransactionStore, config: Settings) -> None:
        self.store = store
        self.config = config

    # ── Public API ───────────────────────────────────────────────────

    def reconcile(
        self,
        reference: str,
        provider_status: Optional[str],
        *,
        user_id: Optional[str] = None,
        source: str = "webhook",
        provider_payload: Optional[dict[str, Any]] = None,
    ) -> ReconciliationOutcome:
        """Look up *reference* and apply *provider_status* to it.

        Raises:
            NotFoundError: no transaction with that reference (for that user,
                when ``user_id`` is given).
        """
        txn = self.store.get_transaction(reference, user_id=user_id)
        if txn is None:
            raise NotFoundError(f"Transaction {reference} not found")
        return self.apply(
            txn,
            provider_status,
            source=source,
            provider_payload=provider_payload,
        )

    def apply(
        self,
        txn: Transaction,
        provider_status: Optional[str],
        *,
        source: str = "webhook",
        provider_payload: Optional[dict[str, Any]] = None,
    ) -> ReconciliationOutcome:
        """Apply *provider_status* to an already loaded transaction.

        The in-memory ``txn.status`` may be stale; the conditional UPDATE
        against the database decides whether the transition happens.
        """
        reference = txn.reference
        user_id = txn.user_id
        previous = LocalStatus(txn.status)
        target = map_provider_status(provider_status)
        outcome = ReconciliationOutcome(
            reference=reference,
            previous_status=previous.value,
            status=previous.value,
            provider_status=provider_status,
        )

        if target is previous and target is not LocalStatus.COMPLETED:
            logger.info(
                "No status change for %s (%s, source=%s)", reference, target.value, source
            )
            return self._settle(outcome, user_id)

        if not can_transition(previous, target) and previous is not LocalStatus.COMPLETED:
            logger.warning(
                "Ignoring %s -> %s for %s (source=%s): transition not allowed",
                previous.value,
                target.value,
                reference,
                source,
            )
            return self._settle(outcome, user_id)

        won = False
        if target is not previous:
            won = self.store.transition_status(reference, target, ALLOWED_PRIOR[target])

        if won:
            outcome.transitioned = True
            outcome.status = target.value
            now = utcnow()
            self.store.update_transaction(
                txn,
                metadata={
                    "last_provider_status": provider_status,
                    "reconciled_by": source,
                    "reconciled_at": now.isoformat(),
                    **_provider_details(provider_payload),
                },
            )
            if target is LocalStatus.COMPLETED:
                outcome.premium_activated = self._grant_premium(user_id, reference, now)
            self.store.commit()
            logger.info(
                "Transaction %s: %s -> %s (source=%s, premium=%s)",
                reference,
                previous.value,
                target.value,
                source,
                outcome.premium_activated,
            )
        else:
            # Lost the race, or the stored status already moved on.
            self.store.rollback()
            current = self.store.get_transaction(reference)
            outcome.status = current.status if current is not None else previous.value
            if target is not LocalStatus.COMPLETED or outcome.status != LocalStatus.COMPLETED.value:
                logger.info(
                    "Transition %s -> %s for %s not applied, stored status is %s (source=%s)",
                    previous.value,
                    target.value,
                    reference,
                    outcome.status,
                    source,
                )

        if outcome.status == LocalStatus.COMPLETED.value:
            outcome.subscription_created = self.ensure_subscription(user_id, reference)

        return outcome

    def activate_premium(
        self,
        user_id: Optional[str],
        reference: str,
        provider_status: Optional[str] = None,
    ) -> bool:
        """Grant premium for *reference* and ensure its subscription row.

        Flat profile overwrite plus an idempotent subscription insert, so
        repeated calls leave a single subscription. Returns whether the
        profile was updated.
        """
        now = utcnow()
        granted = self._grant_premium(user_id, reference, now)
        if granted:
            self.store.commit()
            logger.info(
                "Premium activated for user=%s reference=%s (provider status %s)",
                user_id,
                reference,
                provider_status,
            )
        if _is_real_user(user_id):
            self.ensure_subscription(user_id, reference)
        return granted

    def ensure_subscription(self, user_id: Optional[str], reference: str) -> bool:
        """Create the subscription for (user, reference) unless it exists.

        Failures are logged and swallowed. Returns True only when a new row
        was inserted by this call.
        """
        if not _is_real_user(user_id):
            return False
        try:
            if self.store.get_subscription(user_id, reference) is not None:
                return False
            starts_at = utcnow()
            sub = self.store.insert_subscription(
                user_id=user_id,
                reference=reference,
                plan=self.config.premium_plan,
                starts_at=starts_at,
                expires_at=starts_at + timedelta(days=self.config.premium_duration_days),
            )
        except StoreError:
            logger.exception(
                "Subscription creation failed for user=%s reference=%s", user_id, reference
            )
            return False
        if sub is not None:
            logger.info(
                "Subscription created for user=%s reference=%s until %s",
                user_id,
                reference,
                sub.expires_at,
            )
        return sub is not None

    # ── Private helpers ──────────────────────────────────────────────

    def _settle(self, outcome: ReconciliationOutcome, user_id: Optional[str]) -> ReconciliationOutcome:
        """Report the stored status when nothing was applied.

        The loaded transaction can be stale: another caller may have moved
        it while the provider was being asked.
        """
        stored = self.store.get_status(outcome.reference)
        if stored is not None and stored != outcome.status:
            logger.info(
                "Transaction %s moved to %s meanwhile", outcome.reference, stored
            )
            outcome.status = stored
        if outcome.status == LocalStatus.COMPLETED.value:
            outcome.subscription_created = self.ensure_subscription(user_id, outcome.reference)
        return outcome

    def _grant_premium(self, user_id: Optional[str], reference: str, now) -> bool:
        """Stage the profile premium flag; the caller commits."""
        if not _is_real_user(user_id):
            logger.warning("Premium not activated for %s: no usable user id", reference)
            return False
        try:
            self.store.activate_profile(user_id, reference, now)
        except NotFoundError:
            logger.error(
                "Premium not activated for %s: profile %s not found", reference, user_id
            )
            return False
        return True


def _is_real_user(user_id: Optional[str]) -> bool:
    return user_id is not None and str(user_id).strip().lower() not in PLACEHOLDER_USER_IDS


def _provider_details(payload: Optional[dict[str, Any]]) -> dict[str, Any]:
    if not payload:
        return {}
    details: dict[str, Any] = {"last_provider_payload": payload}
    provider_txn = payload.get("transactionid") or payload.get("ptn")
    if provider_txn:
        details["provider_transaction_id"] = str(provider_txn)
    return details
