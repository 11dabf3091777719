"""Provider status vocabulary and the local status state machine.

The provider reports statuses like ``SUCCESSFUL`` or ``CANCELLED``; we
store a closed local vocabulary. Transitions are monotone: ``completed``
is never left, and ``failed`` can only be upgraded to ``completed``.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from app.core.logging import get_logger

logger = get_logger(__name__)


class LocalStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


PROVIDER_SUCCESS = frozenset({"SUCCESSFUL", "COMPLETED"})
PROVIDER_FAILURE = frozenset({"FAILED", "CANCELLED"})
PROVIDER_PENDING = frozenset({"PENDING"})

# target status -> statuses it may be reached from
ALLOWED_PRIOR: dict[LocalStatus, frozenset[LocalStatus]] = {
    LocalStatus.COMPLETED: frozenset(
        {LocalStatus.PENDING, LocalStatus.UNKNOWN, LocalStatus.FAILED}
    ),
    LocalStatus.FAILED: frozenset({LocalStatus.PENDING, LocalStatus.UNKNOWN}),
    LocalStatus.PENDING: frozenset({LocalStatus.PENDING, LocalStatus.UNKNOWN}),
    LocalStatus.UNKNOWN: frozenset({LocalStatus.PENDING, LocalStatus.UNKNOWN}),
}


def normalize_provider_status(provider_status: Optional[str]) -> str:
    return (provider_status or "").strip().upper()


def map_provider_status(provider_status: Optional[str]) -> LocalStatus:
    """Map a provider status string onto the local vocabulary.

    Matching is case-insensitive. Anything unrecognized (including an
    absent status) maps to ``UNKNOWN`` and is logged.
    """
    normalized = normalize_provider_status(provider_status)
    if normalized in PROVIDER_SUCCESS:
        return LocalStatus.COMPLETED
    if normalized in PROVIDER_FAILURE:
        return LocalStatus.FAILED
    if normalized in PROVIDER_PENDING:
        return LocalStatus.PENDING

    logger.warning("Unrecognized provider status %r, treating as unknown", provider_status)
    return LocalStatus.UNKNOWN


def is_success(provider_status: Optional[str]) -> bool:
    return normalize_provider_status(provider_status) in PROVIDER_SUCCESS


def can_transition(current: LocalStatus | str, target: LocalStatus | str) -> bool:
    """True when moving from *current* to *target* is allowed."""
    return LocalStatus(current) in ALLOWED_PRIOR[LocalStatus(target)]


def user_facing_status(status: LocalStatus | str) -> str:
    """Status shown to end users: ``unknown`` is still pending for them."""
    status = LocalStatus(status)
    if status is LocalStatus.UNKNOWN:
        return LocalStatus.PENDING.value
    return status.value


def user_message(status: LocalStatus | str) -> str:
    status = LocalStatus(status)
    if status is LocalStatus.COMPLETED:
        return "Payment confirmed"
    if status is LocalStatus.FAILED:
        return "Payment failed"
    return "Payment pending"
