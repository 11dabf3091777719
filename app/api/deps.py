"""Shared FastAPI dependencies for the payment routes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Depends, Header
from sqlalchemy.orm import Session

from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.errors import AuthError
from app.core.logging import get_logger
from app.services.payments.reconciler import PaymentReconciler
from app.services.payments.store import TransactionStore
from app.services.provider.smobilpay import SmobilPayClient

logger = get_logger(__name__)


@dataclass
class CurrentUser:
    """The caller, as resolved by the external auth service."""

    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        if self.email:
            return self.email.split("@")[0]
        return self.id


def get_current_user(
    authorization: Optional[str] = Header(None),
    config: Settings = Depends(get_settings),
) -> CurrentUser:
    """Resolve the bearer token through the auth service's ``/auth/v1/user``.

    Authentication itself is delegated; this only forwards the token and
    reads back the user id, email and display name.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise AuthError("Missing bearer token", status_code=401)
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise AuthError("Missing bearer token", status_code=401)

    if not config.auth_url or not config.auth_api_key:
        logger.error("Auth service not configured (auth_url / auth_api_key)")
        raise AuthError("Authentication service unavailable")

    try:
        response = httpx.get(
            f"{config.auth_url.rstrip('/')}/auth/v1/user",
            headers={"Authorization": f"Bearer {token}", "apikey": config.auth_api_key},
            timeout=config.auth_timeout_seconds,
        )
    except httpx.HTTPError as exc:
        logger.error("Auth service request failed: %s", exc)
        raise AuthError("Authentication service unavailable") from exc

    if response.status_code in (401, 403):
        raise AuthError("Invalid or expired token", status_code=401)
    if not response.is_success:
        logger.error("Auth service returned HTTP %s", response.status_code)
        raise AuthError("Authentication service unavailable")

    try:
        data = response.json()
    except ValueError as exc:
        logger.error("Auth service returned a non-JSON body (%d bytes)", len(response.content))
        raise AuthError("Authentication service unavailable") from exc
    if not isinstance(data, dict):
        logger.error("Auth service returned unexpected %s", type(data).__name__)
        raise AuthError("Authentication service unavailable")
    if not data.get("id"):
        raise AuthError("Invalid or expired token", status_code=401)
    user_metadata = data.get("user_metadata") or {}
    return CurrentUser(
        id=str(data["id"]),
        email=data.get("email"),
        full_name=user_metadata.get("full_name"),
    )


def get_store(db: Session = Depends(get_db)) -> TransactionStore:
    return TransactionStore(db)


def get_reconciler(
    store: TransactionStore = Depends(get_store),
    config: Settings = Depends(get_settings),
) -> PaymentReconciler:
    return PaymentReconciler(store, config)


def get_provider_client(config: Settings = Depends(get_settings)) -> SmobilPayClient:
    """Provider client built per request. Missing keys surface on first use."""
    return SmobilPayClient(config)
