"""Payment endpoints.

Initialize a mobile-money collection, receive the provider webhook, let
users poll the status of their payment, and expose the (secret-free)
provider configuration.
"""

from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Optional
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from app.api.deps import (
    CurrentUser,
    get_current_user,
    get_provider_client,
    get_reconciler,
    get_store,
)
from app.core.config import Settings, get_settings
from app.core.database import get_db
from app.core.errors import AuthError, NotFoundError, PaymentError, ProviderError, StoreError
from app.core.logging import get_logger
from app.models.transaction import Transaction
from app.schemas.payment import (
    SUPPORTED_METHODS,
    InitializePaymentData,
    InitializePaymentRequest,
    InitializePaymentResponse,
    ProviderConfigResponse,
    VerifyPaymentResponse,
    WebhookPayload,
)
from app.services.payments.reconciler import PaymentReconciler
from app.services.payments.references import generate_reference
from app.services.payments.signature import verify_webhook_signature
from app.services.payments.status import (
    ALLOWED_PRIOR,
    LocalStatus,
    user_facing_status,
    user_message,
)
from app.services.payments.store import TransactionStore, utcnow
from app.services.provider.smobilpay import PROVIDER_NAME, CollectRequest, SmobilPayClient

logger = get_logger(__name__)

router = APIRouter()


@router.post("/initialize", response_model=InitializePaymentResponse)
def initialize_payment(
    body: InitializePaymentRequest,
    user: CurrentUser = Depends(get_current_user),
    store: TransactionStore = Depends(get_store),
    provider: SmobilPayClient = Depends(get_provider_client),
    config: Settings = Depends(get_settings),
) -> InitializePaymentResponse:
    """Create a pending transaction and start the collection with the provider.

    The pending record is committed before the provider is called. If the
    provider call fails the record is kept and moved to ``failed``.
    """
    reference = generate_reference(config.reference_prefix)
    description = body.description or config.default_description
    amount = body.amount if body.amount is not None else Decimal(config.default_amount)

    logger.info(
        "Initialize payment: user=%s method=%s amount=%s %s ref=%s",
        user.id,
        body.payment_method,
        amount,
        config.currency,
        reference,
    )

    txn = store.insert_transaction(
        reference=reference,
        user_id=user.id,
        amount=amount,
        currency=config.currency,
        payment_method=body.payment_method,
        phone=body.phone,
        metadata={
            "description": description,
            "phone_number": body.phone,
            "payment_method": body.payment_method,
            "user_email": user.email,
            "provider": "maviance",
            "created_at": utcnow().isoformat(),
        },
    )

    try:
        result = provider.collect_payment(
            CollectRequest(
                reference=reference,
                amount=amount,
                currency=config.currency,
                payment_method=body.payment_method,
                phone=body.phone,
                payer_name=user.display_name,
                payer_email=user.email,
                description=description,
                callback_url=config.webhook_url,
                return_url=config.return_url_for(reference),
            )
        )
    except (ProviderError, AuthError) as exc:
        _mark_failed(store, txn, exc)
        raise

    store.update_transaction(
        txn,
        metadata={
            "provider_status": result.provider_status,
            "payment_url": result.payment_url,
            "provider_response": result.raw,
        },
    )
    store.commit()

    logger.info("Payment %s initialized, provider status %s", reference, result.provider_status)
    return InitializePaymentResponse(
        message="Payment initialized",
        data=InitializePaymentData(
            reference=reference,
            paymentUrl=result.payment_url,
            status=result.provider_status,
            amount=float(amount),
        ),
    )


@router.post("/webhook/maviance")
async def maviance_webhook(
    request: Request,
    db: Session = Depends(get_db),
    config: Settings = Depends(get_settings),
) -> dict[str, Any]:
    """Provider callback. Always answers 200 so the provider does not retry-storm.

    Unauthentic, malformed or unknown callbacks are logged and ignored.
    """
    raw = await request.body()
    signature = request.headers.get(config.webhook_signature_header)
    content_type = request.headers.get("content-type", "")
    return await run_in_threadpool(
        handle_webhook, raw, signature, content_type, db, config
    )


def handle_webhook(
    raw: bytes,
    signature: Optional[str],
    content_type: str,
    db: Session,
    config: Settings,
) -> dict[str, Any]:
    """Process one webhook delivery; never raises."""
    try:
        if not verify_webhook_signature(raw, signature, config):
            return _ignored("Invalid signature")

        payload = _parse_webhook_body(raw, content_type)
        if payload is None:
            logger.error("Webhook body is not valid JSON or form data (%d bytes)", len(raw))
            return _ignored("Malformed payload")

        reference = payload.transaction_reference
        if not reference:
            logger.error("Webhook without reference: %s", payload.audit_dict())
            return _ignored("Missing reference")

        logger.info("Webhook received: reference=%s status=%s", reference, payload.status)
        reconciler = PaymentReconciler(TransactionStore(db), config)
        outcome = reconciler.reconcile(
            reference,
            payload.status,
            source="webhook",
            provider_payload=payload.audit_dict(),
        )
    except NotFoundError:
        logger.warning("Webhook for unknown reference %s", reference)
        return _ignored("Unknown reference", reference=reference)
    except Exception:
        logger.exception("Webhook processing failed")
        db.rollback()
        return _ignored("Webhook processing failed")

    return {
        "success": True,
        "message": "Webhook processed",
        "reference": reference,
        "status": outcome.status,
    }


@router.get("/verify/{reference}", response_model=VerifyPaymentResponse)
def verify_payment(
    reference: str,
    user: CurrentUser = Depends(get_current_user),
    store: TransactionStore = Depends(get_store),
    reconciler: PaymentReconciler = Depends(get_reconciler),
    provider: SmobilPayClient = Depends(get_provider_client),
) -> VerifyPaymentResponse:
    """Report a payment's status, asking the provider when it is not final yet.

    Only the caller's own transactions are visible. A provider failure is
    logged and the locally stored status is returned.
    """
    txn = store.require_transaction(reference, user_id=user.id)
    status = txn.status

    if status != LocalStatus.COMPLETED.value:
        try:
            provider_status = provider.query_status(reference)
        except (ProviderError, AuthError) as exc:
            logger.warning("Status query for %s failed: %s", reference, exc.message)
        else:
            if provider_status is None:
                logger.info("Provider has no status yet for %s", reference)
            else:
                outcome = reconciler.apply(
                    txn,
                    provider_status,
                    source="verify",
                    provider_payload={"status": provider_status},
                )
                status = outcome.status

    return VerifyPaymentResponse(
        paid=status == LocalStatus.COMPLETED.value,
        status=user_facing_status(status),
        message=user_message(status),
        reference=reference,
    )


@router.get("/config", response_model=ProviderConfigResponse)
def provider_config(config: Settings = Depends(get_settings)) -> ProviderConfigResponse:
    """Static provider configuration. Never includes key material."""
    return ProviderConfigResponse(
        config={
            "provider": PROVIDER_NAME,
            "mode": config.mode,
            "base_url": config.maviance_base_url,
            "webhook_url": config.webhook_url,
            "supported_methods": list(SUPPORTED_METHODS),
            "currency": config.currency,
            "status": "ACTIVE",
        }
    )


# ── Helpers ──────────────────────────────────────────────────────────


def _mark_failed(store: TransactionStore, txn: Transaction, exc: PaymentError) -> None:
    """Move a just-created transaction to ``failed`` after a provider error."""
    reference = txn.reference
    logger.error("Provider call failed for %s: %s", reference, exc.message)
    try:
        store.transition_status(reference, LocalStatus.FAILED, ALLOWED_PRIOR[LocalStatus.FAILED])
        store.update_transaction(
            txn,
            metadata={
                "provider_error": exc.message,
                "provider_http_status": getattr(exc, "http_status", None),
                "failed_at": utcnow().isoformat(),
            },
        )
        store.commit()
    except StoreError:
        logger.exception("Could not mark %s as failed; it stays pending", reference)


def _parse_webhook_body(raw: bytes, content_type: str) -> Optional[WebhookPayload]:
    if not raw:
        return None
    try:
        text = raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        return None

    if "application/x-www-form-urlencoded" in content_type.lower():
        data: Any = dict(parse_qsl(text))
    else:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return None
    if not isinstance(data, dict):
        return None
    return WebhookPayload(**data)


def _ignored(message: str, reference: Optional[str] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"received": True, "processed": False, "message": message}
    if reference:
        body["reference"] = reference
    return body
