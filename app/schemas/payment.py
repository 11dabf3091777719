"""Pydantic schemas for the payment endpoints."""

from __future__ import annotations

import re
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.services.provider.smobilpay import SERVICE_IDS

SUPPORTED_METHODS = tuple(SERVICE_IDS)

MIN_PHONE_DIGITS = 9

_NON_DIGITS = re.compile(r"\D")


class InitializePaymentRequest(BaseModel):
    """Request body for ``POST /api/payments/initialize``."""

    amount: Optional[Decimal] = Field(
        None,
        gt=0,
        max_digits=15,
        decimal_places=2,
        description="Amount to collect in the configured currency; defaults to the premium price",
    )
    phone: str = Field(
        ...,
        description="Mobile-money phone number to charge",
    )
    payment_method: str = Field(
        ...,
        description="mtn | orange | express-union",
    )
    description: Optional[str] = Field(
        None,
        max_length=255,
    )

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        value = value.strip()
        if len(_NON_DIGITS.sub("", value)) < MIN_PHONE_DIGITS:
            raise ValueError(
                f"Invalid phone number: at least {MIN_PHONE_DIGITS} digits required"
            )
        return value

    @field_validator("payment_method")
    @classmethod
    def _check_method(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in SUPPORTED_METHODS:
            raise ValueError(
                f"Unsupported payment method '{value}'. "
                f"Supported: {', '.join(SUPPORTED_METHODS)}"
            )
        return value


class InitializePaymentData(BaseModel):
    reference: str
    paymentUrl: str
    status: str
    amount: float


class InitializePaymentResponse(BaseModel):
    success: bool = True
    message: str
    data: InitializePaymentData


class VerifyPaymentResponse(BaseModel):
    """Answer to a user verification poll.

    ``status`` is the user-facing status: ``unknown`` is reported as
    ``pending``.
    """

    success: bool = True
    paid: bool
    status: str
    message: str
    reference: str


class WebhookPayload(BaseModel):
    """Provider callback body. Unknown fields are kept for the audit trail."""

    model_config = ConfigDict(extra="allow")

    orderid: Optional[str] = None
    reference: Optional[str] = None
    status: Optional[str] = None
    transactionid: Optional[str] = None

    @field_validator("orderid", "reference", "status", "transactionid", mode="before")
    @classmethod
    def _coerce_str(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value)

    @property
    def transaction_reference(self) -> Optional[str]:
        ref = (self.orderid or self.reference or "").strip()
        return ref or None

    def audit_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ProviderConfigResponse(BaseModel):
    success: bool = True
    config: dict[str, Any]
