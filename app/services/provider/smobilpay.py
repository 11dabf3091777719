"""Maviance SmobilPay HTTP client.

Single-attempt wrapper around the aggregator's token, collect and
verify endpoints. There is no retry, backoff or token cache: every payment
attempt authenticates again, and transient failures surface to the caller
as ``ProviderError``.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

import httpx

from app.core.config import Settings
from app.core.errors import AuthError, ProviderError
from app.core.logging import get_logger

logger = get_logger(__name__)

PROVIDER_NAME = "Maviance SmobilPay"

# Maviance service ids per mobile-money operator
SERVICE_IDS: dict[str, str] = {
    "mtn": "6131",
    "orange": "6132",
    "express-union": "6133",
}


@dataclass
class CollectRequest:
    """Everything the provider needs to start a mobile-money charge."""

    reference: str
    amount: Decimal
    currency: str
    payment_method: str
    phone: str
    payer_name: str
    payer_email: Optional[str]
    description: str
    callback_url: str
    return_url: str


@dataclass
class CollectResult:
    payment_url: str
    provider_status: str
    raw: dict[str, Any] = field(default_factory=dict)


class SmobilPayClient:
    """Sync wrapper for SmobilPay operations."""

    def __init__(
        self,
        config: Settings,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.config = config
        self.base_url = config.maviance_base_url.rstrip("/")
        self._transport = transport

    # ── Public API ───────────────────────────────────────────────────

    def get_access_token(self) -> str:
        """Exchange the public/secret key pair for a bearer token.

        Raises:
            AuthError: the provider refused the credentials or answered
                without a token.
        """
        self._check_configured()
        basic = base64.b64encode(
            f"{self.config.maviance_public_key}:{self.config.maviance_secret_key}".encode()
        ).decode()
        try:
            with self._client() as client:
                response = client.post(
                    f"{self.base_url}/token",
                    data={"grant_type": "client_credentials"},
                    headers={"Authorization": f"Basic {basic}"},
                )
        except httpx.HTTPError as exc:
            logger.error("Token request to %s failed: %s", PROVIDER_NAME, exc)
            raise ProviderError(f"Could not reach {PROVIDER_NAME} token endpoint: {exc}") from exc

        if not response.is_success:
            logger.error(
                "Token request rejected: status=%s body=%s",
                response.status_code,
                response.text[:500],
            )
            raise AuthError(
                f"{PROVIDER_NAME} token request failed with HTTP {response.status_code}"
            )

        token = _json(response).get("access_token")
        if not token:
            raise AuthError(f"{PROVIDER_NAME} token response had no access_token")
        return token

    def collect_payment(self, request: CollectRequest) -> CollectResult:
        """Submit a collection and return the URL the payer must visit."""
        service_id = SERVICE_IDS.get(request.payment_method)
        if service_id is None:
            raise ProviderError(f"No service id for payment method {request.payment_method!r}")

        token = self.get_access_token()
        payload = {
            "amount": {
                "value": str(request.amount),
                "currency": request.currency,
            },
            "serviceid": service_id,
            "payer": {
                "type": "CUSTOMER",
                "id": request.phone,
                "name": request.payer_name,
                "email": request.payer_email,
                "phone": request.phone,
            },
            "orderid": request.reference,
            "description": request.description,
            "merchant": {"number": self.config.maviance_merchant_number},
            "callback_url": request.callback_url,
            "return_url": request.return_url,
        }

        logger.info(
            "Submitting collection %s to %s (service=%s)",
            request.reference,
            PROVIDER_NAME,
            service_id,
        )
        response = self._request("POST", "collect", token, json=payload)
        data = _json(response)

        payment_url = data.get("paymentUrl") or data.get("url") or data.get("authorization_url")
        if not payment_url:
            logger.error("No payment URL in collect response for %s: %s", request.reference, data)
            raise ProviderError(
                f"Payment URL not received from {PROVIDER_NAME}",
                http_status=response.status_code,
                body=data,
            )

        return CollectResult(
            payment_url=payment_url,
            provider_status=str(data.get("status") or "PENDING"),
            raw=data,
        )

    def query_status(self, reference: str) -> Optional[str]:
        """Ask the provider for the current status of order *reference*.

        Returns the raw provider status string, or ``None`` when the
        provider does not know the order yet.
        """
        token = self.get_access_token()
        response = self._request("GET", "verifytx", token, params={"trid": reference})
        data = _body(response) if response.content else None

        # verifytx answers with a list of matching payments
        if isinstance(data, list):
            data = data[0] if data else None
        if not isinstance(data, dict):
            return None
        status = data.get("status")
        return str(status) if status is not None else None

    # ── Private helpers ──────────────────────────────────────────────

    def _check_configured(self) -> None:
        if not self.config.maviance_public_key or not self.config.maviance_secret_key:
            raise AuthError("Maviance public/secret key not configured")
        if not self.config.maviance_merchant_number:
            raise AuthError("Maviance merchant number not configured")

    def _client(self) -> httpx.Client:
        return httpx.Client(
            timeout=self.config.provider_timeout_seconds,
            transport=self._transport,
        )

    def _request(
        self,
        method: str,
        endpoint: str,
        token: str,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }
        try:
            with self._client() as client:
                response = client.request(
                    method,
                    f"{self.base_url}/{endpoint}",
                    headers=headers,
                    **kwargs,
                )
        except httpx.TimeoutException as exc:
            logger.error("%s %s timed out: %s", method, endpoint, exc)
            raise ProviderError(f"{PROVIDER_NAME} request timed out") from exc
        except httpx.HTTPError as exc:
            logger.error("%s %s failed: %s", method, endpoint, exc)
            raise ProviderError(f"{PROVIDER_NAME} request failed: {exc}") from exc

        if not response.is_success:
            body = _body(response)
            if response.status_code == 401:
                logger.error(
                    "%s rejected our bearer token on %s; check the configured keys",
                    PROVIDER_NAME,
                    endpoint,
                )
            else:
                logger.error(
                    "%s %s returned HTTP %s: %s",
                    method,
                    endpoint,
                    response.status_code,
                    body,
                )
            raise ProviderError(
                f"{PROVIDER_NAME} returned HTTP {response.status_code}",
                http_status=response.status_code,
                body=body,
            )
        return response


def _json(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise ProviderError(
            f"Invalid JSON from {PROVIDER_NAME}",
            http_status=response.status_code,
            body=response.text[:500],
        ) from exc
    if not isinstance(data, dict):
        raise ProviderError(
            f"Unexpected {PROVIDER_NAME} response type",
            http_status=response.status_code,
            body=data,
        )
    return data


def _body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text[:500]
