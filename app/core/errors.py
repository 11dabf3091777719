"""Error taxonomy shared by the services and the HTTP layer.

Every error carries the HTTP status the API answers with, so route
handlers can simply let them propagate to the handlers in ``app.main``.
"""

from __future__ import annotations

from typing import Any, Optional


class PaymentError(Exception):
    """Base class for all errors raised by the payments gateway."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(PaymentError):
    """Bad input from the caller."""

    status_code = 400


class AuthError(PaymentError):
    """Credential failure.

    Raised with the default 500 when the provider rejects our own keys
    (a server misconfiguration), and with 401 when the caller's bearer
    token cannot be resolved.
    """

    status_code = 500


class ProviderError(PaymentError):
    """Non-2xx answer, timeout or malformed response from the aggregator."""

    def __init__(
        self,
        message: str,
        http_status: Optional[int] = None,
        body: Any = None,
    ) -> None:
        if http_status is not None and 400 <= http_status < 500 and http_status != 401:
            status_code = 400
        else:
            status_code = 500
        super().__init__(message, status_code=status_code)
        self.http_status = http_status
        self.body = body


class NotFoundError(PaymentError):
    """Unknown transaction or profile."""

    status_code = 404


class StoreError(PaymentError):
    """Persistence failure in the transaction store."""

    status_code = 500
