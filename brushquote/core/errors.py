# brushquote/core/errors.py
"""
Domain error taxonomy.

Every error carries a machine-readable ``code`` and the HTTP status the API
layer answers with. ``details`` names the precondition that failed so a
client can decide whether to retry, refresh or escalate to support.
"""
from __future__ import annotations

from typing import Any, Dict, Optional


class BrushquoteError(Exception):
    status_code: int = 400
    code: str = "ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(BrushquoteError):
    status_code = 400
    code = "VALIDATION_ERROR"


class NotFoundError(BrushquoteError):
    status_code = 404
    code = "NOT_FOUND"


class StateConflictError(BrushquoteError):
    status_code = 409
    code = "INVALID_STATE"


class QuoteExpiredError(BrushquoteError):
    status_code = 400
    code = "QUOTE_EXPIRED"


class PortalClosedError(BrushquoteError):
    status_code = 403
    code = "PORTAL_CLOSED"


class PortalExpiredError(PortalClosedError):
    code = "PORTAL_EXPIRED"


class PaymentProcessingError(BrushquoteError):
    """Gateway has not settled yet; the client retries with backoff."""

    status_code = 202
    code = "PAYMENT_PROCESSING"


class PaymentFailedError(BrushquoteError):
    status_code = 400
    code = "PAYMENT_FAILED"


class ConsistencyError(BrushquoteError):
    """
    The gateway confirmed the payment but local state could not be written.
    Never retried by the client: support reconciles using ``payment_reference``.
    """

    status_code = 500
    code = "DEPOSIT_STATE_INCONSISTENT"

    def __init__(self, message: str, *, payment_reference: str, **kw: Any):
        details = dict(kw.pop("details", None) or {})
        details["payment_reference"] = payment_reference
        super().__init__(message, details=details, **kw)
        self.payment_reference = payment_reference


class PricingError(BrushquoteError):
    """Raised inside the calculator; callers fall back to legacy pricing."""

    code = "PRICING_ERROR"
