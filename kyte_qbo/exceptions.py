"""
Error taxonomy for the Kyte → QuickBooks bridge.

Every error carries an HTTP status and a stable code so the API layer can
render a consistent envelope. Unmatched line items are NOT errors: they are
reported as data (``matched=False``) by the matcher.
"""

from datetime import datetime, timezone
from typing import Optional


class KyteBridgeError(Exception):
    """Base class for errors surfaced to API callers"""

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        return {"error": {"message": self.message, "code": self.code, "timestamp": self.timestamp}}


class ValidationError(KyteBridgeError):
    """Malformed input order, CSV or payload. Never retried."""

    status_code = 400
    code = "VALIDATION_ERROR"


class IncompleteOrderError(KyteBridgeError):
    """Estimate builder precondition failed (unmatched line or missing customer)"""

    status_code = 422
    code = "INCOMPLETE_ORDER"

    def __init__(self, message: str, line_number: Optional[int] = None, missing_customer: bool = False):
        super().__init__(message)
        self.line_number = line_number
        self.missing_customer = missing_customer


class RemoteApiError(KyteBridgeError):
    """QuickBooks call failed. ``transient`` failures are eligible for retry."""

    status_code = 502
    code = "REMOTE_API_ERROR"

    def __init__(self, message: str, remote_status: Optional[int] = None, transient: bool = False):
        super().__init__(message)
        self.remote_status = remote_status
        self.transient = transient


class ConversionTimeoutError(KyteBridgeError):
    """A caller deadline expired; the remote outcome may be unknown"""

    status_code = 504
    code = "TIMEOUT"


class SignatureError(KyteBridgeError):
    """Webhook rejected before any processing"""

    status_code = 403
    code = "INVALID_SIGNATURE"


class StoreError(KyteBridgeError):
    """Persistence failure"""

    status_code = 500
    code = "STORE_ERROR"
