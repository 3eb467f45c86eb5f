"""
Payment Exception Hierarchy

Error codes for the payment confirmation subsystem.
All errors use the payment: prefix so clients can branch on them.
"""
from typing import Optional, Dict, Any


class PaymentError(Exception):
    """
    Base exception for all payment subsystem errors.

    Each subclass carries a stable error code and the HTTP status the API
    layer answers with.
    """

    status_code: int = 400

    def __init__(
        self,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None
    ):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to API error response format."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details
        }


class GatewayUnavailableError(PaymentError):
    """
    External payment processor could not be reached.

    Examples:
    - Connection refused or DNS failure
    - Request timed out
    - Gateway answered with a 5xx status

    Transient: the caller retries with backoff. Never reported to the
    end user as a failed payment.
    """

    status_code = 503

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payment:gateway:unavailable", message, details)


class InvalidArticleError(PaymentError):
    """
    Article cannot be purchased.

    Examples:
    - Article does not exist
    - Article price is 0 (free content needs no payment)
    - Client-supplied amount differs from the stored price
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payment:article:invalid", message, details)


class ArticleAlreadyPaidError(PaymentError):
    """
    Article is already unlocked; no checkout session is created.
    """

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payment:article:already_paid", message, details)


class TransactionNotFoundError(PaymentError):
    """
    No local transaction record with the given identifier.
    """

    status_code = 404

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payment:transaction:not_found", message, details)


class WriteConflictError(PaymentError):
    """
    Conditional article update lost the race.

    Benign: another reconcile already changed the article. Re-read and
    treat as success when the article is now paid.
    """

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payment:article:write_conflict", message, details)


class GatewayRejectedError(PaymentError):
    """
    Gateway refused the request (4xx other than not-found).

    Examples:
    - Invalid API key
    - Amount below the gateway minimum
    """

    status_code = 502

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__("payment:gateway:rejected", message, details)
