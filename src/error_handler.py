"""Error taxonomy and boundary helpers for the payments API."""
from typing import Any, Dict, Optional, Tuple
import logging

logger = logging.getLogger(__name__)


class PaymentServiceError(Exception):
    status_code = 500

    def __init__(self, message: str, *, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(PaymentServiceError):
    """Malformed or missing input. Raised before any side effect."""

    status_code = 400


class AuthenticationError(PaymentServiceError):
    status_code = 401


class GatewayError(PaymentServiceError):
    """Token exchange or STK push was rejected or unreadable."""

    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        upstream_status: Optional[int] = None,
        upstream_body: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, details=details)
        self.upstream_status = upstream_status
        self.upstream_body = upstream_body


class PersistenceError(PaymentServiceError):
    status_code = 400


class NotFoundError(PaymentServiceError):
    status_code = 404


class InternalError(PaymentServiceError):
    status_code = 500


class ErrorHandler:
    def initiation_error_response(self, exc: Exception, context: Dict[str, Any] = None) -> Tuple[int, Dict[str, Any]]:
        """Map any initiator failure to ``(status, {"success": False, "error": ...})``."""
        if isinstance(exc, AuthenticationError):
            logger.warning("Payment initiation rejected: %s", exc)
            return exc.status_code, {"success": False, "error": exc.message}
        if isinstance(exc, PaymentServiceError):
            logger.error("M-PESA integration error: %s context=%s", exc, context or {})
            return 400, {"success": False, "error": exc.message}

        logger.error("Unhandled exception during payment initiation: %s", exc, exc_info=True)
        return 400, {"success": False, "error": "An internal error occurred while initiating the payment."}

    def callback_error_response(self, exc: Exception, context: Dict[str, Any] = None) -> Tuple[int, str]:
        if isinstance(exc, NotFoundError):
            logger.error("Callback for unknown transaction: %s context=%s", exc, context or {})
            return 404, "Transaction not found"
        if isinstance(exc, AuthenticationError):
            logger.warning("Callback rejected: %s", exc)
            return 401, "Unauthorized"

        logger.error("M-PESA callback processing error: %s", exc, exc_info=True)
        return 500, "Internal Server Error"
