"""
Integrations layer.
This package contains all code used to communicate with the M-PESA (Daraja) gateway
and to act on its results:
- contracts: request/response shapes and validation
- clients: the live Daraja HTTP client and the development-mode mock
- policy: payment initiation, callback handling, notifications

Key rule:
- API endpoints MUST NOT call the gateway directly.
- Endpoints call policy services, which call a PaymentGateway client.

Switching implementations:
- The selection of mock vs real clients happens in ONE place (select_gateway in
  src/integrations/policy/payment_initiator.py), driven by MpesaConfig.
"""

from .contracts.interfaces import (
    NotificationType,
    PaymentGateway,
    PaymentInitiation,
    PaymentStatus,
    StkCallback,
    StkPushResult,
    TransactionType,
)
from .contracts.payments import (
    PaymentAuditLog,
    is_terminal_status,
    normalize_phone,
    parse_stk_callback,
    validate_payment_request,
)

__all__ = [
    # interfaces
    "NotificationType", "PaymentGateway", "PaymentInitiation", "PaymentStatus",
    "StkCallback", "StkPushResult", "TransactionType",
    # payments
    "PaymentAuditLog", "is_terminal_status", "normalize_phone",
    "parse_stk_callback", "validate_payment_request",
]
