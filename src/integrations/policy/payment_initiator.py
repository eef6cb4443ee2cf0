"""
Payment Initiator

Validates a payment request, asks the gateway for an STK push and records
the resulting `pending` transaction.

Nothing is written unless the gateway accepted the push, so a rejected or
unreadable push never leaves an orphaned pending row.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from src.error_handler import AuthenticationError, InternalError, PersistenceError
from src.integrations.clients.mocks.mpesa import MpesaMockClient
from src.integrations.clients.real_http.mpesa import DarajaClient
from src.integrations.contracts.interfaces import PaymentGateway, PaymentInitiation, StkPushResult
from src.integrations.contracts.payments import (
    PaymentAuditLog,
    StkPushAudit,
    StkPushResponse,
    TokenAudit,
    validate_payment_request,
)
from src.utils.config_loader import MpesaConfig

logger = logging.getLogger(__name__)


def select_gateway(config: MpesaConfig) -> PaymentGateway:
    """Live Daraja client when all credentials are present, the mock otherwise."""
    if config.development_mode:
        return MpesaMockClient()
    return DarajaClient(config)


class PaymentInitiator:
    def __init__(self, db, config: MpesaConfig, gateway: Optional[PaymentGateway] = None):
        self.db = db
        self.config = config
        self.gateway = gateway or select_gateway(config)

    async def initiate(self, user_id: Optional[str], body: Any) -> Dict[str, Any]:
        if not user_id:
            raise AuthenticationError("No user found")

        payment = validate_payment_request(user_id, body)

        if not self.gateway.development_mode and not self.config.public_base_url:
            raise InternalError("PUBLIC_BASE_URL environment variable is required")

        reference = self.gateway.new_reference()
        result = await self.gateway.stk_push(payment, reference)
        transaction = self._record_pending(payment, result)

        logger.info(
            "M-PESA transaction initiated: transaction_id=%s checkout_request_id=%s amount=%s phone=%s",
            transaction.id, result.checkout_request_id, payment.amount, payment.phone_number,
        )

        response: Dict[str, Any] = {
            "success": True,
            "message": "STK push sent successfully",
            "transaction_id": transaction.id,
            "checkout_request_id": result.checkout_request_id,
        }
        if result.development_mode:
            response["message"] = "STK push sent successfully (Development Mode)"
            response["development_mode"] = True
        return response

    def _audit_log(self, result: StkPushResult) -> PaymentAuditLog:
        if result.development_mode:
            return PaymentAuditLog(development_mode=True, mock_response=True)
        return PaymentAuditLog(
            token_response=TokenAudit(expires_in=result.token_expires_in),
            mpesa_request=StkPushAudit.model_validate(result.request_payload),
            mpesa_response=StkPushResponse.model_validate(result.raw),
        )

    def _record_pending(self, payment: PaymentInitiation, result: StkPushResult):
        try:
            return self.db.create_transaction(
                user_id=payment.user_id,
                type=payment.transaction_type.value,
                amount=payment.amount,
                phone_number=payment.phone_number,
                reference=result.reference,
                checkout_request_id=result.checkout_request_id,
                description=payment.description,
                chama_id=payment.chama_id,
                loan_id=payment.loan_id,
                audit_log=self._audit_log(result).to_metadata(),
            )
        except Exception as exc:
            # The gateway already accepted this push; there is no local row to reconcile against.
            logger.error(
                "Error creating transaction after accepted STK push checkout_request_id=%s: %s",
                result.checkout_request_id, exc, exc_info=True,
            )
            raise PersistenceError(
                "Failed to create transaction record",
                details={"checkout_request_id": result.checkout_request_id},
            ) from exc
