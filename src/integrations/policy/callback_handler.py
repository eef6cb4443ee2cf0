"""
Payment Callback Handler

Applies a Daraja STK result notification to the matching pending
transaction and tells the owning user what happened.
"""

from __future__ import annotations

import hmac
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from src.error_handler import AuthenticationError, NotFoundError
from src.integrations.contracts.interfaces import PaymentStatus, StkCallback
from src.integrations.contracts.payments import PaymentAuditLog, is_terminal_status, parse_stk_callback
from src.integrations.policy.notification_service import NotificationService

logger = logging.getLogger(__name__)

RECEIPT_ITEM = "MpesaReceiptNumber"


class PaymentCallbackHandler:
    def __init__(self, db, callback_token: Optional[str] = None, notifications: Optional[NotificationService] = None):
        self.db = db
        self.callback_token = callback_token
        self.notifications = notifications or NotificationService(db)

    def verify_token(self, token: Optional[str]) -> None:
        if not self.callback_token:
            return
        if not token or not hmac.compare_digest(token, self.callback_token):
            raise AuthenticationError("Invalid or missing callback token")

    def handle(self, payload: Any, token: Optional[str] = None) -> Dict[str, Any]:
        """
        Finalize the transaction referenced by the callback.

        Returns a summary dict. A callback for a transaction that is already
        completed or failed changes nothing and is reported as a replay.

        Raises:
            AuthenticationError: callback token mismatch
            NotFoundError: no transaction with this CheckoutRequestID
            InternalError: malformed payload
        """
        self.verify_token(token)
        callback = parse_stk_callback(payload)
        logger.info(
            "M-PESA Callback received: checkout_request_id=%s result_code=%s",
            callback.checkout_request_id, callback.result_code,
        )

        transaction = self.db.get_transaction_by_checkout_id(callback.checkout_request_id)
        if transaction is None:
            raise NotFoundError(
                f"Transaction not found for CheckoutRequestID: {callback.checkout_request_id}",
                details={"checkout_request_id": callback.checkout_request_id},
            )

        if is_terminal_status(transaction.status):
            logger.warning(
                "Ignoring replayed callback for transaction_id=%s already %s",
                transaction.id, transaction.status,
            )
            return {"transaction_id": transaction.id, "status": transaction.status, "replayed": True}

        return self._finalize(transaction, callback)

    def _finalize(self, transaction, callback: StkCallback) -> Dict[str, Any]:
        audit = PaymentAuditLog.from_metadata(transaction.audit_log)
        audit.mpesa_callback = callback.raw
        receipt = None

        if callback.succeeded:
            status = PaymentStatus.COMPLETED
            receipt = callback.item(RECEIPT_ITEM)
            if receipt is not None:
                receipt = str(receipt)
        else:
            status = PaymentStatus.FAILED
            audit.failure_reason = callback.result_desc

        updated = self.db.finalize_transaction(
            transaction.id,
            status=status.value,
            audit_log=audit.to_metadata(),
            mpesa_reference=receipt,
            processed_at=datetime.utcnow(),
        )
        if not updated:
            # Another delivery of the same callback finalized it first.
            logger.warning("Transaction %s was no longer pending; skipping notification", transaction.id)
            return {"transaction_id": transaction.id, "status": status.value, "replayed": True}

        try:
            if callback.succeeded:
                self.notifications.payment_succeeded(transaction)
            else:
                self.notifications.payment_failed(transaction, callback.result_desc)
        except Exception:
            # The status change is committed; a gateway retry will be treated as a replay.
            logger.error(
                "Notification not written for finalized transaction_id=%s status=%s user_id=%s",
                transaction.id, status.value, transaction.user_id, exc_info=True,
            )
            raise

        logger.info(
            "Transaction updated successfully: transaction_id=%s status=%s result_code=%s",
            transaction.id, status.value, callback.result_code,
        )
        return {"transaction_id": transaction.id, "status": status.value, "replayed": False}
