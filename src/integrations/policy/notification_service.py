"""
Notification Service

Writes the user-facing notification rows that describe a payment outcome.
"""

import logging
from typing import Any

from src.integrations.contracts.interfaces import NotificationType

logger = logging.getLogger(__name__)

CURRENCY_LABEL = "KSh"


def _format_amount(amount: Any) -> str:
    value = float(amount)
    return str(int(value)) if value.is_integer() else f"{value:.2f}"


class NotificationService:
    def __init__(self, db):
        self.db = db

    def payment_succeeded(self, transaction):
        return self.db.create_notification(
            user_id=transaction.user_id,
            title="Payment Successful",
            message=f"Your payment of {CURRENCY_LABEL} {_format_amount(transaction.amount)} has been processed successfully",
            type=NotificationType.PAYMENT_SUCCESS.value,
            metadata={"transaction_id": transaction.id},
        )

    def payment_failed(self, transaction, reason: str):
        return self.db.create_notification(
            user_id=transaction.user_id,
            title="Payment Failed",
            message=f"Your payment of {CURRENCY_LABEL} {_format_amount(transaction.amount)} failed: {reason}",
            type=NotificationType.PAYMENT_FAILED.value,
            metadata={"transaction_id": transaction.id},
        )
