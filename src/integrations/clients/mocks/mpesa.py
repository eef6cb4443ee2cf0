"""
M-PESA — MOCK client.

⚠️  Development-mode stand-in used when M-PESA credentials are missing.
    No network calls are made. Every push is "accepted" with a locally
    unique CheckoutRequestID so the callback endpoint can be exercised by
    hand or from tests.
"""

import logging
import time
import uuid

from src.integrations.contracts.interfaces import (
    PaymentGateway,
    PaymentInitiation,
    StkPushResult,
)

logger = logging.getLogger(__name__)


class MpesaMockClient(PaymentGateway):
    def __init__(self) -> None:
        logger.info("[MPESA MOCK] Running in development mode - using mock M-PESA responses")

    @property
    def development_mode(self) -> bool:
        return True

    def _stamp(self) -> str:
        return f"{int(time.time() * 1000)}{uuid.uuid4().hex[:6].upper()}"

    def new_reference(self) -> str:
        return f"DEV{self._stamp()}"

    async def stk_push(self, payment: PaymentInitiation, reference: str) -> StkPushResult:
        checkout_request_id = f"ws_CO_DEV{self._stamp()}"
        logger.info(
            "[MPESA MOCK] STK push accepted ref=%s checkout=%s amount=%s phone=%s",
            reference, checkout_request_id, payment.amount, payment.phone_number,
        )
        return StkPushResult(
            checkout_request_id=checkout_request_id,
            merchant_request_id=f"DEV-{uuid.uuid4().hex[:12].upper()}",
            reference=reference,
            response_code="0",
            response_description="Success. Request accepted for processing (Development Mode)",
            customer_message="Success. Request accepted for processing",
            development_mode=True,
        )
