"""
Real M-PESA (Daraja) HTTP Client.

Used when all four gateway credentials are configured. Performs one token
exchange and one STK push per initiation; no caching, no retries.
"""

from __future__ import annotations

import base64
import logging
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

import httpx

from src.error_handler import GatewayError
from src.integrations.contracts.interfaces import (
    AccessToken,
    PaymentGateway,
    PaymentInitiation,
    StkPushResult,
)
from src.integrations.policy.response_wrappers import (
    normalize_stk_push_response,
    normalize_token_response,
    parse_json_body,
)
from src.utils.config_loader import MpesaConfig

logger = logging.getLogger(__name__)

EAT = timezone(timedelta(hours=3), "EAT")


def stk_timestamp(moment: datetime) -> str:
    return moment.strftime("%Y%m%d%H%M%S")


def stk_password(shortcode: str, passkey: str, timestamp: str) -> str:
    return base64.b64encode(f"{shortcode}{passkey}{timestamp}".encode("utf-8")).decode("ascii")


def _wire_amount(amount: float) -> Any:
    return int(amount) if float(amount).is_integer() else amount


class DarajaClient(PaymentGateway):
    def __init__(
        self,
        config: MpesaConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        if not config.has_credentials:
            raise ValueError("DarajaClient requires consumer key, consumer secret, shortcode and passkey.")
        self.config = config
        self.base_url = config.base_url
        self.timeout_seconds = config.gateway.timeout_seconds
        self._transport = transport
        self._clock = clock or (lambda: datetime.now(EAT))

    @property
    def development_mode(self) -> bool:
        return False

    def new_reference(self) -> str:
        return f"CL{int(time.time() * 1000)}{uuid.uuid4().hex[:6].upper()}"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport)

    async def get_access_token(self) -> AccessToken:
        url = f"{self.base_url}{self.config.gateway.endpoints.token}"
        auth = base64.b64encode(f"{self.config.consumer_key}:{self.config.consumer_secret}".encode("utf-8")).decode("ascii")

        logger.info("Requesting M-PESA access token...")
        try:
            async with self._client() as client:
                response = await client.get(url, headers={"Authorization": f"Basic {auth}"})
        except httpx.HTTPError as exc:
            raise GatewayError(f"Failed to get M-PESA access token: {exc}") from exc

        if response.is_error:
            logger.error("Token request failed: %s %s", response.status_code, response.text)
            raise GatewayError(
                f"Failed to get M-PESA access token: {response.status_code} {response.text}",
                upstream_status=response.status_code,
                upstream_body=response.text,
            )

        data = parse_json_body(response.text, label="token", status_code=response.status_code)
        return normalize_token_response(data)

    def build_stk_payload(self, payment: PaymentInitiation, reference: str) -> Dict[str, Any]:
        timestamp = stk_timestamp(self._clock())
        shortcode = str(self.config.shortcode)
        return {
            "BusinessShortCode": shortcode,
            "Password": stk_password(shortcode, str(self.config.passkey), timestamp),
            "Timestamp": timestamp,
            "TransactionType": self.config.gateway.transaction_type,
            "Amount": _wire_amount(payment.amount),
            "PartyA": payment.phone_number,
            "PartyB": shortcode,
            "PhoneNumber": payment.phone_number,
            "CallBackURL": self.config.callback_url,
            "AccountReference": reference,
            "TransactionDesc": payment.description,
        }

    async def stk_push(self, payment: PaymentInitiation, reference: str) -> StkPushResult:
        token = await self.get_access_token()
        payload = self.build_stk_payload(payment, reference)
        loggable = {k: v for k, v in payload.items() if k != "Password"}
        logger.info("Initiating STK Push with payload: %s", loggable)

        url = f"{self.base_url}{self.config.gateway.endpoints.stk_push}"
        headers = {
            "Authorization": f"Bearer {token.access_token}",
            "Content-Type": "application/json",
        }
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as exc:
            raise GatewayError(f"Failed to initiate M-PESA STK push: {exc}") from exc

        logger.info("STK Response Status: %s", response.status_code)
        if response.is_error:
            raise GatewayError(
                f"Failed to initiate M-PESA STK push: {response.status_code} - {response.text}",
                upstream_status=response.status_code,
                upstream_body=response.text,
            )

        data = parse_json_body(response.text, label="STK push", status_code=response.status_code)
        accepted = normalize_stk_push_response(data)

        return StkPushResult(
            checkout_request_id=accepted.CheckoutRequestID,
            merchant_request_id=accepted.MerchantRequestID,
            reference=reference,
            response_code=accepted.ResponseCode,
            response_description=accepted.ResponseDescription,
            customer_message=accepted.CustomerMessage,
            request_payload=loggable,
            raw=data,
            token_expires_in=token.expires_in,
        )
