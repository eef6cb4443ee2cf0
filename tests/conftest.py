"""Pytest fixtures for the M-PESA payment tests."""

import json

import httpx
import pytest

from src.database.postgres import PostgresDB
from src.utils.config_loader import MpesaConfig


@pytest.fixture
def db():
    """In-memory PostgresDB stub for tests."""
    return PostgresDB()


@pytest.fixture
def dev_config():
    """No credentials: the initiator runs in development mode."""
    return MpesaConfig()


@pytest.fixture
def live_config():
    return MpesaConfig(
        consumer_key="test_consumer_key",
        consumer_secret="test_consumer_secret",
        shortcode="174379",
        passkey="test_passkey",
        environment="sandbox",
        public_base_url="https://chama.example.com",
    )


class DarajaStub:
    """httpx.MockTransport handler that plays the token and STK push endpoints."""

    def __init__(self, token_status=200, token_body=None, stk_status=200, stk_body=None):
        self.token_status = token_status
        self.token_body = {"access_token": "daraja_tok_abc", "expires_in": "3599"} if token_body is None else token_body
        self.stk_status = stk_status
        self.stk_body = {
            "MerchantRequestID": "29115-34620561-1",
            "CheckoutRequestID": "ws_CO_191220191020363925",
            "ResponseCode": "0",
            "ResponseDescription": "Success. Request accepted for processing",
            "CustomerMessage": "Success. Request accepted for processing",
        } if stk_body is None else stk_body
        self.requests = []

    def _content(self, body):
        return body.encode("utf-8") if isinstance(body, str) else json.dumps(body).encode("utf-8")

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path == "/oauth/v1/generate":
            return httpx.Response(self.token_status, content=self._content(self.token_body))
        if request.url.path == "/mpesa/stkpush/v1/processrequest":
            return httpx.Response(self.stk_status, content=self._content(self.stk_body))
        return httpx.Response(404, text="not found")

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


@pytest.fixture
def daraja_stub():
    return DarajaStub()


@pytest.fixture
def daraja_factory():
    return DarajaStub


def make_callback(checkout_request_id, result_code=0, result_desc="The service request is processed successfully.", items=None):
    stk = {
        "MerchantRequestID": "29115-34620561-1",
        "CheckoutRequestID": checkout_request_id,
        "ResultCode": result_code,
        "ResultDesc": result_desc,
    }
    if items is not None:
        stk["CallbackMetadata"] = {"Item": items}
    return {"Body": {"stkCallback": stk}}


@pytest.fixture
def callback_factory():
    return make_callback
