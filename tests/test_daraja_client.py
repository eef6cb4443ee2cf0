import base64
import json
from datetime import datetime

import httpx
import pytest

from src.error_handler import GatewayError
from src.integrations.clients.real_http.mpesa import DarajaClient, stk_password, stk_timestamp
from src.integrations.contracts.interfaces import PaymentInitiation, TransactionType
from src.utils.config_loader import MpesaConfig


FIXED_NOW = datetime(2024, 3, 1, 14, 5, 9)


def _payment(amount=500.0):
    return PaymentInitiation(
        user_id="u1",
        amount=amount,
        phone_number="254712345678",
        transaction_type=TransactionType.CONTRIBUTION,
        description="Monthly contribution",
        chama_id="G1",
    )


def _client(config, stub):
    return DarajaClient(config, transport=stub.transport, clock=lambda: FIXED_NOW)


def test_requires_full_credentials():
    with pytest.raises(ValueError):
        DarajaClient(MpesaConfig(consumer_key="k", consumer_secret="s"))


def test_password_and_timestamp_format():
    assert stk_timestamp(FIXED_NOW) == "20240301140509"
    decoded = base64.b64decode(stk_password("174379", "pk", "20240301140509")).decode()
    assert decoded == "174379pk20240301140509"


@pytest.mark.asyncio
async def test_stk_push_performs_token_exchange_then_push(live_config, daraja_stub):
    client = _client(live_config, daraja_stub)

    result = await client.stk_push(_payment(), "CL1700000000000")

    token_req, push_req = daraja_stub.requests
    assert token_req.method == "GET"
    assert token_req.url.host == "sandbox.safaricom.co.ke"
    assert token_req.url.params["grant_type"] == "client_credentials"
    expected_basic = base64.b64encode(b"test_consumer_key:test_consumer_secret").decode()
    assert token_req.headers["Authorization"] == f"Basic {expected_basic}"

    assert push_req.method == "POST"
    assert push_req.headers["Authorization"] == "Bearer daraja_tok_abc"
    body = json.loads(push_req.content)
    assert body["BusinessShortCode"] == "174379"
    assert body["PartyB"] == "174379"
    assert body["Timestamp"] == "20240301140509"
    assert base64.b64decode(body["Password"]).decode() == "174379test_passkey20240301140509"
    assert body["Amount"] == 500
    assert body["PartyA"] == body["PhoneNumber"] == "254712345678"
    assert body["AccountReference"] == "CL1700000000000"
    assert body["TransactionDesc"] == "Monthly contribution"
    assert body["TransactionType"] == "CustomerPayBillOnline"
    assert body["CallBackURL"] == "https://chama.example.com/api/v1/payments/mpesa/callback"

    assert result.checkout_request_id == "ws_CO_191220191020363925"
    assert result.reference == "CL1700000000000"
    assert result.development_mode is False
    assert result.token_expires_in == "3599"
    assert "Password" not in result.request_payload


@pytest.mark.asyncio
async def test_callback_url_carries_verification_token(live_config, daraja_stub):
    config = live_config.model_copy(update={"callback_token": "s3cret"})

    await _client(config, daraja_stub).stk_push(_payment(), "CL1")

    body = json.loads(daraja_stub.requests[1].content)
    assert body["CallBackURL"].endswith("/api/v1/payments/mpesa/callback?token=s3cret")


@pytest.mark.asyncio
async def test_fractional_amount_sent_unchanged(live_config, daraja_stub):
    await _client(live_config, daraja_stub).stk_push(_payment(amount=99.5), "CL1")
    assert json.loads(daraja_stub.requests[1].content)["Amount"] == 99.5


@pytest.mark.asyncio
async def test_token_http_error_aborts_before_push(live_config, daraja_factory):
    stub = daraja_factory(token_status=401, token_body="invalid credentials")

    with pytest.raises(GatewayError) as exc:
        await _client(live_config, stub).stk_push(_payment(), "CL1")

    assert exc.value.upstream_status == 401
    assert "access token" in exc.value.message
    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_missing_access_token_field(live_config, daraja_factory):
    stub = daraja_factory(token_body={"expires_in": "3599"})

    with pytest.raises(GatewayError, match="No access token"):
        await _client(live_config, stub).stk_push(_payment(), "CL1")
    assert len(stub.requests) == 1


@pytest.mark.asyncio
async def test_push_http_error(live_config, daraja_factory):
    stub = daraja_factory(stk_status=500, stk_body={"errorMessage": "Internal"})

    with pytest.raises(GatewayError) as exc:
        await _client(live_config, stub).stk_push(_payment(), "CL1")
    assert exc.value.upstream_status == 500


@pytest.mark.asyncio
async def test_push_unparseable_body(live_config, daraja_factory):
    stub = daraja_factory(stk_body="<html>gateway timeout</html>")

    with pytest.raises(GatewayError, match="Invalid JSON response"):
        await _client(live_config, stub).stk_push(_payment(), "CL1")


@pytest.mark.asyncio
async def test_push_rejected_response_code(live_config, daraja_factory):
    stub = daraja_factory(
        stk_body={
            "MerchantRequestID": "m1",
            "CheckoutRequestID": "ws_CO_x",
            "ResponseCode": "1",
            "ResponseDescription": "Rejected",
        }
    )

    with pytest.raises(GatewayError, match="STK Push failed: Rejected"):
        await _client(live_config, stub).stk_push(_payment(), "CL1")


@pytest.mark.asyncio
async def test_transport_failure_is_gateway_error(live_config):
    def boom(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = DarajaClient(live_config, transport=httpx.MockTransport(boom))

    with pytest.raises(GatewayError, match="access token"):
        await client.stk_push(_payment(), "CL1")


def test_new_references_are_unique_within_a_millisecond(live_config, monkeypatch):
    monkeypatch.setattr("src.integrations.clients.real_http.mpesa.time.time", lambda: 1700000000.0)
    client = DarajaClient(live_config)

    refs = {client.new_reference() for _ in range(50)}

    assert len(refs) == 50
    assert all(ref.startswith("CL1700000000000") for ref in refs)
