from __future__ import annotations

import json
from typing import Any, Dict, Optional

from pydantic import ValidationError as SchemaValidationError

from src.error_handler import GatewayError
from src.integrations.contracts.interfaces import AccessToken
from src.integrations.contracts.payments import StkPushResponse

STK_ACCEPTED = "0"


def parse_json_body(text: str, *, label: str, status_code: Optional[int] = None) -> Dict[str, Any]:
    try:
        data = json.loads(text) if text else {}
    except ValueError as exc:
        raise GatewayError(
            f"Invalid JSON response from M-PESA: {text}",
            upstream_status=status_code,
            upstream_body=text,
        ) from exc
    if not isinstance(data, dict):
        raise GatewayError(f"Unexpected {label} response from M-PESA: {text}", upstream_status=status_code, upstream_body=text)
    return data


def normalize_token_response(raw: Dict[str, Any]) -> AccessToken:
    token = _first_non_empty(raw, "access_token", "accessToken")
    if token is None:
        raise GatewayError("No access token received from M-PESA", details={"keys": sorted(raw)})
    expires_in = _first_non_empty(raw, "expires_in", "expiresIn")
    return AccessToken(access_token=str(token), expires_in=None if expires_in is None else str(expires_in))


def normalize_stk_push_response(raw: Dict[str, Any]) -> StkPushResponse:
    """
    Validate an STK push response and insist on the accepted sentinel.

    Daraja reports ResponseCode as a string; numeric codes are coerced.
    """
    if "ResponseCode" in raw and raw["ResponseCode"] is not None:
        raw = {**raw, "ResponseCode": str(raw["ResponseCode"])}

    code = raw.get("ResponseCode")
    if code is not None and code != STK_ACCEPTED:
        description = _first_non_empty(raw, "ResponseDescription", "errorMessage") or "Unknown error"
        raise GatewayError(f"M-PESA STK Push failed: {description}", details={"response": raw})
    if code is None and raw.get("errorMessage"):
        raise GatewayError(f"M-PESA STK Push failed: {raw['errorMessage']}", details={"response": raw})

    try:
        response = StkPushResponse.model_validate(raw)
    except SchemaValidationError as exc:
        raise GatewayError("M-PESA STK Push response is missing required fields", details={"response": raw}) from exc

    if not response.CheckoutRequestID.strip():
        raise GatewayError("M-PESA STK Push response has an empty CheckoutRequestID", details={"response": raw})
    return response


def _first_non_empty(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None
