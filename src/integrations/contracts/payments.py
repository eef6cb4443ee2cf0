"""
Payment contracts.

Request validation, phone normalization, callback parsing and the typed
audit log stored in a transaction's ``metadata`` column.

Used by both the live Daraja client and the development-mode mock so the
persisted rows look the same in every environment.
"""

from __future__ import annotations

import math
import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.error_handler import InternalError, ValidationError
from .interfaces import CallbackItem, PaymentInitiation, PaymentStatus, StkCallback, TransactionType

COUNTRY_CODE = "254"

# Optional +254/254/0 prefix, then a subscriber number starting with 1 or 7.
_PHONE_PATTERN = re.compile(r"^(?:\+?254|0)?[17]\d{8}$")

REQUIRED_FIELDS = ("amount", "phone_number", "transaction_type")
OPTIONAL_TEXT_FIELDS = ("description", "chama_id", "loan_id")


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class TokenAudit(BaseModel):
    """Token exchange outcome. The access token itself is never stored."""
    expires_in: Optional[str] = None


class StkPushAudit(BaseModel):
    model_config = ConfigDict(extra="allow")

    BusinessShortCode: str
    Timestamp: str
    TransactionType: str
    Amount: Any
    PartyA: str
    PartyB: str
    PhoneNumber: str
    CallBackURL: str
    AccountReference: str
    TransactionDesc: str


class StkPushResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    MerchantRequestID: str = ""
    CheckoutRequestID: str
    ResponseCode: str
    ResponseDescription: str = ""
    CustomerMessage: str = ""


class PaymentAuditLog(BaseModel):
    development_mode: Optional[bool] = None
    mock_response: Optional[bool] = None
    token_response: Optional[TokenAudit] = None
    mpesa_request: Optional[StkPushAudit] = None
    mpesa_response: Optional[StkPushResponse] = None
    mpesa_callback: Optional[Dict[str, Any]] = None
    failure_reason: Optional[str] = None

    def to_metadata(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)

    @classmethod
    def from_metadata(cls, metadata: Optional[Dict[str, Any]]) -> "PaymentAuditLog":
        return cls.model_validate(metadata or {})


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------


def strip_phone(phone_number: str) -> str:
    return re.sub(r"\s+", "", phone_number)


def is_valid_phone(phone_number: str) -> bool:
    return bool(_PHONE_PATTERN.match(strip_phone(phone_number)))


def normalize_phone(phone_number: str) -> str:
    """
    Return the canonical ``254XXXXXXXXX`` form.

    ``0712345678``, ``712345678``, ``+254712345678`` and ``254712345678``
    all map to ``254712345678``; canonical input is returned unchanged.
    """
    phone = strip_phone(phone_number).lstrip("+")
    if phone.startswith(COUNTRY_CODE):
        return phone
    if phone.startswith("0"):
        phone = phone[1:]
    return f"{COUNTRY_CODE}{phone}"


def parse_amount(value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError("Invalid amount: must be a positive number")
    try:
        amount = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError("Invalid amount: must be a positive number") from exc
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationError("Invalid amount: must be a positive number")
    return amount


def validate_payment_request(user_id: Optional[str], body: Any) -> PaymentInitiation:
    """
    Validate an initiation body and return a normalized PaymentInitiation.

    Raises:
        ValidationError: missing or malformed fields
    """
    if not isinstance(body, dict):
        raise ValidationError("Invalid JSON in request body")

    missing: List[str] = [name for name in REQUIRED_FIELDS if body.get(name) in (None, "")]
    if missing:
        raise ValidationError(
            "Missing required fields: amount, phone_number, and transaction_type are required",
            details={"missing": missing},
        )

    amount = parse_amount(body["amount"])

    try:
        transaction_type = TransactionType(str(body["transaction_type"]))
    except ValueError as exc:
        allowed = ", ".join(t.value for t in TransactionType)
        raise ValidationError(f"Invalid transaction_type: expected one of {allowed}") from exc

    phone_number = body["phone_number"]
    if not isinstance(phone_number, str) or not is_valid_phone(phone_number):
        raise ValidationError("Invalid phone number: please provide a valid Kenyan phone number")

    for name in OPTIONAL_TEXT_FIELDS:
        if body.get(name) is not None and not isinstance(body[name], str):
            raise ValidationError(f"Invalid {name}: must be a string", details={"field": name})

    return PaymentInitiation(
        user_id=str(user_id),
        amount=amount,
        phone_number=normalize_phone(phone_number),
        transaction_type=transaction_type,
        description=body.get("description") or "",
        chama_id=body.get("chama_id") or None,
        loan_id=body.get("loan_id") or None,
    )


def parse_stk_callback(payload: Any) -> StkCallback:
    """Extract the stkCallback section of a Daraja result notification."""
    try:
        stk = payload["Body"]["stkCallback"]
        checkout_request_id = str(stk["CheckoutRequestID"])
        result_code = int(stk["ResultCode"])
    except (KeyError, TypeError, ValueError) as exc:
        raise InternalError("Malformed STK callback payload") from exc

    raw_items = ((stk.get("CallbackMetadata") or {}).get("Item")) or []
    items = [
        CallbackItem(name=str(item.get("Name")), value=item.get("Value"))
        for item in raw_items
        if isinstance(item, dict)
    ]

    return StkCallback(
        checkout_request_id=checkout_request_id,
        result_code=result_code,
        result_desc=str(stk.get("ResultDesc") or ""),
        merchant_request_id=stk.get("MerchantRequestID"),
        items=items,
        raw=payload,
    )


def is_terminal_status(status: Any) -> bool:
    """Return True if the payment has reached a final, non-changeable state."""
    return PaymentStatus(getattr(status, "value", status)) in {PaymentStatus.COMPLETED, PaymentStatus.FAILED}
