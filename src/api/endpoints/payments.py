import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from src.api.dependencies import (
    get_callback_handler,
    get_current_user_id,
    get_db,
    get_payment_initiator,
    require_user_id,
)
from src.error_handler import ErrorHandler, ValidationError
from src.integrations.policy.callback_handler import PaymentCallbackHandler
from src.integrations.policy.payment_initiator import PaymentInitiator

logger = logging.getLogger(__name__)

api = APIRouter()
payments_api = api

error_handler = ErrorHandler()


@api.post("/mpesa/initiate", tags=["Payments"])
async def initiate_mpesa_payment(
    request: Request,
    user_id: Optional[str] = Depends(get_current_user_id),
    initiator: PaymentInitiator = Depends(get_payment_initiator),
):
    try:
        try:
            body = await request.json()
        except ValueError as exc:
            raise ValidationError("Invalid JSON in request body") from exc
        return await initiator.initiate(user_id, body)
    except Exception as exc:
        status_code, content = error_handler.initiation_error_response(exc, context={"user_id": user_id})
        return JSONResponse(status_code=status_code, content=content)


@api.post("/mpesa/callback", tags=["Payments"], response_class=PlainTextResponse)
async def mpesa_callback(
    request: Request,
    token: Optional[str] = Query(default=None),
    handler: PaymentCallbackHandler = Depends(get_callback_handler),
):
    try:
        payload = await request.json()
        handler.handle(payload, token=token)
    except Exception as exc:
        status_code, text = error_handler.callback_error_response(exc, context={"path": request.url.path})
        return PlainTextResponse(text, status_code=status_code)
    return PlainTextResponse("OK", status_code=200)


@api.get("/transactions", tags=["Payments"])
async def list_transactions(
    limit: int = Query(default=10, ge=1, le=100),
    user_id: str = Depends(require_user_id),
    db=Depends(get_db),
):
    return [transaction_to_dict(t) for t in db.list_transactions(user_id, limit=limit)]


@api.get("/transactions/{transaction_id}", tags=["Payments"])
async def get_transaction(
    transaction_id: str,
    user_id: str = Depends(require_user_id),
    db=Depends(get_db),
):
    tx = db.get_transaction(transaction_id)
    if not tx or tx.user_id != user_id:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return transaction_to_dict(tx)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


def transaction_to_dict(tx) -> Dict[str, Any]:
    return {
        "id": tx.id,
        "user_id": tx.user_id,
        "type": tx.type,
        "amount": tx.amount,
        "phone_number": tx.phone_number,
        "reference": tx.reference,
        "checkout_request_id": tx.checkout_request_id,
        "mpesa_reference": tx.mpesa_reference,
        "status": tx.status,
        "description": tx.description,
        "chama_id": tx.chama_id,
        "loan_id": tx.loan_id,
        "metadata": tx.audit_log,
        "created_at": _iso(tx.created_at),
        "updated_at": _iso(tx.updated_at),
        "processed_at": _iso(tx.processed_at),
    }
