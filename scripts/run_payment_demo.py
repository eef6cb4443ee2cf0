#!/usr/bin/env python3
"""
Run a development-mode payment end to end and print each stage to the terminal:
STK push initiation (mock gateway), then a simulated Daraja callback.

Usage (from repo root):
  python scripts/run_payment_demo.py [--fail]
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from src.api.endpoints.notifications import notification_to_dict
from src.api.endpoints.payments import transaction_to_dict
from src.database.postgres import PostgresDB
from src.integrations.policy.callback_handler import PaymentCallbackHandler
from src.integrations.policy.payment_initiator import PaymentInitiator
from src.utils.config_loader import MpesaConfig


def setup_logging():
    """Log to terminal at INFO so every stage is visible."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stdout,
    )


def print_stage(title: str, data: dict | list | str):
    """Print a stage header and data to the terminal."""
    print("\n" + "=" * 60)
    print(f"  {title}")
    print("=" * 60)
    if isinstance(data, (dict, list)):
        print(json.dumps(data, indent=2, default=str))
    else:
        print(data)
    print()


def build_callback(checkout_request_id: str, fail: bool) -> dict:
    stk = {
        "MerchantRequestID": "demo-merchant",
        "CheckoutRequestID": checkout_request_id,
    }
    if fail:
        stk.update(ResultCode=1032, ResultDesc="Request cancelled by user")
    else:
        stk.update(
            ResultCode=0,
            ResultDesc="The service request is processed successfully.",
            CallbackMetadata={
                "Item": [
                    {"Name": "Amount", "Value": 500},
                    {"Name": "MpesaReceiptNumber", "Value": "DEMO123ABC"},
                    {"Name": "PhoneNumber", "Value": 254712345678},
                ]
            },
        )
    return {"Body": {"stkCallback": stk}}


async def main(fail: bool):
    setup_logging()
    db = PostgresDB()
    user_id = "demo-user"

    # Empty config -> development mode, no network calls
    initiator = PaymentInitiator(db, MpesaConfig())
    handler = PaymentCallbackHandler(db)

    request = {
        "amount": 500,
        "phone_number": "0712345678",
        "transaction_type": "contribution",
        "chama_id": "demo-chama",
        "description": "Monthly contribution",
    }
    print_stage("REQUEST", request)

    result = await initiator.initiate(user_id, request)
    print_stage("INITIATION RESPONSE", result)
    print_stage("TRANSACTION (pending)", transaction_to_dict(db.get_transaction(result["transaction_id"])))

    callback = build_callback(result["checkout_request_id"], fail)
    print_stage("SIMULATED CALLBACK", callback)
    print_stage("CALLBACK RESULT", handler.handle(callback))

    print_stage("TRANSACTION (final)", transaction_to_dict(db.get_transaction(result["transaction_id"])))
    print_stage("NOTIFICATIONS", [notification_to_dict(n) for n in db.list_notifications(user_id)])


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--fail", action="store_true", help="Simulate a cancelled payment")
    args = parser.parse_args()
    asyncio.run(main(args.fail))
