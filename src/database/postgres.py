"""
Lightweight in-memory PostgresDB replacement for local development.

Provides the same transaction and notification operations as
`src.database.postgres_real` so the payments API can run without a real
database. It is NOT intended for production use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import uuid


@dataclass
class Transaction:
    id: str
    user_id: str
    type: str
    amount: float
    phone_number: str
    reference: str
    checkout_request_id: str
    status: str = "pending"
    mpesa_reference: Optional[str] = None
    description: Optional[str] = None
    chama_id: Optional[str] = None
    loan_id: Optional[str] = None
    audit_log: Dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)
    processed_at: Optional[datetime] = None


@dataclass
class Notification:
    id: str
    user_id: str
    title: str
    message: str
    type: str
    is_read: bool = False
    action_url: Optional[str] = None
    notification_metadata: Optional[Dict[str, Any]] = None
    created_at: datetime = field(default_factory=datetime.utcnow)


class PostgresDB:
    """
    In-memory stand‑in for a Postgres-backed data access layer.

    Unique constraints on reference and checkout_request_id are enforced
    the same way the real tables enforce them.
    """

    def __init__(self) -> None:
        self._transactions: Dict[str, Transaction] = {}
        self._by_checkout_id: Dict[str, str] = {}
        self._references: set = set()
        self._notifications: List[Notification] = []

    # ------------------------------------------------------------------ #
    # Schema / lifecycle
    # ------------------------------------------------------------------ #
    def create_tables(self) -> None:
        """
        No-op for the in-memory implementation. Kept for compatibility
        with the startup hook in `src/api/main.py`.
        """
        return None

    # ------------------------------------------------------------------ #
    # Transactions
    # ------------------------------------------------------------------ #
    def create_transaction(
        self,
        *,
        user_id: str,
        type: str,
        amount: float,
        phone_number: str,
        reference: str,
        checkout_request_id: str,
        description: Optional[str] = None,
        chama_id: Optional[str] = None,
        loan_id: Optional[str] = None,
        audit_log: Optional[Dict[str, Any]] = None,
    ) -> Transaction:
        if checkout_request_id in self._by_checkout_id:
            raise ValueError(f"Duplicate checkout_request_id: {checkout_request_id}")
        if reference in self._references:
            raise ValueError(f"Duplicate reference: {reference}")

        tx = Transaction(
            id=str(uuid.uuid4()),
            user_id=user_id,
            type=type,
            amount=float(amount),
            phone_number=phone_number,
            reference=reference,
            checkout_request_id=checkout_request_id,
            description=description,
            chama_id=chama_id,
            loan_id=loan_id,
            audit_log=dict(audit_log or {}),
        )
        self._transactions[tx.id] = tx
        self._by_checkout_id[checkout_request_id] = tx.id
        self._references.add(reference)
        return tx

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        return self._transactions.get(str(transaction_id))

    def get_transaction_by_checkout_id(self, checkout_request_id: str) -> Optional[Transaction]:
        tx_id = self._by_checkout_id.get(checkout_request_id)
        if not tx_id:
            return None
        return self._transactions.get(tx_id)

    def finalize_transaction(
        self,
        transaction_id: str,
        *,
        status: str,
        audit_log: Dict[str, Any],
        mpesa_reference: Optional[str] = None,
        processed_at: Optional[datetime] = None,
    ) -> bool:
        """Move a pending transaction to its terminal status. False if it was not pending."""
        tx = self._transactions.get(str(transaction_id))
        if tx is None or tx.status != "pending":
            return False
        tx.status = status
        tx.audit_log = dict(audit_log)
        if mpesa_reference is not None:
            tx.mpesa_reference = mpesa_reference
        tx.processed_at = processed_at
        tx.updated_at = datetime.utcnow()
        return True

    def list_transactions(self, user_id: str, limit: int = 10) -> List[Transaction]:
        # insertion order is creation order; newest first
        txs = [t for t in reversed(list(self._transactions.values())) if t.user_id == user_id]
        return txs[:limit]

    # ------------------------------------------------------------------ #
    # Notifications
    # ------------------------------------------------------------------ #
    def create_notification(
        self,
        *,
        user_id: str,
        title: str,
        message: str,
        type: str,
        action_url: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Notification:
        notification = Notification(
            id=str(uuid.uuid4()),
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            action_url=action_url,
            notification_metadata=metadata,
        )
        self._notifications.append(notification)
        return notification

    def list_notifications(self, user_id: str, limit: int = 10) -> List[Notification]:
        items = [n for n in reversed(self._notifications) if n.user_id == user_id]
        return items[:limit]

    def mark_notification_read(self, notification_id: str, user_id: str) -> Optional[Notification]:
        for n in self._notifications:
            if n.id == notification_id and n.user_id == user_id:
                n.is_read = True
                return n
        return None
