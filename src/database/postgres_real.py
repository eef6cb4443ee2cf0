"""
Real Postgres-backed DB for production when USE_POSTGRES_TRANSACTIONS and DATABASE_URL are set.
Implements the same interface as src.database.postgres (in-memory stub).
"""

from __future__ import annotations

import re
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import create_engine, select, update
from sqlalchemy.orm import Session, sessionmaker

from src.database.models import Base, Notification, Transaction


def _normalize_connection_string(s: str) -> str:
    """Strip common mistakes: 'psql \'...\'', extra quotes, whitespace."""
    s = s.strip()
    if re.match(r"^psql\s+", s, re.IGNORECASE):
        s = re.sub(r"^psql\s+", "", s, flags=re.IGNORECASE).strip()
    if len(s) >= 2 and s[0] == s[-1] and s[0] in ("'", '"'):
        s = s[1:-1].strip()
    return s


def _engine_options(connection_string: str) -> Dict[str, Any]:
    if connection_string.startswith("sqlite"):
        return {}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


class PostgresDB:
    """
    Postgres data access using SQLAlchemy. Use when DATABASE_URL is set and
    USE_POSTGRES_TRANSACTIONS=true.
    """

    def __init__(self, connection_string: str) -> None:
        connection_string = _normalize_connection_string(connection_string)
        self.engine = create_engine(connection_string, **_engine_options(connection_string))
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, expire_on_commit=False)

    def create_tables(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _session(self) -> Session:
        s = self.SessionLocal()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

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
        with self._session() as s:
            tx = Transaction(
                id=str(uuid4()),
                user_id=user_id,
                type=type,
                amount=float(amount),
                phone_number=phone_number,
                reference=reference,
                checkout_request_id=checkout_request_id,
                description=description,
                chama_id=chama_id,
                loan_id=loan_id,
                status="pending",
                audit_log=dict(audit_log or {}),
            )
            s.add(tx)
            s.flush()
            s.refresh(tx)
            return tx

    def get_transaction(self, transaction_id: str) -> Optional[Transaction]:
        with self._session() as s:
            return s.get(Transaction, str(transaction_id))

    def get_transaction_by_checkout_id(self, checkout_request_id: str) -> Optional[Transaction]:
        with self._session() as s:
            stmt = select(Transaction).where(Transaction.checkout_request_id == checkout_request_id)
            return s.execute(stmt).scalar_one_or_none()

    def finalize_transaction(
        self,
        transaction_id: str,
        *,
        status: str,
        audit_log: Dict[str, Any],
        mpesa_reference: Optional[str] = None,
        processed_at: Optional[datetime] = None,
    ) -> bool:
        values: Dict[str, Any] = {
            "status": status,
            "audit_log": dict(audit_log),
            "processed_at": processed_at,
            "updated_at": datetime.utcnow(),
        }
        if mpesa_reference is not None:
            values["mpesa_reference"] = mpesa_reference

        with self._session() as s:
            stmt = (
                update(Transaction)
                .where(Transaction.id == str(transaction_id), Transaction.status == "pending")
                .values(**values)
            )
            result = s.execute(stmt)
            return result.rowcount == 1

    def list_transactions(self, user_id: str, limit: int = 10) -> List[Transaction]:
        with self._session() as s:
            stmt = (
                select(Transaction)
                .where(Transaction.user_id == user_id)
                .order_by(Transaction.created_at.desc())
                .limit(limit)
            )
            return list(s.execute(stmt).scalars().all())

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
        with self._session() as s:
            n = Notification(
                id=str(uuid4()),
                user_id=user_id,
                title=title,
                message=message,
                type=type,
                is_read=False,
                action_url=action_url,
                notification_metadata=metadata,
            )
            s.add(n)
            s.flush()
            s.refresh(n)
            return n

    def list_notifications(self, user_id: str, limit: int = 10) -> List[Notification]:
        with self._session() as s:
            stmt = (
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
            )
            return list(s.execute(stmt).scalars().all())

    def mark_notification_read(self, notification_id: str, user_id: str) -> Optional[Notification]:
        with self._session() as s:
            stmt = select(Notification).where(Notification.id == notification_id, Notification.user_id == user_id)
            n = s.execute(stmt).scalar_one_or_none()
            if n is None:
                return None
            n.is_read = True
            s.flush()
            return n
