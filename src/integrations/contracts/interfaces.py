from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class TransactionType(str, Enum):
    CONTRIBUTION = "contribution"
    LOAN_PAYMENT = "loan_payment"
    LOAN_DISBURSEMENT = "loan_disbursement"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


class NotificationType(str, Enum):
    PAYMENT_SUCCESS = "payment_success"
    PAYMENT_FAILED = "payment_failed"


# ---------------------------------------------------------------------------
# Shared data models
# ---------------------------------------------------------------------------

@dataclass
class PaymentInitiation:
    """A validated payment request, phone number already canonical."""
    user_id: str
    amount: float
    phone_number: str
    transaction_type: TransactionType
    description: str
    chama_id: Optional[str] = None
    loan_id: Optional[str] = None


@dataclass
class AccessToken:
    access_token: str
    expires_in: Optional[str] = None


@dataclass
class StkPushResult:
    checkout_request_id: str
    merchant_request_id: str
    reference: str
    response_code: str
    response_description: str
    customer_message: str
    development_mode: bool = False
    request_payload: Dict[str, Any] = field(default_factory=dict)
    raw: Dict[str, Any] = field(default_factory=dict)
    token_expires_in: Optional[str] = None


@dataclass
class CallbackItem:
    name: str
    value: Any = None


@dataclass
class StkCallback:
    checkout_request_id: str
    result_code: int
    result_desc: str
    merchant_request_id: Optional[str] = None
    items: List[CallbackItem] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)
    received_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def succeeded(self) -> bool:
        return self.result_code == 0

    def item(self, name: str) -> Any:
        return next((i.value for i in self.items if i.name == name), None)


# ---------------------------------------------------------------------------
# Abstract gateway interface
# ---------------------------------------------------------------------------

class PaymentGateway(ABC):
    """Every STK push gateway client (real or mock) implements this interface."""

    @property
    @abstractmethod
    def development_mode(self) -> bool:
        """True when the client never touches the network."""

    @abstractmethod
    async def stk_push(self, payment: PaymentInitiation, reference: str) -> StkPushResult:
        """Ask the gateway to prompt the payer's phone. Raises GatewayError on rejection."""

    @abstractmethod
    def new_reference(self) -> str:
        """Return a fresh internal reference used as the push AccountReference."""
