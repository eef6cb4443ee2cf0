import os
import hmac
import logging
from typing import Dict, Optional

from fastapi import Depends, Header, HTTPException, status
from dotenv import load_dotenv

from src.integrations.contracts.interfaces import PaymentGateway
from src.integrations.policy.callback_handler import PaymentCallbackHandler
from src.integrations.policy.payment_initiator import PaymentInitiator, select_gateway
from src.utils.config_loader import MpesaConfig, load_mpesa_config

load_dotenv()

logger = logging.getLogger(__name__)

# Process-wide singletons, built on first use
_db = None
_mpesa_config: Optional[MpesaConfig] = None


def _build_db():
    # Use real Postgres when env is set, else the in-memory stub
    if os.getenv("DATABASE_URL") and os.getenv("USE_POSTGRES_TRANSACTIONS", "").lower() in ("1", "true", "yes"):
        from src.database.postgres_real import PostgresDB

        logger.info("Using Postgres transaction store")
        return PostgresDB(connection_string=os.environ["DATABASE_URL"])

    from src.database.postgres import PostgresDB

    logger.info("Using in-memory transaction store")
    return PostgresDB()


def get_db():
    global _db
    if _db is None:
        _db = _build_db()
    return _db


def get_mpesa_config() -> MpesaConfig:
    global _mpesa_config
    if _mpesa_config is None:
        _mpesa_config = load_mpesa_config()
    return _mpesa_config


def get_gateway(config: MpesaConfig = Depends(get_mpesa_config)) -> PaymentGateway:
    return select_gateway(config)


def get_payment_initiator(
    db=Depends(get_db),
    config: MpesaConfig = Depends(get_mpesa_config),
    gateway: PaymentGateway = Depends(get_gateway),
) -> PaymentInitiator:
    return PaymentInitiator(db, config, gateway=gateway)


def get_callback_handler(
    db=Depends(get_db),
    config: MpesaConfig = Depends(get_mpesa_config),
) -> PaymentCallbackHandler:
    if not config.callback_token:
        logger.warning("MPESA_CALLBACK_TOKEN is not set; callback requests are not verified")
    return PaymentCallbackHandler(db, callback_token=config.callback_token)


def get_auth_tokens() -> Dict[str, str]:
    """AUTH_TOKENS="token1:user1,token2:user2" -> {token: user_id}"""
    tokens: Dict[str, str] = {}
    for pair in os.getenv("AUTH_TOKENS", "").split(","):
        token, sep, user_id = pair.strip().partition(":")
        if sep and token.strip() and user_id.strip():
            tokens[token.strip()] = user_id.strip()
    return tokens


async def get_current_user_id(
    authorization: str = Header(default=None, alias="Authorization"),
) -> Optional[str]:
    """Resolve the caller from a bearer token. None when it cannot be resolved."""
    scheme, _, candidate = (authorization or "").strip().partition(" ")
    if scheme.lower() != "bearer" or not candidate.strip():
        return None

    candidate = candidate.strip()
    for token, user_id in get_auth_tokens().items():
        if hmac.compare_digest(candidate, token):
            return user_id

    logger.info("Authorization token did not match any configured caller")
    return None


async def require_user_id(user_id: Optional[str] = Depends(get_current_user_id)) -> str:
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing authorization",
        )
    return user_id
