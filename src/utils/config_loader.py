"""
Configuration loader for the M-PESA payments integration
"""

import os
import yaml
from pathlib import Path
from urllib.parse import urlencode
from typing import Dict, Literal, Optional
from pydantic import BaseModel, Field, ValidationError, field_validator
import logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent.parent / "config" / "payments_config.yml"


class DarajaEndpoints(BaseModel):
    """Daraja endpoint paths, relative to the environment base URL"""

    token: str = "/oauth/v1/generate?grant_type=client_credentials"
    stk_push: str = "/mpesa/stkpush/v1/processrequest"


class GatewayConfig(BaseModel):
    """Non-secret gateway settings"""

    base_urls: Dict[str, str] = Field(
        default_factory=lambda: {
            "sandbox": "https://sandbox.safaricom.co.ke",
            "production": "https://api.safaricom.co.ke",
        }
    )
    endpoints: DarajaEndpoints = Field(default_factory=DarajaEndpoints)
    transaction_type: str = "CustomerPayBillOnline"
    callback_path: str = "/api/v1/payments/mpesa/callback"
    timeout_seconds: float = Field(default=30.0, gt=0, le=300)

    @field_validator("base_urls")
    @classmethod
    def _both_environments(cls, value: Dict[str, str]) -> Dict[str, str]:
        missing = {"sandbox", "production"} - set(value)
        if missing:
            raise ValueError(f"gateway.base_urls is missing: {', '.join(sorted(missing))}")
        return value


class MpesaConfig(BaseModel):
    """
    Everything the initiator needs, passed in explicitly.

    Live mode requires all four credentials; any gap switches the
    initiator to development mode.
    """

    consumer_key: Optional[str] = None
    consumer_secret: Optional[str] = None
    shortcode: Optional[str] = None
    passkey: Optional[str] = None
    environment: Literal["sandbox", "production"] = "sandbox"
    public_base_url: Optional[str] = None
    callback_token: Optional[str] = None
    gateway: GatewayConfig = Field(default_factory=GatewayConfig)

    @property
    def has_credentials(self) -> bool:
        return all([self.consumer_key, self.consumer_secret, self.shortcode, self.passkey])

    @property
    def development_mode(self) -> bool:
        return not self.has_credentials

    @property
    def base_url(self) -> str:
        return self.gateway.base_urls[self.environment].rstrip("/")

    @property
    def callback_url(self) -> str:
        if not self.public_base_url:
            raise ValueError("PUBLIC_BASE_URL is required to build the M-PESA callback URL")
        url = f"{self.public_base_url.rstrip('/')}{self.gateway.callback_path}"
        if self.callback_token:
            url = f"{url}?{urlencode({'token': self.callback_token})}"
        return url

    def credentials_summary(self) -> Dict[str, bool]:
        """Presence flags only, safe to log."""
        return {
            "hasConsumerKey": bool(self.consumer_key),
            "hasConsumerSecret": bool(self.consumer_secret),
            "hasShortcode": bool(self.shortcode),
            "hasPasskey": bool(self.passkey),
            "hasPublicBaseUrl": bool(self.public_base_url),
        }


def load_gateway_config(config_path: Optional[Path] = None) -> GatewayConfig:
    """
    Load and validate gateway settings from YAML file

    Args:
        config_path: Path to config file. Defaults to config/payments_config.yml

    Returns:
        Validated GatewayConfig object; defaults when the default file is absent

    Raises:
        FileNotFoundError: If an explicitly given config file doesn't exist
        ValidationError: If config doesn't match schema
    """
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
        if not config_path.exists():
            logger.info("No gateway config at %s, using defaults", config_path)
            return GatewayConfig()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        config_data = yaml.safe_load(f) or {}

    try:
        config = GatewayConfig(**(config_data.get("gateway") or {}))
        logger.info(f"Successfully loaded gateway config from {config_path}")
        return config
    except ValidationError as e:
        logger.error(f"Gateway config validation failed: {e}")
        raise


def _env(name: str) -> Optional[str]:
    value = os.getenv(name, "").strip()
    return value or None


def load_mpesa_config(config_path: Optional[Path] = None) -> MpesaConfig:
    """Read M-PESA secrets from the environment once and combine them with the YAML settings"""
    config = MpesaConfig(
        consumer_key=_env("MPESA_CONSUMER_KEY"),
        consumer_secret=_env("MPESA_CONSUMER_SECRET"),
        shortcode=_env("MPESA_SHORTCODE"),
        passkey=_env("MPESA_PASSKEY"),
        environment=(_env("MPESA_ENVIRONMENT") or "sandbox").lower(),
        public_base_url=_env("PUBLIC_BASE_URL"),
        callback_token=_env("MPESA_CALLBACK_TOKEN"),
        gateway=load_gateway_config(config_path),
    )
    logger.info("M-PESA credentials check: %s", config.credentials_summary())
    return config
