"""
Utility modules for the payments service
"""
from .config_loader import GatewayConfig, MpesaConfig, load_gateway_config, load_mpesa_config

__all__ = [
    'GatewayConfig',
    'MpesaConfig',
    'load_gateway_config',
    'load_mpesa_config',
]
