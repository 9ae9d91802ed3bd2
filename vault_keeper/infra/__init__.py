"""
Infrastructure package.

Starknet and pricing service clients, and logging configuration.
"""

from vault_keeper.infra.logging_cfg import build_logger, log_event, vault_logger
from vault_keeper.infra.pricing_client import FossilPricingClient

__all__ = [
    "FossilPricingClient",
    "build_logger",
    "log_event",
    "vault_logger",
]
