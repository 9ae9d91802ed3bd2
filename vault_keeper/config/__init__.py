"""
Configuration package.

Environment loading and startup validation.
"""

from vault_keeper.config.config import Settings
from vault_keeper.config.config_validator import ConfigValidator, validate_and_log

__all__ = [
    "Settings",
    "ConfigValidator",
    "validate_and_log",
]
