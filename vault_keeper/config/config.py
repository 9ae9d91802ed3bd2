"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

from vault_keeper.infra.logging_cfg import log_event

load_dotenv()

REQUIRED_ENV = (
    "STARKNET_RPC",
    "STARKNET_PRIVATE_KEY",
    "STARKNET_ACCOUNT_ADDRESS",
    "VAULT_ADDRESSES",
    "FOSSIL_API_KEY",
    "FOSSIL_API_URL",
)


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def parse_addresses(raw: str) -> List[str]:
    return [a.strip() for a in raw.split(",") if a.strip()]


@dataclass(frozen=True)
class Settings:
    starknet_rpc: str
    private_key: str
    account_address: str
    chain: str
    vault_addresses: List[str]
    fossil_api_key: str
    fossil_api_url: str
    interval_sec: float
    http_timeout: float
    rpc_retries: int
    log_level: str
    log_dir: str
    metrics_port: int
    alert_webhook_url: str | None
    alert_webhook_type: str  # generic, slack, discord
    alert_enabled: bool
    alert_min_severity: str  # critical, warning, info
    pricing_lag_alert_sec: float  # 0 = disabled

    def dump(self) -> dict:
        """Return a dict of settings for logging, with secrets masked."""
        data = self.__dict__.copy()
        data["private_key"] = "***"
        data["fossil_api_key"] = "***"
        return data

    @classmethod
    def load(cls) -> "Settings":
        def _int_env(key: str, default: int) -> int:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return int(raw)

        def _float_env(key: str, default: float) -> float:
            raw = os.getenv(key)
            if raw is None or raw == "":
                return default
            return float(raw)

        missing = [key for key in REQUIRED_ENV if not os.getenv(key)]
        if missing:
            raise ValueError(f"Missing required environment variables: {', '.join(missing)}")

        cfg = cls(
            starknet_rpc=os.environ["STARKNET_RPC"],
            private_key=os.environ["STARKNET_PRIVATE_KEY"],
            account_address=os.environ["STARKNET_ACCOUNT_ADDRESS"],
            chain=os.getenv("STARKNET_CHAIN", "sepolia").lower(),
            vault_addresses=parse_addresses(os.environ["VAULT_ADDRESSES"]),
            fossil_api_key=os.environ["FOSSIL_API_KEY"],
            fossil_api_url=os.environ["FOSSIL_API_URL"],
            interval_sec=_float_env("KEEPER_INTERVAL_SEC", 300.0),
            http_timeout=_float_env("KEEPER_HTTP_TIMEOUT", 10.0),
            rpc_retries=_int_env("KEEPER_RPC_RETRIES", 2),
            log_level=os.getenv("KEEPER_LOG_LEVEL", "INFO").upper(),
            log_dir=os.getenv("KEEPER_LOG_DIR", "logs"),
            metrics_port=_int_env("KEEPER_METRICS_PORT", 0),
            alert_webhook_url=os.getenv("KEEPER_ALERT_WEBHOOK_URL"),
            alert_webhook_type=os.getenv("KEEPER_ALERT_WEBHOOK_TYPE", "generic"),
            alert_enabled=env_bool("KEEPER_ALERT_ENABLED", True),
            alert_min_severity=os.getenv("KEEPER_ALERT_MIN_SEVERITY", "warning").upper(),
            pricing_lag_alert_sec=_float_env("KEEPER_PRICING_LAG_ALERT_SEC", 0.0),
        )
        cfg._validate()
        return cfg

    def _validate(self) -> None:
        if not self.vault_addresses:
            raise ValueError("VAULT_ADDRESSES must list at least one vault")
        if self.interval_sec <= 0:
            raise ValueError("KEEPER_INTERVAL_SEC must be > 0")
        if self.http_timeout <= 0:
            raise ValueError("KEEPER_HTTP_TIMEOUT must be > 0")
        if self.rpc_retries < 0:
            raise ValueError("KEEPER_RPC_RETRIES must be >= 0")
        if self.pricing_lag_alert_sec < 0:
            raise ValueError("KEEPER_PRICING_LAG_ALERT_SEC must be >= 0")
        if self.chain not in {"mainnet", "sepolia"}:
            raise ValueError(f"STARKNET_CHAIN must be mainnet or sepolia, got {self.chain!r}")
        if self.alert_min_severity not in {"CRITICAL", "WARNING", "INFO"}:
            raise ValueError(
                f"KEEPER_ALERT_MIN_SEVERITY must be critical, warning or info, got {self.alert_min_severity!r}"
            )


def log_settings(cfg: Settings, logger: logging.Logger) -> None:
    """Log the effective settings once at startup, secrets masked, so overrides are obvious."""
    log_event(logger, "config_loaded", **cfg.dump())
