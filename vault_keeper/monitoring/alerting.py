"""
Webhook alerting for operator-relevant keeper events.

- Send alerts to webhooks (Slack, Discord, generic HTTP)
- Rate limiting per alert type and vault to prevent alert storms
- Delivery runs in background tasks so a slow webhook never delays a tick
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Set, Tuple

import httpx

logger = logging.getLogger("vault_keeper.alerting")


class AlertSeverity(Enum):
    """Alert severity levels."""
    CRITICAL = auto()  # Immediate attention required
    WARNING = auto()   # Potential issue
    INFO = auto()      # Informational


class AlertType(Enum):
    """Types of alerts."""
    VAULT_CHECK_FAILED = auto()
    PRICING_DATA_STALE = auto()
    STARTUP = auto()
    SHUTDOWN = auto()
    CUSTOM = auto()


@dataclass
class Alert:
    """An alert to be sent."""
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    timestamp_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    details: Dict[str, Any] = field(default_factory=dict)
    vault: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.alert_type.name,
            "severity": self.severity.name,
            "title": self.title,
            "message": self.message,
            "timestamp_ms": self.timestamp_ms,
            "timestamp_iso": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.timestamp_ms / 1000)),
            "details": self.details,
            "vault": self.vault,
        }


@dataclass
class AlertConfig:
    """Configuration for alerting."""
    webhook_url: Optional[str] = None
    webhook_type: str = "generic"  # generic, slack, discord
    min_severity: AlertSeverity = AlertSeverity.WARNING
    rate_limit_seconds: int = 300  # Min seconds between same alert type for the same vault
    enabled: bool = True
    include_details: bool = True
    timeout_sec: float = 10.0
    retries: int = 2
    bot_name: str = "VaultKeeper"


class WebhookFormatter:
    """Formats alerts for different webhook types."""

    @staticmethod
    def format_generic(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        return alert.to_dict()

    @staticmethod
    def format_slack(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        color = {
            AlertSeverity.CRITICAL: "#FF0000",
            AlertSeverity.WARNING: "#FFA500",
            AlertSeverity.INFO: "#0000FF",
        }.get(alert.severity, "#808080")

        fields = []
        if alert.vault:
            fields.append({"title": "Vault", "value": alert.vault, "short": True})
        fields.append({"title": "Type", "value": alert.alert_type.name, "short": True})
        if config.include_details and alert.details:
            for key, value in list(alert.details.items())[:5]:  # Limit to 5 fields
                fields.append({"title": key, "value": str(value), "short": True})

        return {
            "username": config.bot_name,
            "attachments": [{
                "color": color,
                "title": alert.title,
                "text": alert.message,
                "fields": fields,
                "footer": f"{config.bot_name} | {alert.severity.name}",
                "ts": alert.timestamp_ms // 1000,
            }]
        }

    @staticmethod
    def format_discord(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        color = {
            AlertSeverity.CRITICAL: 0xFF0000,
            AlertSeverity.WARNING: 0xFFA500,
            AlertSeverity.INFO: 0x0000FF,
        }.get(alert.severity, 0x808080)

        fields = []
        if alert.vault:
            fields.append({"name": "Vault", "value": alert.vault, "inline": True})
        fields.append({"name": "Type", "value": alert.alert_type.name, "inline": True})
        if config.include_details and alert.details:
            for key, value in list(alert.details.items())[:5]:
                fields.append({"name": key, "value": str(value), "inline": True})

        return {
            "username": config.bot_name,
            "embeds": [{
                "title": alert.title,
                "description": alert.message,
                "color": color,
                "fields": fields,
                "footer": {"text": f"{config.bot_name} | {alert.severity.name}"},
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(alert.timestamp_ms / 1000)),
            }]
        }


class AlertManager:
    """
    Manages alert delivery with rate limiting.

    Delivery errors are logged and swallowed: alerting must never fail a tick.
    """

    def __init__(self, config: Optional[AlertConfig] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config or AlertConfig()
        self._last_alert_times: Dict[Tuple[AlertType, Optional[str]], int] = {}
        self._tasks: Set[asyncio.Task] = set()
        self._client = client
        self._owns_client = client is None

    async def send_alert(self, alert: Alert) -> bool:
        """
        Queue an alert for delivery.

        Returns:
            True if alert was queued, False if rate limited or disabled
        """
        if not self.config.enabled:
            return False

        if not self.config.webhook_url:
            logger.debug(f"Alert not sent (no webhook): {alert.title}")
            return False

        # Check severity threshold
        if alert.severity.value > self.config.min_severity.value:
            return False

        # Check rate limit
        now_ms = int(time.time() * 1000)
        key = (alert.alert_type, alert.vault)
        last_time = self._last_alert_times.get(key, 0)
        if now_ms - last_time < self.config.rate_limit_seconds * 1000:
            logger.debug(f"Alert rate limited: {alert.alert_type.name}")
            return False
        self._last_alert_times[key] = now_ms

        task = asyncio.create_task(self._deliver(alert))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return True

    async def flush(self) -> None:
        """Wait for queued deliveries to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        await self.flush()
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def _format_alert(self, alert: Alert) -> Dict[str, Any]:
        formatters = {
            "generic": WebhookFormatter.format_generic,
            "slack": WebhookFormatter.format_slack,
            "discord": WebhookFormatter.format_discord,
        }
        formatter = formatters.get(self.config.webhook_type, WebhookFormatter.format_generic)
        return formatter(alert, self.config)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_sec)
        return self._client

    async def _deliver(self, alert: Alert) -> bool:
        payload = self._format_alert(alert)
        client = self._get_client()
        for attempt in range(self.config.retries + 1):
            try:
                resp = await client.post(self.config.webhook_url, json=payload)
                if resp.status_code < 300:
                    logger.debug("Alert delivered successfully")
                    return True
                logger.warning(f"Alert delivery failed: HTTP {resp.status_code}")
            except httpx.HTTPError as e:
                logger.warning(f"Alert delivery error (attempt {attempt + 1}): {e}")

            if attempt < self.config.retries:
                await asyncio.sleep(1 * (attempt + 1))  # Backoff
        return False

    # ─────────────────────────────────────────────────────────────────────
    # Convenience Methods
    # ─────────────────────────────────────────────────────────────────────

    async def alert_vault_failures(self, errors: Dict[str, str], **details) -> List[bool]:
        """One alert per failing vault (each rate limited on its own)."""
        sent = []
        for vault, error in errors.items():
            sent.append(await self.send_alert(Alert(
                alert_type=AlertType.VAULT_CHECK_FAILED,
                severity=AlertSeverity.WARNING,
                title="Vault Check Failed",
                message=error,
                vault=vault,
                details=details,
            )))
        return sent

    async def alert_pricing_stale(self, vault: str, required_timestamp: int, waited_sec: float) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.PRICING_DATA_STALE,
            severity=AlertSeverity.WARNING,
            title="Pricing Data Stale",
            message=f"Pricing data has not reached {required_timestamp} after {waited_sec:.0f}s",
            vault=vault,
            details={"required_timestamp": required_timestamp, "waited_sec": round(waited_sec, 1)},
        ))

    async def alert_startup(self, vaults: List[str], **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.STARTUP,
            severity=AlertSeverity.INFO,
            title="Keeper Started",
            message=f"Monitoring {len(vaults)} vaults",
            details={"vaults": vaults, **details},
        ))

    async def alert_shutdown(self, reason: str = "normal", **details) -> bool:
        severity = AlertSeverity.INFO if reason == "normal" else AlertSeverity.WARNING
        return await self.send_alert(Alert(
            alert_type=AlertType.SHUTDOWN,
            severity=severity,
            title="Keeper Shutdown",
            message=f"Keeper shutting down: {reason}",
            details=details,
        ))


def configure_alerts(
    webhook_url: Optional[str] = None,
    webhook_type: str = "generic",
    min_severity: AlertSeverity = AlertSeverity.WARNING,
    enabled: bool = True,
    bot_name: str = "VaultKeeper",
) -> AlertManager:
    """Build the process alert manager from settings."""
    return AlertManager(AlertConfig(
        webhook_url=webhook_url,
        webhook_type=webhook_type,
        min_severity=min_severity,
        enabled=enabled,
        bot_name=bot_name,
    ))
