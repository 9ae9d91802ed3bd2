"""
VaultMonitor: one tick across every configured vault.

Each vault's RoundStateMachine runs as an independent task. The tick waits
for all of them to settle, counts outcomes, and never lets one vault's
failure cancel or hide another's.

Pricing lag alarm:
    A vault can sit in WAITING_FOR_PRICING_DATA indefinitely if the pricing
    service is stuck or misconfigured. When ``pricing_lag_alert_sec`` is set,
    the monitor remembers when it first saw a vault waiting on a given
    required timestamp and raises one alert once that wait exceeds the
    threshold. Disabled (0) by default. The remembered timestamps only feed
    alerting; they never change what a check decides.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

from vault_keeper.core.models import CheckOutcome, CheckResult, TickSummary
from vault_keeper.infra.logging_cfg import log_event

if TYPE_CHECKING:
    from vault_keeper.execution.round_state_machine import RoundStateMachine
    from vault_keeper.monitoring.alerting import AlertManager
    from vault_keeper.monitoring.metrics import KeeperMetrics

log = logging.getLogger("vault_keeper")


@dataclass
class MonitorConfig:
    """Configuration for VaultMonitor."""
    # Seconds a vault may wait on pricing data before alerting (0 = disabled)
    pricing_lag_alert_sec: float = 0.0


class VaultMonitor:
    """
    Fan-out of check_and_advance() over all vaults.

    Usage:
        monitor = VaultMonitor(machines, metrics=metrics, alerts=alert_manager)
        summary = await monitor.tick()
        if not summary.all_succeeded:
            ...
    """

    def __init__(
        self,
        machines: List["RoundStateMachine"],
        metrics: Optional["KeeperMetrics"] = None,
        alerts: Optional["AlertManager"] = None,
        config: Optional[MonitorConfig] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.machines = list(machines)
        self.metrics = metrics
        self.alerts = alerts
        self.config = config or MonitorConfig()
        self.log = logger or log
        self._clock = clock
        self._tick_count = 0
        # vault -> (required_timestamp, first seen waiting at, alerted)
        self._pricing_wait: Dict[str, Tuple[int, float, bool]] = {}

    @property
    def vault_addresses(self) -> List[str]:
        return [m.vault_address for m in self.machines]

    def _log_event(self, event: str, level: int = logging.INFO, **kwargs) -> None:
        log_event(self.log, event, level, **kwargs)

    async def tick(self) -> TickSummary:
        """
        Check every vault once, concurrently.

        Never raises for per-vault errors; they are counted in the summary.
        """
        start = time.perf_counter()
        self._tick_count += 1
        tick_no = self._tick_count
        self._log_event("tick_start", tick=tick_no, vaults=len(self.machines))

        outcomes = await asyncio.gather(
            *(self._check_one(m) for m in self.machines),
        )

        summary = TickSummary()
        for vault, result, error in outcomes:
            if error is None:
                summary.success_count += 1
                summary.results[vault] = result
            else:
                summary.failure_count += 1
                summary.errors[vault] = error
        summary.duration_ms = (time.perf_counter() - start) * 1000

        self._log_event(
            "tick_complete",
            level=logging.WARNING if summary.failure_count else logging.INFO,
            tick=tick_no,
            successes=summary.success_count,
            failures=summary.failure_count,
            duration_ms=round(summary.duration_ms, 1),
        )
        if self.metrics:
            self.metrics.record_tick(summary)

        await self._track_pricing_lag(summary)
        if summary.failure_count and self.alerts:
            await self.alerts.alert_vault_failures(summary.errors, tick=tick_no)
        return summary

    async def _check_one(self, machine: "RoundStateMachine") -> Tuple[str, Optional[CheckResult], Optional[str]]:
        vault = machine.vault_address
        try:
            result = await machine.check_and_advance()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._log_event(
                "vault_check_error",
                level=logging.ERROR,
                vault=vault,
                error_type=type(exc).__name__,
                err=str(exc),
            )
            if self.metrics:
                self.metrics.record_failure(vault, exc)
            return vault, None, f"{type(exc).__name__}: {exc}"

        if self.metrics:
            self.metrics.record_check(result)
        return vault, result, None

    async def _track_pricing_lag(self, summary: TickSummary) -> None:
        if self.config.pricing_lag_alert_sec <= 0:
            return
        now = self._clock()
        for vault, result in summary.results.items():
            if result.outcome is not CheckOutcome.WAITING_FOR_PRICING_DATA:
                self._pricing_wait.pop(vault, None)
                continue

            required = result.required_timestamp or 0
            marker = self._pricing_wait.get(vault)
            if marker is None or marker[0] != required:
                self._pricing_wait[vault] = (required, now, False)
                continue

            _, since, alerted = marker
            waited = now - since
            if alerted or waited < self.config.pricing_lag_alert_sec:
                continue

            self._pricing_wait[vault] = (required, since, True)
            self._log_event(
                "pricing_data_stale",
                level=logging.WARNING,
                vault=vault,
                required_timestamp=required,
                waited_sec=round(waited, 1),
            )
            if self.alerts:
                await self.alerts.alert_pricing_stale(vault, required, waited)
