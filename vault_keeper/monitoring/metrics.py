"""
Prometheus metrics for keeper observability.

Organized into: ticks, vault checks, chain/pricing actions.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server

from vault_keeper.core.models import CheckResult, TickSummary


class KeeperMetrics:
    """Metrics for the round keeper."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        reg = registry or CollectorRegistry()

        # === Tick Metrics ===
        self.ticks_total = Counter(
            'keeper_ticks_total',
            'Ticks executed',
            registry=reg
        )
        self.tick_duration_ms = Histogram(
            'keeper_tick_duration_ms',
            'Wall time of one tick across all vaults (milliseconds)',
            buckets=[100, 500, 1000, 5000, 15000, 60000, 300000],
            registry=reg
        )
        self.last_tick_failures = Gauge(
            'keeper_last_tick_failures',
            'Vaults that failed in the most recent tick',
            registry=reg
        )

        # === Vault Check Metrics ===
        self.vault_checks = Counter(
            'vault_checks_total',
            'Successful vault checks by outcome',
            labelnames=['vault', 'outcome'],
            registry=reg
        )
        self.vault_check_failures = Counter(
            'vault_check_failures_total',
            'Failed vault checks by error type',
            labelnames=['vault', 'error_type'],
            registry=reg
        )
        self.vault_check_duration_ms = Histogram(
            'vault_check_duration_ms',
            'Duration of one vault check (milliseconds)',
            labelnames=['vault'],
            buckets=[50, 200, 1000, 5000, 30000, 120000],
            registry=reg
        )
        self.round_state = Gauge(
            'round_state',
            'Current round state (0=open, 1=auctioning, 2=running, 3=settled)',
            labelnames=['vault'],
            registry=reg
        )
        self.round_id = Gauge(
            'round_id',
            'Current round id',
            labelnames=['vault'],
            registry=reg
        )

        # === Action Metrics ===
        self.transactions_submitted = Counter(
            'transactions_submitted_total',
            'start_auction / end_auction transactions submitted',
            labelnames=['vault', 'action'],
            registry=reg
        )
        self.pricing_requests = Counter(
            'pricing_requests_total',
            'Pricing jobs submitted to the pricing service',
            labelnames=['vault', 'action'],
            registry=reg
        )

        self.registry = reg

    def record_tick(self, summary: TickSummary) -> None:
        self.ticks_total.inc()
        self.tick_duration_ms.observe(summary.duration_ms)
        self.last_tick_failures.set(summary.failure_count)

    def record_check(self, result: CheckResult) -> None:
        self.vault_checks.labels(vault=result.vault_address, outcome=result.outcome.name).inc()
        self.vault_check_duration_ms.labels(vault=result.vault_address).observe(result.duration_ms)
        self.round_state.labels(vault=result.vault_address).set(result.state.value)
        self.round_id.labels(vault=result.vault_address).set(result.round_id)

    def record_failure(self, vault: str, exc: BaseException) -> None:
        self.vault_check_failures.labels(vault=vault, error_type=type(exc).__name__).inc()

    def get_registry(self) -> CollectorRegistry:
        """Return the Prometheus registry for export."""
        return self.registry


def start_metrics_server(metrics: KeeperMetrics, port: int, addr: str = "0.0.0.0") -> bool:
    """Expose /metrics on ``port``. Returns False when disabled (port <= 0)."""
    if port <= 0:
        return False
    start_http_server(port, addr=addr, registry=metrics.get_registry())
    return True
