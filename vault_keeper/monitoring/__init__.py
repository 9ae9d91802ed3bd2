"""
Monitoring package.

Prometheus metrics and webhook alerting.
"""

from vault_keeper.monitoring.alerting import AlertManager, AlertSeverity, AlertType, configure_alerts
from vault_keeper.monitoring.metrics import KeeperMetrics, start_metrics_server

__all__ = [
    "AlertManager",
    "AlertSeverity",
    "AlertType",
    "KeeperMetrics",
    "configure_alerts",
    "start_metrics_server",
]
