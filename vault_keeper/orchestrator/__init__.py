"""
Orchestrator package - fan-out of vault checks per tick.
"""

from vault_keeper.orchestrator.vault_monitor import MonitorConfig, VaultMonitor

__all__ = [
    "MonitorConfig",
    "VaultMonitor",
]
