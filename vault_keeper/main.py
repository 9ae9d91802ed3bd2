"""
Entry point wiring all components.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from vault_keeper.app import run_forever, run_once
from vault_keeper.config.config import Settings, log_settings
from vault_keeper.config.config_validator import validate_and_log
from vault_keeper.execution.round_state_machine import RoundStateMachine
from vault_keeper.infra.logging_cfg import build_logger, log_event, vault_logger
from vault_keeper.infra.pricing_client import FossilPricingClient
from vault_keeper.infra.starknet_client import vault_client
from vault_keeper.monitoring.alerting import AlertSeverity, configure_alerts
from vault_keeper.monitoring.metrics import KeeperMetrics, start_metrics_server
from vault_keeper.orchestrator.vault_monitor import MonitorConfig, VaultMonitor


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Advance option vault rounds on Starknet")
    parser.add_argument("--once", action="store_true",
                        help="Run a single tick and exit non-zero if any vault failed")
    parser.add_argument("--interval", type=float, default=None,
                        help="Seconds between ticks (overrides KEEPER_INTERVAL_SEC)")
    return parser.parse_args(argv)


async def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        cfg = Settings.load()
    except ValueError as exc:
        log_event(build_logger(log_dir=None), "config_error", logging.ERROR, err=str(exc))
        return 1

    log = build_logger(level=cfg.log_level, log_dir=cfg.log_dir)
    log_settings(cfg, log)
    if not validate_and_log(cfg, log):
        log.error("Configuration validation failed, exiting")
        return 1

    metrics = KeeperMetrics()
    if start_metrics_server(metrics, cfg.metrics_port):
        log_event(log, "metrics_server_started", port=cfg.metrics_port)

    alert_manager = configure_alerts(
        webhook_url=cfg.alert_webhook_url,
        webhook_type=cfg.alert_webhook_type,
        min_severity=AlertSeverity[cfg.alert_min_severity],
        enabled=cfg.alert_enabled,
    )

    pricing_clients: List[FossilPricingClient] = []
    machines: List[RoundStateMachine] = []
    for vault in cfg.vault_addresses:
        chain = vault_client(
            vault,
            rpc_url=cfg.starknet_rpc,
            account_address=cfg.account_address,
            private_key=cfg.private_key,
            chain=cfg.chain,
            timeout=cfg.http_timeout,
            retries=cfg.rpc_retries,
        )
        pricing = FossilPricingClient(cfg.fossil_api_url, cfg.fossil_api_key, timeout=cfg.http_timeout)
        pricing_clients.append(pricing)
        machines.append(RoundStateMachine(vault, chain, pricing, logger=vault_logger(vault), metrics=metrics))

    monitor = VaultMonitor(
        machines,
        metrics=metrics,
        alerts=alert_manager,
        config=MonitorConfig(pricing_lag_alert_sec=cfg.pricing_lag_alert_sec),
        logger=log,
    )

    log_event(log, "startup", vaults=cfg.vault_addresses, once=args.once)
    await alert_manager.alert_startup(cfg.vault_addresses, chain=cfg.chain)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def request_stop(sig: signal.Signals) -> None:
        log_event(log, "shutdown_signal", signal=sig.name)
        stop_event.set()

    # Windows doesn't support add_signal_handler, so rely on KeyboardInterrupt handling
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, request_stop, sig)
        except NotImplementedError:
            pass

    try:
        if args.once:
            exit_code = await run_once(monitor)
        else:
            exit_code = await run_forever(monitor, args.interval or cfg.interval_sec, stop_event)
            await alert_manager.alert_shutdown("normal")
    finally:
        log.info("Closing connections...")
        for pricing in pricing_clients:
            await pricing.close()
        await alert_manager.close()
        log_event(log, "shutdown_complete")
    return exit_code


def cli() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        print("\nKeeper stopped by user")
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    cli()
