"""
Structured logging setup for the keeper.

- Rich console handler for operators
- JSON-lines combined log and error-only log for ingestion
- File writes go through a queue handler so the event loop never blocks on disk
- One child logger per vault, so every line carries the vault it belongs to
"""

from __future__ import annotations

import atexit
import json
import logging
import os
import queue
import sys
import threading
import time
from datetime import datetime
from typing import Optional, Union

from rich.logging import RichHandler

ROOT_LOGGER = "vault_keeper"


class JsonFormatter(logging.Formatter):
    """Compact JSON formatter for structured log ingestion."""

    def format(self, record: logging.LogRecord) -> str:
        ts = record.created
        payload = {
            "ts": ts,
            "ts_iso": datetime.fromtimestamp(ts).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, separators=(",", ":"))


class AsyncQueueHandler(logging.Handler):
    """
    Non-blocking handler that queues log records for a background writer thread.

    Records are dropped (and counted) when the queue is full rather than
    stalling the event loop.
    """

    def __init__(self, target_handler: logging.Handler, max_queue_size: int = 10000):
        super().__init__()
        self._queue: queue.Queue = queue.Queue(maxsize=max_queue_size)
        self._target = target_handler
        self._shutdown = False
        self._dropped = 0
        self._thread = threading.Thread(target=self._worker, daemon=True, name="log-writer")
        self._thread.start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord) -> None:
        if self._shutdown:
            return
        try:
            self._queue.put_nowait(record)
        except queue.Full:
            self._dropped += 1

    def _worker(self) -> None:
        while not self._shutdown or not self._queue.empty():
            try:
                record = self._queue.get(timeout=0.1)
            except queue.Empty:
                continue
            if record.levelno >= self._target.level:
                self._target.handle(record)
            self._queue.task_done()

    def close(self) -> None:
        if self._shutdown:
            return
        self._shutdown = True
        if self._thread.is_alive():
            self._thread.join(timeout=2.0)
        if self._dropped > 0:
            sys.stderr.write(f"[logging] Dropped {self._dropped} log records due to queue overflow\n")
        self._target.close()
        super().close()


def _file_handler(path: str, level: int, async_file: bool) -> logging.Handler:
    file_handler = logging.FileHandler(path)
    file_handler.setFormatter(JsonFormatter())
    file_handler.setLevel(level)
    if not async_file:
        return file_handler
    async_handler = AsyncQueueHandler(file_handler, max_queue_size=10000)
    async_handler.setLevel(level)
    return async_handler


def build_logger(
    name: str = ROOT_LOGGER,
    level: Union[int, str] = logging.INFO,
    log_dir: Optional[str] = "logs",
    async_file: bool = True,
) -> logging.Logger:
    """
    Build the keeper logger.

    Args:
        name: Logger name
        level: Minimum log level (int or level name)
        log_dir: Directory for combined.log / error.log (None to disable file logging)
        async_file: Write files from a background thread

    Returns:
        Configured logger instance
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Idempotent handler setup
    if logger.handlers:
        for h in logger.handlers:
            if not getattr(h, "_error_only", False):
                h.setLevel(level)
        return logger

    stream_handler = RichHandler(
        rich_tracebacks=False,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
    )
    stream_handler.setLevel(level)
    stream_handler.setFormatter(logging.Formatter("[%(name)s] %(message)s"))
    logger.addHandler(stream_handler)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        logger.addHandler(_file_handler(os.path.join(log_dir, "combined.log"), level, async_file))
        error_handler = _file_handler(os.path.join(log_dir, "error.log"), logging.ERROR, async_file)
        error_handler._error_only = True
        logger.addHandler(error_handler)

    logger.propagate = False
    return logger


def vault_logger(vault_address: str) -> logging.Logger:
    """Child logger labelled with the full vault address (e.g. vault_keeper.vault.0x1a2b3c)."""
    return logging.getLogger(f"{ROOT_LOGGER}.vault.{vault_address.lower()}")


def log_event(
    logger: logging.Logger,
    event: str,
    level: int = logging.INFO,
    **data
) -> None:
    """
    Log a structured event with proper level.

    Usage:
        log_event(log, "tick_complete", successes=3, failures=0)
    """
    payload = {"event": event, "ts": time.time(), **data}
    logger.log(level, json.dumps(payload, default=str))
