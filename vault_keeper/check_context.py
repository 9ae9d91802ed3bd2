"""
Structured logging context for one vault check.

Each check gets its own trace_id so the lines of overlapping ticks for the
same vault can be told apart. Tags (round id, round address, state) are added
as the check discovers them and are stamped on every later line.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any, Optional


class CheckContext:
    """Per-check context for structured logging with trace ID correlation."""

    def __init__(
        self,
        vault_address: str,
        logger: logging.Logger,
        trace_id: Optional[str] = None,
    ):
        self.vault_address = vault_address
        self.trace_id = trace_id or uuid.uuid4().hex[:12]
        self.start_time = time.perf_counter()
        self.logger = logger
        self.tags: dict[str, Any] = {}

    def set_tag(self, key: str, value: Any) -> None:
        """Add a tag to be included in all logs from this context."""
        self.tags[key] = value

    def log(self, event: str, level: int = logging.INFO, **data: Any) -> None:
        payload = {
            "event": event,
            "trace_id": self.trace_id,
            "vault": self.vault_address,
            "elapsed_ms": round(self.elapsed_ms(), 1),
            **self.tags,
            **data,
        }
        self.logger.log(level, json.dumps(payload, default=str))

    def debug(self, event: str, **data: Any) -> None:
        self.log(event, level=logging.DEBUG, **data)

    def info(self, event: str, **data: Any) -> None:
        self.log(event, level=logging.INFO, **data)

    def warning(self, event: str, **data: Any) -> None:
        self.log(event, level=logging.WARNING, **data)

    def error(self, event: str, **data: Any) -> None:
        self.log(event, level=logging.ERROR, **data)

    def elapsed_ms(self) -> float:
        return (time.perf_counter() - self.start_time) * 1000.0
