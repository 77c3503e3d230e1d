"""Runtime logging configuration and request latency budgets."""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from logging.handlers import RotatingFileHandler
from pathlib import Path

VALIDATION_BUDGET_MS = 200.0
SEARCH_BUDGET_MS = 500.0

_CONFIGURED = False

logger = logging.getLogger(__name__)


def _int_env(name: str, default: int, *, minimum: int, maximum: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        return default
    return max(minimum, min(maximum, value))


def configure_runtime_logging() -> None:
    """Configure console + rotating file logs once per process."""
    global _CONFIGURED
    if _CONFIGURED:
        return

    level_name = os.environ.get("PENSIEVE_LOG_LEVEL", "INFO").strip().upper() or "INFO"
    level = getattr(logging, level_name, logging.INFO)
    log_path = Path(
        os.environ.get("PENSIEVE_LOG_PATH", "work/logs/pensieve_index.log").strip()
        or "work/logs/pensieve_index.log"
    )
    max_bytes = _int_env(
        "PENSIEVE_LOG_MAX_BYTES", 5 * 1024 * 1024, minimum=64 * 1024, maximum=100 * 1024 * 1024
    )
    backup_count = _int_env("PENSIEVE_LOG_BACKUP_COUNT", 10, minimum=1, maximum=120)

    log_path.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )
    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    file_handler = RotatingFileHandler(
        filename=log_path,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setFormatter(formatter)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    root.addHandler(stream_handler)
    root.addHandler(file_handler)

    access_level_name = os.environ.get("PENSIEVE_ACCESS_LOG_LEVEL", "WARNING").strip().upper()
    logging.getLogger("uvicorn.access").setLevel(
        getattr(logging, access_level_name, logging.WARNING)
    )
    _CONFIGURED = True


@dataclass
class LatencyBudget:
    """Wall-clock budget for one composed request handler."""

    operation: str
    budget_ms: float
    started: float = field(default_factory=time.perf_counter)

    def elapsed_ms(self) -> float:
        return round((time.perf_counter() - self.started) * 1000, 2)

    def finish(self, **context: object) -> tuple[float, bool]:
        """Return (elapsed_ms, met) and warn when the budget was exceeded."""
        elapsed = self.elapsed_ms()
        met = elapsed <= self.budget_ms
        if not met:
            details = " ".join(f"{key}={value}" for key, value in sorted(context.items()))
            logger.warning(
                "latency.budget_exceeded operation=%s elapsed_ms=%s budget_ms=%s %s",
                self.operation,
                elapsed,
                self.budget_ms,
                details,
            )
        return elapsed, met
