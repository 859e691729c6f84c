"""
Structured logging system for better log analysis and debugging.
Provides JSON-formatted logs with context and metadata.
"""

import json
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any


class StructuredLogger:
    """
    Logger that outputs both human-readable and machine-parseable events.

    Usage:
        logger = StructuredLogger("flipdeck")
        logger.info("load_completed", source="remote", set_count=4, duration_ms=182.4)
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize structured logger.

        Args:
            name: Logger name
            log_dir: Directory for JSON log files (None = disabled)
            enable_json: Enable JSON file logging
            enable_console: Enable console output
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_json = enable_json and log_dir is not None
        self.enable_console = enable_console

        self._logger = logging.getLogger(name)

        self._json_file = None
        if self.enable_json:
            log_dir.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            json_log_path = log_dir / f"flipdeck_{timestamp}.jsonl"
            self._json_file = open(json_log_path, "a", encoding="utf-8")  # noqa: SIM115

        # Session context (added to all log entries)
        self._session_context: dict[str, Any] = {
            "session_id": f"{int(time.time())}_{id(self)}",
            "start_time": datetime.now().isoformat(),
        }

    def set_session_context(self, **kwargs) -> None:
        """Set session-level context that appears in all logs."""
        self._session_context.update(kwargs)

    def _format_message(self, event: str, **context) -> str:
        parts = [f"[{event}]"]
        for key, value in context.items():
            if key not in ("level", "timestamp"):
                parts.append(f"{key}={value}")
        return " ".join(parts)

    def _write_json(self, level: str, event: str, **context) -> None:
        """Write structured log entry to JSON file."""
        if not self._json_file or self._json_file.closed:
            return

        entry = {
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "event": event,
            **self._session_context,
            **context,
        }

        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, ValueError) as e:
            print(f"JSON logging failed: {e}", file=sys.stderr)

    def _emit(self, level: int, event: str, **context) -> None:
        if self.enable_console:
            self._logger.log(level, self._format_message(event, **context))
        if self.enable_json:
            self._write_json(logging.getLevelName(level), event, **context)

    def debug(self, event: str, **context) -> None:
        self._emit(logging.DEBUG, event, **context)

    def info(self, event: str, **context) -> None:
        self._emit(logging.INFO, event, **context)

    def warning(self, event: str, **context) -> None:
        self._emit(logging.WARNING, event, **context)

    def error(self, event: str, **context) -> None:
        self._emit(logging.ERROR, event, **context)

    def close(self) -> None:
        """Close JSON log file."""
        if self._json_file and not self._json_file.closed:
            self._json_file.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class SyncLogger:
    """Specialized logger for load, refresh and cache events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def load_started(self, operation: str, online: bool, timeout_s: float):
        self.logger.debug(
            "load_started", operation=operation, online=online, timeout_s=timeout_s
        )

    def load_completed(
        self, operation: str, source: str, set_count: int, duration_ms: float
    ):
        self.logger.info(
            "load_completed",
            operation=operation,
            source=source,
            set_count=set_count,
            duration_ms=round(duration_ms, 2),
        )

    def load_fallback(self, operation: str, reason: str, error: str):
        """Log a remote read that degraded to the local cache."""
        self.logger.warning(
            "load_fallback", operation=operation, reason=reason, error=error
        )

    def cache_mirrored(self, slot: str, set_count: int):
        self.logger.debug("cache_mirrored", slot=slot, set_count=set_count)

    def cache_corrupted(self, slot: str, error: str, quarantined_to: str | None):
        """
        Log corrupt cache content. This is the event an alerting layer should
        watch: the read itself degrades to an empty list.
        """
        self.logger.error(
            "cache_corrupted", slot=slot, error=error, quarantined_to=quarantined_to
        )

    def late_result_discarded(self, operation: str, outcome: str):
        self.logger.debug("late_result_discarded", operation=operation, outcome=outcome)

    def write_failed(self, operation: str, set_id: str, error: str):
        self.logger.error(
            "write_failed", operation=operation, set_id=set_id, error=error
        )


class RemoteLogger:
    """Specialized logger for remote store requests."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def request_completed(
        self, method: str, table: str, status_code: int, duration_ms: float
    ):
        self.logger.debug(
            "remote_request_completed",
            method=method,
            table=table,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
        )

    def request_failed(
        self, method: str, table: str, status_code: int | None, error: str
    ):
        self.logger.warning(
            "remote_request_failed",
            method=method,
            table=table,
            status_code=status_code,
            error=error,
        )

    def compensation(self, operation: str, set_id: str, restored_cards: int, ok: bool):
        """Log a best-effort restore of card rows after a partial write."""
        self.logger.warning(
            "remote_compensation",
            operation=operation,
            set_id=set_id,
            restored_cards=restored_cards,
            ok=ok,
        )


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, SyncLogger, RemoteLogger]:
    """
    Create all structured loggers.

    Returns:
        Tuple of (base_logger, sync_logger, remote_logger)
    """
    base = StructuredLogger("flipdeck", log_dir=log_dir, enable_json=enable_json)
    return base, SyncLogger(base), RemoteLogger(base)
