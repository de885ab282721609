"""Logging setup and in-process metrics for background work.

The retention sweeper and the sync bridge wrap each run in
:func:`timed_operation`, which times it, logs it and feeds the shared
:data:`metrics` collector shown by ``noty-core status``.
"""
import logging
import threading
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Union

logger = logging.getLogger(__name__)

ROOT_LOGGER_NAME = "noty_core"
LOG_FILE_NAME = "noty.log"
DEFAULT_LOG_DIR = Path.home() / ".noty" / "logs"

# ISO 8601 timestamps, same layout on file and console
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"

_file_handler: Optional[RotatingFileHandler] = None
_console_handler: Optional[logging.Handler] = None


def configure_logging(
    log_dir: Optional[Union[str, Path]] = None,
    level: int = logging.INFO,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 5,
    console: bool = True,
) -> Path:
    """Send the ``noty_core`` logger hierarchy to a rotating file.

    Calling it again swaps the file handler for one in the new directory
    rather than stacking handlers.

    Args:
        log_dir: Directory for ``noty.log``. Defaults to ~/.noty/logs/
        level: Level for the package logger and its handlers
        max_bytes: Size at which the file is rotated
        backup_count: Rotated files to keep
        console: Also echo records to stderr

    Returns:
        The log directory in use
    """
    global _file_handler, _console_handler

    log_path = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
    log_path.mkdir(parents=True, exist_ok=True)

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    package_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if _file_handler is not None:
        package_logger.removeHandler(_file_handler)
        _file_handler.close()
    _file_handler = RotatingFileHandler(
        log_path / LOG_FILE_NAME,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    _file_handler.setLevel(level)
    _file_handler.setFormatter(formatter)
    package_logger.addHandler(_file_handler)

    if console:
        if _console_handler not in package_logger.handlers:
            _console_handler = logging.StreamHandler()
            package_logger.addHandler(_console_handler)
        _console_handler.setLevel(level)
        _console_handler.setFormatter(formatter)

    package_logger.info(
        "Logging to %s (rotate at %d bytes, keep %d)",
        log_path / LOG_FILE_NAME,
        max_bytes,
        backup_count,
    )
    return log_path


def is_logging_configured() -> bool:
    """True once a file handler is attached to the package logger."""
    return _file_handler is not None and _file_handler in logging.getLogger(
        ROOT_LOGGER_NAME
    ).handlers


@dataclass
class OperationStats:
    """Running totals for one named operation (``retention_sweep``...)."""

    count: int = 0
    errors: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0
    last_error: Optional[str] = None
    last_error_at: Optional[datetime] = None
    last_result: Dict[str, Any] = field(default_factory=dict)

    def record(
        self, duration_ms: float, error: Optional[str], result: Dict[str, Any]
    ) -> None:
        self.count += 1
        self.total_ms += duration_ms
        self.max_ms = max(self.max_ms, duration_ms)
        if error is not None:
            self.errors += 1
            self.last_error = error
            self.last_error_at = datetime.now(timezone.utc)
        if result:
            self.last_result = dict(result)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "count": self.count,
            "success_count": self.count - self.errors,
            "error_count": self.errors,
            "avg_duration_ms": round(self.total_ms / self.count, 2) if self.count else 0,
            "max_duration_ms": round(self.max_ms, 2),
            "last_error": self.last_error,
            "last_error_time": (
                self.last_error_at.isoformat() if self.last_error_at else None
            ),
            "last_result": dict(self.last_result),
        }


class MetricsCollector:
    """Thread-safe per-operation timings and failure counts.

    Kept in memory only: the numbers describe the running process.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats: Dict[str, OperationStats] = {}
        self._started = time.monotonic()

    def record_operation(
        self,
        operation: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None,
        result: Optional[Dict[str, Any]] = None,
    ) -> None:
        if not success and error is None:
            error = "unknown error"
        with self._lock:
            stats = self._stats.setdefault(operation, OperationStats())
            stats.record(duration_ms, None if success else error, result or {})

    def get_metrics(self) -> Dict[str, Dict[str, Any]]:
        with self._lock:
            return {name: stats.as_dict() for name, stats in self._stats.items()}

    def get_summary(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "uptime_seconds": round(time.monotonic() - self._started, 3),
                "total_operations": sum(s.count for s in self._stats.values()),
                "total_errors": sum(s.errors for s in self._stats.values()),
                "operations_tracked": sorted(self._stats),
            }

    def reset(self) -> None:
        """Forget everything recorded so far."""
        with self._lock:
            self._stats.clear()
            self._started = time.monotonic()


metrics = MetricsCollector()


@contextmanager
def timed_operation(operation: str, **context: Any) -> Iterator[Dict[str, Any]]:
    """Time a block and record it under ``operation``.

    The yielded dict collects result details (``purged``, ``revision``...)
    which are logged with the timing and kept as the operation's last
    result. Exceptions are recorded and re-raised.

    Example:
        with timed_operation("retention_sweep") as op:
            op["purged"] = len(sweeper.expired())
    """
    tag = uuid.uuid4().hex[:8]
    result: Dict[str, Any] = {"correlation_id": tag}
    if context:
        logger.debug("[%s] %s started %s", tag, operation, context)
    started = time.perf_counter()
    try:
        yield result
    except Exception as e:
        elapsed_ms = (time.perf_counter() - started) * 1000
        metrics.record_operation(operation, elapsed_ms, False, str(e))
        logger.debug("[%s] %s failed after %.2fms: %s", tag, operation, elapsed_ms, e)
        raise
    elapsed_ms = (time.perf_counter() - started) * 1000
    details = {k: v for k, v in result.items() if k != "correlation_id"}
    metrics.record_operation(operation, elapsed_ms, True, result=details)
    logger.debug("[%s] %s took %.2fms %s", tag, operation, elapsed_ms, details)
