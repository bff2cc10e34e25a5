from __future__ import annotations

import os
import sys
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator

from loguru import logger as _logger

_CONFIGURED = False
DEFAULT_LOG_DIR = Path(__file__).resolve().parent.parent / "logs" / "app"
LOG_DIR_ENV = "APP_LOG_DIR"
LOG_LEVEL_ENV = "APP_LOG_LEVEL"
AUDIT_EXTRA_KEY = "audit_path"
AUDIT_FORMAT = "[{time:YYYY-MM-DDTHH:mm:ss.SSS!UTC}Z] {message}"


def _resolve_log_dir(explicit: str | Path | None) -> Path:
    """Determine the directory to store application log files."""

    if explicit is not None:
        return Path(explicit).expanduser().resolve()
    env_value = os.getenv(LOG_DIR_ENV)
    if env_value:
        return Path(env_value).expanduser().resolve()
    return DEFAULT_LOG_DIR


def _is_application_record(record) -> bool:
    return AUDIT_EXTRA_KEY not in record["extra"]


def configure_logger(*, log_dir: str | Path | None = None, level: str | None = None) -> None:
    """Configure the Loguru logger exactly once per process."""

    global _CONFIGURED
    if _CONFIGURED:
        return

    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_level = level or os.getenv(LOG_LEVEL_ENV, "INFO")

    _logger.remove()
    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
    )

    _logger.add(
        sys.stdout,
        level=log_level,
        format=log_format,
        colorize=sys.stdout.isatty(),
        filter=_is_application_record,
    )
    _logger.add(
        target_dir / "docsync-{time:YYYY-MM-DD}.log",
        rotation="50 MB",
        retention="10 days",
        level="DEBUG",
        format=log_format,
        enqueue=True,
        filter=_is_application_record,
        backtrace=True,
        diagnose=False,
    )

    _CONFIGURED = True


def get_logger(*, log_dir: str | Path | None = None, level: str | None = None):
    """Return the configured logger, configuring it on first access."""

    configure_logger(log_dir=log_dir, level=level)
    return _logger


def _audit_key(path: str | Path) -> str:
    return str(Path(path).expanduser().resolve())


def add_audit_sink(path: str | Path, *, rotation: int | str) -> int:
    """Add a plain-text sink that only receives records bound by ``get_audit_logger(path)``.

    Lines are ``[<UTC ISO timestamp>] <message>``. Once the file would exceed
    ``rotation`` it is renamed to a timestamped sibling and a new file is
    started. Write errors are reported on stderr and never raised.
    """

    configure_logger()
    key = _audit_key(path)
    return _logger.add(
        key,
        level="INFO",
        format=AUDIT_FORMAT,
        filter=lambda record: record["extra"].get(AUDIT_EXTRA_KEY) == key,
        rotation=rotation,
        delay=True,
        catch=True,
        encoding="utf-8",
    )


def get_audit_logger(path: str | Path):
    """Return a logger whose records go to the audit sink for ``path`` only."""
    return _logger.bind(**{AUDIT_EXTRA_KEY: _audit_key(path)})


def remove_sink(sink_id: int) -> None:
    _logger.remove(sink_id)


def log_with_context(logger_instance, **context: str | int | None) -> Any:
    """Bind non-empty context fields (repository, commit, destination...) to a logger.

    Usage:
        logger = log_with_context(get_logger(), repository="owner/repo", commit="abc1234")
        logger.info("Publishing docs")
    """
    return logger_instance.bind(**{k: v for k, v in context.items() if v is not None})


@contextmanager
def log_timing(logger_instance, operation: str, **context: str | int | None) -> Iterator[Any]:
    """Log the start, duration and outcome of an operation.

    Usage:
        with log_timing(logger, "fetch_commit", commit="abc1234"):
            ...
    """
    start_time = time.perf_counter()
    ctx_logger = log_with_context(logger_instance, **context)
    ctx_logger.debug(f"Starting {operation}")
    try:
        yield ctx_logger
    except Exception as exc:
        duration = time.perf_counter() - start_time
        ctx_logger.error(f"Failed {operation} after {duration:.3f}s: {exc}")
        raise
    duration = time.perf_counter() - start_time
    ctx_logger.debug(f"Completed {operation} in {duration:.3f}s")


def log_success(logger_instance, message: str, **context: str | int | None) -> None:
    """Log a success message with context."""
    log_with_context(logger_instance, **context).info(f"=== SUCCESS: {message} ===")


def log_failure(logger_instance, message: str, error: Exception | None = None, **context: str | int | None) -> None:
    """Log a failure message with context and optional error."""
    ctx_logger = log_with_context(logger_instance, **context)
    if error:
        ctx_logger.error(f"=== FAILURE: {message} | Error: {error} ===")
    else:
        ctx_logger.error(f"=== FAILURE: {message} ===")
