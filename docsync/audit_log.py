"""Append-only audit ledger of processed commits."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Final

from docsync.config import get_settings
from docsync.logger import add_audit_sink, get_audit_logger, remove_sink

MAX_LOG_SIZE: Final[int] = 2 * 1024 * 1024


class AuditLog:
    """One timestamped line per event, rotated once the file reaches ``max_bytes``.

    The ledger is a dedicated loguru sink: rotation renames the current file
    to ``<stem>.<timestamp><suffix>`` next to it and starts a fresh one, so no
    entry is ever truncated or dropped. Write failures are reported on stderr
    and never raised to the caller. Application logs never reach this file.
    """

    def __init__(self, path: str | Path, *, max_bytes: int = MAX_LOG_SIZE) -> None:
        self.path = Path(path)
        self.max_bytes = max_bytes
        self._sink_id: int | None = add_audit_sink(self.path, rotation=max_bytes)
        self._logger = get_audit_logger(self.path)

    def record(self, message: str) -> None:
        """Append ``message`` as one timestamped line."""
        self._logger.info(message)

    def close(self) -> None:
        """Detach the sink and close the underlying file."""
        if self._sink_id is not None:
            remove_sink(self._sink_id)
            self._sink_id = None


@lru_cache(maxsize=1)
def get_audit_log() -> AuditLog:
    """Return the process-wide audit log configured by ``AUDIT_LOG_PATH``."""
    return AuditLog(get_settings().audit_log_path)


def reset_audit_log_cache() -> None:
    """Close and forget the cached audit log (primarily for tests)."""
    if get_audit_log.cache_info().currsize:
        get_audit_log().close()
    get_audit_log.cache_clear()
