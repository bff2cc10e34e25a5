"""Normalise GitHub commit file entries into added/removed line sets."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from docsync.logger import get_logger
from docsync.models.changes import FileDiff, FileStatus

logger = get_logger()


def _split_patch(patch: str) -> tuple[List[str], List[str]]:
    added: List[str] = []
    removed: List[str] = []
    for line in patch.split("\n"):
        if line.startswith("+") and not line.startswith("+++"):
            added.append(line[1:])
        elif line.startswith("-") and not line.startswith("---"):
            removed.append(line[1:])
    return added, removed


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def ingest(raw_files: Iterable[Mapping[str, Any]]) -> List[FileDiff]:
    """Turn GitHub file entries into ``FileDiff`` records.

    Entries without a ``patch`` (binary files or diffs GitHub considers too large)
    are dropped. Context lines and hunk headers are not recorded, but the full
    patch text is kept as ``raw_patch``.
    """

    diffs: List[FileDiff] = []
    skipped = 0
    for entry in raw_files:
        patch = entry.get("patch")
        if not patch:
            skipped += 1
            continue

        added, removed = _split_patch(patch)
        diffs.append(
            FileDiff(
                filename=entry.get("filename") or entry.get("path") or "",
                status=FileStatus.parse(entry.get("status")),
                added_lines=added,
                removed_lines=removed,
                raw_patch=patch,
                additions=_as_int(entry.get("additions")),
                deletions=_as_int(entry.get("deletions")),
                changes=_as_int(entry.get("changes")),
            )
        )

    if skipped:
        logger.debug(f"Skipped {skipped} file(s) without patch text (binary or oversized)")
    return diffs
