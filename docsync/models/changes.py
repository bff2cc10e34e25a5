"""Shared data structures for commit documentation processing."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

SHORT_SHA_LENGTH = 7


class FileStatus(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"

    @classmethod
    def parse(cls, raw: str | None) -> "FileStatus":
        """Map a GitHub file status onto the enum, treating unknown values as modified."""
        try:
            return cls((raw or "").lower())
        except ValueError:
            return cls.MODIFIED


def short_sha(sha: str) -> str:
    return sha[:SHORT_SHA_LENGTH]


def utc_timestamp() -> str:
    """Return the current UTC time as an ISO-8601 string with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(slots=True)
class CommitRef:
    id: str


@dataclass(slots=True)
class FileDiff:
    filename: str
    status: FileStatus
    added_lines: List[str] = field(default_factory=list)
    removed_lines: List[str] = field(default_factory=list)
    raw_patch: str = ""
    additions: int = 0
    deletions: int = 0
    changes: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "status": self.status.value,
            "additions": self.additions,
            "deletions": self.deletions,
            "changes": self.changes,
            "addedLines": list(self.added_lines),
            "removedLines": list(self.removed_lines),
        }


@dataclass(slots=True)
class FileChangeAnalysis:
    filename: str
    has_changes: bool
    functions_added: List[str] = field(default_factory=list)
    functions_removed: List[str] = field(default_factory=list)
    functions_modified: List[str] = field(default_factory=list)
    classes_changed: List[str] = field(default_factory=list)
    apis_changed: List[str] = field(default_factory=list)
    deprecated: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "hasChanges": self.has_changes,
            "functionsAdded": list(self.functions_added),
            "functionsRemoved": list(self.functions_removed),
            "functionsModified": list(self.functions_modified),
            "classesChanged": list(self.classes_changed),
            "apisChanged": list(self.apis_changed),
            "deprecated": list(self.deprecated),
        }


@dataclass(slots=True)
class ChangeSummary:
    """Commit-level aggregate of per-file analyses.

    The lists are logs rather than sets: the same name may appear once per file
    that mentions it, in file order.

    ``files`` and ``diffs`` keep the per-file analyses and the parsed diffs
    they came from; they feed the generator prompt and are not part of
    ``to_dict()``.
    """

    functions_added: List[str] = field(default_factory=list)
    functions_removed: List[str] = field(default_factory=list)
    functions_modified: List[str] = field(default_factory=list)
    classes_changed: List[str] = field(default_factory=list)
    apis_changed: List[str] = field(default_factory=list)
    deprecated: List[str] = field(default_factory=list)
    modules_affected: List[str] = field(default_factory=list)
    files: List[FileChangeAnalysis] = field(default_factory=list)
    diffs: List[FileDiff] = field(default_factory=list)

    def add(self, analysis: FileChangeAnalysis, diff: FileDiff | None = None) -> None:
        self.files.append(analysis)
        if diff is not None:
            self.diffs.append(diff)
        if analysis.has_changes:
            self.modules_affected.append(analysis.filename)
        self.functions_added.extend(analysis.functions_added)
        self.functions_removed.extend(analysis.functions_removed)
        self.functions_modified.extend(analysis.functions_modified)
        self.classes_changed.extend(analysis.classes_changed)
        self.apis_changed.extend(analysis.apis_changed)
        self.deprecated.extend(analysis.deprecated)

    @property
    def is_empty(self) -> bool:
        return not any(
            (
                self.functions_added,
                self.functions_removed,
                self.functions_modified,
                self.classes_changed,
                self.apis_changed,
                self.deprecated,
                self.modules_affected,
            )
        )

    def to_dict(self) -> Dict[str, List[str]]:
        return {
            "functionsAdded": list(self.functions_added),
            "functionsRemoved": list(self.functions_removed),
            "functionsModified": list(self.functions_modified),
            "classesChanged": list(self.classes_changed),
            "apisChanged": list(self.apis_changed),
            "deprecated": list(self.deprecated),
            "modulesAffected": list(self.modules_affected),
        }


@dataclass(frozen=True, slots=True)
class DocMeta:
    sha: str
    repo_full_name: str
    timestamp: str = field(default_factory=utc_timestamp)

    @property
    def sha_short(self) -> str:
        return short_sha(self.sha)

    @property
    def owner(self) -> str:
        return _split_full_name(self.repo_full_name)[0]

    @property
    def repo(self) -> str:
        return _split_full_name(self.repo_full_name)[1]


@dataclass(frozen=True, slots=True)
class RenderedDoc:
    title: str
    body: str
    meta: DocMeta


@dataclass(frozen=True, slots=True)
class PublishRecord:
    sha_short: str
    timestamp: str
    relative_path: str

    def to_json(self) -> Dict[str, str]:
        return {"sha": self.sha_short, "timestamp": self.timestamp, "file": self.relative_path}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "PublishRecord":
        return cls(
            sha_short=str(data.get("sha", "")),
            timestamp=str(data.get("timestamp", "")),
            relative_path=str(data.get("file", "")),
        )


@dataclass(slots=True)
class CommitOutcome:
    sha: str
    succeeded: bool
    error: str | None = None
    failed_step: str | None = None
    wiki_published: bool = False
    pages_published: bool = False


def _split_full_name(full_name: str) -> tuple[str, str]:
    if "/" not in full_name:
        raise ValueError(f"Repository full name '{full_name}' is invalid.")
    owner, repo = full_name.split("/", 1)
    return owner, repo
