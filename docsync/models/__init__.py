from .changes import (
    ChangeSummary,
    CommitOutcome,
    CommitRef,
    DocMeta,
    FileChangeAnalysis,
    FileDiff,
    FileStatus,
    PublishRecord,
    RenderedDoc,
    short_sha,
    utc_timestamp,
)

__all__ = [
    "ChangeSummary",
    "CommitOutcome",
    "CommitRef",
    "DocMeta",
    "FileChangeAnalysis",
    "FileDiff",
    "FileStatus",
    "PublishRecord",
    "RenderedDoc",
    "short_sha",
    "utc_timestamp",
]
