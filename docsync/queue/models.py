"""Data models for documentation queue jobs."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, Field


class RepositoryInfo(BaseModel):
    id: int | None = None
    full_name: str
    owner: str | None = None
    name: str | None = None


class PushJob(BaseModel):
    delivery_id: str
    repository: RepositoryInfo
    installation_id: int | None = None
    ref: str | None = None
    before: str | None = None
    after: str | None = None
    commits: list[str] = Field(default_factory=list)
    pusher: Dict[str, Any] = Field(default_factory=dict)
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
