"""GitHub webhook ingestion."""

from __future__ import annotations

import json
import time
import uuid
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import ValidationError

from docsync.config import Settings
from docsync.dependencies import settings_dependency
from docsync.logger import get_logger, log_failure, log_success, log_timing, log_with_context
from docsync.queue import enqueue_push_job
from docsync.queue.models import PushJob, RepositoryInfo
from docsync.utils.security import verify_webhook_signature

router = APIRouter()

logger = get_logger()

DELIVERY_TTL_SECONDS = 60 * 60  # retain delivery IDs for one hour
_delivery_cache: Dict[str, float] = {}


class IgnoreEventError(RuntimeError):
    """Raised when a webhook event should be acknowledged but not processed."""


def _prune_delivery_cache(now: float) -> None:
    expiry_threshold = now - DELIVERY_TTL_SECONDS
    expired = [key for key, timestamp in _delivery_cache.items() if timestamp < expiry_threshold]
    for key in expired:
        _delivery_cache.pop(key, None)


def _mark_delivery(delivery_id: str, now: float) -> None:
    _delivery_cache[delivery_id] = now


def _is_duplicate(delivery_id: str, now: float) -> bool:
    _prune_delivery_cache(now)
    return delivery_id in _delivery_cache


def reset_delivery_cache() -> None:
    """Forget seen deliveries (primarily for tests)."""
    _delivery_cache.clear()


def _build_push_job(delivery_id: str, payload: Dict[str, Any], settings: Settings) -> PushJob:
    if not isinstance(payload, dict):
        raise ValueError("Push event payload must be a JSON object.")
    repository = payload.get("repository") or {}
    installation = payload.get("installation") or {}
    if not isinstance(repository, dict) or not isinstance(installation, dict):
        raise ValueError("Push event repository and installation must be objects.")

    full_name = repository.get("full_name") or settings.repository_full_name
    if not full_name:
        raise ValueError("Push event missing repository metadata.")

    commits = payload.get("commits") or []
    if not isinstance(commits, list):
        raise ValueError("Push event 'commits' must be a list.")
    commit_ids = [commit["id"] for commit in commits if isinstance(commit, dict) and commit.get("id")]
    if not commit_ids:
        raise IgnoreEventError("Push event carries no commits.")

    logger.debug(f"Building PushJob: repo={full_name}, ref={payload.get('ref')}, "
                 f"after={payload.get('after')}, commits={len(commit_ids)}")

    return PushJob(
        delivery_id=delivery_id,
        repository=RepositoryInfo(
            id=repository.get("id"),
            full_name=full_name,
            owner=(repository.get("owner") or {}).get("login") or (repository.get("owner") or {}).get("name"),
            name=repository.get("name"),
        ),
        installation_id=installation.get("id"),
        ref=payload.get("ref"),
        before=payload.get("before"),
        after=payload.get("after"),
        commits=commit_ids,
        pusher=payload.get("pusher") or {},
    )


@router.post("/webhook", summary="Receive GitHub webhooks")
async def receive_webhook(
    request: Request,
    settings: Settings = Depends(settings_dependency),
) -> Dict[str, str]:
    """Verify the delivery, acknowledge it, and hand push batches to the documentation queue."""

    start_time = time.time()
    event = request.headers.get("X-GitHub-Event") or "unknown"
    delivery_id = request.headers.get("X-GitHub-Delivery") or f"local-{uuid.uuid4()}"
    ctx_logger = log_with_context(logger, delivery_id=delivery_id, event_type=event)
    ctx_logger.info(f"Received event: {event}")

    raw_body = await request.body()
    signature = request.headers.get("X-Hub-Signature-256")
    if not verify_webhook_signature(settings.github_webhook_secret, raw_body, signature):
        log_failure(logger, "Invalid GitHub webhook signature - rejecting request", delivery_id=delivery_id, event_type=event)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    if event == "ping":
        ctx_logger.info("Ping received - webhook connected successfully.")
        return {"status": "pong"}

    if event != "push":
        ctx_logger.info(f"Event '{event}' received but not handled.")
        return {"status": "ignored", "reason": f"event={event}"}

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        log_failure(logger, "Invalid JSON payload", exc, delivery_id=delivery_id, event_type=event)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload") from exc

    now = time.time()
    if _is_duplicate(delivery_id, now):
        ctx_logger.info("Duplicate delivery ignored")
        return {"status": "ignored", "reason": "duplicate"}

    try:
        with log_timing(ctx_logger, "build_push_job"):
            job = _build_push_job(delivery_id, payload, settings)
    except IgnoreEventError as exc:
        ctx_logger.debug(f"Webhook ignored: {exc}")
        return {"status": "ignored", "reason": str(exc)}
    except (ValueError, ValidationError) as exc:
        log_failure(logger, f"Invalid payload structure: {exc}", exc, delivery_id=delivery_id, event_type=event)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    repo_name = job.repository.full_name
    try:
        await enqueue_push_job(job)
    except Exception as exc:  # pragma: no cover - defensive logging
        log_failure(logger, f"Failed to enqueue push job: {exc}", exc,
                    delivery_id=delivery_id, event_type=event, repository=repo_name)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to enqueue job") from exc

    _mark_delivery(delivery_id, now)
    processing_time = time.time() - start_time
    log_success(logger, f"Accepted push of {len(job.commits)} commit(s) for {repo_name} (processed in {processing_time:.3f}s)",
                delivery_id=delivery_id, event_type=event, repository=repo_name)
    return {"status": "accepted"}
