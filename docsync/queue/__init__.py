"""In-memory queue that hands push batches to the documentation pipeline."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from docsync.logger import get_logger, log_failure, log_timing, log_with_context

from .models import PushJob, RepositoryInfo

logger = get_logger()

PushJobHandler = Callable[[PushJob], Awaitable[Any]]

__all__ = [
    "PushJob",
    "PushJobHandler",
    "RepositoryInfo",
    "configure_push_handler",
    "enqueue_push_job",
    "join_queue",
    "pending_jobs",
    "shutdown_queue",
]


class _PushQueue:
    """A single worker drains the queue, so batches run one after another."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[PushJob] | None = None
        self._worker: asyncio.Task[None] | None = None
        self._handler: PushJobHandler | None = None

    def configure_handler(self, handler: PushJobHandler | None) -> None:
        self._handler = handler

    def _get_queue(self) -> asyncio.Queue[PushJob]:
        if self._queue is None:
            self._queue = asyncio.Queue()
        return self._queue

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            loop = asyncio.get_running_loop()
            self._worker = loop.create_task(self._worker_loop())

    async def _worker_loop(self) -> None:
        queue = self._get_queue()
        while True:
            job = await queue.get()
            start_time = time.time()
            ctx_logger = log_with_context(logger, delivery_id=job.delivery_id, repository=job.repository.full_name)
            ctx_logger.info(f"=== QUEUE: Push batch started ({len(job.commits)} commit(s)) ===")

            try:
                if self._handler is None:
                    log_failure(logger, "No push handler configured; dropping job",
                                delivery_id=job.delivery_id, repository=job.repository.full_name)
                else:
                    with log_timing(ctx_logger, "process_push_job"):
                        await self._handler(job)
                    processing_time = time.time() - start_time
                    ctx_logger.info(f"=== QUEUE: Push batch completed (processed in {processing_time:.3f}s) ===")
            except Exception as exc:
                processing_time = time.time() - start_time
                log_failure(logger, f"Unhandled exception while processing push batch (failed after {processing_time:.3f}s)",
                            exc, delivery_id=job.delivery_id, repository=job.repository.full_name)
                logger.exception("Full exception traceback:")
            finally:
                queue.task_done()

    async def enqueue(self, job: PushJob) -> None:
        self._ensure_worker()
        await self._get_queue().put(job)

    async def join(self) -> None:
        await self._get_queue().join()

    async def shutdown(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        finally:
            self._worker = None
            self._queue = None

    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0


_QUEUE = _PushQueue()


def _coerce_job(job: PushJob | dict[str, Any]) -> PushJob:
    if isinstance(job, PushJob):
        return job
    return PushJob.model_validate(job)


async def enqueue_push_job(job: PushJob | dict[str, Any]) -> None:
    """Add a push batch to the in-memory queue, starting the worker if needed."""

    push_job = _coerce_job(job)
    ctx_logger = log_with_context(logger, delivery_id=push_job.delivery_id, repository=push_job.repository.full_name)
    ctx_logger.debug(f"Adding job to queue (pending_jobs={_QUEUE.pending()})")
    await _QUEUE.enqueue(push_job)
    ctx_logger.debug(f"Job added to queue (new_pending_jobs={_QUEUE.pending()})")


def configure_push_handler(handler: PushJobHandler | None) -> None:
    """Configure the coroutine that processes jobs from the queue."""

    _QUEUE.configure_handler(handler)


async def join_queue() -> None:
    """Wait until every queued job has been processed."""

    await _QUEUE.join()


async def shutdown_queue() -> None:
    """Gracefully stop the worker task."""

    await _QUEUE.shutdown()


def pending_jobs() -> int:
    """Return the number of jobs waiting in the queue."""

    return _QUEUE.pending()
