import sys
from typing import Any

import fastapi
import uvicorn

from fastapi import FastAPI
from fastapi.responses import PlainTextResponse

from docsync.audit_log import reset_audit_log_cache
from docsync.logger import get_logger
from docsync.queue import configure_push_handler, pending_jobs, shutdown_queue
from docsync.services.push_processor import PushProcessor
from docsync.webhook import router as webhook_router

logger = get_logger()

app = FastAPI(title="Documentation Sync Agent")

app.include_router(webhook_router, tags=["webhook"])

_processor: PushProcessor | None = None


@app.get("/", response_class=PlainTextResponse)
def root() -> str:
    return "pong"


@app.get("/health")
def health() -> dict[str, Any]:
    return {
        "status": "The Documentation Sync Agent is operational.",
        "pending_jobs": pending_jobs(),
        "environment": {
            "python version": sys.version,
            "fastapi version": fastapi.__version__,
            "uvicorn version": uvicorn.__version__,
        },
    }


@app.on_event("startup")
async def _configure_queue_worker() -> None:
    global _processor
    _processor = PushProcessor.from_settings()
    configure_push_handler(_processor)
    logger.info("Documentation pipeline ready")


@app.on_event("shutdown")
async def _shutdown_queue_worker() -> None:
    global _processor
    await shutdown_queue()
    if _processor is not None:
        await _processor.aclose()
        _processor = None
    reset_audit_log_cache()
