import os

from docsync.logger import get_logger

logger = get_logger()


def main() -> None:
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "4000"))
    display_url = f"http://localhost:{port}"

    logger.info(
        "Starting Documentation Sync Agent on {display_url} (binding to {host}:{port})",
        display_url=display_url,
        host=host,
        port=port,
    )

    import uvicorn

    uvicorn.run(
        app="docsync.main:app",
        host=host,
        port=port,
        reload=False,
        workers=1,
        log_level="info",
    )


if __name__ == "__main__":
    main()
