"""
imager - HTTP service that resizes images and stores them in S3 + PostgreSQL.

Connects to PostgreSQL and creates the images table if needed, makes sure the
bucket exists, then serves the images API (and /health) until SIGTERM/SIGINT.
"""

import asyncio
import logging
import signal
from typing import Optional

from aiohttp import web

from imager.config import Settings, load_settings
from imager.handlers import create_app
from imager.pipeline import ResizePipeline
from imager.repository import ImagesRepository, create_pool
from imager.storage import Downloader, S3Uploader

logger = logging.getLogger(__name__)


async def _run(settings: Settings):
    pool = create_pool(settings)
    await asyncio.to_thread(pool.open, True)
    logger.info(f"Connected to PostgreSQL at {settings.pg_host}:{settings.pg_port}/{settings.pg_dbname}")

    repository = ImagesRepository(pool)
    await asyncio.to_thread(repository.ensure_schema)

    uploader = S3Uploader.from_settings(settings)
    await asyncio.to_thread(uploader.ensure_bucket)

    pipeline = ResizePipeline(
        repository,
        uploader,
        Downloader(timeout=settings.download_timeout, max_bytes=settings.max_upload_bytes),
    )
    app = create_app(pipeline, max_upload_bytes=settings.max_upload_bytes)

    # Client disconnects cancel the handler, and with it any in-flight transfer.
    runner = web.AppRunner(app, handler_cancellation=True)
    await runner.setup()
    site = web.TCPSite(runner, settings.http_host, settings.http_port)
    await site.start()
    logger.info(f"Serving on {settings.http_host}:{settings.http_port}")

    shutdown = asyncio.Event()

    def _signal_handler():
        logger.info("Received shutdown signal")
        shutdown.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, _signal_handler)

    try:
        await shutdown.wait()
    finally:
        logger.info("Shutting down...")
        await runner.cleanup()
        await asyncio.to_thread(pool.close)
        logger.info("Shutdown complete")


def run_server(settings: Optional[Settings] = None):
    """Main entry point. Blocks until SIGTERM/SIGINT."""
    settings = settings or load_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    asyncio.run(_run(settings))


if __name__ == "__main__":
    run_server()
