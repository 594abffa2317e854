from contextlib import asynccontextmanager
from fastapi import FastAPI
from cache_api.core.scheduler import create_scheduler
from cache_api.db.session import engine, init_db
from cache_api.services.ethereum import chain_reader
from cache_api.utils.logging import get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    await init_db()
    scheduler = create_scheduler()
    scheduler.start()
    logger = get_logger()
    logger.info(f"Startup: {app.title} v{app.version} starting...")
    yield
    # Shutdown
    scheduler.shutdown(wait=False)
    await chain_reader.close()
    await engine.dispose()
    logger.info("Shutdown: App shutting down...")
