import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from redis.asyncio import Redis

from config import settings
from models import engine, async_session
from api.sync import router as sync_router

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
)
logger = logging.getLogger("sms.main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("SMS alarm backend starting... DEBUG=%s", settings.DEBUG)

    # Redis
    redis = Redis.from_url(settings.REDIS_URL, decode_responses=False)
    app.state.redis = redis
    logger.info("Redis connected: %s", settings.REDIS_URL)

    # Alarm point sync
    sync_module = None
    sync_task = None
    if settings.ALARM_SYNC_ENABLED:
        from services.alarm_sync import AlarmSyncModule
        sync_module = AlarmSyncModule.from_settings(async_session, redis)
        sync_task = asyncio.create_task(sync_module.start(), name="alarm_sync_start")
        logger.info("Alarm sync module enabled")
    else:
        logger.info("Alarm sync module DISABLED (ALARM_SYNC_ENABLED=false)")
    app.state.alarm_sync = sync_module

    yield

    # Shutdown
    logger.info("SMS alarm backend shutting down...")
    if sync_task:
        sync_task.cancel()
        try:
            await sync_task
        except asyncio.CancelledError:
            pass
    if sync_module:
        await sync_module.stop()

    await redis.close()
    await engine.dispose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="SMS Alarm Sync",
    version="0.1.0",
    lifespan=lifespan,
)

app.include_router(sync_router)


@app.get("/health")
async def health():
    return {"status": "ok", "version": "0.1.0"}
