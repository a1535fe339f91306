import asyncio
import contextlib
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from redis.asyncio import Redis
from sqlalchemy import text

from courier.core import redis as redis_module
from courier.core.config import settings
from courier.core.exceptions import register_exception_handlers
from courier.core.log_config import RequestLoggingMiddleware, setup_logging
from courier.db.session import SessionLocal
from courier.messaging.realtime import broadcaster, manager
from courier.messaging.routes import admin_settings as admin_settings_routes
from courier.messaging.routes import messages as messages_routes
from courier.messaging.routes import websocket as websocket_routes

setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info("connecting_to_redis")
    redis_module.redis_client = Redis.from_url(
        settings.REDIS_URL, decode_responses=True, encoding="utf-8"
    )

    try:
        if redis_module.redis_client:
            await redis_module.redis_client.ping()
            logger.info("redis_connected")
    except Exception as e:
        logger.error("redis_connection_failed", error=str(e))
        await redis_module.redis_client.aclose()
        redis_module.redis_client = None

    listener: asyncio.Task[None] | None = None
    if settings.REALTIME_ENABLED and redis_module.redis_client is not None:
        listener = asyncio.create_task(broadcaster.listen())
        logger.info("realtime_listener_started", channel=broadcaster.channel)
    else:
        logger.info("realtime_local_only")

    yield

    if listener is not None:
        listener.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await listener

    logger.info("closing_redis")
    if redis_module.redis_client:
        await redis_module.redis_client.aclose()
    logger.info("redis_closed")


app = FastAPI(
    title=settings.PROJECT_NAME,
    debug=settings.DEBUG,
    lifespan=lifespan,
    description="Real-time messaging core: conversations, messages, read state and live push",
    version="1.0.0",
)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)

app.include_router(
    messages_routes.router,
    prefix=f"{settings.API_V1_PREFIX}/messaging",
    tags=["messaging"],
)
app.include_router(
    websocket_routes.router,
    prefix=f"{settings.API_V1_PREFIX}/messaging",
    tags=["messaging-realtime"],
)
app.include_router(
    admin_settings_routes.router,
    prefix=f"{settings.API_V1_PREFIX}/admin/messaging",
    tags=["admin-messaging"],
)


@app.get("/")
async def root() -> dict[str, str]:
    return {"message": "Courier Messaging API", "version": "1.0.0", "status": "running"}


@app.get("/health")
async def health_check() -> dict[str, str | int]:
    redis_status = "disabled"
    db_status = "unknown"

    try:
        if redis_module.redis_client:
            await redis_module.redis_client.ping()
            redis_status = "healthy"
    except Exception:
        redis_status = "unhealthy"

    try:
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
            db_status = "healthy"
        finally:
            db.close()
    except Exception:
        db_status = "unhealthy"

    all_healthy = redis_status in ("healthy", "disabled") and db_status == "healthy"
    overall = "healthy" if all_healthy else "degraded"

    return {
        "status": overall,
        "redis": redis_status,
        "database": db_status,
        "connected_users": manager.connected_user_count(),
    }
