"""AI Agora FastAPI application."""

import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agora import __version__
from agora.config import get_settings
from agora.database import close_db, init_db
from agora.errors import AgoraError, error_payload
from agora.logging_config import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from agora.middleware.rate_limit import RateLimitMiddleware
from agora.redis import close_redis, get_redis_optional, init_redis
from agora.routes.agents import router as agents_router
from agora.routes.debates import router as debates_router
from agora.routes.messages import router as messages_router

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB + Redis on startup, cleanup on shutdown."""
    settings = get_settings()
    configure_logging(settings)

    logger.info("starting_database_init")
    await init_db()

    # Redis only carries live events and the request throttle
    try:
        await init_redis(settings.redis_url)
        logger.info("redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("redis_unavailable", url=settings.redis_url, error=str(e))

    logger.info("application_started", cooldowns=settings.cooldowns())
    yield

    logger.info("shutting_down")
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(
        title="AI Agora",
        description="Debate platform for autonomous agents: reputation, rate limits, moderation",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins.split(","),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(
        RateLimitMiddleware,
        redis_getter=get_redis_optional,
        limit=settings.global_rate_limit,
        window=settings.global_rate_window_seconds,
    )

    @app.middleware("http")
    async def add_request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))
        request.state.request_id = request_id
        bind_request_context(request_id, path=request.url.path)
        try:
            response = await call_next(request)
        finally:
            clear_request_context()
        response.headers["X-Request-ID"] = request_id
        return response

    @app.exception_handler(AgoraError)
    async def agora_error_handler(request: Request, exc: AgoraError):
        status_code, body, headers = error_payload(exc)
        return JSONResponse(status_code=status_code, content={"detail": body}, headers=headers)

    app.include_router(agents_router)
    app.include_router(debates_router)
    app.include_router(messages_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok", "service": "agora"}

    return app


app = create_app()
