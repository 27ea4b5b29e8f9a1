"""Main application entry point."""
import logging
from contextlib import asynccontextmanager
from typing import Any, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
import redis
import redis.asyncio as aioredis
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor

from edgeup.config import (
    API_VERSION,
    CORS_ORIGINS,
    DATABASE_URL,
    OTEL_ENABLED,
    REDIS_URL,
    SEED_DEMO_DATA
)
from edgeup.database import create_session_factory, init_db
from edgeup.errors import MarketplaceError
from edgeup.logging_config import setup_logging
from edgeup.routers import (
    auth as auth_router,
    conversations,
    negotiations,
    notifications,
    orders,
    products,
    users
)

# Setup structured logging
setup_logging()
logger = logging.getLogger(__name__)


def validation_message(exc: RequestValidationError) -> str:
    """Collapse every violated field into one human-readable line."""
    messages = []
    for error in exc.errors():
        message = error.get("msg", "Invalid value")
        if message.startswith("Value error, "):
            messages.append(message[len("Value error, "):])
            continue
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        messages.append(f"{'.'.join(location)}: {message}" if location else message)
    return "; ".join(messages)


def register_exception_handlers(app: FastAPI) -> None:
    """Render every failure as an {"error": message} envelope."""

    @app.exception_handler(MarketplaceError)
    async def marketplace_error_handler(request: Request, exc: MarketplaceError):
        logger.info("Request rejected", extra={
            "path": request.url.path,
            "status_code": exc.status_code,
            "error": exc.message
        })
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": validation_message(exc)})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error", extra={
            "path": request.url.path,
            "method": request.method
        })
        return JSONResponse(status_code=500, content={"error": "Internal error"})


def create_app(
    database_url: Optional[str] = None,
    redis_client: Any = None,
    async_redis_client: Any = None,
    seed: Optional[bool] = None
) -> FastAPI:
    """
    Build an application with its own database engine and Redis clients.

    Args:
        database_url: SQLAlchemy URL, defaults to DATABASE_URL
        redis_client: Sync client used to publish notifications
        async_redis_client: Async client used by the WebSocket relay
        seed: Seed demo data on startup, defaults to SEED_DEMO_DATA

    Returns:
        Configured FastAPI application
    """
    engine, session_factory = create_session_factory(database_url or DATABASE_URL)
    seed_demo_data = SEED_DEMO_DATA if seed is None else seed

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """
        Application lifespan manager.

        Handles startup and shutdown events.
        """
        # Startup
        logger.info("Starting application...")

        init_db(engine, session_factory, seed=seed_demo_data)

        sync_client = redis_client if redis_client is not None else redis.from_url(
            REDIS_URL, decode_responses=True
        )
        async_client = async_redis_client if async_redis_client is not None else aioredis.from_url(
            REDIS_URL, decode_responses=True
        )
        if OTEL_ENABLED:
            RedisInstrumentor().instrument()
        app.state.redis_client = sync_client
        app.state.async_redis_client = async_client
        logger.info("Redis clients initialized (sync + async)")

        logger.info("Application startup complete")

        yield

        # Shutdown
        logger.info("Shutting down application...")
        if async_redis_client is None:
            await async_client.aclose()
        if redis_client is None:
            sync_client.close()
        engine.dispose()
        logger.info("Application shutdown complete")

    app = FastAPI(
        title="EdgeUp Marketplace API",
        version=API_VERSION,
        lifespan=lifespan
    )
    app.state.engine = engine
    app.state.session_factory = session_factory

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)

    # Instrument FastAPI and SQLAlchemy
    if OTEL_ENABLED:
        FastAPIInstrumentor.instrument_app(app)
        SQLAlchemyInstrumentor().instrument(engine=engine)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy"}

    # Include routers
    app.include_router(auth_router.router)
    app.include_router(users.router)
    app.include_router(products.router)
    app.include_router(negotiations.router)
    app.include_router(orders.router)
    app.include_router(notifications.router)
    app.include_router(conversations.router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
