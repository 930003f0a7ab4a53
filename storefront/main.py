"""Main application entry point."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
import redis
import httpx
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

from storefront.config import (
    API_VERSION,
    CART_BACKEND,
    HTTP_TIMEOUT_SECONDS,
    OTEL_ENABLED,
    PYROSCOPE_ENABLED,
    REDIS_URL,
)
from storefront.database import init_db, engine
from storefront.dependencies import build_services
from storefront.monitoring import init_profiling
from storefront.logging_config import setup_logging
from storefront.routers import admin, cart, orders, products, reviews

# Setup structured logging
setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    logger.info("Starting application...")

    # Initialize database
    init_db()

    # Redis only backs carts when configured to
    redis_client = None
    if CART_BACKEND == "redis":
        redis_client = redis.from_url(REDIS_URL, decode_responses=True)
        if OTEL_ENABLED:
            RedisInstrumentor().instrument(redis_client=redis_client)
        logger.info("Redis cart store initialized")
    app.state.redis_client = redis_client

    # Initialize HTTP client
    http_client = httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS)
    if OTEL_ENABLED:
        HTTPXClientInstrumentor().instrument_client(http_client)
    app.state.http_client = http_client
    logger.info("HTTP client initialized")

    app.state.services = build_services(http_client=http_client, redis_client=redis_client)

    # Initialize profiling
    if PYROSCOPE_ENABLED:
        init_profiling()

    logger.info("Application startup complete", extra={"cart_backend": CART_BACKEND})

    yield

    # Shutdown
    logger.info("Shutting down application...")
    await app.state.services.notifications.webhook.drain()
    await http_client.aclose()
    if redis_client is not None:
        redis_client.close()
    logger.info("Application shutdown complete")


# Create FastAPI app
app = FastAPI(
    title="Storefront Service",
    version=API_VERSION,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Instrument FastAPI and SQLAlchemy
if OTEL_ENABLED:
    FastAPIInstrumentor.instrument_app(app)
    SQLAlchemyInstrumentor().instrument(engine=engine)


# Health check endpoint
@app.get("/health")
async def health():
    """Health check endpoint."""
    return {"status": "healthy"}


# Include routers
app.include_router(products.router)
app.include_router(reviews.router)
app.include_router(cart.router)
app.include_router(orders.router)
app.include_router(admin.router)


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
