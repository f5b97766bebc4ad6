"""visitrelay Telemetry Server - FastAPI application."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from visitrelay.telemetry.client import Client
from visitrelay.telemetry.errors import MalformedInputError
from visitrelay.telemetry_server.config import settings
from visitrelay.telemetry_server.routes import router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage server lifecycle."""
    client = Client(
        api_key=settings.posthog_api_key,
        host=settings.posthog_host,
        flush_at=settings.flush_at,
        flush_interval=settings.flush_interval,
        max_queue_size=settings.max_queue_size,
    )
    client.start()
    app.state.sink = client
    logger.info("Analytics sink started (%s)", settings.posthog_host)

    yield

    logger.info("Shutting down gracefully, flushing analytics sink")
    await client.shutdown(timeout=settings.shutdown_timeout)
    logger.info("Server shutdown complete")


app = FastAPI(
    title="visitrelay Telemetry Server",
    description="Cookie-based relay enriching page views and events for an analytics backend",
    version="0.1.0",
    debug=settings.debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router)


@app.exception_handler(MalformedInputError)
async def malformed_input_handler(request: Request, exc: MalformedInputError) -> JSONResponse:
    """Reject requests carrying an unparsable URL or referrer."""
    logger.info("Rejected %s: %s", request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}
