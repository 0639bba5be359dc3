"""
FastAPI application for Branchwork.
"""

from __future__ import annotations

import importlib.metadata
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .ai import build_generator
from .ai.types import AIProviderError, ProviderUnavailableError
from .config import get_settings
from .db.base import init_database
from .errors import NotFoundError
from .routes import router

# Initialize structured logging
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("Starting Branchwork")

    try:
        init_database()
        logger.info("Database initialized")

        app.state.generator = build_generator()
        if app.state.generator is None:
            logger.warning("No AI provider configured; summarization disabled")
        else:
            logger.info("AI provider selected", provider=app.state.generator.name)
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    yield

    logger.info("Shutting down Branchwork")


app = FastAPI(
    title=get_settings().app_name,
    description="Conversation context and rolling summaries for branching project chats",
    version=importlib.metadata.version("branchwork"),
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content=exc.to_dict())


@app.exception_handler(AIProviderError)
async def ai_provider_error_handler(request: Request, exc: AIProviderError) -> JSONResponse:
    status_code = 503 if isinstance(exc, ProviderUnavailableError) else 502
    logger.error("ai_provider_error", path=request.url.path, code=exc.code, error=str(exc))
    return JSONResponse(status_code=status_code, content=exc.to_dict())


app.include_router(router)


# Health and Info Endpoints
@app.get("/healthz")
def healthz() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok"}


@app.get("/version")
def version() -> dict[str, str]:
    """Return the version of the application."""
    return {"version": importlib.metadata.version("branchwork")}
