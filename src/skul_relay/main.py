# src/skul_relay/main.py
"""Main entry point for the Skul Relay application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from skul_relay import __version__
from skul_relay.api.cors import LenientPreflightCORSMiddleware
from skul_relay.api.v1 import messages_router, moderation_router
from skul_relay.core.logging import configure_logging
from skul_relay.core.settings import settings
from skul_relay.services.errors import MessagingError

configure_logging(settings.log_level)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Message moderation and delivery for tutor/student conversations",
    version=__version__,
)

# Add CORS middleware
app.add_middleware(
    LenientPreflightCORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_origin_regex=settings.cors_origin_regex,
    allow_credentials=True,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
    max_age=settings.cors_max_age,
)


@app.exception_handler(MessagingError)
async def messaging_error_handler(request: Request, exc: MessagingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    reason = errors[0].get("msg") if errors else None
    content = {"error": "Invalid input"}
    if reason:
        content["reason"] = str(reason)
    return JSONResponse(status_code=400, content=content)


# Include API routers
app.include_router(messages_router, prefix="/api/v1")
app.include_router(moderation_router, prefix="/api/v1")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": settings.app_name,
        "version": __version__,
        "description": "Message moderation and delivery for tutor/student conversations",
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("skul_relay.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
