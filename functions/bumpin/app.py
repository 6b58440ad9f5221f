"""
FastAPI application entry point for the BumpIn backend.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bumpin.config import get_settings
from bumpin.errors import BumpInError, UsernameValidationError
from bumpin.routes import router

logger = logging.getLogger(__name__)


async def handle_bumpin_error(request: Request, exc: BumpInError) -> JSONResponse:
    body = {"error": exc.code, "detail": exc.detail}
    if isinstance(exc, UsernameValidationError):
        body["kind"] = exc.kind.value
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=exc.status_code, content=body)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title="BumpIn Backend", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    app.add_exception_handler(BumpInError, handle_bumpin_error)
    return app


app = create_app()
