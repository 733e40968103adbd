"""Exception handlers mapping domain errors onto JSON responses."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .core.exceptions import DomainException

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(
                f"Unhandled domain error on {request.method} {request.url.path}: {exc.code}",
                extra={"code": exc.code, "details": exc.details},
            )
        http_exc = exc.to_http_exception()
        return JSONResponse(status_code=http_exc.status_code, content={"detail": http_exc.detail})
