"""
evdms_rules.api.errors

Maps domain errors to HTTP responses.

Responsibilities:
- One status table for every `DomainError` subclass.
- Render `{"error", "detail", ...context}` bodies.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_401_UNAUTHORIZED,
    HTTP_403_FORBIDDEN,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
    HTTP_422_UNPROCESSABLE_ENTITY,
)

from evdms_rules.errors import (
    DebtLimitExceeded,
    DomainError,
    Expired,
    Forbidden,
    InvalidAmount,
    InvalidTransition,
    NotFound,
    Unauthenticated,
)
from evdms_rules.observability.logging import get_logger

log = get_logger(__name__)

STATUS_BY_ERROR: dict[type[DomainError], int] = {
    Unauthenticated: HTTP_401_UNAUTHORIZED,
    Forbidden: HTTP_403_FORBIDDEN,
    NotFound: HTTP_404_NOT_FOUND,
    InvalidTransition: HTTP_409_CONFLICT,
    Expired: HTTP_409_CONFLICT,
    DebtLimitExceeded: HTTP_422_UNPROCESSABLE_ENTITY,
    InvalidAmount: HTTP_422_UNPROCESSABLE_ENTITY,
}


def status_for(exc: DomainError) -> int:
    for cls in type(exc).__mro__:
        if cls in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[cls]
    return HTTP_400_BAD_REQUEST


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status = status_for(exc)
    log.info("domain_error", error=exc.code, status=status, detail=exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if status == HTTP_401_UNAUTHORIZED else None
    return JSONResponse(status_code=status, content=exc.to_dict(), headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)  # type: ignore[arg-type]
