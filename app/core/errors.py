# File: app/core/errors.py
# Project: smart-city-tracker-backend
"""Typed application errors.

Services raise these; ``app.main`` renders them as
``{"detail": message, "kind": kind}`` so clients can branch on ``kind``.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AppError(Exception):
    kind = "error"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message or self.kind


class ValidationError(AppError):
    kind = "validation_error"
    status_code = status.HTTP_400_BAD_REQUEST


class Unauthenticated(AppError):
    kind = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED


class Forbidden(AppError):
    kind = "forbidden"
    status_code = status.HTTP_403_FORBIDDEN


class NotFound(AppError):
    kind = "not_found"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(AppError):
    kind = "conflict"
    status_code = status.HTTP_409_CONFLICT


class ProviderError(AppError):
    kind = "provider_error"
    status_code = status.HTTP_502_BAD_GATEWAY


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthenticated) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "kind": exc.kind},
        headers=headers,
    )
