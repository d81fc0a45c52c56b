from typing import cast

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from lyceum.core.config import settings
from lyceum.core.errors import ConfigurationError, LyceumError
from lyceum.schemas.common import APIResponse


def lyceum_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(LyceumError, exc)
    if isinstance(exc, ConfigurationError):
        logger.error(f"Configuration error: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=APIResponse(
            status="error", message=exc.message, data={"kind": exc.kind, "action": exc.action}
        ).model_dump(),
    )


def value_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=APIResponse(status="error", message=str(exc)).model_dump(),
    )


def http_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(HTTPException, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content=APIResponse(status="error", message=exc.detail).model_dump(),
        headers=exc.headers,
    )


def validation_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    exc = cast(RequestValidationError, exc)
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=APIResponse(
            status="error",
            message="Validation error",
            data=[
                {"loc": err["loc"], "msg": err["msg"], "type": err["type"]} for err in exc.errors()
            ],
        ).model_dump(),
    )


def general_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error("Unhandled error")
    message = str(exc) if settings.is_dev else "Internal server error"
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=APIResponse(status="error", message=message).model_dump(),
    )
