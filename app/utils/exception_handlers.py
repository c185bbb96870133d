from typing import cast

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.exceptions import GameError
from app.schemas.common import APIResponse


def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    exc = cast(HTTPException, exc)
    data = None
    if isinstance(exc, GameError):
        # rejected operations are expected; the error name lets clients branch on it
        logger.debug(f"{request.method} {request.url.path} rejected: {exc!r}")
        data = {"error": type(exc).__name__}
    return JSONResponse(
        status_code=exc.status_code,
        content=APIResponse(status="error", message=exc.detail, data=data).model_dump(),
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


def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.opt(exception=exc).error(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=APIResponse(status="error", message=str(exc)).model_dump(),
    )
