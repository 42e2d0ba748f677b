import logging
from typing import Any, Callable, Coroutine

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.responses import Response

from tablekeeper.core.exceptions import BookingError

logger = logging.getLogger(__name__)

ExceptionHandler = Callable[[Request, Exception], Coroutine[Any, Any, Response]]


async def booking_error_handler(request: Request, exc: Exception) -> JSONResponse:
    error = exc if isinstance(exc, BookingError) else BookingError(str(exc))
    if error.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, error.message)
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


async def general_500_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "Internal server error", "retryable": False, "details": {}},
    )


EXCEPTION_HANDLERS: dict[type[Exception], ExceptionHandler] = {
    BookingError: booking_error_handler,
    Exception: general_500_exception_handler,
}


def register_exception_handlers(app: FastAPI) -> None:
    for exception_class, handler in EXCEPTION_HANDLERS.items():
        app.add_exception_handler(exception_class, handler)
