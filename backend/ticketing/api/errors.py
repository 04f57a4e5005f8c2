"""
Maps booking errors to HTTP responses.

Body shape: {"detail": <message>, "code": <ErrorCode>, ...extra fields}.
Transient outcomes (conflict, timeout) carry a Retry-After header.
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from ticketing.core.exceptions import BookingError, ErrorCode
from ticketing.core.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_CODE = {
    ErrorCode.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INSUFFICIENT_CAPACITY: status.HTTP_400_BAD_REQUEST,
    ErrorCode.EVENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.BOOKING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorCode.TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
}

RETRY_AFTER_SECONDS = {
    ErrorCode.CONFLICT: 1,
    ErrorCode.TIMEOUT: 2,
}


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    headers = {}
    if exc.code in RETRY_AFTER_SECONDS:
        headers["Retry-After"] = str(RETRY_AFTER_SECONDS[exc.code])

    logger.info("booking_error_response", code=exc.code.value, status_code=status_code)
    return JSONResponse(
        status_code=status_code,
        content={"detail": exc.message, "code": exc.code.value, **exc.details()},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BookingError, booking_error_handler)
