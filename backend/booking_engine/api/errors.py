"""
Translation of domain errors into HTTP responses.

Body shape: {"code": "<ERROR_CODE>", "detail": "<user-safe message>"}
"""

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from booking_engine.core.errors import DomainError, ErrorCode
from booking_engine.core.logging import get_logger

logger = get_logger(__name__)

STATUS_BY_CODE = {
    ErrorCode.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorCode.ILLEGAL_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.CONCURRENT_MODIFICATION: status.HTTP_409_CONFLICT,
    ErrorCode.NOT_DIRECT_PAYMENT: status.HTTP_409_CONFLICT,
    ErrorCode.ALREADY_PAID: status.HTTP_409_CONFLICT,
    ErrorCode.STALE_INTENT_TOKEN: status.HTTP_409_CONFLICT,
    ErrorCode.PAYMENT_NOT_ALLOWED: status.HTTP_409_CONFLICT,
    ErrorCode.GATEWAY_ERROR: status.HTTP_502_BAD_GATEWAY,
    ErrorCode.BOOKING_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.TOUR_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.PERMISSION_DENIED: status.HTTP_403_FORBIDDEN,
    ErrorCode.INVALID_HEADCOUNT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_START_DATE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_TRANSPORT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_CONTACT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.REASON_REQUIRED: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    logger.info("domain_error", code=exc.code.value, status_code=status_code, detail=exc.message)

    headers = None
    if exc.code in (ErrorCode.CONCURRENT_MODIFICATION, ErrorCode.GATEWAY_ERROR):
        headers = {"Retry-After": "1"}

    return JSONResponse(
        status_code=status_code,
        content={"code": exc.code.value, "detail": exc.message},
        headers=headers,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
