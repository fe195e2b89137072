"""
Domain error taxonomy.

Each error carries the HTTP status it maps to and a stable machine code.
The handlers registered in `register_exception_handlers` turn them into
`{"detail": ..., "code": ...}` responses; services never build HTTP
responses themselves.
"""

from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from enrollment.core.logging import get_logger

logger = get_logger(__name__)


class EnrollmentError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "enrollment_error"

    def __init__(self, detail: str, extra: Optional[dict[str, Any]] = None):
        super().__init__(detail)
        self.detail = detail
        self.extra = extra or {}


class SlotUnavailable(EnrollmentError):
    """One or more requested slots already have a blocking reservation."""

    status_code = status.HTTP_409_CONFLICT
    code = "slot_unavailable"

    def __init__(self, slot_ids: list[int], detail: Optional[str] = None):
        super().__init__(
            detail or f"Slots not available: {sorted(slot_ids)}",
            {"slot_ids": sorted(slot_ids)},
        )
        self.slot_ids = sorted(slot_ids)


class ValidationError(EnrollmentError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "validation_error"


class NotFound(EnrollmentError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class Conflict(EnrollmentError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class UpstreamProcessorError(EnrollmentError):
    """The payment processor call failed or returned an unusable response."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "upstream_processor_error"


class StorageError(EnrollmentError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "storage_error"


class ReconciliationMiss(EnrollmentError):
    """
    A payment notification referenced no resolvable reservation.
    Logged for operator follow-up, never returned to the processor.
    """

    code = "reconciliation_miss"


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(EnrollmentError)
    async def enrollment_error_handler(request: Request, exc: EnrollmentError) -> JSONResponse:
        log = logger.warning if exc.status_code < 500 else logger.error
        log(
            "request_rejected",
            code=exc.code,
            status_code=exc.status_code,
            detail=exc.detail,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "code": exc.code, **exc.extra},
        )
