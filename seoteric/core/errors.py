"""Error normalization and handlers."""

import logging
from typing import Any, Dict, Optional
from uuid import uuid4

from fastapi import HTTPException
from fastapi.responses import JSONResponse
from starlette.requests import Request

from seoteric.core.logging import get_request_id


LIMIT_EXCEEDED_CODE = "LIMIT_EXCEEDED"


class AppError(Exception):
    code = "app_error"
    status_code = 500

    def __init__(self, message: str, *, code: Optional[str] = None, status_code: Optional[int] = None, request_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code
        self.request_id = request_id

    def details(self) -> Dict[str, Any]:
        """Extra fields merged into the error envelope."""
        return {}


class ValidationError(AppError, ValueError):
    code = "validation_error"
    status_code = 400


class NotFoundError(AppError, ValueError):
    code = "not_found"
    status_code = 404


class BillingUnavailableError(AppError):
    code = "billing_unavailable"
    status_code = 503


class LimitExceededError(AppError):
    """A metered action would exceed the plan quota.

    Expected and user-facing: the payload carries everything the UI needs to
    render an upgrade prompt without a second round-trip.
    """
    code = LIMIT_EXCEEDED_CODE
    status_code = 403

    def __init__(
        self,
        message: str,
        *,
        feature: str,
        plan: str,
        limit: int,
        used: int,
        cycle_start_ms: Optional[int] = None,
        cycle_end_ms: Optional[int] = None,
        cta: str = "upgrade",
    ):
        super().__init__(message)
        self.feature = feature
        self.plan = plan
        self.limit = limit
        self.used = used
        self.cycle_start_ms = cycle_start_ms
        self.cycle_end_ms = cycle_end_ms
        self.cta = cta

    def to_payload(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "feature": self.feature,
            "plan": self.plan,
            "limit": self.limit,
            "used": self.used,
            "cycleStartMs": self.cycle_start_ms,
            "cycleEndMs": self.cycle_end_ms,
            "cta": self.cta,
            "message": self.message,
        }

    def details(self) -> Dict[str, Any]:
        return self.to_payload()


def _extract_request_id(request: Request, fallback: Optional[str] = None) -> str:
    return (
        getattr(request.state, "request_id", None)
        or get_request_id()
        or fallback
        or str(uuid4())
    )


def _error_payload(code: str, message: str, request_id: str, details: Optional[Dict[str, Any]] = None) -> dict:
    error = {"code": code, "message": message, "request_id": request_id}
    if details:
        error.update(details)
    return {
        "error": error,
        "detail": message,
    }


async def app_error_handler(request: Request, exc: AppError):
    rid = exc.request_id or _extract_request_id(request)
    payload = _error_payload(exc.code, exc.message, rid, exc.details())
    logger = logging.getLogger("seoteric")
    log_level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
    logger.log(
        log_level,
        "app.error",
        extra={"request_id": rid, "error_code": exc.code, "error_message": exc.message, "status": exc.status_code},
    )
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def http_error_handler(request: Request, exc: HTTPException):
    rid = _extract_request_id(request)
    code = "not_found" if exc.status_code == 404 else "http_error"
    message = exc.detail if exc.detail else "HTTP error"
    payload = _error_payload(code, message, rid)
    logger = logging.getLogger("seoteric")
    logger.warning("http.error", extra={"request_id": rid, "error_code": code, "status": exc.status_code})
    response = JSONResponse(status_code=exc.status_code, content=payload)
    response.headers["x-request-id"] = rid
    return response


async def unhandled_exception_handler(request: Request, exc: Exception):
    rid = _extract_request_id(request)
    logger = logging.getLogger("seoteric")
    logger.error("unhandled.exception", exc_info=True, extra={"request_id": rid, "error_code": "internal_error"})
    payload = _error_payload("internal_error", "Unexpected error", rid)
    response = JSONResponse(status_code=500, content=payload)
    response.headers["x-request-id"] = rid
    return response
