"""
Error taxonomy for the contest backend and its FastAPI exception handlers.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class ContestError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        reason: Optional[str] = None,
        details: Any = None,
    ):
        self.message = message or self.default_message
        self.reason = reason
        self.details = details
        super().__init__(self.message)

    def as_dict(self) -> dict:
        body: dict = {"error": self.message}
        if self.reason:
            body["reason"] = self.reason
        if self.details is not None:
            body["details"] = self.details
        return body


class ValidationError(ContestError):
    status_code = 400
    default_message = "Validation failed"


class InvalidCategory(ValidationError):
    default_message = "Invalid category"


class UnsupportedFileType(ValidationError):
    default_message = "Invalid file type. Only PDF, PPT, PPTX allowed."


class FileTooLarge(ValidationError):
    default_message = "File is too large"


class PaymentNotCompleted(ContestError):
    status_code = 400
    default_message = "Payment not completed"

    def __init__(self, payment_status: str, **kwargs):
        self.payment_status = payment_status
        kwargs.setdefault("details", {"paymentStatus": payment_status})
        super().__init__(**kwargs)


class GatewaySignatureInvalid(ContestError):
    status_code = 400
    default_message = "Webhook signature verification failed"


class Forbidden(ContestError):
    status_code = 403
    default_message = "Not authorized to modify this entry"


class NotFound(ContestError):
    status_code = 404
    default_message = "Not found"


class DuplicateSubmission(ContestError):
    status_code = 409
    default_message = "Payment intent already used for another entry"


class DependencyUnavailable(ContestError):
    status_code = 503
    default_message = "Service temporarily unavailable"


class InternalError(ContestError):
    status_code = 500


def register_exception_handlers(app: FastAPI, *, expose_traceback: bool) -> None:
    """Render the taxonomy as JSON bodies with matching status codes."""

    @app.exception_handler(ContestError)
    async def _contest_error(request: Request, exc: ContestError):
        if exc.status_code >= 500:
            logger.error(
                "%s %s failed: %s", request.method, request.url.path, exc.message
            )
        else:
            logger.info(
                "%s %s rejected (%s): %s",
                request.method,
                request.url.path,
                exc.status_code,
                exc.message,
            )
        return JSONResponse(status_code=exc.status_code, content=exc.as_dict())

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request: Request, exc: RequestValidationError):
        details = [
            {
                "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
                "message": err.get("msg"),
            }
            for err in exc.errors()
        ]
        error = ValidationError("Missing or invalid fields", details=details)
        return JSONResponse(status_code=400, content=error.as_dict())

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = InternalError().as_dict()
        if expose_traceback:
            body["message"] = str(exc)
            body["stack"] = "".join(
                traceback.format_exception(type(exc), exc, exc.__traceback__)
            )
        return JSONResponse(status_code=500, content=body)
