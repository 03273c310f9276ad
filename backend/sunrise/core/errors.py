# backend/sunrise/core/errors.py

from __future__ import annotations

from enum import Enum
import logging
from typing import Any, Optional

from sunrise.core.request_context import get_request_id

logger = logging.getLogger("sunrise")


class InvitationFailureReason(str, Enum):
    """Why an invitation lookup did not yield a usable invitation."""

    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    INVALID_TOKEN = "invalid_token"


class PersistenceError(RuntimeError):
    """
    The underlying record store is unreachable or rejected an operation.

    This is the only error class that escapes the invitation core; business
    outcomes (not found / expired / mismatch) are returned as values.
    """

    def __init__(self, operation: str, message: Optional[str] = None):
        self.operation = operation
        super().__init__(message or f"Record store failure during {operation}")


class RequestIdFilter(logging.Filter):
    """
    Injects request_id into every LogRecord as `record.request_id`.
    Safe in non-request contexts (falls back to "-").
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def install_request_id_logging(
    logger_name: str = "sunrise",
    *,
    include_root: bool = True,
) -> None:
    """
    Attach RequestIdFilter so logs can include %(request_id)s in the formatter.
    Call once during startup, right after logging.basicConfig().
    """
    filt = RequestIdFilter()

    if include_root:
        logging.getLogger().addFilter(filt)

    logging.getLogger(logger_name).addFilter(filt)


def log_exception_with_context(
    message: str,
    *,
    request_id: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """
    Log an exception with stack trace and request context.

    Use this inside exception handlers so the root cause stays visible:

        try:
            ...
        except SQLAlchemyError:
            log_exception_with_context(
                "Invitation delete failed",
                extra={"identifier": identifier},
            )
            raise
    """
    payload: dict[str, Any] = {"request_id": request_id or get_request_id()}
    if extra:
        payload.update(extra)

    logger.exception(message, extra={"context": payload})
