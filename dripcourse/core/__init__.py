# Core infrastructure
from dripcourse.core.context import (
    JobContext,
    clear_context,
    get_context,
    get_request_id,
    set_enrollment_id,
    set_request_id,
)
from dripcourse.core.logging import configure_structlog, get_logger


__all__ = [
    "JobContext",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "set_enrollment_id",
    "set_request_id",
]
