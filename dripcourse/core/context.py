"""Request and job context tracking using contextvars.

Every HTTP request and every unlock pass gets an id that is merged into all
log events emitted while it runs. The enrollment id is bound as soon as a
request resolves one, so webhook and portal logs can be joined per customer.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
enrollment_id_var: ContextVar[str | None] = ContextVar("enrollment_id", default=None)
job_var: ContextVar[str | None] = ContextVar("job", default=None)


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    """Get the current request ID."""
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context.

    Args:
        request_id: Optional request ID. If not provided, generates a new one.

    Returns:
        The request ID that was set.
    """
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def get_trace_id() -> str | None:
    """Get the current trace ID."""
    return trace_id_var.get()


def set_trace_id(trace_id: str | None) -> None:
    """Set the trace ID from distributed tracing headers."""
    trace_id_var.set(trace_id)


def get_enrollment_id() -> str | None:
    """Get the enrollment ID bound to the current context."""
    return enrollment_id_var.get()


def set_enrollment_id(enrollment_id: str | UUID | None) -> None:
    """Bind an enrollment ID to the current context."""
    enrollment_id_var.set(str(enrollment_id) if enrollment_id is not None else None)


def get_context() -> dict[str, Any]:
    """Get all non-empty context variables as a dictionary."""
    context: dict[str, Any] = {}

    request_id = get_request_id()
    if request_id:
        context["request_id"] = request_id

    trace_id = get_trace_id()
    if trace_id:
        context["trace_id"] = trace_id

    enrollment_id = get_enrollment_id()
    if enrollment_id:
        context["enrollment_id"] = enrollment_id

    job = job_var.get()
    if job:
        context["job"] = job

    return context


def clear_context() -> None:
    """Clear all context variables.

    Called at the end of each request to prevent leakage between requests.
    """
    request_id_var.set("")
    trace_id_var.set(None)
    enrollment_id_var.set(None)
    job_var.set(None)


class JobContext:
    """Context manager scoping log context to one background job run.

    Usage:
        with JobContext("unlock_tick"):
            await scheduler.tick(now)  # logs carry job and request_id
    """

    def __init__(self, job: str, run_id: str | None = None) -> None:
        self.job = job
        self.run_id = run_id
        self._tokens: list[tuple[ContextVar, Any]] = []

    def __enter__(self) -> "JobContext":
        """Enter context and set variables."""
        self._tokens.append(
            (request_id_var, request_id_var.set(self.run_id or generate_request_id()))
        )
        self._tokens.append((job_var, job_var.set(self.job)))
        return self

    def __exit__(self, *_: object) -> None:
        """Exit context and restore previous values."""
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()
