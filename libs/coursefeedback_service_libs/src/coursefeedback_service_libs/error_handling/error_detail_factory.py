"""Factory for ErrorDetail instances with automatic context capture."""

from __future__ import annotations

import traceback
import uuid
from datetime import datetime, timezone
from typing import Any, Union
from uuid import UUID

from common_core.error_enums import ErrorCode, FeedbackErrorCode
from common_core.models.error_models import ErrorDetail
from opentelemetry import trace

_NO_EXCEPTION_MARKER = "NoneType: None"


def create_error_detail_with_context(
    error_code: Union[ErrorCode, FeedbackErrorCode],
    message: str,
    service: str,
    operation: str,
    correlation_id: UUID | None = None,
    details: dict[str, Any] | None = None,
    capture_stack: bool = True,
) -> ErrorDetail:
    """
    Build an ErrorDetail, filling in timestamp, correlation id, stack trace
    and the active trace/span ids.

    Args:
        error_code: Error code from ErrorCode or a service-specific enum
        message: Human-readable error message
        service: Name of the service raising the error
        operation: Operation that failed
        correlation_id: Request correlation id; generated when omitted
        details: Additional structured context
        capture_stack: Attach the current exception traceback, or the
            current call stack when no exception is being handled
    """
    stack_trace: str | None = None
    if capture_stack:
        formatted = traceback.format_exc()
        if formatted.strip() and not formatted.startswith(_NO_EXCEPTION_MARKER):
            stack_trace = formatted
        else:
            stack_trace = "".join(traceback.format_stack()[:-1])

    trace_id: str | None = None
    span_id: str | None = None
    span = trace.get_current_span()
    if span is not None and span.is_recording():
        span_context = span.get_span_context()
        if span_context.is_valid:
            trace_id = format(span_context.trace_id, "032x")
            span_id = format(span_context.span_id, "016x")

    return ErrorDetail(
        error_code=error_code,
        message=message,
        correlation_id=correlation_id or uuid.uuid4(),
        timestamp=datetime.now(timezone.utc),
        service=service,
        operation=operation,
        details=details or {},
        stack_trace=stack_trace,
        trace_id=trace_id,
        span_id=span_id,
    )
