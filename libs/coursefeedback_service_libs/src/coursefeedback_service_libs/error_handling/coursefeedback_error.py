"""Core exception type carrying a structured ErrorDetail."""

from __future__ import annotations

from typing import Any

from common_core.models.error_models import ErrorDetail
from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode


class CourseFeedbackError(Exception):
    """
    Exception wrapping an immutable ErrorDetail.

    On construction the error is recorded on the current OpenTelemetry span,
    if one is recording, so failures show up in traces without extra calls
    at the raise site.
    """

    def __init__(self, error_detail: ErrorDetail) -> None:
        super().__init__(f"[{error_detail.error_code.value}] {error_detail.message}")
        self.error_detail = error_detail
        self._record_to_span()

    @property
    def correlation_id(self) -> str:
        return str(self.error_detail.correlation_id)

    @property
    def error_code(self) -> str:
        return self.error_detail.error_code.value

    @property
    def service(self) -> str:
        return self.error_detail.service

    @property
    def operation(self) -> str:
        return self.error_detail.operation

    def _record_to_span(self) -> None:
        span = trace.get_current_span()
        if span is None or not span.is_recording():
            return

        span.record_exception(self)
        span.set_status(Status(StatusCode.ERROR, self.error_detail.message))
        span.set_attribute("error", True)
        span.set_attribute("error.code", self.error_code)
        span.set_attribute("error.message", self.error_detail.message)
        span.set_attribute("error.service", self.service)
        span.set_attribute("error.operation", self.operation)
        span.set_attribute("correlation_id", self.correlation_id)

        for key, value in self.error_detail.details.items():
            if isinstance(value, (str, bool, int, float)):
                span.set_attribute(f"error.details.{key}", value)
            else:
                span.set_attribute(f"error.details.{key}", str(value))

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API responses and structured logs."""
        return {
            "error": str(self),
            "error_detail": self.error_detail.model_dump(mode="json"),
        }

    def add_detail(self, key: str, value: Any) -> CourseFeedbackError:
        """Return a new error with one more detail entry; the original is unchanged."""
        new_details = {**self.error_detail.details, key: value}
        return CourseFeedbackError(self.error_detail.model_copy(update={"details": new_details}))

    def __repr__(self) -> str:
        return (
            f"CourseFeedbackError(error_code={self.error_code!r}, "
            f"message={self.error_detail.message!r}, "
            f"correlation_id={self.correlation_id!r})"
        )
