"""
Factory functions that build and raise CourseFeedbackError.

Every factory has the return type ``NoReturn`` so type checkers understand
that control does not continue past the call.
"""

from __future__ import annotations

from typing import Any, NoReturn
from uuid import UUID

from common_core.error_enums import ErrorCode, FeedbackErrorCode

from .coursefeedback_error import CourseFeedbackError
from .error_detail_factory import create_error_detail_with_context

# =============================================================================
# Generic Error Factories
# =============================================================================


def raise_unknown_error(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    """Raise for failures that match no more specific error code."""
    error_detail = create_error_detail_with_context(
        error_code=ErrorCode.UNKNOWN_ERROR,
        message=message,
        service=service,
        operation=operation,
        correlation_id=correlation_id,
        details=additional_context,
    )
    raise CourseFeedbackError(error_detail)


def raise_validation_error(
    service: str,
    operation: str,
    field: str,
    message: str,
    correlation_id: UUID | None = None,
    value: Any = None,
    **additional_context: Any,
) -> NoReturn:
    """Raise when an input or entity fails validation."""
    details: dict[str, Any] = {"field": field}
    if value is not None:
        details["value"] = value
    details.update(additional_context)

    error_detail = create_error_detail_with_context(
        error_code=ErrorCode.VALIDATION_ERROR,
        message=message,
        service=service,
        operation=operation,
        correlation_id=correlation_id,
        details=details,
    )
    raise CourseFeedbackError(error_detail)


def raise_resource_not_found(
    service: str,
    operation: str,
    resource_type: str,
    resource_id: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    """Raise when a referenced entity does not exist."""
    error_detail = create_error_detail_with_context(
        error_code=ErrorCode.RESOURCE_NOT_FOUND,
        message=f"{resource_type} with ID '{resource_id}' not found",
        service=service,
        operation=operation,
        correlation_id=correlation_id,
        details={"resource_type": resource_type, "resource_id": resource_id, **additional_context},
    )
    raise CourseFeedbackError(error_detail)


def raise_processing_error(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    """Raise for internal processing failures."""
    error_detail = create_error_detail_with_context(
        error_code=ErrorCode.PROCESSING_ERROR,
        message=message,
        service=service,
        operation=operation,
        correlation_id=correlation_id,
        details=additional_context,
    )
    raise CourseFeedbackError(error_detail)


# =============================================================================
# Feedback-Specific Error Factories
# =============================================================================


def raise_response_not_found(
    service: str,
    operation: str,
    response_id: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    """Raise when a feedback response to update no longer exists."""
    error_detail = create_error_detail_with_context(
        error_code=FeedbackErrorCode.RESPONSE_NOT_FOUND,
        message=f"Feedback response not found: {response_id}",
        service=service,
        operation=operation,
        correlation_id=correlation_id,
        details={"response_id": response_id, **additional_context},
    )
    raise CourseFeedbackError(error_detail)


def raise_invalid_response_details(
    service: str,
    operation: str,
    message: str,
    correlation_id: UUID | None = None,
    **additional_context: Any,
) -> NoReturn:
    """Raise when an answer payload does not fit its question."""
    error_detail = create_error_detail_with_context(
        error_code=FeedbackErrorCode.INVALID_RESPONSE_DETAILS,
        message=message,
        service=service,
        operation=operation,
        correlation_id=correlation_id,
        details=additional_context,
    )
    raise CourseFeedbackError(error_detail)
