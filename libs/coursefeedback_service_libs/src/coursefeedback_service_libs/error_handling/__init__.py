"""Structured error handling for CourseFeedback services."""

from .coursefeedback_error import CourseFeedbackError
from .error_detail_factory import create_error_detail_with_context
from .factories import (
    raise_invalid_response_details,
    raise_processing_error,
    raise_resource_not_found,
    raise_response_not_found,
    raise_unknown_error,
    raise_validation_error,
)

__all__ = [
    "CourseFeedbackError",
    "create_error_detail_with_context",
    "raise_invalid_response_details",
    "raise_processing_error",
    "raise_resource_not_found",
    "raise_response_not_found",
    "raise_unknown_error",
    "raise_validation_error",
]
