"""
common_core.error_enums - Centralized error code definitions.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    MISSING_REQUIRED_FIELD = "MISSING_REQUIRED_FIELD"
    INVALID_CONFIGURATION = "INVALID_CONFIGURATION"
    PROCESSING_ERROR = "PROCESSING_ERROR"  # Internal processing failures


class FeedbackErrorCode(str, Enum):
    """
    Specific error codes for the Feedback Service.
    """

    COURSE_NOT_FOUND = "COURSE_NOT_FOUND"
    STUDENT_NOT_FOUND = "STUDENT_NOT_FOUND"
    INSTRUCTOR_NOT_FOUND = "INSTRUCTOR_NOT_FOUND"
    QUESTION_NOT_FOUND = "QUESTION_NOT_FOUND"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    RESPONSE_NOT_FOUND = "RESPONSE_NOT_FOUND"
    INVALID_RESPONSE_DETAILS = "INVALID_RESPONSE_DETAILS"
    RANK_CONSISTENCY_ERROR = "RANK_CONSISTENCY_ERROR"
