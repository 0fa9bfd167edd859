"""
CourseFeedback Service Libraries Package.

This package contains shared utilities used across CourseFeedback services:
structured logging, structured error handling and settings helpers.
"""

from .logging_utils import configure_service_logging, create_service_logger

__all__ = [
    "configure_service_logging",
    "create_service_logger",
]
