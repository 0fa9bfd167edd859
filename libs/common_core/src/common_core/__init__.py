"""
CourseFeedback Common Core Package.
"""

from .config_enums import Environment
from .domain_enums import FeedbackParticipantType, FeedbackQuestionType, ParticipantKind
from .error_enums import ErrorCode, FeedbackErrorCode
from .models.error_models import ErrorDetail

__all__ = [
    "Environment",
    "ErrorCode",
    "ErrorDetail",
    "FeedbackErrorCode",
    "FeedbackParticipantType",
    "FeedbackQuestionType",
    "ParticipantKind",
]
