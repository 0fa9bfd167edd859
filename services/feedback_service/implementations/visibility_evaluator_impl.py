from __future__ import annotations

from common_core.domain_enums import FeedbackParticipantType
from coursefeedback_service_libs.logging_utils import create_service_logger

from services.feedback_service.core_logic import (
    is_answerable_by,
    is_student_recipient_type,
    is_team_recipient_type,
)
from services.feedback_service.models_db import FeedbackQuestion, FeedbackSession
from services.feedback_service.protocols import (
    FeedbackRepositoryProtocol,
    VisibilityEvaluatorProtocol,
)

logger = create_service_logger("feedback_service.visibility")


class VisibilityEvaluatorImpl(VisibilityEvaluatorProtocol):
    """Evaluates question- and session-level visibility rules."""

    def __init__(self, repository: FeedbackRepositoryProtocol) -> None:
        self.repository = repository

    def is_response_visible_to_student(self, question: FeedbackQuestion) -> bool:
        """
        Students see responses through any one of these paths, checked in order:

        1. responses are shown to STUDENTS;
        2. students or teams are the recipients and responses are shown to RECEIVER;
        3. the question is answered by TEAMS, or responses are shown to OWN_TEAM_MEMBERS;
        4. responses are shown to RECEIVER_TEAM_MEMBERS.
        """
        if question.is_response_visible_to(FeedbackParticipantType.STUDENTS):
            return True
        if (
            is_student_recipient_type(question) or is_team_recipient_type(question)
        ) and question.is_response_visible_to(FeedbackParticipantType.RECEIVER):
            return True
        if question.giver_type == FeedbackParticipantType.TEAMS or question.is_response_visible_to(
            FeedbackParticipantType.OWN_TEAM_MEMBERS
        ):
            return True
        return question.is_response_visible_to(FeedbackParticipantType.RECEIVER_TEAM_MEMBERS)

    def is_response_visible_to_instructor(self, question: FeedbackQuestion) -> bool:
        return question.is_response_visible_to(FeedbackParticipantType.INSTRUCTORS)

    async def is_session_for_user_type_to_answer(
        self, feedback_session: FeedbackSession, is_instructor: bool
    ) -> bool:
        if not feedback_session.is_visible():
            return False
        questions = await self.repository.get_questions_for_session(feedback_session)
        return any(is_answerable_by(q, is_instructor) for q in questions)

    async def is_session_viewable_to_user_type(
        self, feedback_session: FeedbackSession, is_instructor: bool
    ) -> bool:
        """
        A session is viewable when the user type has something to answer in it,
        or when it is visible and at least one question's responses are shown
        to that user type.
        """
        if await self.is_session_for_user_type_to_answer(feedback_session, is_instructor):
            return True
        if not feedback_session.is_visible():
            return False

        is_visible = (
            self.is_response_visible_to_instructor
            if is_instructor
            else self.is_response_visible_to_student
        )
        questions = await self.repository.get_questions_for_session(feedback_session)
        viewable = any(is_visible(q) for q in questions)
        logger.debug(
            "Evaluated session visibility",
            feedback_session_id=str(feedback_session.id),
            is_instructor=is_instructor,
            viewable=viewable,
        )
        return viewable
