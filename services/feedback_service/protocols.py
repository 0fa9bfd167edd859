from __future__ import annotations

import uuid
from contextlib import AbstractAsyncContextManager
from typing import Protocol

from common_core.domain_enums import FeedbackQuestionType, ParticipantKind
from sqlalchemy.ext.asyncio import AsyncSession

from services.feedback_service.core_logic import RankRepairResult
from services.feedback_service.models_db import (
    FeedbackQuestion,
    FeedbackResponse,
    FeedbackSession,
    Instructor,
    Student,
)
from services.feedback_service.response_details import ResponseDetails


class FeedbackRepositoryProtocol(Protocol):
    """
    Persistence gateway for courses, participants, questions and responses.

    Every method accepts an optional ``session``. When given, the call joins
    that unit of work; otherwise the gateway opens and commits its own.
    """

    def session(self) -> AbstractAsyncContextManager[AsyncSession | None]:
        """Open a transactional unit of work (commit on success, rollback on error)."""
        ...

    # Roster

    async def get_student_for_email(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> Student | None: ...

    async def get_instructor_for_email(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> Instructor | None: ...

    async def get_students_for_course(
        self, course_id: str, session: AsyncSession | None = None
    ) -> list[Student]:
        """Students of the course sorted case-insensitively by name."""
        ...

    async def get_instructors_for_course(
        self, course_id: str, session: AsyncSession | None = None
    ) -> list[Instructor]:
        """Instructors of the course sorted case-insensitively by name."""
        ...

    async def get_students_for_team(
        self, course_id: str, team_name: str, session: AsyncSession | None = None
    ) -> list[Student]: ...

    async def delete_student(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> bool: ...

    async def delete_instructor(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> bool: ...

    async def delete_deadline_extensions(
        self,
        course_id: str,
        email: str,
        is_instructor: bool,
        session: AsyncSession | None = None,
    ) -> int:
        """Delete a user's deadline extensions across the course's sessions."""
        ...

    # Questions

    async def get_questions_for_course_with_type(
        self,
        course_id: str,
        question_type: FeedbackQuestionType,
        session: AsyncSession | None = None,
    ) -> list[FeedbackQuestion]: ...

    async def get_questions_for_session(
        self, feedback_session: FeedbackSession, session: AsyncSession | None = None
    ) -> list[FeedbackQuestion]: ...

    # Responses

    async def get_response(
        self, response_id: uuid.UUID, session: AsyncSession | None = None
    ) -> FeedbackResponse | None: ...

    async def get_responses_from_giver_for_question(
        self, question_id: uuid.UUID, giver: str, session: AsyncSession | None = None
    ) -> list[FeedbackResponse]:
        """Responses an individual (student or instructor) gave to one question."""
        ...

    async def get_responses_from_team_for_question(
        self, question_id: uuid.UUID, team_name: str, session: AsyncSession | None = None
    ) -> list[FeedbackResponse]:
        """Responses given on behalf of a team to one question."""
        ...

    async def get_responses_from_giver_for_course(
        self,
        course_id: str,
        giver: str,
        giver_kind: ParticipantKind,
        session: AsyncSession | None = None,
    ) -> list[FeedbackResponse]: ...

    async def get_responses_for_recipient_for_course(
        self,
        course_id: str,
        recipient: str,
        recipient_kind: ParticipantKind,
        session: AsyncSession | None = None,
    ) -> list[FeedbackResponse]: ...

    async def create_response(
        self,
        question_id: uuid.UUID,
        giver: str,
        giver_kind: ParticipantKind,
        recipient: str,
        recipient_kind: ParticipantKind,
        details: ResponseDetails,
        giver_section: str | None = None,
        recipient_section: str | None = None,
        session: AsyncSession | None = None,
        correlation_id: uuid.UUID | None = None,
    ) -> FeedbackResponse: ...

    async def update_response_details(
        self,
        response_id: uuid.UUID,
        details: ResponseDetails,
        session: AsyncSession | None = None,
        correlation_id: uuid.UUID | None = None,
    ) -> FeedbackResponse:
        """
        Replace a response's answer payload.

        Raises:
            CourseFeedbackError: RESPONSE_NOT_FOUND if the response is missing,
                RESOURCE_NOT_FOUND if its question is gone,
                INVALID_RESPONSE_DETAILS if the payload does not match the
                question type. The error carries the given correlation id.
        """
        ...

    async def delete_response(
        self, response_id: uuid.UUID, session: AsyncSession | None = None
    ) -> bool:
        """Delete a response together with its comments."""
        ...


class VisibilityEvaluatorProtocol(Protocol):
    """Decides who may see responses to questions and sessions."""

    def is_response_visible_to_student(self, question: FeedbackQuestion) -> bool: ...

    def is_response_visible_to_instructor(self, question: FeedbackQuestion) -> bool: ...

    async def is_session_for_user_type_to_answer(
        self, feedback_session: FeedbackSession, is_instructor: bool
    ) -> bool: ...

    async def is_session_viewable_to_user_type(
        self, feedback_session: FeedbackSession, is_instructor: bool
    ) -> bool: ...


class RankConsistencyRepairerProtocol(Protocol):
    """Keeps rank-recipient answers dense after the course roster changes."""

    async def repair_rank_responses_for_course(
        self,
        course_id: str,
        session: AsyncSession | None = None,
        correlation_id: uuid.UUID | None = None,
    ) -> RankRepairResult: ...


class CascadeCoordinatorProtocol(Protocol):
    """Deletes participants and responses together with everything that depends on them."""

    async def delete_student_cascade(
        self, course_id: str, email: str, correlation_id: uuid.UUID | None = None
    ) -> None: ...

    async def delete_instructor_cascade(
        self, course_id: str, email: str, correlation_id: uuid.UUID | None = None
    ) -> None: ...

    async def delete_responses_involving_entity(
        self,
        course_id: str,
        identifier: str,
        kind: ParticipantKind,
        session: AsyncSession | None = None,
    ) -> int: ...

    async def delete_response_cascade(
        self, response_id: uuid.UUID, session: AsyncSession | None = None
    ) -> bool: ...
