from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from common_core.domain_enums import FeedbackQuestionType, ParticipantKind
from coursefeedback_service_libs.error_handling import (
    raise_invalid_response_details,
    raise_resource_not_found,
    raise_response_not_found,
)
from coursefeedback_service_libs.logging_utils import create_service_logger
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from services.feedback_service.constants import SERVICE_NAME
from services.feedback_service.models_db import (
    DeadlineExtension,
    FeedbackQuestion,
    FeedbackResponse,
    FeedbackResponseComment,
    FeedbackSession,
    Instructor,
    Student,
)
from services.feedback_service.protocols import FeedbackRepositoryProtocol
from services.feedback_service.response_details import ResponseDetails

logger = create_service_logger("feedback_service.repository")

_INDIVIDUAL_KINDS = (ParticipantKind.STUDENT, ParticipantKind.INSTRUCTOR)


class PostgreSQLFeedbackRepositoryImpl(FeedbackRepositoryProtocol):
    """SQLAlchemy implementation of FeedbackRepositoryProtocol."""

    def __init__(
        self,
        engine: AsyncEngine,
        session_maker: async_sessionmaker[AsyncSession] | None = None,
    ) -> None:
        self.engine = engine
        self.async_session_maker = session_maker or async_sessionmaker(
            engine, expire_on_commit=False
        )

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Provide a transactional session context."""
        session = self.async_session_maker()
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    @asynccontextmanager
    async def _use_session(
        self, session: AsyncSession | None
    ) -> AsyncGenerator[AsyncSession, None]:
        """Join the caller's session, or open (and commit) a new one."""
        if session is not None:
            yield session
            return
        async with self.session() as own_session:
            yield own_session

    # Roster

    async def get_student_for_email(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> Student | None:
        async with self._use_session(session) as s:
            stmt = select(Student).where(Student.course_id == course_id, Student.email == email)
            result = await s.execute(stmt)
            return result.scalars().first()

    async def get_instructor_for_email(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> Instructor | None:
        async with self._use_session(session) as s:
            stmt = select(Instructor).where(
                Instructor.course_id == course_id, Instructor.email == email
            )
            result = await s.execute(stmt)
            return result.scalars().first()

    async def get_students_for_course(
        self, course_id: str, session: AsyncSession | None = None
    ) -> list[Student]:
        async with self._use_session(session) as s:
            stmt = (
                select(Student)
                .where(Student.course_id == course_id)
                .order_by(func.lower(Student.name), Student.email)
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

    async def get_instructors_for_course(
        self, course_id: str, session: AsyncSession | None = None
    ) -> list[Instructor]:
        async with self._use_session(session) as s:
            stmt = (
                select(Instructor)
                .where(Instructor.course_id == course_id)
                .order_by(func.lower(Instructor.name), Instructor.email)
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

    async def get_students_for_team(
        self, course_id: str, team_name: str, session: AsyncSession | None = None
    ) -> list[Student]:
        async with self._use_session(session) as s:
            stmt = (
                select(Student)
                .where(Student.course_id == course_id, Student.team_name == team_name)
                .order_by(func.lower(Student.name), Student.email)
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

    async def delete_student(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> bool:
        async with self._use_session(session) as s:
            stmt = delete(Student).where(Student.course_id == course_id, Student.email == email)
            result = await s.execute(stmt)
            return bool(result.rowcount)

    async def delete_instructor(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> bool:
        async with self._use_session(session) as s:
            stmt = delete(Instructor).where(
                Instructor.course_id == course_id, Instructor.email == email
            )
            result = await s.execute(stmt)
            return bool(result.rowcount)

    async def delete_deadline_extensions(
        self,
        course_id: str,
        email: str,
        is_instructor: bool,
        session: AsyncSession | None = None,
    ) -> int:
        async with self._use_session(session) as s:
            course_sessions = select(FeedbackSession.id).where(
                FeedbackSession.course_id == course_id
            )
            stmt = delete(DeadlineExtension).where(
                DeadlineExtension.session_id.in_(course_sessions),
                DeadlineExtension.user_email == email,
                DeadlineExtension.is_instructor == is_instructor,
            )
            result = await s.execute(stmt)
            return result.rowcount or 0

    # Questions

    async def get_questions_for_course_with_type(
        self,
        course_id: str,
        question_type: FeedbackQuestionType,
        session: AsyncSession | None = None,
    ) -> list[FeedbackQuestion]:
        async with self._use_session(session) as s:
            stmt = (
                select(FeedbackQuestion)
                .join(FeedbackSession, FeedbackQuestion.session_id == FeedbackSession.id)
                .where(
                    FeedbackSession.course_id == course_id,
                    FeedbackSession.deleted_at.is_(None),
                    FeedbackQuestion.question_type == question_type,
                )
                .order_by(FeedbackSession.name, FeedbackQuestion.question_number)
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

    async def get_questions_for_session(
        self, feedback_session: FeedbackSession, session: AsyncSession | None = None
    ) -> list[FeedbackQuestion]:
        async with self._use_session(session) as s:
            stmt = (
                select(FeedbackQuestion)
                .where(FeedbackQuestion.session_id == feedback_session.id)
                .order_by(FeedbackQuestion.question_number)
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

    # Responses

    async def get_response(
        self, response_id: uuid.UUID, session: AsyncSession | None = None
    ) -> FeedbackResponse | None:
        async with self._use_session(session) as s:
            return await s.get(FeedbackResponse, response_id)

    async def get_responses_from_giver_for_question(
        self, question_id: uuid.UUID, giver: str, session: AsyncSession | None = None
    ) -> list[FeedbackResponse]:
        async with self._use_session(session) as s:
            stmt = select(FeedbackResponse).where(
                FeedbackResponse.question_id == question_id,
                FeedbackResponse.giver == giver,
                FeedbackResponse.giver_kind.in_(_INDIVIDUAL_KINDS),
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

    async def get_responses_from_team_for_question(
        self, question_id: uuid.UUID, team_name: str, session: AsyncSession | None = None
    ) -> list[FeedbackResponse]:
        async with self._use_session(session) as s:
            stmt = select(FeedbackResponse).where(
                FeedbackResponse.question_id == question_id,
                FeedbackResponse.giver == team_name,
                FeedbackResponse.giver_kind == ParticipantKind.TEAM,
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

    async def get_responses_from_giver_for_course(
        self,
        course_id: str,
        giver: str,
        giver_kind: ParticipantKind,
        session: AsyncSession | None = None,
    ) -> list[FeedbackResponse]:
        async with self._use_session(session) as s:
            stmt = (
                select(FeedbackResponse)
                .join(FeedbackQuestion, FeedbackResponse.question_id == FeedbackQuestion.id)
                .join(FeedbackSession, FeedbackQuestion.session_id == FeedbackSession.id)
                .where(
                    FeedbackSession.course_id == course_id,
                    FeedbackResponse.giver == giver,
                    FeedbackResponse.giver_kind == giver_kind,
                )
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

    async def get_responses_for_recipient_for_course(
        self,
        course_id: str,
        recipient: str,
        recipient_kind: ParticipantKind,
        session: AsyncSession | None = None,
    ) -> list[FeedbackResponse]:
        async with self._use_session(session) as s:
            stmt = (
                select(FeedbackResponse)
                .join(FeedbackQuestion, FeedbackResponse.question_id == FeedbackQuestion.id)
                .join(FeedbackSession, FeedbackQuestion.session_id == FeedbackSession.id)
                .where(
                    FeedbackSession.course_id == course_id,
                    FeedbackResponse.recipient == recipient,
                    FeedbackResponse.recipient_kind == recipient_kind,
                )
            )
            result = await s.execute(stmt)
            return list(result.scalars().all())

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
    ) -> FeedbackResponse:
        async with self._use_session(session) as s:
            question = await s.get(FeedbackQuestion, question_id)
            if question is None:
                raise_resource_not_found(
                    service=SERVICE_NAME,
                    operation="create_response",
                    resource_type="FeedbackQuestion",
                    resource_id=str(question_id),
                    correlation_id=correlation_id,
                )
            self._check_details_match_question(question, details, "create_response", correlation_id)

            response = FeedbackResponse(
                question_id=question_id,
                giver=giver,
                giver_kind=giver_kind,
                giver_section=giver_section,
                recipient=recipient,
                recipient_kind=recipient_kind,
                recipient_section=recipient_section,
                answer=details.model_dump(mode="json"),
            )
            s.add(response)
            await s.flush()
            return response

    async def update_response_details(
        self,
        response_id: uuid.UUID,
        details: ResponseDetails,
        session: AsyncSession | None = None,
        correlation_id: uuid.UUID | None = None,
    ) -> FeedbackResponse:
        async with self._use_session(session) as s:
            response = await s.get(FeedbackResponse, response_id)
            if response is None:
                raise_response_not_found(
                    service=SERVICE_NAME,
                    operation="update_response_details",
                    response_id=str(response_id),
                    correlation_id=correlation_id,
                )
            question = await s.get(FeedbackQuestion, response.question_id)
            if question is None:
                raise_resource_not_found(
                    service=SERVICE_NAME,
                    operation="update_response_details",
                    resource_type="FeedbackQuestion",
                    resource_id=str(response.question_id),
                    correlation_id=correlation_id,
                )
            self._check_details_match_question(
                question, details, "update_response_details", correlation_id
            )

            response.details = details
            await s.flush()
            return response

    async def delete_response(
        self, response_id: uuid.UUID, session: AsyncSession | None = None
    ) -> bool:
        async with self._use_session(session) as s:
            await s.execute(
                delete(FeedbackResponseComment).where(
                    FeedbackResponseComment.response_id == response_id
                )
            )
            result = await s.execute(
                delete(FeedbackResponse).where(FeedbackResponse.id == response_id)
            )
            deleted = bool(result.rowcount)
            if deleted:
                logger.debug("Deleted feedback response", response_id=str(response_id))
            return deleted

    @staticmethod
    def _check_details_match_question(
        question: FeedbackQuestion,
        details: ResponseDetails,
        operation: str,
        correlation_id: uuid.UUID | None = None,
    ) -> None:
        if details.question_type != question.question_type:
            raise_invalid_response_details(
                service=SERVICE_NAME,
                operation=operation,
                message=(
                    f"Answer of type {details.question_type.value} does not fit "
                    f"question of type {question.question_type.value}"
                ),
                question_id=str(question.id),
                correlation_id=correlation_id,
            )
