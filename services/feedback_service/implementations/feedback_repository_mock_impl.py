from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncGenerator, Iterable

from common_core.domain_enums import (
    FeedbackParticipantType,
    FeedbackQuestionType,
    ParticipantKind,
)
from coursefeedback_service_libs.error_handling import (
    raise_invalid_response_details,
    raise_resource_not_found,
    raise_response_not_found,
)
from sqlalchemy.ext.asyncio import AsyncSession

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

_INDIVIDUAL_KINDS = (ParticipantKind.STUDENT, ParticipantKind.INSTRUCTOR)


def _by_name(entities: Iterable[Any]) -> list[Any]:
    return sorted(entities, key=lambda e: (e.name.lower(), e.email))


class MockFeedbackRepositoryImpl(FeedbackRepositoryProtocol):
    """
    In-memory implementation of FeedbackRepositoryProtocol.

    ``session()`` snapshots the store and restores it if the block raises, so
    the all-or-nothing behavior of a cascade can be exercised without a
    database. The ``session`` argument of every method is ignored.
    """

    def __init__(self) -> None:
        self.students: dict[tuple[str, str], Student] = {}
        self.instructors: dict[tuple[str, str], Instructor] = {}
        self.feedback_sessions: dict[uuid.UUID, FeedbackSession] = {}
        self.questions: dict[uuid.UUID, FeedbackQuestion] = {}
        self.responses: dict[uuid.UUID, FeedbackResponse] = {}
        self.comments: dict[uuid.UUID, FeedbackResponseComment] = {}
        self.deadline_extensions: dict[uuid.UUID, DeadlineExtension] = {}

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession | None, None]:
        snapshot = self._snapshot()
        try:
            yield None
        except Exception:
            self._restore(snapshot)
            raise

    def _snapshot(self) -> dict[str, Any]:
        return {
            "students": dict(self.students),
            "instructors": dict(self.instructors),
            "questions": dict(self.questions),
            "responses": dict(self.responses),
            "answers": {rid: dict(r.answer) for rid, r in self.responses.items()},
            "comments": dict(self.comments),
            "deadline_extensions": dict(self.deadline_extensions),
        }

    def _restore(self, snapshot: dict[str, Any]) -> None:
        self.students = snapshot["students"]
        self.instructors = snapshot["instructors"]
        self.questions = snapshot["questions"]
        self.responses = snapshot["responses"]
        for rid, answer in snapshot["answers"].items():
            self.responses[rid].answer = answer
        self.comments = snapshot["comments"]
        self.deadline_extensions = snapshot["deadline_extensions"]

    # Seeding helpers

    def add_student(
        self,
        course_id: str,
        email: str,
        name: str,
        team_name: str,
        section_name: str = "None",
    ) -> Student:
        student = Student(
            id=uuid.uuid4(),
            course_id=course_id,
            email=email,
            name=name,
            team_name=team_name,
            section_name=section_name,
        )
        self.students[(course_id, email)] = student
        return student

    def add_instructor(self, course_id: str, email: str, name: str) -> Instructor:
        instructor = Instructor(id=uuid.uuid4(), course_id=course_id, email=email, name=name)
        self.instructors[(course_id, email)] = instructor
        return instructor

    def add_feedback_session(
        self,
        course_id: str,
        name: str,
        visible_from: datetime | None = None,
    ) -> FeedbackSession:
        feedback_session = FeedbackSession(
            id=uuid.uuid4(),
            course_id=course_id,
            name=name,
            session_visible_from_time=visible_from or datetime(2020, 1, 1, tzinfo=timezone.utc),
        )
        self.feedback_sessions[feedback_session.id] = feedback_session
        return feedback_session

    def add_question(
        self,
        feedback_session: FeedbackSession,
        question_type: FeedbackQuestionType,
        giver_type: FeedbackParticipantType,
        recipient_type: FeedbackParticipantType,
        show_responses_to: Iterable[FeedbackParticipantType] = (),
        question_number: int = 1,
    ) -> FeedbackQuestion:
        question = FeedbackQuestion(
            id=uuid.uuid4(),
            session_id=feedback_session.id,
            question_number=question_number,
            question_type=question_type,
            giver_type=giver_type,
            recipient_type=recipient_type,
            show_responses_to=[t.value for t in show_responses_to],
        )
        self.questions[question.id] = question
        return question

    def add_comment(self, response_id: uuid.UUID, giver: str, text: str) -> FeedbackResponseComment:
        comment = FeedbackResponseComment(
            id=uuid.uuid4(), response_id=response_id, giver=giver, comment_text=text
        )
        self.comments[comment.id] = comment
        return comment

    def add_deadline_extension(
        self,
        feedback_session: FeedbackSession,
        user_email: str,
        is_instructor: bool,
        end_time: datetime | None = None,
    ) -> DeadlineExtension:
        extension = DeadlineExtension(
            id=uuid.uuid4(),
            session_id=feedback_session.id,
            user_email=user_email,
            is_instructor=is_instructor,
            end_time=end_time or datetime(2030, 1, 1, tzinfo=timezone.utc),
        )
        self.deadline_extensions[extension.id] = extension
        return extension

    def _course_of_question(self, question_id: uuid.UUID) -> str | None:
        question = self.questions.get(question_id)
        if question is None:
            return None
        feedback_session = self.feedback_sessions.get(question.session_id)
        return feedback_session.course_id if feedback_session else None

    # Roster

    async def get_student_for_email(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> Student | None:
        return self.students.get((course_id, email))

    async def get_instructor_for_email(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> Instructor | None:
        return self.instructors.get((course_id, email))

    async def get_students_for_course(
        self, course_id: str, session: AsyncSession | None = None
    ) -> list[Student]:
        return _by_name(s for (cid, _), s in self.students.items() if cid == course_id)

    async def get_instructors_for_course(
        self, course_id: str, session: AsyncSession | None = None
    ) -> list[Instructor]:
        return _by_name(i for (cid, _), i in self.instructors.items() if cid == course_id)

    async def get_students_for_team(
        self, course_id: str, team_name: str, session: AsyncSession | None = None
    ) -> list[Student]:
        return [
            s for s in await self.get_students_for_course(course_id) if s.team_name == team_name
        ]

    async def delete_student(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> bool:
        return self.students.pop((course_id, email), None) is not None

    async def delete_instructor(
        self, course_id: str, email: str, session: AsyncSession | None = None
    ) -> bool:
        return self.instructors.pop((course_id, email), None) is not None

    async def delete_deadline_extensions(
        self,
        course_id: str,
        email: str,
        is_instructor: bool,
        session: AsyncSession | None = None,
    ) -> int:
        to_delete = [
            ext_id
            for ext_id, ext in self.deadline_extensions.items()
            if ext.user_email == email
            and ext.is_instructor == is_instructor
            and self.feedback_sessions[ext.session_id].course_id == course_id
        ]
        for ext_id in to_delete:
            del self.deadline_extensions[ext_id]
        return len(to_delete)

    # Questions

    async def get_questions_for_course_with_type(
        self,
        course_id: str,
        question_type: FeedbackQuestionType,
        session: AsyncSession | None = None,
    ) -> list[FeedbackQuestion]:
        questions = [
            q
            for q in self.questions.values()
            if q.question_type == question_type
            and self.feedback_sessions[q.session_id].course_id == course_id
            and self.feedback_sessions[q.session_id].deleted_at is None
        ]
        return sorted(
            questions,
            key=lambda q: (self.feedback_sessions[q.session_id].name, q.question_number),
        )

    async def get_questions_for_session(
        self, feedback_session: FeedbackSession, session: AsyncSession | None = None
    ) -> list[FeedbackQuestion]:
        questions = [q for q in self.questions.values() if q.session_id == feedback_session.id]
        return sorted(questions, key=lambda q: q.question_number)

    # Responses

    async def get_response(
        self, response_id: uuid.UUID, session: AsyncSession | None = None
    ) -> FeedbackResponse | None:
        return self.responses.get(response_id)

    async def get_responses_from_giver_for_question(
        self, question_id: uuid.UUID, giver: str, session: AsyncSession | None = None
    ) -> list[FeedbackResponse]:
        return [
            r
            for r in self.responses.values()
            if r.question_id == question_id
            and r.giver == giver
            and r.giver_kind in _INDIVIDUAL_KINDS
        ]

    async def get_responses_from_team_for_question(
        self, question_id: uuid.UUID, team_name: str, session: AsyncSession | None = None
    ) -> list[FeedbackResponse]:
        return [
            r
            for r in self.responses.values()
            if r.question_id == question_id
            and r.giver == team_name
            and r.giver_kind == ParticipantKind.TEAM
        ]

    async def get_responses_from_giver_for_course(
        self,
        course_id: str,
        giver: str,
        giver_kind: ParticipantKind,
        session: AsyncSession | None = None,
    ) -> list[FeedbackResponse]:
        return [
            r
            for r in self.responses.values()
            if r.giver == giver
            and r.giver_kind == giver_kind
            and self._course_of_question(r.question_id) == course_id
        ]

    async def get_responses_for_recipient_for_course(
        self,
        course_id: str,
        recipient: str,
        recipient_kind: ParticipantKind,
        session: AsyncSession | None = None,
    ) -> list[FeedbackResponse]:
        return [
            r
            for r in self.responses.values()
            if r.recipient == recipient
            and r.recipient_kind == recipient_kind
            and self._course_of_question(r.question_id) == course_id
        ]

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
        question = self.questions.get(question_id)
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
            id=uuid.uuid4(),
            question_id=question_id,
            giver=giver,
            giver_kind=giver_kind,
            giver_section=giver_section,
            recipient=recipient,
            recipient_kind=recipient_kind,
            recipient_section=recipient_section,
            answer=details.model_dump(mode="json"),
        )
        self.responses[response.id] = response
        return response

    async def update_response_details(
        self,
        response_id: uuid.UUID,
        details: ResponseDetails,
        session: AsyncSession | None = None,
        correlation_id: uuid.UUID | None = None,
    ) -> FeedbackResponse:
        response = self.responses.get(response_id)
        if response is None:
            raise_response_not_found(
                service=SERVICE_NAME,
                operation="update_response_details",
                response_id=str(response_id),
                correlation_id=correlation_id,
            )
        question = self.questions.get(response.question_id)
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
        return response

    async def delete_response(
        self, response_id: uuid.UUID, session: AsyncSession | None = None
    ) -> bool:
        for comment_id in [
            c.id for c in self.comments.values() if c.response_id == response_id
        ]:
            del self.comments[comment_id]
        return self.responses.pop(response_id, None) is not None

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
