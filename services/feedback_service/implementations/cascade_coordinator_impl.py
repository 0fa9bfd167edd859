"""
Cascading deletion of course participants and their feedback responses.

Each cascade runs in a single unit of work opened through the repository, so
either every step (responses, comments, participant, deadline extensions and
the rank repair that follows) becomes visible, or none does.
"""

from __future__ import annotations

import uuid

from common_core.domain_enums import ParticipantKind
from coursefeedback_service_libs.logging_utils import bind_operation_context, create_service_logger
from sqlalchemy.ext.asyncio import AsyncSession

from services.feedback_service.metrics import FeedbackMetrics
from services.feedback_service.protocols import (
    CascadeCoordinatorProtocol,
    FeedbackRepositoryProtocol,
    RankConsistencyRepairerProtocol,
)

logger = create_service_logger("feedback_service.cascade")


class CascadeCoordinatorImpl(CascadeCoordinatorProtocol):
    def __init__(
        self,
        repository: FeedbackRepositoryProtocol,
        rank_repairer: RankConsistencyRepairerProtocol,
        metrics: FeedbackMetrics | None = None,
    ) -> None:
        self.repository = repository
        self.rank_repairer = rank_repairer
        self.metrics = metrics

    async def delete_student_cascade(
        self, course_id: str, email: str, correlation_id: uuid.UUID | None = None
    ) -> None:
        """
        Delete a student and everything that references them.

        Steps, in order: the student's given and received responses; the
        team's responses when the student was its only member; the student;
        the student's deadline extensions; finally the rank repair, which
        must see the roster without the student. Unknown students are a
        silent no-op.

        Log lines and errors carry ``correlation_id``; a fresh one is minted
        when the caller has none.
        """
        correlation_id = correlation_id or uuid.uuid4()
        with bind_operation_context("delete_student_cascade", correlation_id, course_id=course_id):
            await self._delete_student(course_id, email, correlation_id)

    async def _delete_student(self, course_id: str, email: str, correlation_id: uuid.UUID) -> None:
        async with self.repository.session() as session:
            student = await self.repository.get_student_for_email(
                course_id, email, session=session
            )
            if student is None:
                logger.info("Student not found, nothing to delete", email=email)
                self._count_cascade("student", "not_found")
                return

            team_members = await self.repository.get_students_for_team(
                course_id, student.team_name, session=session
            )
            is_sole_member = [m.email for m in team_members] == [email]

            deleted = await self._delete_responses_involving(
                course_id, email, ParticipantKind.STUDENT, session
            )
            if is_sole_member:
                logger.debug("Student was the last member of team", team=student.team_name)
                deleted += await self._delete_responses_involving(
                    course_id, student.team_name, ParticipantKind.TEAM, session
                )

            await self.repository.delete_student(course_id, email, session=session)
            extensions = await self.repository.delete_deadline_extensions(
                course_id, email, is_instructor=False, session=session
            )
            repair = await self.rank_repairer.repair_rank_responses_for_course(
                course_id, session=session, correlation_id=correlation_id
            )

        logger.info(
            "Student deleted",
            email=email,
            responses_deleted=deleted,
            deadline_extensions_deleted=extensions,
            rank_updates_applied=repair.updates_applied,
        )
        self._count_cascade("student", "deleted")
        self._count_deleted_responses("student_cascade", deleted)

    async def delete_instructor_cascade(
        self, course_id: str, email: str, correlation_id: uuid.UUID | None = None
    ) -> None:
        """Delete an instructor with the responses they gave or received and their extensions."""
        correlation_id = correlation_id or uuid.uuid4()
        with bind_operation_context(
            "delete_instructor_cascade", correlation_id, course_id=course_id
        ):
            await self._delete_instructor(course_id, email, correlation_id)

    async def _delete_instructor(
        self, course_id: str, email: str, correlation_id: uuid.UUID
    ) -> None:
        async with self.repository.session() as session:
            instructor = await self.repository.get_instructor_for_email(
                course_id, email, session=session
            )
            if instructor is None:
                logger.info("Instructor not found, nothing to delete", email=email)
                self._count_cascade("instructor", "not_found")
                return

            deleted = await self._delete_responses_involving(
                course_id, email, ParticipantKind.INSTRUCTOR, session
            )
            extensions = await self.repository.delete_deadline_extensions(
                course_id, email, is_instructor=True, session=session
            )
            await self.repository.delete_instructor(course_id, email, session=session)
            repair = await self.rank_repairer.repair_rank_responses_for_course(
                course_id, session=session, correlation_id=correlation_id
            )

        logger.info(
            "Instructor deleted",
            email=email,
            responses_deleted=deleted,
            deadline_extensions_deleted=extensions,
            rank_updates_applied=repair.updates_applied,
        )
        self._count_cascade("instructor", "deleted")
        self._count_deleted_responses("instructor_cascade", deleted)

    async def delete_responses_involving_entity(
        self,
        course_id: str,
        identifier: str,
        kind: ParticipantKind,
        session: AsyncSession | None = None,
    ) -> int:
        """Delete every response of the course given by or addressed to an entity."""
        if session is not None:
            deleted = await self._delete_responses_involving(course_id, identifier, kind, session)
        else:
            async with self.repository.session() as own_session:
                deleted = await self._delete_responses_involving(
                    course_id, identifier, kind, own_session
                )
        self._count_deleted_responses("entity", deleted)
        return deleted

    async def delete_response_cascade(
        self, response_id: uuid.UUID, session: AsyncSession | None = None
    ) -> bool:
        """Delete one response and its comments. A missing response is a no-op."""
        deleted = await self.repository.delete_response(response_id, session=session)
        if not deleted:
            logger.debug("Response already absent", response_id=str(response_id))
        self._count_deleted_responses("single", int(deleted))
        return deleted

    async def _delete_responses_involving(
        self,
        course_id: str,
        identifier: str,
        kind: ParticipantKind,
        session: AsyncSession | None,
    ) -> int:
        given = await self.repository.get_responses_from_giver_for_course(
            course_id, identifier, kind, session=session
        )
        received = await self.repository.get_responses_for_recipient_for_course(
            course_id, identifier, kind, session=session
        )

        # A self-addressed response appears in both lists
        response_ids = list(dict.fromkeys(r.id for r in [*given, *received]))
        deleted = 0
        for response_id in response_ids:
            if await self.repository.delete_response(response_id, session=session):
                deleted += 1

        logger.debug(
            "Deleted responses involving entity",
            identifier=identifier,
            kind=kind.value,
            given=len(given),
            received=len(received),
            deleted=deleted,
        )
        return deleted

    def _count_cascade(self, entity: str, outcome: str) -> None:
        if not self.metrics:
            return
        counter = (
            self.metrics.student_cascades_total
            if entity == "student"
            else self.metrics.instructor_cascades_total
        )
        counter.labels(outcome=outcome).inc()

    def _count_deleted_responses(self, reason: str, count: int) -> None:
        if self.metrics and count:
            self.metrics.responses_deleted_total.labels(reason=reason).inc(count)
