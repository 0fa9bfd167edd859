"""
Renumbering of rank-recipient answers after the course roster changes.

When a participant leaves a course, the givers of RANK_RECIPIENTS questions
may be left with ranks that exceed the new recipient count or that skip a
number. The repairer recomputes, per giver, the ranks against the current
roster and writes back only the responses whose rank changes.
"""

from __future__ import annotations

import uuid

from common_core.domain_enums import FeedbackParticipantType, FeedbackQuestionType
from coursefeedback_service_libs.error_handling import CourseFeedbackError
from coursefeedback_service_libs.logging_utils import bind_operation_context, create_service_logger
from sqlalchemy.ext.asyncio import AsyncSession

from services.feedback_service.core_logic import (
    RankRepairResult,
    RankUpdate,
    compute_rank_updates,
    recipients_of_question,
)
from services.feedback_service.course_roster import CourseRoster
from services.feedback_service.metrics import FeedbackMetrics
from services.feedback_service.models_db import FeedbackQuestion
from services.feedback_service.protocols import (
    FeedbackRepositoryProtocol,
    RankConsistencyRepairerProtocol,
)

logger = create_service_logger("feedback_service.rank_repair")

_INSTRUCTOR_GIVER_TYPES = (FeedbackParticipantType.INSTRUCTORS, FeedbackParticipantType.SELF)
_TEAM_GIVER_TYPES = (FeedbackParticipantType.TEAMS, FeedbackParticipantType.TEAMS_IN_SAME_SECTION)


class RankConsistencyRepairerImpl(RankConsistencyRepairerProtocol):
    def __init__(
        self,
        repository: FeedbackRepositoryProtocol,
        metrics: FeedbackMetrics | None = None,
    ) -> None:
        self.repository = repository
        self.metrics = metrics

    async def repair_rank_responses_for_course(
        self,
        course_id: str,
        session: AsyncSession | None = None,
        correlation_id: uuid.UUID | None = None,
    ) -> RankRepairResult:
        with bind_operation_context("repair_rank_responses", correlation_id, course_id=course_id):
            return await self._repair(course_id, session, correlation_id)

    async def _repair(
        self,
        course_id: str,
        session: AsyncSession | None,
        correlation_id: uuid.UUID | None,
    ) -> RankRepairResult:
        questions = await self.repository.get_questions_for_course_with_type(
            course_id, FeedbackQuestionType.RANK_RECIPIENTS, session=session
        )
        if not questions:
            logger.debug("No rank-recipient questions to repair", course_id=course_id)
            return RankRepairResult()

        roster = CourseRoster(
            await self.repository.get_students_for_course(course_id, session=session),
            await self.repository.get_instructors_for_course(course_id, session=session),
        )

        applied = 0
        failed = 0
        for question in questions:
            updates = await self._updates_for_question(question, roster, session)
            for update in updates:
                if await self._apply(update, session, correlation_id):
                    applied += 1
                else:
                    failed += 1

        logger.info(
            "Rank-recipient responses repaired",
            course_id=course_id,
            questions_checked=len(questions),
            updates_applied=applied,
            updates_failed=failed,
        )
        return RankRepairResult(
            questions_checked=len(questions), updates_applied=applied, updates_failed=failed
        )

    async def _updates_for_question(
        self,
        question: FeedbackQuestion,
        roster: CourseRoster,
        session: AsyncSession | None,
    ) -> list[RankUpdate]:
        if question.question_type != FeedbackQuestionType.RANK_RECIPIENTS:
            return []

        updates: list[RankUpdate] = []
        if question.giver_type in _INSTRUCTOR_GIVER_TYPES:
            for instructor in roster.instructors:
                recipients = recipients_of_question(question, roster, instructor)
                responses = await self.repository.get_responses_from_giver_for_question(
                    question.id, instructor.email, session=session
                )
                updates.extend(compute_rank_updates(responses, recipients))
        elif question.giver_type in _TEAM_GIVER_TYPES:
            for team, members in roster.team_to_members.items():
                # Any member stands in for the team when computing its recipients
                recipients = recipients_of_question(question, roster, members[0])
                responses = await self.repository.get_responses_from_team_for_question(
                    question.id, team, session=session
                )
                updates.extend(compute_rank_updates(responses, recipients))
        else:
            for student in roster.students:
                recipients = recipients_of_question(question, roster, student)
                responses = await self.repository.get_responses_from_giver_for_question(
                    question.id, student.email, session=session
                )
                updates.extend(compute_rank_updates(responses, recipients))
        return updates

    async def _apply(
        self,
        update: RankUpdate,
        session: AsyncSession | None,
        correlation_id: uuid.UUID | None,
    ) -> bool:
        """Write one renumbered rank; a rejected update is logged and skipped."""
        try:
            await self.repository.update_response_details(
                update.response_id,
                update.details,
                session=session,
                correlation_id=correlation_id,
            )
        except CourseFeedbackError as e:
            # Preconditions guarantee the response exists and fits its question
            logger.error(
                "Unexpected failure applying rank update",
                response_id=str(update.response_id),
                question_id=str(update.question_id),
                old_rank=update.old_rank,
                new_rank=update.new_rank,
                error_code=e.error_code,
                error_message=e.error_detail.message,
                correlation_id=e.correlation_id,
            )
            if self.metrics:
                self.metrics.rank_update_failures_total.labels(error_code=e.error_code).inc()
            return False

        if self.metrics:
            self.metrics.rank_updates_applied_total.inc()
        return True
