"""Unit tests for CascadeCoordinatorImpl."""

from __future__ import annotations

import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

import pytest
from common_core.domain_enums import FeedbackParticipantType as P
from common_core.domain_enums import FeedbackQuestionType, ParticipantKind
from prometheus_client import REGISTRY
from structlog.contextvars import bound_contextvars, get_contextvars

from services.feedback_service.core_logic import RankRepairResult
from services.feedback_service.implementations.cascade_coordinator_impl import (
    CascadeCoordinatorImpl,
)
from services.feedback_service.implementations.feedback_repository_mock_impl import (
    MockFeedbackRepositoryImpl,
)
from services.feedback_service.implementations.rank_consistency_repairer_impl import (
    RankConsistencyRepairerImpl,
)
from services.feedback_service.metrics import FeedbackMetrics
from services.feedback_service.protocols import (
    FeedbackRepositoryProtocol,
    RankConsistencyRepairerProtocol,
)
from services.feedback_service.response_details import (
    RankRecipientsResponseDetails,
    TextResponseDetails,
)


@pytest.fixture
def coordinator(
    repository: MockFeedbackRepositoryImpl, metrics: FeedbackMetrics
) -> CascadeCoordinatorImpl:
    return CascadeCoordinatorImpl(
        repository, RankConsistencyRepairerImpl(repository, metrics), metrics
    )


def _rank(repository: MockFeedbackRepositoryImpl, response_id: uuid.UUID) -> int:
    details = repository.responses[response_id].details
    assert isinstance(details, RankRecipientsResponseDetails)
    return details.answer


class TestDeleteStudentCascadeMissingStudent:
    @pytest.mark.asyncio
    async def test_unknown_email_only_looks_up_the_student(self) -> None:
        repository = AsyncMock(spec=FeedbackRepositoryProtocol)
        repository.get_student_for_email.return_value = None

        @asynccontextmanager
        async def no_transaction() -> AsyncGenerator[None, None]:
            yield None

        repository.session = no_transaction
        rank_repairer = AsyncMock(spec=RankConsistencyRepairerProtocol)
        coordinator = CascadeCoordinatorImpl(repository, rank_repairer)

        await coordinator.delete_student_cascade("C1", "ghost@example.com")

        repository.get_student_for_email.assert_awaited_once_with(
            "C1", "ghost@example.com", session=None
        )
        assert [name for name, _, _ in repository.method_calls] == ["get_student_for_email"]
        rank_repairer.repair_rank_responses_for_course.assert_not_awaited()


class TestDeleteStudentCascade:
    @pytest.mark.asyncio
    async def test_sole_member_team_scenario(
        self,
        coordinator: CascadeCoordinatorImpl,
        repository: MockFeedbackRepositoryImpl,
        course_id: str,
    ) -> None:
        """
        Sam is the only member of Team S. Deleting Sam removes Sam's own
        responses and Team S's team-level responses, then renumbers the ranks
        of the remaining givers.
        """
        repository.add_student(course_id, "sam@example.com", "Sam", "Team S")
        repository.add_student(course_id, "amy@example.com", "Amy", "Team A")
        repository.add_student(course_id, "art@example.com", "Art", "Team A")
        repository.add_student(course_id, "ben@example.com", "Ben", "Team B")
        fs = repository.add_feedback_session(course_id, "Project ranking")
        team_q = repository.add_question(
            fs,
            FeedbackQuestionType.RANK_RECIPIENTS,
            P.TEAMS,
            P.TEAMS_EXCLUDING_SELF,
            question_number=1,
        )
        peer_q = repository.add_question(
            fs,
            FeedbackQuestionType.RANK_RECIPIENTS,
            P.STUDENTS,
            P.STUDENTS_EXCLUDING_SELF,
            question_number=2,
        )

        async def rank(
            question_id: uuid.UUID,
            giver: str,
            recipient: str,
            value: int,
            kind: ParticipantKind = ParticipantKind.STUDENT,
        ) -> uuid.UUID:
            details = RankRecipientsResponseDetails(answer=value)
            response = await repository.create_response(
                question_id, giver, kind, recipient, kind, details
            )
            return response.id

        team = ParticipantKind.TEAM
        s_to_a = await rank(team_q.id, "Team S", "Team A", 1, team)
        s_to_b = await rank(team_q.id, "Team S", "Team B", 2, team)
        a_to_s = await rank(team_q.id, "Team A", "Team S", 1, team)
        a_to_b = await rank(team_q.id, "Team A", "Team B", 2, team)
        b_to_a = await rank(team_q.id, "Team B", "Team A", 2, team)

        amy_to_sam = await rank(peer_q.id, "amy@example.com", "sam@example.com", 1)
        amy_to_art = await rank(peer_q.id, "amy@example.com", "art@example.com", 2)
        amy_to_ben = await rank(peer_q.id, "amy@example.com", "ben@example.com", 3)
        sam_to_ben = await rank(peer_q.id, "sam@example.com", "ben@example.com", 1)
        comment = repository.add_comment(sam_to_ben, "ins@example.com", "Noted")
        repository.add_deadline_extension(fs, "sam@example.com", is_instructor=False)
        kept_extension = repository.add_deadline_extension(
            fs, "amy@example.com", is_instructor=False
        )

        await coordinator.delete_student_cascade(course_id, "sam@example.com")

        assert await repository.get_student_for_email(course_id, "sam@example.com") is None
        for removed in (s_to_a, s_to_b, a_to_s, amy_to_sam, sam_to_ben):
            assert removed not in repository.responses
        assert comment.id not in repository.comments
        assert list(repository.deadline_extensions) == [kept_extension.id]

        # Remaining ranks are dense and keep their relative order
        assert _rank(repository, a_to_b) == 1
        assert _rank(repository, b_to_a) == 1
        assert (_rank(repository, amy_to_art), _rank(repository, amy_to_ben)) == (1, 2)

        assert (
            REGISTRY.get_sample_value("feedback_student_cascades_total", {"outcome": "deleted"})
            == 1.0
        )
        assert (
            REGISTRY.get_sample_value(
                "feedback_responses_deleted_total", {"reason": "student_cascade"}
            )
            == 5.0
        )

    @pytest.mark.asyncio
    async def test_team_responses_kept_when_teammates_remain(
        self,
        coordinator: CascadeCoordinatorImpl,
        repository: MockFeedbackRepositoryImpl,
        course_id: str,
    ) -> None:
        repository.add_student(course_id, "amy@example.com", "Amy", "Team A")
        repository.add_student(course_id, "art@example.com", "Art", "Team A")
        fs = repository.add_feedback_session(course_id, "Team reflection")
        question = repository.add_question(fs, FeedbackQuestionType.TEXT, P.TEAMS, P.OWN_TEAM)
        team_response = await repository.create_response(
            question.id,
            "Team A",
            ParticipantKind.TEAM,
            "Team A",
            ParticipantKind.TEAM,
            TextResponseDetails(answer="We worked well together"),
        )

        await coordinator.delete_student_cascade(course_id, "amy@example.com")

        assert team_response.id in repository.responses
        assert await repository.get_student_for_email(course_id, "art@example.com") is not None

    @pytest.mark.asyncio
    async def test_failure_rolls_back_every_step(
        self,
        repository: MockFeedbackRepositoryImpl,
        course_id: str,
    ) -> None:
        repository.add_student(course_id, "amy@example.com", "Amy", "Team A")
        fs = repository.add_feedback_session(course_id, "Reflection")
        question = repository.add_question(fs, FeedbackQuestionType.TEXT, P.STUDENTS, P.SELF)
        response = await repository.create_response(
            question.id,
            "amy@example.com",
            ParticipantKind.STUDENT,
            "amy@example.com",
            ParticipantKind.STUDENT,
            TextResponseDetails(answer="Learned a lot"),
        )
        rank_repairer = AsyncMock(spec=RankConsistencyRepairerProtocol)
        rank_repairer.repair_rank_responses_for_course.side_effect = RuntimeError("db went away")
        coordinator = CascadeCoordinatorImpl(repository, rank_repairer)

        with pytest.raises(RuntimeError):
            await coordinator.delete_student_cascade(course_id, "amy@example.com")

        assert await repository.get_student_for_email(course_id, "amy@example.com") is not None
        assert response.id in repository.responses


class TestDeleteInstructorCascade:
    @pytest.mark.asyncio
    async def test_instructor_removed_and_instructor_rankings_repaired(
        self,
        coordinator: CascadeCoordinatorImpl,
        repository: MockFeedbackRepositoryImpl,
        course_id: str,
    ) -> None:
        for email, name in [
            ("ivy@example.com", "Ivy"),
            ("joe@example.com", "Joe"),
            ("kim@example.com", "Kim"),
        ]:
            repository.add_instructor(course_id, email, name)
        fs = repository.add_feedback_session(course_id, "Co-teaching review")
        question = repository.add_question(
            fs, FeedbackQuestionType.RANK_RECIPIENTS, P.INSTRUCTORS, P.INSTRUCTORS
        )
        kind = ParticipantKind.INSTRUCTOR
        await repository.create_response(
            question.id, "kim@example.com", kind, "ivy@example.com", kind,
            RankRecipientsResponseDetails(answer=1),
        )
        kim_to_joe = await repository.create_response(
            question.id, "kim@example.com", kind, "joe@example.com", kind,
            RankRecipientsResponseDetails(answer=2),
        )
        repository.add_deadline_extension(fs, "ivy@example.com", is_instructor=True)
        student_extension = repository.add_deadline_extension(
            fs, "ivy@example.com", is_instructor=False
        )

        await coordinator.delete_instructor_cascade(course_id, "ivy@example.com")

        assert await repository.get_instructor_for_email(course_id, "ivy@example.com") is None
        assert _rank(repository, kim_to_joe.id) == 1
        assert list(repository.deadline_extensions) == [student_extension.id]

    @pytest.mark.asyncio
    async def test_unknown_instructor_is_a_no_op(
        self, coordinator: CascadeCoordinatorImpl, course_id: str
    ) -> None:
        await coordinator.delete_instructor_cascade(course_id, "nobody@example.com")

        assert (
            REGISTRY.get_sample_value(
                "feedback_instructor_cascades_total", {"outcome": "not_found"}
            )
            == 1.0
        )


class TestResponseDeletion:
    @pytest.mark.asyncio
    async def test_delete_responses_involving_entity_counts_self_response_once(
        self,
        coordinator: CascadeCoordinatorImpl,
        repository: MockFeedbackRepositoryImpl,
        course_id: str,
    ) -> None:
        repository.add_student(course_id, "amy@example.com", "Amy", "Team A")
        fs = repository.add_feedback_session(course_id, "Reflection")
        question = repository.add_question(fs, FeedbackQuestionType.TEXT, P.STUDENTS, P.SELF)
        await repository.create_response(
            question.id,
            "amy@example.com",
            ParticipantKind.STUDENT,
            "amy@example.com",
            ParticipantKind.STUDENT,
            TextResponseDetails(answer="Learned a lot"),
        )

        deleted = await coordinator.delete_responses_involving_entity(
            course_id, "amy@example.com", ParticipantKind.STUDENT
        )

        assert deleted == 1
        assert repository.responses == {}

    @pytest.mark.asyncio
    async def test_delete_response_cascade_removes_comments(
        self,
        coordinator: CascadeCoordinatorImpl,
        repository: MockFeedbackRepositoryImpl,
        course_id: str,
    ) -> None:
        fs = repository.add_feedback_session(course_id, "Reflection")
        question = repository.add_question(fs, FeedbackQuestionType.TEXT, P.STUDENTS, P.NONE)
        response = await repository.create_response(
            question.id,
            "amy@example.com",
            ParticipantKind.STUDENT,
            "%GENERAL%",
            ParticipantKind.GENERAL,
            TextResponseDetails(answer="More labs please"),
        )
        repository.add_comment(response.id, "ivy@example.com", "Agreed")

        assert await coordinator.delete_response_cascade(response.id) is True
        assert repository.comments == {}
        assert await coordinator.delete_response_cascade(response.id) is False


class TestCascadeCorrelation:
    @staticmethod
    def _capturing_repairer(captured: list[dict[str, Any]]) -> AsyncMock:
        rank_repairer = AsyncMock(spec=RankConsistencyRepairerProtocol)

        async def capture_context(*args: Any, **kwargs: Any) -> RankRepairResult:
            captured.append(get_contextvars())
            return RankRepairResult()

        rank_repairer.repair_rank_responses_for_course.side_effect = capture_context
        return rank_repairer

    @pytest.mark.asyncio
    async def test_student_cascade_uses_caller_correlation_id(
        self, repository: MockFeedbackRepositoryImpl, course_id: str
    ) -> None:
        repository.add_student(course_id, "amy@example.com", "Amy", "Team A")
        captured: list[dict[str, Any]] = []
        rank_repairer = self._capturing_repairer(captured)
        coordinator = CascadeCoordinatorImpl(repository, rank_repairer)
        correlation_id = uuid.uuid4()

        with bound_contextvars(request_id="req-7"):
            await coordinator.delete_student_cascade(
                course_id, "amy@example.com", correlation_id=correlation_id
            )
            after = get_contextvars()

        rank_repairer.repair_rank_responses_for_course.assert_awaited_once_with(
            course_id, session=None, correlation_id=correlation_id
        )
        assert captured[0]["correlation_id"] == str(correlation_id)
        assert captured[0]["operation"] == "delete_student_cascade"
        assert captured[0]["request_id"] == "req-7"
        # Caller's context survives the cascade
        assert after["request_id"] == "req-7"
        assert "operation" not in after

    @pytest.mark.asyncio
    async def test_instructor_cascade_uses_caller_correlation_id(
        self, repository: MockFeedbackRepositoryImpl, course_id: str
    ) -> None:
        repository.add_instructor(course_id, "ivy@example.com", "Ivy")
        captured: list[dict[str, Any]] = []
        rank_repairer = self._capturing_repairer(captured)
        coordinator = CascadeCoordinatorImpl(repository, rank_repairer)
        correlation_id = uuid.uuid4()

        await coordinator.delete_instructor_cascade(
            course_id, "ivy@example.com", correlation_id=correlation_id
        )

        rank_repairer.repair_rank_responses_for_course.assert_awaited_once_with(
            course_id, session=None, correlation_id=correlation_id
        )
        assert captured[0]["correlation_id"] == str(correlation_id)
        assert captured[0]["operation"] == "delete_instructor_cascade"

    @pytest.mark.asyncio
    async def test_correlation_id_minted_when_caller_has_none(
        self, repository: MockFeedbackRepositoryImpl, course_id: str
    ) -> None:
        repository.add_student(course_id, "amy@example.com", "Amy", "Team A")
        captured: list[dict[str, Any]] = []
        rank_repairer = self._capturing_repairer(captured)
        coordinator = CascadeCoordinatorImpl(repository, rank_repairer)

        await coordinator.delete_student_cascade(course_id, "amy@example.com")

        minted = rank_repairer.repair_rank_responses_for_course.await_args.kwargs[
            "correlation_id"
        ]
        assert isinstance(minted, uuid.UUID)
        assert captured[0]["correlation_id"] == str(minted)
