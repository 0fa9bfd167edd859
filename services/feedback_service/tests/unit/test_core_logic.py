"""Unit tests for participant classification, recipient computation and rank renumbering."""

from __future__ import annotations

import uuid
from typing import Callable

import pytest
from common_core.domain_enums import FeedbackParticipantType as P
from common_core.domain_enums import FeedbackQuestionType, ParticipantKind

from services.feedback_service.constants import GENERAL_RECIPIENT
from services.feedback_service.core_logic import (
    compute_rank_updates,
    is_answerable_by,
    is_student_recipient_type,
    recipients_of_question,
)
from services.feedback_service.course_roster import CourseRoster
from services.feedback_service.models_db import (
    FeedbackQuestion,
    FeedbackResponse,
    Instructor,
    Student,
)
from services.feedback_service.response_details import (
    RankRecipientsResponseDetails,
    TextResponseDetails,
)

MakeQuestion = Callable[..., FeedbackQuestion]


def _student(email: str, name: str, team: str, section: str = "Section A") -> Student:
    return Student(
        id=uuid.uuid4(),
        course_id="C1",
        email=email,
        name=name,
        team_name=team,
        section_name=section,
    )


def _instructor(email: str, name: str) -> Instructor:
    return Instructor(id=uuid.uuid4(), course_id="C1", email=email, name=name)


def _rank_response(recipient: str, rank: int, giver: str = "giver@example.com") -> FeedbackResponse:
    response = FeedbackResponse(
        id=uuid.uuid4(),
        question_id=uuid.uuid4(),
        giver=giver,
        giver_kind=ParticipantKind.STUDENT,
        recipient=recipient,
        recipient_kind=ParticipantKind.STUDENT,
    )
    response.details = RankRecipientsResponseDetails(answer=rank)
    return response


@pytest.fixture
def roster() -> CourseRoster:
    return CourseRoster(
        students=[
            _student("alice@example.com", "Alice", "Team 1", "Section A"),
            _student("bob@example.com", "Bob", "Team 1", "Section A"),
            _student("carol@example.com", "Carol", "Team 2", "Section A"),
            _student("dan@example.com", "Dan", "Team 3", "Section B"),
        ],
        instructors=[
            _instructor("ivy@example.com", "Ivy"),
            _instructor("joe@example.com", "Joe"),
        ],
    )


class TestParticipantClassifier:
    @pytest.mark.parametrize(
        "recipient_type",
        [
            P.STUDENTS,
            P.STUDENTS_EXCLUDING_SELF,
            P.STUDENTS_IN_SAME_SECTION,
            P.OWN_TEAM_MEMBERS,
            P.OWN_TEAM_MEMBERS_INCLUDING_SELF,
        ],
    )
    def test_student_recipient_types(self, make_question: MakeQuestion, recipient_type: P) -> None:
        assert is_student_recipient_type(make_question(P.INSTRUCTORS, recipient_type)) is True

    @pytest.mark.parametrize(
        "recipient_type", [P.INSTRUCTORS, P.NONE, P.SELF, P.TEAMS, P.OWN_TEAM]
    )
    def test_non_student_recipient_types(
        self, make_question: MakeQuestion, recipient_type: P
    ) -> None:
        assert is_student_recipient_type(make_question(P.STUDENTS, recipient_type)) is False

    def test_giver_recipient_is_student_only_for_student_givers(
        self, make_question: MakeQuestion
    ) -> None:
        assert is_student_recipient_type(make_question(P.STUDENTS, P.GIVER)) is True
        assert is_student_recipient_type(make_question(P.INSTRUCTORS, P.GIVER)) is False
        assert is_student_recipient_type(make_question(P.TEAMS, P.GIVER)) is False

    @pytest.mark.parametrize(
        "giver_type, is_instructor, expected",
        [
            (P.STUDENTS, False, True),
            (P.TEAMS, False, True),
            (P.INSTRUCTORS, False, False),
            (P.INSTRUCTORS, True, True),
            (P.STUDENTS, True, False),
            (P.SELF, True, False),
        ],
    )
    def test_answerable_by(
        self, make_question: MakeQuestion, giver_type: P, is_instructor: bool, expected: bool
    ) -> None:
        assert is_answerable_by(make_question(giver_type, P.NONE), is_instructor) is expected


class TestRecipientsOfQuestion:
    def test_student_giver(self, make_question: MakeQuestion, roster: CourseRoster) -> None:
        alice = roster.get_student_for_email("alice@example.com")
        assert alice is not None

        def recipients(recipient_type: P) -> set[str]:
            return recipients_of_question(make_question(P.STUDENTS, recipient_type), roster, alice)

        assert recipients(P.SELF) == {"alice@example.com"}
        assert recipients(P.STUDENTS) == {s.email for s in roster.students}
        assert recipients(P.STUDENTS_EXCLUDING_SELF) == {
            "bob@example.com",
            "carol@example.com",
            "dan@example.com",
        }
        assert recipients(P.STUDENTS_IN_SAME_SECTION) == {"bob@example.com", "carol@example.com"}
        assert recipients(P.TEAMS) == {"Team 1", "Team 2", "Team 3"}
        assert recipients(P.TEAMS_EXCLUDING_SELF) == {"Team 2", "Team 3"}
        assert recipients(P.TEAMS_IN_SAME_SECTION) == {"Team 2"}
        assert recipients(P.INSTRUCTORS) == {"ivy@example.com", "joe@example.com"}
        assert recipients(P.OWN_TEAM) == {"Team 1"}
        assert recipients(P.OWN_TEAM_MEMBERS) == {"bob@example.com"}
        assert recipients(P.OWN_TEAM_MEMBERS_INCLUDING_SELF) == {
            "alice@example.com",
            "bob@example.com",
        }
        assert recipients(P.NONE) == {GENERAL_RECIPIENT}

    def test_team_giver_uses_team_identity(
        self, make_question: MakeQuestion, roster: CourseRoster
    ) -> None:
        alice = roster.get_student_for_email("alice@example.com")
        assert alice is not None

        def recipients(recipient_type: P) -> set[str]:
            return recipients_of_question(make_question(P.TEAMS, recipient_type), roster, alice)

        assert recipients(P.SELF) == {"Team 1"}
        assert recipients(P.OWN_TEAM_MEMBERS) == {"alice@example.com", "bob@example.com"}

    def test_instructor_giver(self, make_question: MakeQuestion, roster: CourseRoster) -> None:
        ivy = roster.get_instructor_for_email("ivy@example.com")
        assert ivy is not None

        def recipients(recipient_type: P) -> set[str]:
            return recipients_of_question(make_question(P.INSTRUCTORS, recipient_type), roster, ivy)

        assert recipients(P.SELF) == {"ivy@example.com"}
        assert recipients(P.INSTRUCTORS) == {"joe@example.com"}
        assert recipients(P.STUDENTS) == {s.email for s in roster.students}
        assert recipients(P.TEAMS) == {"Team 1", "Team 2", "Team 3"}
        assert recipients(P.OWN_TEAM_MEMBERS) == set()
        assert recipients(P.STUDENTS_IN_SAME_SECTION) == set()
        assert recipients(P.TEAMS_IN_SAME_SECTION) == set()


class TestCourseRoster:
    def test_team_grouping_and_lookup(self, roster: CourseRoster) -> None:
        assert [s.email for s in roster.get_team_members("Team 1")] == [
            "alice@example.com",
            "bob@example.com",
        ]
        assert roster.get_team_members("Team 9") == ()
        assert roster.get_student_for_email("nobody@example.com") is None
        assert roster.get_instructor_for_email("joe@example.com") is not None


class TestComputeRankUpdates:
    def test_gap_is_closed_preserving_order(self) -> None:
        """Ranks [1, 3, 4] over three recipients become [1, 2, 3]."""
        responses = [
            _rank_response("a@example.com", 1),
            _rank_response("b@example.com", 3),
            _rank_response("c@example.com", 4),
        ]
        valid = {"a@example.com", "b@example.com", "c@example.com"}

        updates = compute_rank_updates(responses, valid)

        new_ranks = {u.response_id: u.new_rank for u in updates}
        final = [new_ranks.get(r.id, r.details.answer) for r in responses]
        assert final == [1, 2, 3]
        assert len(updates) == 2
        assert all(u.details == RankRecipientsResponseDetails(answer=u.new_rank) for u in updates)

    def test_consistent_ranks_produce_no_updates(self) -> None:
        responses = [_rank_response("a@example.com", 2), _rank_response("b@example.com", 1)]

        assert compute_rank_updates(responses, {"a@example.com", "b@example.com"}) == []

    def test_partial_ranking_within_bounds_is_left_alone(self) -> None:
        # Giver ranked only some of the recipients; ranks still fit, so nothing changes
        responses = [_rank_response("a@example.com", 3)]

        valid = {"a@example.com", "b@example.com", "c@example.com"}

        assert compute_rank_updates(responses, valid) == []

    def test_duplicates_are_separated_by_recipient(self) -> None:
        responses = [_rank_response("b@example.com", 1), _rank_response("a@example.com", 1)]

        updates = compute_rank_updates(responses, {"a@example.com", "b@example.com"})

        assert [(u.response_id, u.old_rank, u.new_rank) for u in updates] == [
            (responses[0].id, 1, 2)
        ]

    def test_responses_to_departed_recipients_are_ignored(self) -> None:
        responses = [
            _rank_response("gone@example.com", 1),
            _rank_response("a@example.com", 2),
            _rank_response("b@example.com", 3),
        ]

        updates = compute_rank_updates(responses, {"a@example.com", "b@example.com"})

        assert {u.response_id for u in updates} == {responses[1].id, responses[2].id}
        assert sorted(u.new_rank for u in updates) == [1, 2]

    def test_second_pass_is_a_no_op(self) -> None:
        responses = [
            _rank_response("a@example.com", 5),
            _rank_response("b@example.com", 2),
            _rank_response("c@example.com", 2),
        ]
        valid = {"a@example.com", "b@example.com", "c@example.com"}

        for update in compute_rank_updates(responses, valid):
            target = next(r for r in responses if r.id == update.response_id)
            target.details = update.details

        assert compute_rank_updates(responses, valid) == []

    def test_non_rank_payloads_are_skipped(self) -> None:
        response = _rank_response("a@example.com", 7)
        response.details = TextResponseDetails(answer="great teammate")

        assert compute_rank_updates([response], {"a@example.com"}) == []

    def test_question_type_tag_round_trips_through_storage(self) -> None:
        response = _rank_response("a@example.com", 2)

        assert response.answer["question_type"] == FeedbackQuestionType.RANK_RECIPIENTS.value
        assert isinstance(response.details, RankRecipientsResponseDetails)
