"""
Pure rule logic for feedback responses.

Nothing here touches the database: participant-type classification,
recipient computation against a roster snapshot and rank renumbering are all
functions of their arguments.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Set
from dataclasses import dataclass
from typing import Union

from common_core.domain_enums import FeedbackParticipantType

from services.feedback_service.constants import GENERAL_RECIPIENT
from services.feedback_service.course_roster import CourseRoster
from services.feedback_service.models_db import (
    FeedbackQuestion,
    FeedbackResponse,
    Instructor,
    Student,
)
from services.feedback_service.response_details import RankRecipientsResponseDetails

_STUDENT_RECIPIENT_TYPES = frozenset(
    {
        FeedbackParticipantType.STUDENTS,
        FeedbackParticipantType.STUDENTS_EXCLUDING_SELF,
        FeedbackParticipantType.STUDENTS_IN_SAME_SECTION,
        FeedbackParticipantType.OWN_TEAM_MEMBERS,
        FeedbackParticipantType.OWN_TEAM_MEMBERS_INCLUDING_SELF,
    }
)

Giver = Union[Student, Instructor]


def is_student_recipient_type(question: FeedbackQuestion) -> bool:
    """True if students are a structurally implied recipient category of the question."""
    if question.recipient_type in _STUDENT_RECIPIENT_TYPES:
        return True
    return (
        question.recipient_type == FeedbackParticipantType.GIVER
        and question.giver_type == FeedbackParticipantType.STUDENTS
    )


def is_team_recipient_type(question: FeedbackQuestion) -> bool:
    return question.recipient_type.is_team()


def is_answerable_by(question: FeedbackQuestion, is_instructor: bool) -> bool:
    """True if the question's giver type is one the given user type answers."""
    if is_instructor:
        return question.giver_type == FeedbackParticipantType.INSTRUCTORS
    return question.giver_type in (FeedbackParticipantType.STUDENTS, FeedbackParticipantType.TEAMS)


def recipients_of_question(
    question: FeedbackQuestion, roster: CourseRoster, giver: Giver
) -> set[str]:
    """
    Compute the identifiers a giver may address for a question under a roster.

    Student recipients are identified by email, team recipients by team name.
    For team-typed giver types, ``giver`` is any member of the giving team.
    """
    if isinstance(giver, Instructor):
        return _recipients_for_instructor(question.recipient_type, roster, giver)
    return _recipients_for_student(
        question.recipient_type, roster, giver, question.giver_type.is_team()
    )


def _recipients_for_instructor(
    recipient_type: FeedbackParticipantType, roster: CourseRoster, giver: Instructor
) -> set[str]:
    if recipient_type in (FeedbackParticipantType.SELF, FeedbackParticipantType.GIVER):
        return {giver.email}
    if recipient_type in (
        FeedbackParticipantType.STUDENTS,
        FeedbackParticipantType.STUDENTS_EXCLUDING_SELF,
    ):
        return {s.email for s in roster.students}
    if recipient_type in (
        FeedbackParticipantType.TEAMS,
        FeedbackParticipantType.TEAMS_EXCLUDING_SELF,
    ):
        return set(roster.team_to_members)
    if recipient_type == FeedbackParticipantType.INSTRUCTORS:
        return {i.email for i in roster.instructors if i.email != giver.email}
    if recipient_type == FeedbackParticipantType.NONE:
        return {GENERAL_RECIPIENT}
    # Instructors have neither team nor section
    return set()


def _recipients_for_student(
    recipient_type: FeedbackParticipantType,
    roster: CourseRoster,
    giver: Student,
    giver_is_team: bool,
) -> set[str]:
    own_team = giver.team_name

    if recipient_type in (FeedbackParticipantType.SELF, FeedbackParticipantType.GIVER):
        return {own_team} if giver_is_team else {giver.email}
    if recipient_type == FeedbackParticipantType.STUDENTS:
        return {s.email for s in roster.students}
    if recipient_type == FeedbackParticipantType.STUDENTS_EXCLUDING_SELF:
        return {s.email for s in roster.students if s.email != giver.email}
    if recipient_type == FeedbackParticipantType.STUDENTS_IN_SAME_SECTION:
        return {
            s.email
            for s in roster.students
            if s.section_name == giver.section_name and s.email != giver.email
        }
    if recipient_type == FeedbackParticipantType.TEAMS:
        return set(roster.team_to_members)
    if recipient_type == FeedbackParticipantType.TEAMS_EXCLUDING_SELF:
        return {team for team in roster.team_to_members if team != own_team}
    if recipient_type == FeedbackParticipantType.TEAMS_IN_SAME_SECTION:
        return {
            s.team_name
            for s in roster.students
            if s.section_name == giver.section_name and s.team_name != own_team
        }
    if recipient_type == FeedbackParticipantType.INSTRUCTORS:
        return {i.email for i in roster.instructors}
    if recipient_type == FeedbackParticipantType.OWN_TEAM:
        return {own_team}
    if recipient_type == FeedbackParticipantType.OWN_TEAM_MEMBERS:
        members = roster.get_team_members(own_team)
        if giver_is_team:
            return {m.email for m in members}
        return {m.email for m in members if m.email != giver.email}
    if recipient_type == FeedbackParticipantType.OWN_TEAM_MEMBERS_INCLUDING_SELF:
        return {m.email for m in roster.get_team_members(own_team)}
    if recipient_type == FeedbackParticipantType.NONE:
        return {GENERAL_RECIPIENT}
    return set()


@dataclass(frozen=True)
class RankUpdate:
    """A single rank change to apply to a stored response."""

    response_id: uuid.UUID
    question_id: uuid.UUID
    old_rank: int
    new_rank: int

    @property
    def details(self) -> RankRecipientsResponseDetails:
        return RankRecipientsResponseDetails(answer=self.new_rank)


@dataclass(frozen=True)
class RankRepairResult:
    questions_checked: int = 0
    updates_applied: int = 0
    updates_failed: int = 0


def compute_rank_updates(
    responses: Iterable[FeedbackResponse], valid_recipients: Set[str]
) -> list[RankUpdate]:
    """
    Renumber one giver's ranks so they form a dense permutation starting at 1.

    Responses addressed to recipients outside ``valid_recipients`` are ignored.
    Nothing is emitted when the remaining ranks are already within
    ``1..len(valid_recipients)`` and duplicate-free. Otherwise ranks are
    compressed in ``(rank, recipient)`` order, so relative order is kept and a
    second pass over the result is a no-op.
    """
    ranked: list[tuple[int, str, FeedbackResponse]] = []
    for response in responses:
        if response.recipient not in valid_recipients:
            continue
        details = response.details
        if not isinstance(details, RankRecipientsResponseDetails):
            continue
        ranked.append((details.answer, response.recipient, response))

    max_rank = len(valid_recipients)
    ranks = [rank for rank, _, _ in ranked]
    is_consistent = all(1 <= rank <= max_rank for rank in ranks) and len(set(ranks)) == len(ranks)
    if is_consistent:
        return []

    ranked.sort(key=lambda entry: (entry[0], entry[1]))
    updates: list[RankUpdate] = []
    for new_rank, (old_rank, _, response) in enumerate(ranked, start=1):
        if new_rank != old_rank:
            updates.append(
                RankUpdate(
                    response_id=response.id,
                    question_id=response.question_id,
                    old_rank=old_rank,
                    new_rank=new_rank,
                )
            )
    return updates
