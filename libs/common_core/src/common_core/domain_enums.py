"""
common_core.domain_enums - Enums defining core business domain concepts.
"""

from __future__ import annotations

from enum import Enum


class FeedbackParticipantType(str, Enum):
    """Who may give, receive or see responses to a feedback question.

    The same enumeration serves three roles: the giver type of a question,
    its recipient type, and the entries of its visibility list
    (``show_responses_to``). Not every value is meaningful in every role:
    RECEIVER and RECEIVER_TEAM_MEMBERS only appear in visibility lists, and
    NONE only as a recipient type.
    """

    # Giver and/or recipient types
    SELF = "SELF"
    STUDENTS = "STUDENTS"
    STUDENTS_EXCLUDING_SELF = "STUDENTS_EXCLUDING_SELF"
    STUDENTS_IN_SAME_SECTION = "STUDENTS_IN_SAME_SECTION"
    INSTRUCTORS = "INSTRUCTORS"
    TEAMS = "TEAMS"
    TEAMS_EXCLUDING_SELF = "TEAMS_EXCLUDING_SELF"
    TEAMS_IN_SAME_SECTION = "TEAMS_IN_SAME_SECTION"
    OWN_TEAM = "OWN_TEAM"
    OWN_TEAM_MEMBERS = "OWN_TEAM_MEMBERS"
    OWN_TEAM_MEMBERS_INCLUDING_SELF = "OWN_TEAM_MEMBERS_INCLUDING_SELF"
    NONE = "NONE"
    GIVER = "GIVER"

    # Visibility-only types
    RECEIVER = "RECEIVER"
    RECEIVER_TEAM_MEMBERS = "RECEIVER_TEAM_MEMBERS"

    def is_team(self) -> bool:
        """Return True for recipient/giver categories that denote whole teams."""
        return self in _TEAM_TYPES


_TEAM_TYPES = frozenset(
    {
        FeedbackParticipantType.TEAMS,
        FeedbackParticipantType.TEAMS_EXCLUDING_SELF,
        FeedbackParticipantType.TEAMS_IN_SAME_SECTION,
        FeedbackParticipantType.OWN_TEAM,
    }
)


class FeedbackQuestionType(str, Enum):
    """Question variants. Each one has exactly one answer payload shape."""

    TEXT = "TEXT"
    MCQ = "MCQ"
    MSQ = "MSQ"
    NUMSCALE = "NUMSCALE"
    RANK_OPTIONS = "RANK_OPTIONS"
    RANK_RECIPIENTS = "RANK_RECIPIENTS"


class ParticipantKind(str, Enum):
    """Kind of entity a response giver or recipient identifier refers to.

    Team-level responses carry ``TEAM`` explicitly so they can be told apart
    from individual responses without inspecting the identifier string.
    """

    STUDENT = "STUDENT"
    INSTRUCTOR = "INSTRUCTOR"
    TEAM = "TEAM"
    GENERAL = "GENERAL"
