"""Point-in-time snapshot of the participants of one course."""

from __future__ import annotations

from collections.abc import Sequence
from types import MappingProxyType
from typing import Mapping

from services.feedback_service.models_db import Instructor, Student


class CourseRoster:
    """
    Students and instructors of a course, plus the team grouping derived from them.

    Built once per operation from the gateway's roster queries and never
    persisted. Callers must not mutate the contained entities.
    """

    def __init__(self, students: Sequence[Student], instructors: Sequence[Instructor]) -> None:
        self._students: tuple[Student, ...] = tuple(students)
        self._instructors: tuple[Instructor, ...] = tuple(instructors)
        self._students_by_email = {s.email: s for s in self._students}
        self._instructors_by_email = {i.email: i for i in self._instructors}

        teams: dict[str, list[Student]] = {}
        for student in self._students:
            teams.setdefault(student.team_name, []).append(student)
        self._team_to_members: Mapping[str, tuple[Student, ...]] = MappingProxyType(
            {team: tuple(members) for team, members in teams.items()}
        )

    @property
    def students(self) -> tuple[Student, ...]:
        return self._students

    @property
    def instructors(self) -> tuple[Instructor, ...]:
        return self._instructors

    @property
    def team_to_members(self) -> Mapping[str, tuple[Student, ...]]:
        return self._team_to_members

    def get_student_for_email(self, email: str) -> Student | None:
        return self._students_by_email.get(email)

    def get_instructor_for_email(self, email: str) -> Instructor | None:
        return self._instructors_by_email.get(email)

    def get_team_members(self, team_name: str) -> tuple[Student, ...]:
        return self._team_to_members.get(team_name, ())

    def __repr__(self) -> str:
        return (
            f"CourseRoster(students={len(self._students)}, "
            f"instructors={len(self._instructors)}, teams={len(self._team_to_members)})"
        )
