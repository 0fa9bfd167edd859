from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from common_core.domain_enums import FeedbackParticipantType, FeedbackQuestionType, ParticipantKind
from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy import Enum as SQLAlchemyEnum
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from services.feedback_service.response_details import ResponseDetails, parse_response_details


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models."""


def _enum_column(enum_cls: type, name: str) -> SQLAlchemyEnum:
    return SQLAlchemyEnum(
        enum_cls,
        name=name,
        values_callable=lambda obj: [e.value for e in obj],
        native_enum=False,
    )


class Course(Base):
    __tablename__ = "courses"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    students: Mapped[list["Student"]] = relationship(
        back_populates="course", cascade="all, delete-orphan"
    )
    instructors: Mapped[list["Instructor"]] = relationship(
        back_populates="course", cascade="all, delete-orphan"
    )
    feedback_sessions: Mapped[list["FeedbackSession"]] = relationship(
        back_populates="course", cascade="all, delete-orphan"
    )


class Student(Base):
    __tablename__ = "students"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    team_name: Mapped[str] = mapped_column(String(255), nullable=False)
    section_name: Mapped[str] = mapped_column(String(255), nullable=False, default="None")

    course: Mapped["Course"] = relationship(back_populates="students")

    __table_args__ = (UniqueConstraint("course_id", "email", name="uix_student_course_email"),)


class Instructor(Base):
    __tablename__ = "instructors"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    course: Mapped["Course"] = relationship(back_populates="instructors")

    __table_args__ = (
        UniqueConstraint("course_id", "email", name="uix_instructor_course_email"),
    )


class FeedbackSession(Base):
    __tablename__ = "feedback_sessions"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    course_id: Mapped[str] = mapped_column(
        ForeignKey("courses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    session_visible_from_time: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    course: Mapped["Course"] = relationship(back_populates="feedback_sessions")
    questions: Mapped[list["FeedbackQuestion"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
        order_by="FeedbackQuestion.question_number",
    )
    deadline_extensions: Mapped[list["DeadlineExtension"]] = relationship(
        back_populates="session", cascade="all, delete-orphan"
    )

    __table_args__ = (UniqueConstraint("course_id", "name", name="uix_session_course_name"),)

    def is_visible(self, now: datetime | None = None) -> bool:
        """A session is visible once its visible-from time has passed, unless soft-deleted."""
        if self.deleted_at is not None or self.session_visible_from_time is None:
            return False
        now = now or datetime.now(timezone.utc)
        visible_from = self.session_visible_from_time
        if visible_from.tzinfo is None:
            # SQLite drops tzinfo on round trip; stored values are always UTC
            visible_from = visible_from.replace(tzinfo=timezone.utc)
        return visible_from <= now


class FeedbackQuestion(Base):
    __tablename__ = "feedback_questions"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("feedback_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    question_type: Mapped[FeedbackQuestionType] = mapped_column(
        _enum_column(FeedbackQuestionType, "feedback_question_type_enum"), nullable=False
    )
    giver_type: Mapped[FeedbackParticipantType] = mapped_column(
        _enum_column(FeedbackParticipantType, "feedback_giver_type_enum"), nullable=False
    )
    recipient_type: Mapped[FeedbackParticipantType] = mapped_column(
        _enum_column(FeedbackParticipantType, "feedback_recipient_type_enum"), nullable=False
    )
    show_responses_to: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    session: Mapped["FeedbackSession"] = relationship(back_populates="questions")
    responses: Mapped[list["FeedbackResponse"]] = relationship(
        back_populates="question", cascade="all, delete-orphan"
    )

    def is_response_visible_to(self, participant_type: FeedbackParticipantType) -> bool:
        return participant_type.value in (self.show_responses_to or [])


class FeedbackResponse(Base):
    __tablename__ = "feedback_responses"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    question_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("feedback_questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    giver: Mapped[str] = mapped_column(String(255), nullable=False)
    giver_kind: Mapped[ParticipantKind] = mapped_column(
        _enum_column(ParticipantKind, "participant_kind_enum"), nullable=False
    )
    giver_section: Mapped[str | None] = mapped_column(String(255), nullable=True)
    recipient: Mapped[str] = mapped_column(String(255), nullable=False)
    recipient_kind: Mapped[ParticipantKind] = mapped_column(
        _enum_column(ParticipantKind, "participant_kind_enum"), nullable=False
    )
    recipient_section: Mapped[str | None] = mapped_column(String(255), nullable=True)
    answer: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    question: Mapped["FeedbackQuestion"] = relationship(back_populates="responses")
    comments: Mapped[list["FeedbackResponseComment"]] = relationship(
        back_populates="response", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("question_id", "giver", "recipient", name="uix_response_identity"),
        Index("ix_feedback_responses_giver", "giver"),
        Index("ix_feedback_responses_recipient", "recipient"),
    )

    @property
    def details(self) -> ResponseDetails:
        return parse_response_details(self.answer)

    @details.setter
    def details(self, value: ResponseDetails) -> None:
        self.answer = value.model_dump(mode="json")


class FeedbackResponseComment(Base):
    __tablename__ = "feedback_response_comments"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    response_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("feedback_responses.id", ondelete="CASCADE"), nullable=False, index=True
    )
    giver: Mapped[str] = mapped_column(String(255), nullable=False)
    comment_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

    response: Mapped["FeedbackResponse"] = relationship(back_populates="comments")


class DeadlineExtension(Base):
    __tablename__ = "deadline_extensions"
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    session_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("feedback_sessions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_email: Mapped[str] = mapped_column(String(255), nullable=False)
    is_instructor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    session: Mapped["FeedbackSession"] = relationship(back_populates="deadline_extensions")

    __table_args__ = (
        UniqueConstraint(
            "session_id", "user_email", "is_instructor", name="uix_deadline_session_user"
        ),
    )
