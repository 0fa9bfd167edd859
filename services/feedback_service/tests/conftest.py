"""Shared test fixtures and configuration for Feedback Service tests."""

from __future__ import annotations

from typing import Any, Callable, Iterable

import pytest
from common_core.domain_enums import FeedbackParticipantType, FeedbackQuestionType
from prometheus_client import REGISTRY

from services.feedback_service.implementations.feedback_repository_mock_impl import (
    MockFeedbackRepositoryImpl,
)
from services.feedback_service.metrics import FeedbackMetrics
from services.feedback_service.models_db import FeedbackQuestion

COURSE_ID = "CS2103-T1"


@pytest.fixture(autouse=True)
def _clear_prometheus_registry() -> Any:
    """
    Fixture to clear the default Prometheus registry before each test.

    This prevents "Duplicated timeseries in CollectorRegistry" errors
    when running multiple tests that register metrics.
    """
    collectors = list(REGISTRY._collector_to_names.keys())
    for collector in collectors:
        REGISTRY.unregister(collector)
    yield


@pytest.fixture
def course_id() -> str:
    return COURSE_ID


@pytest.fixture
def repository() -> MockFeedbackRepositoryImpl:
    return MockFeedbackRepositoryImpl()


@pytest.fixture
def metrics() -> FeedbackMetrics:
    return FeedbackMetrics()


@pytest.fixture
def make_question() -> Callable[..., FeedbackQuestion]:
    """Build a detached question; nothing is stored."""

    def _make(
        giver_type: FeedbackParticipantType = FeedbackParticipantType.STUDENTS,
        recipient_type: FeedbackParticipantType = FeedbackParticipantType.STUDENTS,
        show_responses_to: Iterable[FeedbackParticipantType] = (),
        question_type: FeedbackQuestionType = FeedbackQuestionType.TEXT,
    ) -> FeedbackQuestion:
        return FeedbackQuestion(
            question_number=1,
            question_type=question_type,
            giver_type=giver_type,
            recipient_type=recipient_type,
            show_responses_to=[t.value for t in show_responses_to],
        )

    return _make
