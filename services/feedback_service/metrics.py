"""Metrics definitions for the Feedback Service."""

from __future__ import annotations

from prometheus_client import REGISTRY, CollectorRegistry, Counter


class FeedbackMetrics:
    """A container for all Prometheus metrics for the service."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.student_cascades_total = Counter(
            "feedback_student_cascades_total",
            "Total number of student deletion cascades.",
            ["outcome"],
            registry=registry,
        )
        self.instructor_cascades_total = Counter(
            "feedback_instructor_cascades_total",
            "Total number of instructor deletion cascades.",
            ["outcome"],
            registry=registry,
        )
        self.responses_deleted_total = Counter(
            "feedback_responses_deleted_total",
            "Total number of feedback responses deleted by cascades.",
            ["reason"],
            registry=registry,
        )
        self.rank_updates_applied_total = Counter(
            "feedback_rank_updates_applied_total",
            "Total number of rank-recipient answers renumbered.",
            registry=registry,
        )
        self.rank_update_failures_total = Counter(
            "feedback_rank_update_failures_total",
            "Total number of rank-recipient renumberings that could not be applied.",
            ["error_code"],
            registry=registry,
        )

