from __future__ import annotations

from dishka import AsyncContainer, Provider, Scope, make_async_container, provide
from prometheus_client import REGISTRY, CollectorRegistry
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from services.feedback_service.config import Settings, settings
from services.feedback_service.implementations.cascade_coordinator_impl import (
    CascadeCoordinatorImpl,
)
from services.feedback_service.implementations.feedback_repository_mock_impl import (
    MockFeedbackRepositoryImpl,
)
from services.feedback_service.implementations.feedback_repository_postgres_impl import (
    PostgreSQLFeedbackRepositoryImpl,
)
from services.feedback_service.implementations.rank_consistency_repairer_impl import (
    RankConsistencyRepairerImpl,
)
from services.feedback_service.implementations.visibility_evaluator_impl import (
    VisibilityEvaluatorImpl,
)
from services.feedback_service.metrics import FeedbackMetrics
from services.feedback_service.protocols import (
    CascadeCoordinatorProtocol,
    FeedbackRepositoryProtocol,
    RankConsistencyRepairerProtocol,
    VisibilityEvaluatorProtocol,
)


class DatabaseProvider(Provider):
    @provide(scope=Scope.APP)
    def provide_engine(self, settings: Settings) -> AsyncEngine:
        return create_async_engine(
            settings.DATABASE_URL,
            pool_size=settings.DATABASE_POOL_SIZE,
            max_overflow=settings.DATABASE_MAX_OVERFLOW,
            pool_pre_ping=settings.DATABASE_POOL_PRE_PING,
            pool_recycle=settings.DATABASE_POOL_RECYCLE,
        )

    @provide(scope=Scope.APP)
    def provide_sessionmaker(self, engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
        return async_sessionmaker(engine, expire_on_commit=False)


class RepositoryProvider(Provider):
    @provide(scope=Scope.APP)
    def provide_feedback_repository(
        self,
        engine: AsyncEngine,
        session_maker: async_sessionmaker[AsyncSession],
    ) -> FeedbackRepositoryProtocol:
        return PostgreSQLFeedbackRepositoryImpl(engine, session_maker)


class MockRepositoryProvider(Provider):
    """In-memory gateway; no database engine is created."""

    @provide(scope=Scope.APP)
    def provide_feedback_repository(self) -> FeedbackRepositoryProtocol:
        return MockFeedbackRepositoryImpl()


class ServiceProvider(Provider):
    def __init__(self, service_settings: Settings | None = None) -> None:
        super().__init__()
        self._settings = service_settings

    @provide(scope=Scope.APP)
    def provide_settings(self) -> Settings:
        return self._settings or settings

    @provide(scope=Scope.APP)
    def provide_visibility_evaluator(
        self, repository: FeedbackRepositoryProtocol
    ) -> VisibilityEvaluatorProtocol:
        return VisibilityEvaluatorImpl(repository)

    @provide(scope=Scope.APP)
    def provide_rank_repairer(
        self, repository: FeedbackRepositoryProtocol, metrics: FeedbackMetrics
    ) -> RankConsistencyRepairerProtocol:
        return RankConsistencyRepairerImpl(repository, metrics)

    @provide(scope=Scope.APP)
    def provide_cascade_coordinator(
        self,
        repository: FeedbackRepositoryProtocol,
        rank_repairer: RankConsistencyRepairerProtocol,
        metrics: FeedbackMetrics,
    ) -> CascadeCoordinatorProtocol:
        return CascadeCoordinatorImpl(repository, rank_repairer, metrics)


class MetricsProvider(Provider):
    """Provides Prometheus metrics-related dependencies."""

    @provide(scope=Scope.APP)
    def provide_registry(self) -> CollectorRegistry:
        """Provide the default Prometheus collector registry."""
        return REGISTRY

    @provide(scope=Scope.APP)
    def provide_metrics(self, registry: CollectorRegistry) -> FeedbackMetrics:
        """Provide an application-scoped instance of the metrics container."""
        return FeedbackMetrics(registry=registry)


def uses_mock_repository(service_settings: Settings) -> bool:
    return service_settings.is_testing() or service_settings.USE_MOCK_REPOSITORY


def create_container(service_settings: Settings | None = None) -> AsyncContainer:
    """
    Create and configure the application's dependency injection container.

    The in-memory gateway replaces the database-backed one when running in the
    testing environment or when USE_MOCK_REPOSITORY is set.
    """
    active_settings = service_settings or settings
    repository_providers: list[Provider]
    if uses_mock_repository(active_settings):
        repository_providers = [MockRepositoryProvider()]
    else:
        repository_providers = [DatabaseProvider(), RepositoryProvider()]

    return make_async_container(
        *repository_providers,
        ServiceProvider(active_settings),
        MetricsProvider(),
    )
