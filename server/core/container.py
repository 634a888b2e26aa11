"""Dependency injection container for the application."""

from dependency_injector import containers, providers

from core.config import Settings
from core.database import Database
from core.cache import CacheService
from services.reports import ReportService, registry


class Container(containers.DeclarativeContainer):
    """Application dependency injection container."""

    # Settings
    settings = providers.Singleton(
        Settings,
    )

    # Database (report submissions, chart images, SQLite cache table)
    database = providers.Singleton(
        Database,
        settings=settings
    )

    # Cache service (Redis when enabled, SQLite otherwise)
    cache = providers.Singleton(
        CacheService,
        settings=settings,
        database=database
    )

    # Report registry, filled by @register_report
    report_registry = providers.Object(registry)

    report_service = providers.Singleton(
        ReportService,
        settings=settings,
        cache=cache,
        database=database,
        registry=report_registry
    )


# Global container instance
container = Container()
