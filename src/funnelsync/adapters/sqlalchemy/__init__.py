"""SQLAlchemy adapter package for funnelsync."""

from __future__ import annotations

from .mappings import create_all_tables, mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyConversionRepository,
    SqlAlchemyGuestRepository,
    SqlAlchemyTrialRepository,
)
from .unit_of_work import (
    SqlAlchemyFunnelUnitOfWork,
    StartupError,
    configured_engine,
    is_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyConversionRepository",
    "SqlAlchemyFunnelUnitOfWork",
    "SqlAlchemyGuestRepository",
    "SqlAlchemyTrialRepository",
    "StartupError",
    "configured_engine",
    "create_all_tables",
    "is_started",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
