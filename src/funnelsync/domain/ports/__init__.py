"""Domain port definitions for adapters."""

from __future__ import annotations

from .persistence import ConversionRepository, GuestRepository, Repository, TrialRepository
from .platform import CoursePurchaseFact, MembershipFact, PlatformGateway
from .unit_of_work import FunnelRepositories, FunnelUnitOfWork, RepositoryCollection, UnitOfWork

__all__ = [
    "ConversionRepository",
    "CoursePurchaseFact",
    "FunnelRepositories",
    "FunnelUnitOfWork",
    "GuestRepository",
    "MembershipFact",
    "PlatformGateway",
    "Repository",
    "RepositoryCollection",
    "TrialRepository",
    "UnitOfWork",
]
