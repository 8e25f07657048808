"""Prospects: people in the funnel who do not hold a membership yet."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from funnelsync.domain.model.base import Entity, ensure_utc, utcnow

if TYPE_CHECKING:
    from datetime import datetime

COURSE_PACKAGE_SIZES: frozenset[int] = frozenset({10, 16})


@dataclass(eq=False, kw_only=True)
class Trial(Entity):
    """A booked trial class, optionally linked to a platform member id."""

    email: str
    name: str | None = None
    city: str
    country: str
    external_member_id: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    attended: bool = False


@dataclass(eq=False, kw_only=True)
class Guest(Entity):
    """A course-package holder (10 or 16 credits) who is not a member yet.

    ``external_member_id`` is unique per tenant only, so guests are keyed by
    (``external_member_id``, ``country``).
    """

    external_member_id: str
    country: str
    credits_left: int
    package_size: int
    city: str | None = None
    start_date: datetime | None = None
    converted_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def is_converted(self) -> bool:
        return self.converted_at is not None

    def mark_converted(self, when: datetime) -> bool:
        """Set ``converted_at`` once; later calls are no-ops. Returns whether it changed."""

        if self.converted_at is not None:
            return False
        self.converted_at = ensure_utc(when)
        self.touch()
        return True

    def refresh_package(
        self,
        *,
        credits_left: int,
        package_size: int,
        city: str | None = None,
    ) -> bool:
        """Apply the newest package snapshot. Returns whether anything changed."""

        changed = False
        if self.credits_left != credits_left:
            self.credits_left = credits_left
            changed = True
        if self.package_size != package_size:
            self.package_size = package_size
            changed = True
        if city is not None and self.city is None:
            self.city = city
            changed = True
        if changed:
            self.touch()
        return changed

    def reset_package(self, *, package_size: int, city: str, start_date: datetime) -> None:
        """Start a new package: full credits and the guest is back in the funnel."""

        self.credits_left = package_size
        self.package_size = package_size
        self.city = city
        self.start_date = ensure_utc(start_date)
        self.converted_at = None
        self.touch()

    def touch(self) -> None:
        self.updated_at = utcnow()
