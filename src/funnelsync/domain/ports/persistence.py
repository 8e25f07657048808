"""Ports for persisting prospects and conversions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from funnelsync.domain.model import ConversionStage

if TYPE_CHECKING:
    from collections.abc import Iterable
    from datetime import datetime
    from uuid import UUID

    from funnelsync.domain.model import (
        ConversionPatch,
        ConversionRecord,
        Guest,
        IdentityKey,
        Trial,
    )


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class ConversionRepository(Protocol):
    """Persistence contract for conversion records (the conversion store gateway)."""

    def list_conversions(self) -> list[ConversionRecord]: ...

    def get(self, record_id: UUID) -> ConversionRecord | None: ...

    def find_conversions(
        self, external_member_id: str, city: str | None
    ) -> list[ConversionRecord]: ...

    def find_by_member_id(self, external_member_id: str) -> list[ConversionRecord]: ...

    def find_existing_conversion_keys(
        self, *, stages: Iterable[ConversionStage] = (ConversionStage.MEMBER,)
    ) -> set[IdentityKey]: ...

    def upsert_conversion(self, record: ConversionRecord) -> bool: ...

    def update_conversion(self, record_id: UUID, patch: ConversionPatch) -> ConversionRecord: ...


@runtime_checkable
class TrialRepository(Repository["Trial"], Protocol):
    """Persistence contract for trial bookings."""

    def list_with_member_id(self) -> list[Trial]: ...

    def find_by_member_id(self, external_member_id: str) -> list[Trial]: ...


@runtime_checkable
class GuestRepository(Repository["Guest"], Protocol):
    """Persistence contract for guests (course-package holders)."""

    def get(self, external_member_id: str, country: str) -> Guest | None: ...

    def find_by_member_id(self, external_member_id: str) -> list[Guest]: ...

    def list_for_country(self, country: str) -> list[Guest]: ...

    def list_unconverted(self, country: str | None = None) -> list[Guest]: ...

    def mark_guest_converted(
        self, external_member_id: str, when: datetime, *, country: str
    ) -> bool: ...
