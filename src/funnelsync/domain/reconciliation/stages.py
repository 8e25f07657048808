"""Funnel stage derivation from a snapshot of stored conversion records.

The snapshot is read once, before any write of the run. Each candidate's stage
is derived from it exactly once and never re-queried mid-transition.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from funnelsync.domain.model import MembershipType

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from funnelsync.domain.model import ConversionRecord, IdentityKey


class FunnelStage(StrEnum):
    UNCONVERTED = "unconverted"
    COURSE = "course"
    MEMBER = "member"


@dataclass(slots=True)
class ConversionIndex:
    """Conversion records grouped by member id, queried by identity key."""

    _by_member: dict[str, list[ConversionRecord]] = field(
        default_factory=lambda: defaultdict(list)
    )

    @classmethod
    def from_records(cls, records: Iterable[ConversionRecord]) -> ConversionIndex:
        index = cls()
        for record in records:
            index.add(record)
        return index

    def __len__(self) -> int:
        return sum(len(records) for records in self._by_member.values())

    def add(self, record: ConversionRecord) -> None:
        self._by_member[record.external_member_id].append(record)

    def replace(self, record_id: UUID, record: ConversionRecord) -> None:
        """Swap the record with ``record_id`` for its promoted version."""

        records = self._by_member[record.external_member_id]
        self._by_member[record.external_member_id] = [
            existing for existing in records if existing.id != record_id
        ]
        self.add(record)

    def records_for(self, key: IdentityKey) -> list[ConversionRecord]:
        return [
            record
            for record in self._by_member.get(key.external_member_id, ())
            if key.matches(record.identity_key)
        ]

    def stage_of(self, key: IdentityKey) -> FunnelStage:
        records = self.records_for(key)
        if any(record.is_terminal for record in records):
            return FunnelStage.MEMBER
        if records:
            return FunnelStage.COURSE
        return FunnelStage.UNCONVERTED

    def course_record(self, key: IdentityKey) -> ConversionRecord | None:
        """Course record for ``key``, preferring an exact city match over a legacy row."""

        courses = [
            record
            for record in self.records_for(key)
            if record.membership_type is MembershipType.COURSE
        ]
        if not courses:
            return None
        courses.sort(key=lambda record: (record.city != key.city, record.created_at))
        return courses[0]
