"""Conversion records: funnel-stage transitions keyed by (member id, city)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from funnelsync.domain.model.base import Entity, ensure_utc, utcnow
from funnelsync.domain.model.enums import ConversionSource, ConversionStage, MembershipType

if TYPE_CHECKING:
    from datetime import datetime


@dataclass(frozen=True, slots=True)
class IdentityKey:
    """Member ids are only unique inside one tenant; the city disambiguates them."""

    external_member_id: str
    city: str | None

    def matches(self, other: IdentityKey) -> bool:
        """Whether a stored record keyed ``other`` belongs to this identity.

        Rows written before city tracking existed carry no city and match any
        city for the same member id. The wildcard is one-sided: a key without a
        city only matches records without a city.
        """

        if self.external_member_id != other.external_member_id:
            return False
        if other.city is None:
            return True
        return self.city == other.city

    def __str__(self) -> str:
        return f"{self.external_member_id}@{self.city or '-'}"


@dataclass(slots=True, kw_only=True)
class ConversionPatch:
    """Partial update applied to an existing conversion record."""

    member_since: datetime | None = None
    membership_type: MembershipType | None = None
    source: ConversionSource | None = None
    had_course_step: bool | None = None
    city: str | None = None

    def changes(self) -> dict[str, object]:
        return {
            name: value
            for name, value in (
                ("member_since", self.member_since),
                ("membership_type", self.membership_type),
                ("source", self.source),
                ("had_course_step", self.had_course_step),
                ("city", self.city),
            )
            if value is not None
        }


@dataclass(eq=False, kw_only=True)
class ConversionRecord(Entity):
    external_member_id: str
    city: str | None = None
    member_since: datetime
    membership_type: MembershipType
    source: ConversionSource
    had_course_step: bool = False
    created_at: datetime = field(default_factory=utcnow)

    stage: ConversionStage = field(init=False)

    def __post_init__(self) -> None:
        self.member_since = ensure_utc(self.member_since)
        self.stage = ConversionStage.for_membership(self.membership_type)

    @property
    def identity_key(self) -> IdentityKey:
        return IdentityKey(self.external_member_id, self.city)

    @property
    def is_terminal(self) -> bool:
        return self.membership_type.is_terminal

    def apply(self, patch: ConversionPatch) -> None:
        if patch.member_since is not None:
            self.member_since = ensure_utc(patch.member_since)
        if patch.membership_type is not None:
            self.membership_type = patch.membership_type
            self.stage = ConversionStage.for_membership(patch.membership_type)
        if patch.source is not None:
            self.source = patch.source
        if patch.had_course_step is not None:
            self.had_course_step = patch.had_course_step
        if patch.city is not None:
            self.city = patch.city
