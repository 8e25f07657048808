"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class MembershipType(StrEnum):
    FLEX = "flex"
    LOYALTY = "loyalty"
    COURSE = "course"

    @property
    def is_terminal(self) -> bool:
        return self is not MembershipType.COURSE


class ConversionSource(StrEnum):
    """Which prospect record a conversion was discovered through."""

    TRIAL = "trial"
    GUEST = "guest"
    DIRECT = "direct"


class ConversionStage(StrEnum):
    """Stored funnel stage of a conversion record (one row per identity key and stage)."""

    COURSE = "course"
    MEMBER = "member"

    @classmethod
    def for_membership(cls, membership_type: MembershipType) -> ConversionStage:
        return cls.MEMBER if membership_type.is_terminal else cls.COURSE
