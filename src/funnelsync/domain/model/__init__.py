"""Public domain model surface."""

from __future__ import annotations

from funnelsync.domain.model.base import Entity, ensure_utc, new_id, utcnow
from funnelsync.domain.model.conversion import ConversionPatch, ConversionRecord, IdentityKey
from funnelsync.domain.model.enums import ConversionSource, ConversionStage, MembershipType
from funnelsync.domain.model.prospects import COURSE_PACKAGE_SIZES, Guest, Trial

__all__ = [
    "COURSE_PACKAGE_SIZES",
    "ConversionPatch",
    "ConversionRecord",
    "ConversionSource",
    "ConversionStage",
    "Entity",
    "Guest",
    "IdentityKey",
    "MembershipType",
    "Trial",
    "ensure_utc",
    "new_id",
    "utcnow",
]
