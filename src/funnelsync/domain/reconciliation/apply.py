"""Execution of reconciliation decisions.

``StoreWriter`` applies decisions through the unit of work's repositories.
``PreviewWriter`` records the same decisions as ``ProposedWrite`` entries and
never touches the store. Neither commits: transaction control stays with the
caller that owns the unit of work.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Protocol

from .decisions import CreateConversion, MarkGuestConverted, PromoteConversion

if TYPE_CHECKING:
    from funnelsync.domain.model import ConversionRecord
    from funnelsync.domain.ports import FunnelUnitOfWork

    from .decisions import Decision

log = logging.getLogger(__name__)


class WriteAction(StrEnum):
    CREATE_CONVERSION = "create_conversion"
    UPDATE_CONVERSION = "update_conversion"
    MARK_GUEST_CONVERTED = "mark_guest_converted"
    CREATE_GUEST = "create_guest"
    UPDATE_GUEST = "update_guest"


@dataclass(frozen=True, slots=True)
class ProposedWrite:
    """A write a dry run would have performed, with the fields it would set."""

    action: WriteAction
    target: str
    changes: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "action": str(self.action),
            "target": self.target,
            "changes": {name: _jsonable(value) for name, value in self.changes.items()},
        }


def describe(decision: Decision) -> ProposedWrite:
    match decision:
        case CreateConversion(record=record):
            return ProposedWrite(
                WriteAction.CREATE_CONVERSION, str(decision.key), _record_fields(record)
            )
        case PromoteConversion(current=current, patch=patch):
            return ProposedWrite(
                WriteAction.UPDATE_CONVERSION,
                str(decision.key),
                {"id": current.id, **patch.changes()},
            )
        case MarkGuestConverted(external_member_id=member_id, country=country, when=when):
            return ProposedWrite(
                WriteAction.MARK_GUEST_CONVERTED,
                f"{member_id}@{country}",
                {"converted_at": when},
            )


class DecisionWriter(Protocol):
    def write(self, decision: Decision) -> bool:
        """Execute or record ``decision``; return whether it took effect."""
        ...


@dataclass(slots=True)
class StoreWriter:
    unit_of_work: FunnelUnitOfWork

    def write(self, decision: Decision) -> bool:
        repositories = self.unit_of_work.repositories
        match decision:
            case CreateConversion(record=record):
                written = repositories.conversions.upsert_conversion(record)
                if not written:
                    log.debug("Conversion for %s already stored, skipping insert", decision.key)
                return written
            case PromoteConversion(patch=patch):
                repositories.conversions.update_conversion(decision.record_id, patch)
                return True
            case MarkGuestConverted(external_member_id=member_id, country=country, when=when):
                return repositories.guests.mark_guest_converted(member_id, when, country=country)


@dataclass(slots=True)
class PreviewWriter:
    proposals: list[ProposedWrite] = field(default_factory=list)

    def write(self, decision: Decision) -> bool:
        self.proposals.append(describe(decision))
        return True


def _record_fields(record: ConversionRecord) -> dict[str, object]:
    return {
        "id": record.id,
        "external_member_id": record.external_member_id,
        "city": record.city,
        "member_since": record.member_since,
        "membership_type": record.membership_type,
        "source": record.source,
        "had_course_step": record.had_course_step,
    }


def _jsonable(value: object) -> object:
    if value is None or isinstance(value, bool | int | float | str):
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()  # type: ignore[no-any-return]
    return str(value)
