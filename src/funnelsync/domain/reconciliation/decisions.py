"""Pure per-candidate decisions.

``decide`` maps a candidate, its derived stage and the platform facts for its
member id onto write instructions. It performs no I/O; the same instructions
are either executed against the store or collected into a preview.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from funnelsync.domain.model import ConversionPatch, ConversionRecord, MembershipType

from .candidates import CandidateKind
from .stages import FunnelStage

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from funnelsync.domain.model import IdentityKey
    from funnelsync.domain.ports import CoursePurchaseFact, MembershipFact

    from .candidates import Candidate


@dataclass(frozen=True, slots=True)
class CreateConversion:
    """Insert a new conversion record (course or terminal)."""

    record: ConversionRecord

    @property
    def key(self) -> IdentityKey:
        return self.record.identity_key


@dataclass(frozen=True, slots=True)
class PromoteConversion:
    """Mutate an existing course record into the terminal record, keeping its id."""

    current: ConversionRecord
    patch: ConversionPatch

    @property
    def record_id(self) -> UUID:
        return self.current.id

    @property
    def key(self) -> IdentityKey:
        return self.current.identity_key

    def promoted(self) -> ConversionRecord:
        return replace(self.current, **self.patch.changes())


@dataclass(frozen=True, slots=True)
class MarkGuestConverted:
    external_member_id: str
    country: str
    when: datetime


type Decision = CreateConversion | PromoteConversion | MarkGuestConverted


def decide(
    candidate: Candidate,
    stage: FunnelStage,
    *,
    course_record: ConversionRecord | None,
    membership: MembershipFact | None,
    course_purchase: CoursePurchaseFact | None,
) -> list[Decision]:
    """Return the writes that move ``candidate`` forward, in execution order.

    A membership fact always wins over a course purchase. Stages never move
    backwards: a settled candidate only gets its guest row marked converted.
    """

    guest = candidate.guest if candidate.kind is CandidateKind.GUEST else None

    if stage is FunnelStage.MEMBER:
        if guest is not None and not guest.is_converted and membership is not None:
            return [_mark_guest(guest.external_member_id, guest.country, membership)]
        return []

    if membership is not None:
        decisions: list[Decision] = [_member_decision(candidate, stage, course_record, membership)]
        if guest is not None:
            decisions.append(_mark_guest(guest.external_member_id, guest.country, membership))
        return decisions

    if stage is FunnelStage.UNCONVERTED and course_purchase is not None:
        return [
            CreateConversion(
                ConversionRecord(
                    external_member_id=candidate.external_member_id,
                    city=candidate.key.city,
                    member_since=course_purchase.purchase_date,
                    membership_type=MembershipType.COURSE,
                    source=candidate.source,
                    had_course_step=False,
                )
            )
        ]

    return []


def _member_decision(
    candidate: Candidate,
    stage: FunnelStage,
    course_record: ConversionRecord | None,
    membership: MembershipFact,
) -> Decision:
    if stage is FunnelStage.COURSE and course_record is not None:
        # A promoted legacy row takes the candidate's city; a terminal row
        # without a city would settle the member id in every tenant.
        return PromoteConversion(
            current=course_record,
            patch=ConversionPatch(
                member_since=membership.start_date,
                membership_type=membership.membership_type,
                source=candidate.source,
                had_course_step=True,
                city=candidate.key.city if course_record.city is None else None,
            ),
        )
    return CreateConversion(
        ConversionRecord(
            external_member_id=candidate.external_member_id,
            city=candidate.key.city,
            member_since=membership.start_date,
            membership_type=membership.membership_type,
            source=candidate.source,
            had_course_step=stage is FunnelStage.COURSE or candidate.kind is CandidateKind.GUEST,
        )
    )


def _mark_guest(external_member_id: str, country: str, membership: MembershipFact) -> Decision:
    return MarkGuestConverted(
        external_member_id=external_member_id,
        country=country,
        when=membership.start_date,
    )
