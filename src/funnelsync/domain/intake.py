"""Intake of single membership platform events.

Events arrive one at a time (contract signed, class booking changes, package
purchases) and update prospects and conversions immediately. They reuse the
reconciliation decisions, so an event and a later batch run agree on what the
stored records look like.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from funnelsync.domain.errors import PlatformUnavailableError, UnknownProspectError
from funnelsync.domain.identity import CityResolver
from funnelsync.domain.membership import map_membership_type
from funnelsync.domain.model import Guest, IdentityKey
from funnelsync.domain.ports import MembershipFact
from funnelsync.domain.reconciliation import (
    Candidate,
    CandidateKind,
    ConversionIndex,
    CreateConversion,
    MarkGuestConverted,
    PromoteConversion,
    StoreWriter,
    decide,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping
    from datetime import datetime

    from funnelsync.domain.ports import (
        CoursePurchaseFact,
        FunnelRepositories,
        FunnelUnitOfWork,
        PlatformGateway,
    )

log = logging.getLogger(__name__)

CLASS_BOOKING_EVENTS = frozenset(
    {
        "ClassesBooked",
        "ClassesBookingCancelled",
        "ClassesBookedOnStandbyList",
        "ClassesBookingPromotedFromStandbyList",
    }
)


@dataclass(frozen=True, slots=True, kw_only=True)
class ContractCreated:
    external_member_id: str
    signed_at: datetime
    plan_name: str


@dataclass(frozen=True, slots=True, kw_only=True)
class ClassBookingChanged:
    event: str
    external_member_id: str
    city: str | None = None


@dataclass(frozen=True, slots=True, kw_only=True)
class CoursePurchased:
    external_member_id: str
    city: str
    start_date: datetime
    credits: int


type IntakeCommand = ContractCreated | ClassBookingChanged | CoursePurchased


class IntakeOutcome(StrEnum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"


@dataclass(slots=True, kw_only=True)
class IntakeResult:
    event: str
    external_member_id: str
    outcome: IntakeOutcome
    tenant: str | None = None
    detail: str | None = None
    changes: dict[str, object] = field(default_factory=dict)

    def to_dict(self) -> dict[str, object]:
        return {
            "event": self.event,
            "member_id": self.external_member_id,
            "outcome": str(self.outcome),
            "tenant": self.tenant,
            "detail": self.detail,
            "changes": {name: str(value) for name, value in self.changes.items()},
        }


@dataclass(slots=True)
class IntakeService:
    platforms: Mapping[str, PlatformGateway]
    unit_of_work_factory: Callable[[], FunnelUnitOfWork]
    resolver: CityResolver = field(default_factory=CityResolver)

    def handle(self, command: IntakeCommand) -> IntakeResult:
        match command:
            case ContractCreated():
                return self.contract_created(command)
            case ClassBookingChanged():
                return self.class_booking_changed(command)
            case CoursePurchased():
                return self.course_purchased(command)

    def contract_created(self, command: ContractCreated) -> IntakeResult:
        """Record the terminal conversion for a newly signed contract.

        The prospect row decides city and source (guest first, then trial,
        then an existing conversion for a direct signup). A course record for
        the same identity key is promoted in place.
        """

        member_id = command.external_member_id
        membership = MembershipFact(
            start_date=command.signed_at,
            plan_name=command.plan_name,
            membership_type=map_membership_type(command.plan_name),
        )
        with self.unit_of_work_factory() as uow:
            candidate = self._contract_candidate(uow.repositories, member_id)
            conversions = uow.repositories.conversions
            index = ConversionIndex.from_records(
                conversions.find_conversions(member_id, candidate.key.city)
            )
            stage = index.stage_of(candidate.key)
            decisions = decide(
                candidate,
                stage,
                course_record=index.course_record(candidate.key),
                membership=membership,
                course_purchase=None,
            )
            writer = StoreWriter(uow)
            outcome = IntakeOutcome.UNCHANGED
            changes: dict[str, object] = {}
            for decision in decisions:
                if not writer.write(decision):
                    continue
                match decision:
                    case CreateConversion(record=record):
                        outcome = IntakeOutcome.CREATED
                        changes.update(
                            conversion=record.id, membership_type=record.membership_type
                        )
                    case PromoteConversion():
                        outcome = IntakeOutcome.UPDATED
                        changes.update(
                            conversion=decision.record_id,
                            membership_type=membership.membership_type,
                        )
                    case MarkGuestConverted(when=when):
                        changes["guest_converted_at"] = when
            uow.commit()

        log.info(
            "ContractCreated for %s (%s, %s): %s", candidate.key, candidate.kind, stage, outcome
        )
        return IntakeResult(
            event="ContractCreated",
            external_member_id=member_id,
            outcome=outcome,
            tenant=candidate.tenant,
            changes=changes,
        )

    def class_booking_changed(self, command: ClassBookingChanged) -> IntakeResult:
        """Refresh a guest's remaining credits after a booking change.

        Members that already hold an active contract are left alone.
        """

        member_id = command.external_member_id
        with self.unit_of_work_factory() as uow:
            guests = uow.repositories.guests
            tenant, city = self._booking_location(command, guests.find_by_member_id(member_id))
            platform = self.platforms.get(tenant)
            if platform is None:
                raise PlatformUnavailableError(
                    f"no platform credentials configured for {tenant}", tenant=tenant
                )
            membership, purchase = asyncio.run(_fetch_member(platform, member_id))

            if membership is not None:
                log.info("Member %s on %s already holds a contract", member_id, tenant)
                return IntakeResult(
                    event=command.event,
                    external_member_id=member_id,
                    outcome=IntakeOutcome.SKIPPED,
                    tenant=tenant,
                    detail="member already has an active membership",
                )
            if purchase is None:
                return IntakeResult(
                    event=command.event,
                    external_member_id=member_id,
                    outcome=IntakeOutcome.SKIPPED,
                    tenant=tenant,
                    detail="no course package found",
                )

            credits_left = (
                purchase.current_quantity
                if purchase.current_quantity is not None
                else purchase.initial_quantity
            )
            guest = guests.get(member_id, tenant)
            if guest is None:
                guest = Guest(
                    external_member_id=member_id,
                    country=tenant,
                    credits_left=credits_left,
                    package_size=purchase.initial_quantity,
                    city=city,
                    start_date=purchase.purchase_date,
                )
                guests.add(guest)
                outcome = IntakeOutcome.CREATED
            elif guest.refresh_package(
                credits_left=credits_left,
                package_size=purchase.initial_quantity,
                city=city,
            ):
                outcome = IntakeOutcome.UPDATED
            else:
                outcome = IntakeOutcome.UNCHANGED
            uow.commit()

        log.info(
            "%s for %s on %s: credits_left=%d (%s)",
            command.event,
            member_id,
            tenant,
            credits_left,
            outcome,
        )
        return IntakeResult(
            event=command.event,
            external_member_id=member_id,
            outcome=outcome,
            tenant=tenant,
            changes={"credits_left": credits_left},
        )

    def course_purchased(self, command: CoursePurchased) -> IntakeResult:
        """Create the guest, or restart an existing one on its new package."""

        member_id = command.external_member_id
        tenant = self.resolver.resolve_tenant(command.city)
        if tenant is None:
            raise UnknownProspectError(f"Unknown city {command.city!r} for member {member_id}")
        city = self.resolver.normalize(command.city)

        with self.unit_of_work_factory() as uow:
            guests = uow.repositories.guests
            guest = guests.get(member_id, tenant)
            if guest is None:
                guests.add(
                    Guest(
                        external_member_id=member_id,
                        country=tenant,
                        credits_left=command.credits,
                        package_size=command.credits,
                        city=city,
                        start_date=command.start_date,
                    )
                )
                outcome = IntakeOutcome.CREATED
            else:
                guest.reset_package(
                    package_size=command.credits,
                    city=city,
                    start_date=command.start_date,
                )
                outcome = IntakeOutcome.UPDATED
            uow.commit()

        log.info(
            "Purchase of %d credits for %s in %s (%s)", command.credits, member_id, city, outcome
        )
        return IntakeResult(
            event="Purchase",
            external_member_id=member_id,
            outcome=outcome,
            tenant=tenant,
            changes={"city": city, "credits": command.credits},
        )

    def _contract_candidate(self, repositories: FunnelRepositories, member_id: str) -> Candidate:
        for guest in repositories.guests.find_by_member_id(member_id):
            if guest.city:
                return Candidate(
                    kind=CandidateKind.GUEST,
                    key=IdentityKey(member_id, self.resolver.normalize(guest.city)),
                    tenant=guest.country,
                    guest=guest,
                )
        for trial in repositories.trials.find_by_member_id(member_id):
            tenant = self.resolver.resolve_tenant(trial.city)
            if tenant is not None:
                return Candidate(
                    kind=CandidateKind.TRIAL,
                    key=IdentityKey(member_id, self.resolver.normalize(trial.city)),
                    tenant=tenant,
                    trial=trial,
                )
        for record in repositories.conversions.find_by_member_id(member_id):
            tenant = self.resolver.resolve_tenant(record.city)
            if record.city and tenant is not None:
                return Candidate(
                    kind=CandidateKind.DIRECT,
                    key=IdentityKey(member_id, record.city),
                    tenant=tenant,
                )
        raise UnknownProspectError(
            f"Cannot determine the city of member {member_id}: no guest, trial or conversion"
        )

    def _booking_location(
        self, command: ClassBookingChanged, guests: list[Guest]
    ) -> tuple[str, str | None]:
        if command.city:
            tenant = self.resolver.resolve_tenant(command.city)
            if tenant is not None:
                return tenant, self.resolver.normalize(command.city)
        for guest in guests:
            if guest.city:
                tenant = self.resolver.resolve_tenant(guest.city)
                if tenant is not None:
                    return tenant, self.resolver.normalize(guest.city)
        raise UnknownProspectError(
            f"Cannot determine the tenant of member {command.external_member_id}"
        )


async def _fetch_member(
    platform: PlatformGateway, member_id: str
) -> tuple[MembershipFact | None, CoursePurchaseFact | None]:
    membership = await platform.fetch_active_membership(member_id)
    if membership is not None:
        return membership, None
    return None, await platform.fetch_course_purchase(member_id)
