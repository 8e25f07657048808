"""Reusable fakes and builders for prospect and conversion tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from funnelsync.domain.errors import PlatformUnavailableError
from funnelsync.domain.membership import map_membership_type
from funnelsync.domain.model import (
    ConversionRecord,
    ConversionSource,
    Guest,
    MembershipType,
    Trial,
)
from funnelsync.domain.ports import CoursePurchaseFact, MembershipFact

if TYPE_CHECKING:
    from collections.abc import Callable

    from funnelsync.domain.ports import FunnelUnitOfWork

JAN_1 = datetime(2024, 1, 1, tzinfo=UTC)
JAN_10 = datetime(2024, 1, 10, tzinfo=UTC)
FEB_1 = datetime(2024, 2, 1, tzinfo=UTC)
MAR_1 = datetime(2024, 3, 1, tzinfo=UTC)


def make_trial(
    member_id: str | None = "100",
    *,
    city: str = "Berlin",
    country: str = "DE",
    email: str | None = None,
    created_at: datetime = JAN_1,
) -> Trial:
    return Trial(
        email=email or f"{member_id or 'anon'}@example.com",
        name="Trial Person",
        city=city,
        country=country,
        external_member_id=member_id,
        created_at=created_at,
    )


def make_guest(
    member_id: str = "200",
    *,
    country: str = "DE",
    city: str | None = "berlin",
    credits_left: int = 10,
    package_size: int = 10,
    start_date: datetime | None = JAN_10,
    converted_at: datetime | None = None,
) -> Guest:
    return Guest(
        external_member_id=member_id,
        country=country,
        credits_left=credits_left,
        package_size=package_size,
        city=city,
        start_date=start_date,
        converted_at=converted_at,
    )


def make_conversion(
    member_id: str = "100",
    *,
    city: str | None = "berlin",
    membership_type: MembershipType = MembershipType.FLEX,
    source: ConversionSource = ConversionSource.TRIAL,
    member_since: datetime = JAN_10,
    had_course_step: bool = False,
    created_at: datetime = JAN_10,
) -> ConversionRecord:
    return ConversionRecord(
        external_member_id=member_id,
        city=city,
        member_since=member_since,
        membership_type=membership_type,
        source=source,
        had_course_step=had_course_step,
        created_at=created_at,
    )


def membership(start: datetime = FEB_1, plan_name: str = "Flex Monthly") -> MembershipFact:
    return MembershipFact(
        start_date=start,
        plan_name=plan_name,
        membership_type=map_membership_type(plan_name),
    )


def course_purchase(
    purchased: datetime = JAN_10,
    *,
    initial: int = 10,
    current: int | None = None,
    facility_id: int | None = 1,
) -> CoursePurchaseFact:
    return CoursePurchaseFact(
        purchase_date=purchased,
        initial_quantity=initial,
        current_quantity=current,
        facility_id=facility_id,
    )


@dataclass
class FakePlatform:
    """In-memory platform gateway for one tenant."""

    tenant: str
    memberships: dict[str, MembershipFact] = field(default_factory=dict)
    course_purchases: dict[str, CoursePurchaseFact] = field(default_factory=dict)
    unavailable: bool = False
    bulk_calls: int = 0
    single_calls: list[str] = field(default_factory=list)

    def _check(self) -> None:
        if self.unavailable:
            raise PlatformUnavailableError(
                f"{self.tenant} platform timed out", tenant=self.tenant
            )

    async def fetch_active_membership(self, external_member_id: str) -> MembershipFact | None:
        self.single_calls.append(external_member_id)
        self._check()
        return self.memberships.get(external_member_id)

    async def fetch_course_purchase(self, external_member_id: str) -> CoursePurchaseFact | None:
        self.single_calls.append(external_member_id)
        self._check()
        return self.course_purchases.get(external_member_id)

    async def fetch_all_active_memberships(self) -> dict[str, MembershipFact]:
        self.bulk_calls += 1
        self._check()
        return dict(self.memberships)

    async def fetch_all_course_purchases(self) -> dict[str, CoursePurchaseFact]:
        self._check()
        return dict(self.course_purchases)


def seed(
    unit_of_work_factory: Callable[[], FunnelUnitOfWork],
    *,
    trials: tuple[Trial, ...] = (),
    guests: tuple[Guest, ...] = (),
    conversions: tuple[ConversionRecord, ...] = (),
) -> None:
    with unit_of_work_factory() as uow:
        repositories = uow.repositories
        for trial in trials:
            repositories.trials.add(trial)
        for guest in guests:
            repositories.guests.add(guest)
        for record in conversions:
            repositories.conversions.add(record)
        uow.commit()


def stored_conversions(
    unit_of_work_factory: Callable[[], FunnelUnitOfWork],
) -> list[ConversionRecord]:
    with unit_of_work_factory() as uow:
        return uow.repositories.conversions.list_conversions()


def stored_guests(
    unit_of_work_factory: Callable[[], FunnelUnitOfWork],
    country: str = "DE",
) -> list[Guest]:
    with unit_of_work_factory() as uow:
        return uow.repositories.guests.list_for_country(country)
