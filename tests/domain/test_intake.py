from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from funnelsync.domain.errors import PlatformUnavailableError, UnknownProspectError
from funnelsync.domain.intake import (
    ClassBookingChanged,
    ContractCreated,
    CoursePurchased,
    IntakeOutcome,
    IntakeService,
)
from funnelsync.domain.model import ConversionSource, MembershipType
from tests.helpers.funnel import (
    FEB_1,
    MAR_1,
    FakePlatform,
    course_purchase,
    make_conversion,
    make_guest,
    make_trial,
    membership,
    seed,
    stored_conversions,
    stored_guests,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from funnelsync.adapters.sqlalchemy import SqlAlchemyFunnelUnitOfWork


def _service(
    uow_factory: Callable[[], SqlAlchemyFunnelUnitOfWork], *platforms: FakePlatform
) -> IntakeService:
    return IntakeService(
        platforms={platform.tenant: platform for platform in platforms},
        unit_of_work_factory=uow_factory,
    )


def _contract(member_id: str, plan_name: str = "Flex Monthly") -> ContractCreated:
    return ContractCreated(external_member_id=member_id, signed_at=MAR_1, plan_name=plan_name)


def test_contract_for_guest_records_conversion_and_marks_guest(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, guests=(make_guest("200", city="Cologne"),))
    service = _service(sqlite_unit_of_work)

    result = service.handle(_contract("200", "Loyalty 24"))

    [record] = stored_conversions(sqlite_unit_of_work)
    [guest] = stored_guests(sqlite_unit_of_work)
    assert result.outcome is IntakeOutcome.CREATED
    assert result.tenant == "DE"
    assert record.city == "cologne"
    assert record.source is ConversionSource.GUEST
    assert record.membership_type is MembershipType.LOYALTY
    assert record.member_since == MAR_1
    assert guest.converted_at == MAR_1


def test_contract_for_trial_promotes_the_course_record(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    course = make_conversion("100", membership_type=MembershipType.COURSE)
    seed(sqlite_unit_of_work, trials=(make_trial("100"),), conversions=(course,))

    result = _service(sqlite_unit_of_work).handle(_contract("100"))

    [record] = stored_conversions(sqlite_unit_of_work)
    assert result.outcome is IntakeOutcome.UPDATED
    assert record.id == course.id
    assert record.membership_type is MembershipType.FLEX
    assert record.had_course_step is True


def test_repeated_contract_event_changes_nothing(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, trials=(make_trial("100"),))
    service = _service(sqlite_unit_of_work)

    first = service.handle(_contract("100"))
    second = service.handle(_contract("100"))

    assert first.outcome is IntakeOutcome.CREATED
    assert second.outcome is IntakeOutcome.UNCHANGED
    assert len(stored_conversions(sqlite_unit_of_work)) == 1


def test_contract_without_prospect_uses_existing_conversion_as_direct(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(
        sqlite_unit_of_work,
        conversions=(make_conversion("700", membership_type=MembershipType.COURSE),),
    )

    result = _service(sqlite_unit_of_work).handle(_contract("700"))

    [record] = stored_conversions(sqlite_unit_of_work)
    assert result.outcome is IntakeOutcome.UPDATED
    assert record.source is ConversionSource.DIRECT


def test_contract_for_unknown_member_is_rejected(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    with pytest.raises(UnknownProspectError):
        _service(sqlite_unit_of_work).handle(_contract("999"))


def test_class_booking_creates_guest_from_newest_purchase(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    platform = FakePlatform("DE", course_purchases={"300": course_purchase(initial=16, current=9)})

    result = _service(sqlite_unit_of_work, platform).handle(
        ClassBookingChanged(event="ClassesBooked", external_member_id="300", city="Munich")
    )

    [guest] = stored_guests(sqlite_unit_of_work)
    assert result.outcome is IntakeOutcome.CREATED
    assert (guest.credits_left, guest.package_size, guest.city) == (9, 16, "munich")
    assert platform.single_calls == ["300", "300"]


def test_class_booking_without_city_uses_the_stored_guest(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, guests=(make_guest("300", credits_left=10),))
    platform = FakePlatform("DE", course_purchases={"300": course_purchase(current=7)})

    result = _service(sqlite_unit_of_work, platform).handle(
        ClassBookingChanged(event="ClassesBookingCancelled", external_member_id="300")
    )

    [guest] = stored_guests(sqlite_unit_of_work)
    assert result.outcome is IntakeOutcome.UPDATED
    assert guest.credits_left == 7


def test_class_booking_for_active_member_is_skipped(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    platform = FakePlatform(
        "DE",
        memberships={"300": membership()},
        course_purchases={"300": course_purchase()},
    )

    result = _service(sqlite_unit_of_work, platform).handle(
        ClassBookingChanged(event="ClassesBooked", external_member_id="300", city="Berlin")
    )

    assert result.outcome is IntakeOutcome.SKIPPED
    assert platform.single_calls == ["300"]
    assert stored_guests(sqlite_unit_of_work) == []


def test_class_booking_failures(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    service = _service(sqlite_unit_of_work, FakePlatform("DE", unavailable=True))

    with pytest.raises(UnknownProspectError):
        service.handle(ClassBookingChanged(event="ClassesBooked", external_member_id="300"))
    with pytest.raises(PlatformUnavailableError):
        service.handle(
            ClassBookingChanged(event="ClassesBooked", external_member_id="300", city="Berlin")
        )
    with pytest.raises(PlatformUnavailableError, match="no platform credentials"):
        service.handle(
            ClassBookingChanged(event="ClassesBooked", external_member_id="300", city="Basel")
        )


def test_purchase_creates_then_resets_the_guest(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    service = _service(sqlite_unit_of_work)
    first_start = datetime(2024, 1, 5, tzinfo=UTC)

    created = service.handle(
        CoursePurchased(external_member_id="300", city="Berlin", start_date=first_start, credits=10)
    )
    with sqlite_unit_of_work() as uow:
        stored = uow.repositories.guests.get("300", "DE")
        assert stored is not None
        stored.credits_left = 0
        stored.mark_converted(FEB_1)
        uow.commit()
    reset = service.handle(
        CoursePurchased(external_member_id="300", city="Köln", start_date=MAR_1, credits=16)
    )

    [guest] = stored_guests(sqlite_unit_of_work)
    assert created.outcome is IntakeOutcome.CREATED
    assert reset.outcome is IntakeOutcome.UPDATED
    assert (guest.credits_left, guest.package_size) == (16, 16)
    assert guest.city == "cologne"
    assert guest.start_date == MAR_1
    assert guest.converted_at is None


def test_purchase_in_unknown_city_is_rejected(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    with pytest.raises(UnknownProspectError):
        _service(sqlite_unit_of_work).handle(
            CoursePurchased(external_member_id="300", city="Paris", start_date=MAR_1, credits=10)
        )
