"""End-to-end reconciliation runs against an in-memory store and fake platforms."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from funnelsync.domain.model import ConversionSource, ConversionStage, MembershipType
from funnelsync.domain.reconciliation import ReconciliationEngine, WriteAction
from tests.helpers.funnel import (
    JAN_1,
    JAN_10,
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


def _engine(
    uow_factory: Callable[[], SqlAlchemyFunnelUnitOfWork],
    *platforms: FakePlatform,
    max_candidates: int = 999,
) -> ReconciliationEngine:
    return ReconciliationEngine(
        platforms={platform.tenant: platform for platform in platforms},
        unit_of_work_factory=uow_factory,
        max_candidates=max_candidates,
    )


def test_trial_without_platform_facts_stays_unconverted(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, trials=(make_trial("100"),))
    engine = _engine(sqlite_unit_of_work, FakePlatform("DE"))

    report = engine.run_trials(execute=True).report

    assert (report.examined, report.found, report.created) == (1, 0, 0)
    assert report.errors == []
    assert stored_conversions(sqlite_unit_of_work) == []


def test_trial_course_purchase_then_membership_promotes_the_same_record(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, trials=(make_trial("100"),))
    platform = FakePlatform(
        "DE",
        course_purchases={"100": course_purchase(datetime(2024, 3, 1, tzinfo=UTC))},
    )
    engine = _engine(sqlite_unit_of_work, platform)

    first = engine.run_trials(execute=True).report

    [course] = stored_conversions(sqlite_unit_of_work)
    assert (first.found, first.created, first.updated) == (1, 1, 0)
    assert course.membership_type is MembershipType.COURSE
    assert course.member_since == datetime(2024, 3, 1, tzinfo=UTC)
    assert course.source is ConversionSource.TRIAL
    assert course.had_course_step is False

    platform.memberships["100"] = membership(
        datetime(2024, 4, 1, tzinfo=UTC), plan_name="Loyalty Flex"
    )
    second = engine.run_trials(execute=True).report

    [member] = stored_conversions(sqlite_unit_of_work)
    assert (second.found, second.created, second.updated) == (1, 0, 1)
    assert member.id == course.id
    assert member.membership_type is MembershipType.LOYALTY
    assert member.stage is ConversionStage.MEMBER
    assert member.member_since == datetime(2024, 4, 1, tzinfo=UTC)
    assert member.had_course_step is True


def test_guest_with_membership_is_converted(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, guests=(make_guest("200", credits_left=0),))
    start = datetime(2024, 5, 10, tzinfo=UTC)
    platform = FakePlatform("DE", memberships={"200": membership(start)})
    engine = _engine(sqlite_unit_of_work, platform)

    report = engine.run_guests(execute=True).report

    [guest] = stored_guests(sqlite_unit_of_work)
    [record] = stored_conversions(sqlite_unit_of_work)
    assert (report.found, report.created, report.guests_converted) == (1, 1, 1)
    assert guest.converted_at == start
    assert record.source is ConversionSource.GUEST
    assert record.had_course_step is True
    assert record.identity_key.city == "berlin"


def test_same_member_id_on_two_tenants_stays_separate(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(
        sqlite_unit_of_work,
        trials=(
            make_trial("500", city="Berlin", country="DE"),
            make_trial("500", city="Vienna", country="AT"),
        ),
    )
    germany = FakePlatform("DE", memberships={"500": membership(plan_name="Flex Monthly")})
    austria = FakePlatform("AT")
    engine = _engine(sqlite_unit_of_work, germany, austria)

    engine.run_trials(execute=True)

    [berlin] = stored_conversions(sqlite_unit_of_work)
    assert berlin.city == "berlin"

    austria.memberships["500"] = membership(plan_name="Loyalty 12")
    engine.run_trials(execute=True)

    records = {record.city: record for record in stored_conversions(sqlite_unit_of_work)}
    assert set(records) == {"berlin", "vienna"}
    assert records["berlin"].membership_type is MembershipType.FLEX
    assert records["vienna"].membership_type is MembershipType.LOYALTY
    assert records["berlin"].id == berlin.id


def test_second_execute_run_writes_nothing(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(
        sqlite_unit_of_work,
        trials=(make_trial("100"), make_trial("101")),
        guests=(make_guest("200"),),
    )
    platform = FakePlatform(
        "DE",
        memberships={"100": membership(), "200": membership()},
        course_purchases={"101": course_purchase()},
    )
    engine = _engine(sqlite_unit_of_work, platform)

    engine.run_trials(execute=True)
    engine.run_guests(execute=True)
    before = {record.id for record in stored_conversions(sqlite_unit_of_work)}

    trials = engine.run_trials(execute=True).report
    guests = engine.run_guests(execute=True).report

    assert len(before) == 3
    assert {record.id for record in stored_conversions(sqlite_unit_of_work)} == before
    assert (trials.created, trials.updated) == (0, 0)
    assert (guests.created, guests.updated, guests.guests_converted) == (0, 0, 0)
    # Settled trials are not even examined again.
    assert trials.examined == 1


def test_dry_run_reports_writes_without_touching_the_store(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    course = make_conversion("101", membership_type=MembershipType.COURSE)
    seed(
        sqlite_unit_of_work,
        trials=(make_trial("100", created_at=JAN_1), make_trial("101", created_at=JAN_10)),
        guests=(make_guest("200"),),
        conversions=(course,),
    )
    platform = FakePlatform(
        "DE", memberships={"100": membership(), "101": membership(), "200": membership()}
    )
    engine = _engine(sqlite_unit_of_work, platform)

    trials = engine.run_trials(execute=False).report
    guests = engine.run_guests(execute=False).report

    assert trials.dry_run
    assert (trials.created, trials.updated) == (1, 1)
    assert [proposal.action for proposal in trials.preview] == [
        WriteAction.CREATE_CONVERSION,
        WriteAction.UPDATE_CONVERSION,
    ]
    assert [proposal.action for proposal in guests.preview] == [
        WriteAction.CREATE_CONVERSION,
        WriteAction.MARK_GUEST_CONVERTED,
    ]
    [stored] = stored_conversions(sqlite_unit_of_work)
    assert stored.id == course.id
    assert stored.membership_type is MembershipType.COURSE
    assert stored_guests(sqlite_unit_of_work)[0].converted_at is None


def test_dry_run_and_execute_make_the_same_decisions(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, trials=(make_trial("100"), make_trial("101"), make_trial("102")))
    platform = FakePlatform(
        "DE",
        memberships={"100": membership()},
        course_purchases={"101": course_purchase()},
    )
    engine = _engine(sqlite_unit_of_work, platform)

    preview = engine.run_trials(execute=False).report
    applied = engine.run_trials(execute=True).report

    assert (preview.examined, preview.found, preview.created) == (
        applied.examined,
        applied.found,
        applied.created,
    )
    assert {p.target for p in preview.preview} == {
        str(record.identity_key) for record in stored_conversions(sqlite_unit_of_work)
    }


def test_membership_wins_over_course_purchase(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, trials=(make_trial("100"),))
    platform = FakePlatform(
        "DE",
        memberships={"100": membership(plan_name="Flex")},
        course_purchases={"100": course_purchase()},
    )

    _engine(sqlite_unit_of_work, platform).run_trials(execute=True)

    [record] = stored_conversions(sqlite_unit_of_work)
    assert record.membership_type is MembershipType.FLEX
    assert record.had_course_step is False


def test_legacy_record_without_city_settles_every_city(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(
        sqlite_unit_of_work,
        trials=(make_trial("100"),),
        conversions=(make_conversion("100", city=None),),
    )
    platform = FakePlatform("DE", memberships={"100": membership()})

    report = _engine(sqlite_unit_of_work, platform).run_trials(execute=True).report

    assert report.examined == 0
    assert len(stored_conversions(sqlite_unit_of_work)) == 1


def test_promoted_legacy_record_takes_the_candidate_city(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    legacy = make_conversion("500", city=None, membership_type=MembershipType.COURSE)
    seed(sqlite_unit_of_work, trials=(make_trial("500"),), conversions=(legacy,))
    germany = FakePlatform("DE", memberships={"500": membership()})
    austria = FakePlatform("AT", memberships={"500": membership(plan_name="Loyalty")})
    engine = _engine(sqlite_unit_of_work, germany, austria)

    first = engine.run_trials(execute=True).report

    [promoted] = stored_conversions(sqlite_unit_of_work)
    assert first.updated == 1
    assert promoted.id == legacy.id
    assert (promoted.city, promoted.membership_type) == ("berlin", MembershipType.FLEX)

    seed(
        sqlite_unit_of_work,
        trials=(make_trial("500", city="Vienna", country="AT", email="500@example.at"),),
    )
    second = engine.run_trials(execute=True).report

    records = {record.city: record for record in stored_conversions(sqlite_unit_of_work)}
    assert (second.examined, second.created) == (1, 1)
    assert set(records) == {"berlin", "vienna"}
    assert records["vienna"].membership_type is MembershipType.LOYALTY


def test_candidate_cap_defers_the_rest(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, trials=tuple(make_trial(str(n)) for n in range(5)))
    platform = FakePlatform("DE", memberships={str(n): membership() for n in range(5)})
    engine = _engine(sqlite_unit_of_work, platform, max_candidates=2)

    first = engine.run_trials(execute=True).report
    second = engine.run_trials(execute=True).report
    third = engine.run_trials(execute=True).report

    assert (first.examined, first.remaining) == (2, 3)
    assert (second.examined, second.remaining) == (2, 1)
    assert (third.examined, third.remaining) == (1, 0)
    assert len(stored_conversions(sqlite_unit_of_work)) == 5


def test_unavailable_tenant_is_deferred_without_aborting(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(
        sqlite_unit_of_work,
        trials=(make_trial("100", city="Berlin"), make_trial("300", city="Vienna")),
    )
    germany = FakePlatform("DE", memberships={"100": membership()}, unavailable=True)
    austria = FakePlatform("AT", memberships={"300": membership()})

    report = _engine(sqlite_unit_of_work, germany, austria).run_trials(execute=True).report

    assert report.deferred == 1
    assert report.examined == 1
    assert report.errors == ["DE: DE platform timed out"]
    [record] = stored_conversions(sqlite_unit_of_work)
    assert record.city == "vienna"


def test_tenant_without_credentials_and_unknown_city_are_soft_failures(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    unknown = make_trial("400", city="Paris")
    seed(
        sqlite_unit_of_work,
        trials=(make_trial("100", city="Amsterdam", country="NL"), unknown, make_trial("101")),
    )
    engine = _engine(sqlite_unit_of_work, FakePlatform("DE", memberships={"101": membership()}))

    report = engine.run_trials(execute=True).report

    assert report.errors == [
        f"trial {unknown.id}: city 'Paris' does not map to a tenant",
        "NL: no platform credentials configured",
    ]
    assert report.created == 1
    assert report.deferred == 1


def test_bulk_facts_are_fetched_once_per_tenant(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, trials=tuple(make_trial(str(n)) for n in range(10)))
    platform = FakePlatform("DE")

    _engine(sqlite_unit_of_work, platform).run_trials(execute=False)

    assert platform.bulk_calls == 1
    assert platform.single_calls == []


@pytest.mark.parametrize("execute", [False, True])
def test_course_guest_without_city_only_matches_city_less_records(
    sqlite_unit_of_work: Callable[[], SqlAlchemyFunnelUnitOfWork],
    execute: bool,
) -> None:
    seed(
        sqlite_unit_of_work,
        guests=(make_guest("200", city=None),),
        conversions=(make_conversion("200", city="berlin", membership_type=MembershipType.COURSE),),
    )
    platform = FakePlatform("DE", memberships={"200": membership()})

    report = _engine(sqlite_unit_of_work, platform).run_guests(execute=execute).report

    assert report.created == 1
    assert report.updated == 0
