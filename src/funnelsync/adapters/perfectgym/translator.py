"""Translate PerfectGym payloads into platform facts."""

from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING

from funnelsync.domain.membership import map_membership_type
from funnelsync.domain.model import COURSE_PACKAGE_SIZES, ensure_utc
from funnelsync.domain.ports import CoursePurchaseFact, MembershipFact

if TYPE_CHECKING:
    from collections.abc import Iterable

    from .schema import ContractPayload, MemberPayload, MemberProductPayload

log = getLogger(__name__)

_TRIAL_MARKER = "trial"


def membership_fact(contract: ContractPayload) -> MembershipFact | None:
    if contract.start_date is None or contract.is_active is False:
        return None
    return MembershipFact(
        start_date=ensure_utc(contract.start_date),
        plan_name=contract.plan_name,
        membership_type=map_membership_type(contract.plan_name),
    )


def course_purchase_fact(product: MemberProductPayload) -> CoursePurchaseFact | None:
    """Fact for a qualifying course package; trial-class products do not count."""

    if product.initial_quantity not in COURSE_PACKAGE_SIZES:
        return None
    if product.name and _TRIAL_MARKER in product.name.casefold():
        return None
    if product.purchase_date is None:
        return None
    return CoursePurchaseFact(
        purchase_date=ensure_utc(product.purchase_date),
        initial_quantity=product.initial_quantity,
        current_quantity=product.current_quantity,
        facility_id=product.facility_id,
    )


def newest_memberships(members: Iterable[MemberPayload]) -> dict[str, MembershipFact]:
    """Newest active contract per member id."""

    newest: dict[str, MembershipFact] = {}
    for member in members:
        for contract in member.contracts:
            fact = membership_fact(contract)
            if fact is None:
                continue
            current = newest.get(member.id)
            if current is None or fact.start_date > current.start_date:
                newest[member.id] = fact
    return newest


def newest_course_purchases(
    products: Iterable[MemberProductPayload],
) -> dict[str, CoursePurchaseFact]:
    """Newest qualifying course purchase per member id."""

    newest: dict[str, CoursePurchaseFact] = {}
    skipped = 0
    for product in products:
        fact = course_purchase_fact(product)
        if fact is None:
            skipped += 1
            continue
        current = newest.get(product.member_id)
        if current is None or fact.purchase_date > current.purchase_date:
            newest[product.member_id] = fact
    if skipped:
        log.debug("Ignored %d products that are not course packages", skipped)
    return newest
