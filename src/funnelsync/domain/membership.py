"""Membership type inference from platform payment-plan names."""

from __future__ import annotations

from funnelsync.domain.model import MembershipType

DEFAULT_MEMBERSHIP_TYPE = MembershipType.FLEX

# Checked in order: "Loyalty Flex" is a loyalty plan.
_PLAN_KEYWORDS: tuple[tuple[str, MembershipType], ...] = (
    ("loyalty", MembershipType.LOYALTY),
    ("flex", MembershipType.FLEX),
)


def map_membership_type(plan_name: str | None) -> MembershipType:
    """Infer the membership type from a payment-plan name.

    Plans naming neither keyword fall back to ``flex``.
    """

    name = (plan_name or "").casefold()
    for keyword, membership_type in _PLAN_KEYWORDS:
        if keyword in name:
            return membership_type
    return DEFAULT_MEMBERSHIP_TYPE
