from __future__ import annotations

import pytest

from funnelsync.domain.membership import DEFAULT_MEMBERSHIP_TYPE, map_membership_type
from funnelsync.domain.model import MembershipType


@pytest.mark.parametrize(
    ("plan_name", "expected"),
    [
        ("Flex Monthly", MembershipType.FLEX),
        ("FLEX 4 weeks", MembershipType.FLEX),
        ("Loyalty 12 months", MembershipType.LOYALTY),
        ("loyalty flex combo", MembershipType.LOYALTY),
        ("Premium All Access", MembershipType.FLEX),
        ("", MembershipType.FLEX),
        (None, MembershipType.FLEX),
    ],
)
def test_map_membership_type(plan_name: str | None, expected: MembershipType) -> None:
    assert map_membership_type(plan_name) is expected


def test_default_membership_type_is_terminal() -> None:
    assert DEFAULT_MEMBERSHIP_TYPE.is_terminal
    assert not MembershipType.COURSE.is_terminal
