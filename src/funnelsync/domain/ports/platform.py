"""Port for the external membership platform (one gateway per tenant)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from funnelsync.domain.model import MembershipType


@dataclass(frozen=True, slots=True)
class MembershipFact:
    """Newest active contract of a member."""

    start_date: datetime
    plan_name: str
    membership_type: MembershipType


@dataclass(frozen=True, slots=True)
class CoursePurchaseFact:
    """Newest qualifying course-package purchase (10 or 16 credits)."""

    purchase_date: datetime
    initial_quantity: int
    current_quantity: int | None = None
    facility_id: int | None = None


@runtime_checkable
class PlatformGateway(Protocol):
    """Read-only access to one tenant's membership platform.

    Single-record lookups return ``None`` when the member has no such fact.
    Timeouts and non-2xx responses raise ``PlatformUnavailableError``. Bulk
    lookups return the newest fact per member id and never partial results.
    """

    @property
    def tenant(self) -> str: ...

    async def fetch_active_membership(self, external_member_id: str) -> MembershipFact | None: ...

    async def fetch_course_purchase(self, external_member_id: str) -> CoursePurchaseFact | None: ...

    async def fetch_all_active_memberships(self) -> Mapping[str, MembershipFact]: ...

    async def fetch_all_course_purchases(self) -> Mapping[str, CoursePurchaseFact]: ...


__all__ = ["CoursePurchaseFact", "MembershipFact", "PlatformGateway"]
