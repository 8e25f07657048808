"""Platform gateway backed by the PerfectGym OData API."""

from __future__ import annotations

from dataclasses import dataclass
from logging import getLogger
from typing import TYPE_CHECKING

from .client import PerfectGymClient, default_client_factory
from .translator import (
    course_purchase_fact,
    membership_fact,
    newest_course_purchases,
    newest_memberships,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from funnelsync.config.tenants import TenantConfig
    from funnelsync.domain.ports import CoursePurchaseFact, MembershipFact, PlatformGateway

    from .client import ClientFactory

log = getLogger(__name__)


@dataclass(slots=True)
class PerfectGymPlatform:
    client: PerfectGymClient

    @property
    def tenant(self) -> str:
        return self.client.country_code

    async def fetch_active_membership(self, external_member_id: str) -> MembershipFact | None:
        contract = await self.client.latest_active_contract(external_member_id)
        return membership_fact(contract) if contract is not None else None

    async def fetch_course_purchase(self, external_member_id: str) -> CoursePurchaseFact | None:
        product = await self.client.latest_course_product(external_member_id)
        return course_purchase_fact(product) if product is not None else None

    async def fetch_all_active_memberships(self) -> dict[str, MembershipFact]:
        memberships = newest_memberships(await self.client.members_with_active_contracts())
        log.info("%s: %d members with an active contract", self.tenant, len(memberships))
        return memberships

    async def fetch_all_course_purchases(self) -> dict[str, CoursePurchaseFact]:
        purchases = newest_course_purchases(await self.client.course_products())
        log.info("%s: %d members with a course package", self.tenant, len(purchases))
        return purchases


def build_platforms(
    tenants: Mapping[str, TenantConfig],
    *,
    client_factory: ClientFactory = default_client_factory,
) -> dict[str, PerfectGymPlatform]:
    return {
        code: PerfectGymPlatform(PerfectGymClient(tenant, client_factory=client_factory))
        for code, tenant in tenants.items()
    }


if TYPE_CHECKING:

    def _gateway_check(platform: PerfectGymPlatform) -> PlatformGateway:
        return platform
