"""Guest ingest: turn each member's newest course purchase into a Guest row."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from funnelsync.domain.model import COURSE_PACKAGE_SIZES, Guest
from funnelsync.domain.reconciliation import ProposedWrite, WriteAction

if TYPE_CHECKING:
    from collections.abc import Mapping

    from funnelsync.domain.identity import CityResolver
    from funnelsync.domain.ports import CoursePurchaseFact, FunnelUnitOfWork

log = logging.getLogger(__name__)


@dataclass(slots=True, kw_only=True)
class GuestIngestReport:
    tenant: str
    execute: bool
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    unresolved: int = 0
    errors: list[str] = field(default_factory=list)
    preview: list[ProposedWrite] = field(default_factory=list)
    pending: list[Guest] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "tenant": self.tenant,
            "created": self.created,
            "updated": self.updated,
            "unchanged": self.unchanged,
            "unresolved": self.unresolved,
            "preview": [proposal.to_dict() for proposal in self.preview],
        }


def ingest_guests(
    tenant: str,
    purchases: Mapping[str, CoursePurchaseFact],
    *,
    resolver: CityResolver,
    unit_of_work: FunnelUnitOfWork,
    execute: bool = False,
) -> GuestIngestReport:
    """Create or refresh one Guest per member from ``purchases``.

    The city comes from the purchase's facility id on this tenant, falling back
    to the stored guest's city. Members whose city cannot be determined are
    skipped, counted as unresolved and reported in ``errors``. In a dry run the
    guests that would be created are returned in ``pending`` so guest
    reconciliation can evaluate them too. The caller commits.
    """

    report = GuestIngestReport(tenant=tenant, execute=execute)
    guests = unit_of_work.repositories.guests

    for member_id, purchase in purchases.items():
        if purchase.initial_quantity not in COURSE_PACKAGE_SIZES:
            continue
        existing = guests.get(member_id, tenant)
        city = _resolve_city(tenant, purchase, existing, resolver)
        if city is None:
            log.debug(
                "Skipping guest %s on %s: facility %s does not map to a city",
                member_id,
                tenant,
                purchase.facility_id,
            )
            report.unresolved += 1
            report.errors.append(
                f"guest {member_id}@{tenant}: facility {purchase.facility_id} "
                "does not map to a city"
            )
            continue

        credits_left = (
            purchase.current_quantity
            if purchase.current_quantity is not None
            else purchase.initial_quantity
        )

        if existing is None:
            guest = Guest(
                external_member_id=member_id,
                country=tenant,
                credits_left=credits_left,
                package_size=purchase.initial_quantity,
                city=city,
                start_date=purchase.purchase_date,
            )
            report.created += 1
            if execute:
                guests.add(guest)
            else:
                report.pending.append(guest)
                report.preview.append(
                    ProposedWrite(
                        WriteAction.CREATE_GUEST,
                        f"{member_id}@{tenant}",
                        {
                            "city": city,
                            "credits_left": credits_left,
                            "package_size": purchase.initial_quantity,
                            "start_date": purchase.purchase_date,
                        },
                    )
                )
            continue

        if not _needs_refresh(existing, credits_left, purchase.initial_quantity):
            report.unchanged += 1
            continue

        report.updated += 1
        if execute:
            existing.refresh_package(
                credits_left=credits_left,
                package_size=purchase.initial_quantity,
                city=city,
            )
        else:
            report.preview.append(
                ProposedWrite(
                    WriteAction.UPDATE_GUEST,
                    f"{member_id}@{tenant}",
                    {
                        "credits_left": credits_left,
                        "package_size": purchase.initial_quantity,
                        "city": existing.city or city,
                    },
                )
            )

    log.info(
        "Guest ingest %s (%s): created=%d updated=%d unchanged=%d unresolved=%d",
        tenant,
        "execute" if execute else "dry run",
        report.created,
        report.updated,
        report.unchanged,
        report.unresolved,
    )
    return report


def _resolve_city(
    tenant: str,
    purchase: CoursePurchaseFact,
    existing: Guest | None,
    resolver: CityResolver,
) -> str | None:
    city = resolver.resolve_city(tenant, purchase.facility_id)
    if city is not None:
        return city
    if existing is not None and existing.city:
        # Only trust a stored city that belongs to this tenant.
        if resolver.resolve_tenant(existing.city) == tenant:
            return resolver.normalize(existing.city)
    return None


def _needs_refresh(existing: Guest, credits_left: int, package_size: int) -> bool:
    return (
        existing.credits_left != credits_left
        or existing.package_size != package_size
        or existing.city is None
    )
