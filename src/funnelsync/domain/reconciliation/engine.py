"""Reconciliation engine: prospects against platform facts, into conversion records.

One run reads the settled keys and the conversion snapshot, selects and caps
candidates, bulk-fetches the platform facts of every involved tenant
concurrently, and then evaluates candidates one by one. Writes are sequential
and go through a ``StoreWriter`` (execute) or a ``PreviewWriter`` (dry run);
the decisions are identical in both modes.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from funnelsync.domain.errors import PlatformUnavailableError
from funnelsync.domain.identity import CityResolver

from .apply import PreviewWriter, StoreWriter
from .candidates import cap_candidates, select_guest_candidates, select_trial_candidates
from .decisions import CreateConversion, MarkGuestConverted, PromoteConversion, decide
from .report import ReconciliationReport
from .stages import ConversionIndex

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from funnelsync.domain.model import Guest
    from funnelsync.domain.ports import (
        CoursePurchaseFact,
        FunnelUnitOfWork,
        MembershipFact,
        PlatformGateway,
    )

    from .apply import DecisionWriter
    from .candidates import Candidate, CandidateSelection

log = logging.getLogger(__name__)

DEFAULT_MAX_CANDIDATES = 999


@dataclass(frozen=True, slots=True)
class TenantFacts:
    """Newest platform facts per member id for one tenant."""

    tenant: str
    memberships: Mapping[str, MembershipFact]
    course_purchases: Mapping[str, CoursePurchaseFact]


@dataclass(slots=True)
class FactCollection:
    facts: dict[str, TenantFacts] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    def get(self, tenant: str) -> TenantFacts | None:
        return self.facts.get(tenant)

    def covers(self, tenants: Iterable[str]) -> bool:
        return all(tenant in self.facts or tenant in self.errors for tenant in tenants)


@dataclass(slots=True)
class ReconciliationRun:
    """Report of a run plus the conversion index as it stands after it."""

    report: ReconciliationReport
    index: ConversionIndex


@dataclass(slots=True)
class ReconciliationEngine:
    platforms: Mapping[str, PlatformGateway]
    unit_of_work_factory: Callable[[], FunnelUnitOfWork]
    resolver: CityResolver = field(default_factory=CityResolver)
    max_candidates: int = DEFAULT_MAX_CANDIDATES

    async def collect_facts(self, tenants: Iterable[str]) -> FactCollection:
        """Bulk-fetch memberships and course purchases for ``tenants`` concurrently.

        A tenant without a configured platform or whose fetch fails ends up in
        ``errors``; its facts are never partially present.
        """

        collection = FactCollection()
        fetchable: list[PlatformGateway] = []
        for tenant in dict.fromkeys(tenants):
            platform = self.platforms.get(tenant)
            if platform is None:
                collection.errors[tenant] = f"{tenant}: no platform credentials configured"
                continue
            fetchable.append(platform)

        results = await asyncio.gather(
            *(_fetch_tenant(platform) for platform in fetchable),
            return_exceptions=True,
        )
        for platform, result in zip(fetchable, results, strict=True):
            if isinstance(result, PlatformUnavailableError):
                log.warning("Platform for tenant %s unavailable: %s", platform.tenant, result)
                collection.errors[platform.tenant] = f"{platform.tenant}: {result}"
            elif isinstance(result, BaseException):
                raise result
            else:
                collection.facts[platform.tenant] = result
        return collection

    def run_trials(
        self,
        *,
        tenant: str | None = None,
        execute: bool = False,
        index: ConversionIndex | None = None,
    ) -> ReconciliationRun:
        """Reconcile trial bookings that carry a member id and a city."""

        report = ReconciliationReport(stage="trials", execute=execute)
        with self.unit_of_work_factory() as uow:
            conversions = uow.repositories.conversions
            settled_keys = conversions.find_existing_conversion_keys()
            if index is None:
                index = ConversionIndex.from_records(conversions.list_conversions())
            selection = select_trial_candidates(
                uow.repositories.trials.list_with_member_id(),
                resolver=self.resolver,
                settled_keys=settled_keys,
                tenant=_tenant_code(tenant),
            )
            self._run(uow, selection, report, index, facts=None)
            if execute:
                uow.commit()
        _log_report(report)
        return ReconciliationRun(report=report, index=index)

    def run_guests(
        self,
        *,
        tenant: str | None = None,
        execute: bool = False,
        facts: FactCollection | None = None,
        extra_guests: Iterable[Guest] = (),
        index: ConversionIndex | None = None,
    ) -> ReconciliationRun:
        """Reconcile guests that have not been marked converted.

        ``extra_guests`` are evaluated alongside the stored ones; a dry run of
        guest ingest passes the guests it would have created.
        """

        report = ReconciliationReport(stage="guests", execute=execute)
        code = _tenant_code(tenant)
        with self.unit_of_work_factory() as uow:
            guests = uow.repositories.guests
            if index is None:
                conversions = uow.repositories.conversions.list_conversions()
                index = ConversionIndex.from_records(conversions)
            stored = guests.list_unconverted(code)
            selection = select_guest_candidates(
                [*stored, *extra_guests],
                resolver=self.resolver,
                tenant=code,
            )
            self._run(uow, selection, report, index, facts=facts)
            if execute:
                uow.commit()
        _log_report(report)
        return ReconciliationRun(report=report, index=index)

    def _run(
        self,
        uow: FunnelUnitOfWork,
        selection: CandidateSelection,
        report: ReconciliationReport,
        index: ConversionIndex,
        *,
        facts: FactCollection | None,
    ) -> None:
        report.errors.extend(selection.unresolved)
        candidates, report.remaining = cap_candidates(selection.candidates, self.max_candidates)
        if report.remaining:
            log.info(
                "%s run capped at %d candidates, %d remaining",
                report.stage,
                self.max_candidates,
                report.remaining,
            )

        tenants = sorted({candidate.tenant for candidate in candidates})
        if facts is None or not facts.covers(tenants):
            facts = asyncio.run(self.collect_facts(tenants))
        report.errors.extend(facts.errors[tenant] for tenant in tenants if tenant in facts.errors)

        writer: DecisionWriter
        preview: PreviewWriter | None = None
        if report.execute:
            writer = StoreWriter(uow)
        else:
            writer = preview = PreviewWriter()

        for candidate in candidates:
            tenant_facts = facts.get(candidate.tenant)
            if tenant_facts is None:
                report.deferred += 1
                continue
            report.examined += 1
            self._evaluate(candidate, tenant_facts, index, writer, report)

        if preview is not None:
            report.preview.extend(preview.proposals)

    def _evaluate(
        self,
        candidate: Candidate,
        facts: TenantFacts,
        index: ConversionIndex,
        writer: DecisionWriter,
        report: ReconciliationReport,
    ) -> None:
        member_id = candidate.external_member_id
        stage = index.stage_of(candidate.key)
        decisions = decide(
            candidate,
            stage,
            course_record=index.course_record(candidate.key),
            membership=facts.memberships.get(member_id),
            course_purchase=facts.course_purchases.get(member_id),
        )
        log.debug(
            "Candidate %s (%s) at stage %s: %d writes",
            candidate.key,
            candidate.kind,
            stage,
            len(decisions),
        )
        if any(isinstance(d, CreateConversion | PromoteConversion) for d in decisions):
            report.found += 1

        for decision in decisions:
            if not writer.write(decision):
                continue
            match decision:
                case CreateConversion(record=record):
                    report.created += 1
                    index.add(record)
                case PromoteConversion():
                    report.updated += 1
                    index.replace(decision.record_id, decision.promoted())
                case MarkGuestConverted():
                    report.guests_converted += 1


async def _fetch_tenant(platform: PlatformGateway) -> TenantFacts:
    memberships, course_purchases = await asyncio.gather(
        platform.fetch_all_active_memberships(),
        platform.fetch_all_course_purchases(),
    )
    return TenantFacts(
        tenant=platform.tenant,
        memberships=memberships,
        course_purchases=course_purchases,
    )


def _tenant_code(tenant: str | None) -> str | None:
    return tenant.upper() if tenant else None


def _log_report(report: ReconciliationReport) -> None:
    log.info(
        "%s reconciliation (%s): examined=%d found=%d created=%d updated=%d "
        "guests_converted=%d deferred=%d remaining=%d errors=%d",
        report.stage,
        "execute" if report.execute else "dry run",
        report.examined,
        report.found,
        report.created,
        report.updated,
        report.guests_converted,
        report.deferred,
        report.remaining,
        len(report.errors),
    )
