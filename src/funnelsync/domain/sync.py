"""Sync orchestration: trial reconciliation, guest ingest and guest reconciliation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from funnelsync.domain.guest_ingest import GuestIngestReport, ingest_guests

if TYPE_CHECKING:
    from funnelsync.domain.model import Guest
    from funnelsync.domain.reconciliation import (
        ConversionIndex,
        ReconciliationEngine,
        ReconciliationReport,
    )

log = logging.getLogger(__name__)


class SyncKind(StrEnum):
    TRIALS = "trials"
    GUESTS = "guests"
    ALL = "all"


@dataclass(slots=True, kw_only=True)
class SyncReport:
    kind: SyncKind
    execute: bool
    tenant: str | None = None
    trials: ReconciliationReport | None = None
    guests: ReconciliationReport | None = None
    guest_ingest: list[GuestIngestReport] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def stages(self) -> list[ReconciliationReport]:
        return [report for report in (self.trials, self.guests) if report is not None]

    def total(self, name: str) -> int:
        return sum(getattr(report, name) for report in self.stages)

    @property
    def all_errors(self) -> list[str]:
        errors = list(self.errors)
        for report in self.stages:
            errors.extend(error for error in report.errors if error not in errors)
        return errors

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {
            "kind": str(self.kind),
            "dry_run": not self.execute,
            "tenant": self.tenant,
        }
        for name in ("examined", "found", "created", "updated", "remaining"):
            payload[name] = self.total(name)
        payload["guests_converted"] = self.total("guests_converted")
        payload["errors"] = self.all_errors
        if self.trials is not None:
            payload["trials"] = self.trials.to_dict()
        if self.guest_ingest:
            payload["guest_ingest"] = [report.to_dict() for report in self.guest_ingest]
        if self.guests is not None:
            payload["guests"] = self.guests.to_dict()
        return payload


@dataclass(slots=True)
class SyncOrchestrator:
    engine: ReconciliationEngine

    def sync(
        self,
        kind: SyncKind | str,
        *,
        tenant: str | None = None,
        execute: bool = False,
    ) -> SyncReport:
        """Run one sync.

        ``all`` runs trials before guests and carries the conversion index
        forward, so a dry run of guests sees what the trial stage would write.
        """

        sync_kind = SyncKind(kind)
        code = tenant.upper() if tenant else None
        report = SyncReport(kind=sync_kind, execute=execute, tenant=code)
        log.info("Starting %s sync (%s)", sync_kind, "execute" if execute else "dry run")

        index: ConversionIndex | None = None
        if sync_kind in (SyncKind.TRIALS, SyncKind.ALL):
            run = self.engine.run_trials(tenant=code, execute=execute)
            report.trials = run.report
            index = run.index if not execute else None
        if sync_kind in (SyncKind.GUESTS, SyncKind.ALL):
            report.guests = self._sync_guests(report, code, execute=execute, index=index)

        log.info(
            "Finished %s sync: examined=%d found=%d created=%d updated=%d errors=%d",
            sync_kind,
            report.total("examined"),
            report.total("found"),
            report.total("created"),
            report.total("updated"),
            len(report.all_errors),
        )
        return report

    def _sync_guests(
        self,
        report: SyncReport,
        tenant: str | None,
        *,
        execute: bool,
        index: ConversionIndex | None,
    ) -> ReconciliationReport:
        engine = self.engine
        tenants = [tenant] if tenant else list(engine.resolver.tenant_codes)
        facts = asyncio.run(engine.collect_facts(tenants))
        report.errors.extend(facts.errors[code] for code in tenants if code in facts.errors)

        pending: list[Guest] = []
        with engine.unit_of_work_factory() as uow:
            for code in tenants:
                tenant_facts = facts.get(code)
                if tenant_facts is None:
                    continue
                ingest = ingest_guests(
                    code,
                    tenant_facts.course_purchases,
                    resolver=engine.resolver,
                    unit_of_work=uow,
                    execute=execute,
                )
                report.guest_ingest.append(ingest)
                report.errors.extend(ingest.errors)
                pending.extend(ingest.pending)
            if execute:
                uow.commit()

        run = engine.run_guests(
            tenant=tenant,
            execute=execute,
            facts=facts,
            extra_guests=pending,
            index=index,
        )
        return run.report
