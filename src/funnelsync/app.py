"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING

from funnelsync.adapters.intake import parse_intake_event
from funnelsync.adapters.perfectgym import build_platforms
from funnelsync.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyFunnelUnitOfWork,
    is_started,
    startup,
)
from funnelsync.config import get_sync_config, get_tenant_configs
from funnelsync.domain.identity import CityResolver
from funnelsync.domain.intake import IntakeService
from funnelsync.domain.ports import FunnelUnitOfWork
from funnelsync.domain.reconciliation import ReconciliationEngine
from funnelsync.domain.sync import SyncKind, SyncOrchestrator

if TYPE_CHECKING:
    from collections.abc import Mapping

    from funnelsync.domain.intake import IntakeResult
    from funnelsync.domain.ports import PlatformGateway
    from funnelsync.domain.sync import SyncReport

UnitOfWorkFactory = Callable[[], FunnelUnitOfWork]

log = getLogger(__name__)


def _ensure_started() -> None:
    if not is_started():
        startup()


def build_engine(
    *,
    platforms: Mapping[str, PlatformGateway] | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
    max_candidates: int | None = None,
) -> ReconciliationEngine:
    """Wire the reconciliation engine to the configured platforms and store."""

    _ensure_started()
    return ReconciliationEngine(
        platforms=platforms if platforms is not None else build_platforms(get_tenant_configs()),
        unit_of_work_factory=unit_of_work_factory or SqlAlchemyFunnelUnitOfWork,
        resolver=CityResolver(),
        max_candidates=max_candidates or get_sync_config().max_candidates,
    )


def sync(
    kind: SyncKind | str = SyncKind.ALL,
    *,
    tenant: str | None = None,
    execute: bool = False,
    max_candidates: int | None = None,
    platforms: Mapping[str, PlatformGateway] | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> SyncReport:
    """Reconcile prospects against the membership platforms.

    Without ``execute`` nothing is written; the report lists the proposed writes.
    """

    engine = build_engine(
        platforms=platforms,
        unit_of_work_factory=unit_of_work_factory,
        max_candidates=max_candidates,
    )
    log.info("Sync requested: kind=%s tenant=%s execute=%s", kind, tenant, execute)
    return SyncOrchestrator(engine).sync(kind, tenant=tenant, execute=execute)


def handle_intake_event(
    payload: object,
    *,
    platforms: Mapping[str, PlatformGateway] | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> IntakeResult:
    """Validate and apply one membership platform event."""

    command = parse_intake_event(payload)
    _ensure_started()
    service = IntakeService(
        platforms=platforms if platforms is not None else build_platforms(get_tenant_configs()),
        unit_of_work_factory=unit_of_work_factory or SqlAlchemyFunnelUnitOfWork,
        resolver=CityResolver(),
    )
    result = service.handle(command)
    log.info(
        "Handled %s for %s: outcome=%s, tenant=%s",
        result.event,
        result.external_member_id,
        result.outcome,
        result.tenant,
    )
    return result
