"""Per-run reconciliation summary."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .apply import ProposedWrite


@dataclass(slots=True, kw_only=True)
class ReconciliationReport:
    """Counts of one reconciliation run.

    ``examined`` counts evaluated candidates, ``deferred`` those skipped because
    their tenant's platform data was unavailable, ``found`` those for which the
    platform showed a conversion, and ``remaining`` those left over by the
    candidate cap. Soft failures are listed in ``errors``.
    """

    stage: str
    execute: bool
    examined: int = 0
    deferred: int = 0
    found: int = 0
    created: int = 0
    updated: int = 0
    guests_converted: int = 0
    remaining: int = 0
    errors: list[str] = field(default_factory=list)
    preview: list[ProposedWrite] = field(default_factory=list)

    @property
    def dry_run(self) -> bool:
        return not self.execute

    def to_dict(self) -> dict[str, object]:
        return {
            "stage": self.stage,
            "dry_run": self.dry_run,
            "examined": self.examined,
            "deferred": self.deferred,
            "found": self.found,
            "created": self.created,
            "updated": self.updated,
            "guests_converted": self.guests_converted,
            "remaining": self.remaining,
            "errors": list(self.errors),
            "preview": [proposal.to_dict() for proposal in self.preview],
        }
