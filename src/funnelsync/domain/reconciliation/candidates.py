"""Candidate selection: which prospects a run evaluates."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from funnelsync.domain.model import ConversionSource, IdentityKey

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from funnelsync.domain.identity import CityResolver
    from funnelsync.domain.model import Guest, Trial

log = logging.getLogger(__name__)


class CandidateKind(StrEnum):
    TRIAL = "trial"
    GUEST = "guest"
    # Member known only from a platform event, with no prospect row.
    DIRECT = "direct"


@dataclass(frozen=True, slots=True, kw_only=True)
class Candidate:
    """One prospect bound to its identity key and tenant."""

    kind: CandidateKind
    key: IdentityKey
    tenant: str
    trial: Trial | None = None
    guest: Guest | None = None

    @property
    def external_member_id(self) -> str:
        return self.key.external_member_id

    @property
    def source(self) -> ConversionSource:
        return ConversionSource(self.kind.value)


@dataclass(slots=True)
class CandidateSelection:
    candidates: list[Candidate] = field(default_factory=list)
    unresolved: list[str] = field(default_factory=list)
    settled: int = 0
    duplicates: int = 0


def is_settled(key: IdentityKey, settled_keys: set[IdentityKey]) -> bool:
    """Whether a terminal record already covers ``key``, legacy city-less rows included."""

    if key in settled_keys:
        return True
    return key.city is not None and IdentityKey(key.external_member_id, None) in settled_keys


def select_trial_candidates(
    trials: Iterable[Trial],
    *,
    resolver: CityResolver,
    settled_keys: set[IdentityKey],
    tenant: str | None = None,
) -> CandidateSelection:
    """Trials with a member id and city whose identity key is not settled yet."""

    selection = CandidateSelection()
    seen: set[IdentityKey] = set()
    for trial in trials:
        if not trial.external_member_id or not trial.city or not trial.city.strip():
            continue
        trial_tenant = resolver.resolve_tenant(trial.city)
        if trial_tenant is None:
            selection.unresolved.append(
                f"trial {trial.id}: city {trial.city!r} does not map to a tenant"
            )
            continue
        if tenant is not None and trial_tenant != tenant:
            continue
        key = IdentityKey(trial.external_member_id, resolver.normalize(trial.city))
        if is_settled(key, settled_keys):
            selection.settled += 1
            continue
        if key in seen:
            selection.duplicates += 1
            continue
        seen.add(key)
        selection.candidates.append(
            Candidate(kind=CandidateKind.TRIAL, key=key, tenant=trial_tenant, trial=trial)
        )
    log.debug(
        "Selected %d trial candidates (%d settled, %d duplicates, %d unresolved)",
        len(selection.candidates),
        selection.settled,
        selection.duplicates,
        len(selection.unresolved),
    )
    return selection


def select_guest_candidates(
    guests: Iterable[Guest],
    *,
    resolver: CityResolver,
    tenant: str | None = None,
) -> CandidateSelection:
    """Guests without ``converted_at`` in the requested tenant (all tenants by default)."""

    selection = CandidateSelection()
    seen: set[tuple[str, str]] = set()
    for guest in guests:
        if guest.is_converted:
            continue
        guest_tenant = guest.country.upper()
        if not resolver.is_known_tenant(guest_tenant):
            selection.unresolved.append(
                f"guest {guest.external_member_id}: unknown tenant {guest.country!r}"
            )
            continue
        if tenant is not None and guest_tenant != tenant:
            continue
        identity = (guest.external_member_id, guest_tenant)
        if identity in seen:
            selection.duplicates += 1
            continue
        seen.add(identity)
        city = resolver.normalize(guest.city) if guest.city else None
        selection.candidates.append(
            Candidate(
                kind=CandidateKind.GUEST,
                key=IdentityKey(guest.external_member_id, city),
                tenant=guest_tenant,
                guest=guest,
            )
        )
    log.debug(
        "Selected %d guest candidates (%d duplicates, %d unresolved)",
        len(selection.candidates),
        selection.duplicates,
        len(selection.unresolved),
    )
    return selection


def cap_candidates(
    candidates: Sequence[Candidate], limit: int
) -> tuple[list[Candidate], int]:
    """Return the first ``limit`` candidates and how many were left for a later run."""

    if limit < 0:
        raise ValueError("limit must not be negative")
    selected = list(candidates[:limit])
    return selected, len(candidates) - len(selected)
