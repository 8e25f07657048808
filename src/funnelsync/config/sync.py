"""Reconciliation run defaults."""

from __future__ import annotations

from dataclasses import dataclass

from .env import int_env_var

DEFAULT_MAX_CANDIDATES = 999
SINGLE_RECORD_TIMEOUT_SECONDS = 10.0
BULK_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True, slots=True)
class SyncConfig:
    max_candidates: int = DEFAULT_MAX_CANDIDATES
    single_record_timeout: float = SINGLE_RECORD_TIMEOUT_SECONDS
    bulk_timeout: float = BULK_TIMEOUT_SECONDS


def get_sync_config() -> SyncConfig:
    return SyncConfig(
        max_candidates=int_env_var("FUNNELSYNC_MAX_CANDIDATES", DEFAULT_MAX_CANDIDATES),
    )
