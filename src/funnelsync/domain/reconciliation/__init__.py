"""Reconciliation of prospects against membership platform facts."""

from __future__ import annotations

from .apply import DecisionWriter, PreviewWriter, ProposedWrite, StoreWriter, WriteAction, describe
from .candidates import (
    Candidate,
    CandidateKind,
    CandidateSelection,
    cap_candidates,
    is_settled,
    select_guest_candidates,
    select_trial_candidates,
)
from .decisions import (
    CreateConversion,
    Decision,
    MarkGuestConverted,
    PromoteConversion,
    decide,
)
from .engine import (
    DEFAULT_MAX_CANDIDATES,
    FactCollection,
    ReconciliationEngine,
    ReconciliationRun,
    TenantFacts,
)
from .report import ReconciliationReport
from .stages import ConversionIndex, FunnelStage

__all__ = [
    "DEFAULT_MAX_CANDIDATES",
    "Candidate",
    "CandidateKind",
    "CandidateSelection",
    "ConversionIndex",
    "CreateConversion",
    "Decision",
    "DecisionWriter",
    "FactCollection",
    "FunnelStage",
    "MarkGuestConverted",
    "PreviewWriter",
    "PromoteConversion",
    "ProposedWrite",
    "ReconciliationEngine",
    "ReconciliationReport",
    "ReconciliationRun",
    "StoreWriter",
    "TenantFacts",
    "WriteAction",
    "cap_candidates",
    "decide",
    "describe",
    "is_settled",
    "select_guest_candidates",
    "select_trial_candidates",
]
