"""Ledger append and read services."""

from .aggregator import LedgerAggregator, LedgerEntry, ReconciliationPolicy, reconcile_entries
from .award_service import AwardOutcome, PointAwardService
from .identities import IdentityResolver, normalize_subject_key
from .idempotency import GAME_REASONS, game_segment_key, make_idempotency_key, segment_from_count

__all__ = [
    "AwardOutcome",
    "GAME_REASONS",
    "IdentityResolver",
    "LedgerAggregator",
    "LedgerEntry",
    "PointAwardService",
    "ReconciliationPolicy",
    "game_segment_key",
    "make_idempotency_key",
    "normalize_subject_key",
    "reconcile_entries",
    "segment_from_count",
]
