"""Union of every physical ledger table into one ordered stream of entries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional, Protocol, Sequence

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.models.ledger import LegacyChildPointsEntry, PointsLedgerEntry
from kidwallet_api.observability.tracing import ledger_span
from kidwallet_api.services.errors import StoreUnavailableError

CURRENT_SOURCE = "points_ledger"
LEGACY_SOURCE = "child_points_ledger"


def as_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """Normalized, read-only view of a ledger row from any source table."""

    subject_id: str
    amount: int
    reason: str
    created_at: datetime
    evidence_count: int = 0
    source_key: Optional[str] = None
    source: str = CURRENT_SOURCE
    entry_id: str = ""

    @classmethod
    def from_current(cls, row: PointsLedgerEntry) -> "LedgerEntry":
        return cls(
            subject_id=row.subject_id,
            amount=int(row.delta),
            reason=row.reason or "",
            created_at=as_utc(row.created_at),
            evidence_count=0,
            source_key=row.source_key,
            source=CURRENT_SOURCE,
            entry_id=str(row.id),
        )

    @classmethod
    def from_legacy(cls, row: LegacyChildPointsEntry) -> "LedgerEntry":
        return cls(
            subject_id=row.subject_id,
            amount=int(row.points),
            reason=row.reason or "",
            created_at=as_utc(row.created_at),
            evidence_count=int(row.evidence_count or 0),
            source_key=None,
            source=LEGACY_SOURCE,
            entry_id=str(row.id),
        )


class LedgerSource(Protocol):
    """A physical table the aggregator can read entries from."""

    name: str

    async def fetch(
        self, db_session: AsyncSession, subject_ids: Sequence[str], since: Optional[datetime]
    ) -> List[LedgerEntry]:
        ...


class CurrentLedgerSource:
    name = CURRENT_SOURCE

    async def fetch(
        self, db_session: AsyncSession, subject_ids: Sequence[str], since: Optional[datetime]
    ) -> List[LedgerEntry]:
        stmt = select(PointsLedgerEntry).where(PointsLedgerEntry.subject_id.in_(list(subject_ids)))
        if since is not None:
            stmt = stmt.where(PointsLedgerEntry.created_at >= as_utc(since))
        result = await db_session.execute(stmt)
        return [LedgerEntry.from_current(row) for row in result.scalars().all()]


class LegacyLedgerSource:
    name = LEGACY_SOURCE

    async def fetch(
        self, db_session: AsyncSession, subject_ids: Sequence[str], since: Optional[datetime]
    ) -> List[LedgerEntry]:
        stmt = select(LegacyChildPointsEntry).where(LegacyChildPointsEntry.subject_id.in_(list(subject_ids)))
        if since is not None:
            stmt = stmt.where(LegacyChildPointsEntry.created_at >= as_utc(since))
        result = await db_session.execute(stmt)
        return [LedgerEntry.from_legacy(row) for row in result.scalars().all()]


DEFAULT_SOURCES: tuple[LedgerSource, ...] = (CurrentLedgerSource(), LegacyLedgerSource())


class ReconciliationPolicy(str, Enum):
    """How rows mirrored into both ledger tables are counted."""

    SUM_ALL = "sum_all"
    PREFER_CURRENT = "prefer_current"


def _reason_key(reason: str) -> str:
    return " ".join(reason.lower().split())


def reconcile_entries(
    entries: Sequence[LedgerEntry],
    policy: ReconciliationPolicy = ReconciliationPolicy.SUM_ALL,
    window: timedelta = timedelta(seconds=5),
) -> List[LedgerEntry]:
    """Apply the reconciliation policy to entries belonging to one child.

    Under ``PREFER_CURRENT`` a legacy row is dropped when a current row with
    the same amount and reason exists within ``window``. Each current row
    absorbs at most one legacy row.
    """

    if policy is ReconciliationPolicy.SUM_ALL:
        return list(entries)

    current = [entry for entry in entries if entry.source == CURRENT_SOURCE]
    matched: set[int] = set()
    kept: List[LedgerEntry] = []

    for entry in entries:
        if entry.source != LEGACY_SOURCE:
            kept.append(entry)
            continue

        twin_index = None
        for index, candidate in enumerate(current):
            if index in matched:
                continue
            if candidate.amount != entry.amount:
                continue
            if _reason_key(candidate.reason) != _reason_key(entry.reason):
                continue
            if abs(candidate.created_at - entry.created_at) <= window:
                twin_index = index
                break

        if twin_index is None:
            kept.append(entry)
            continue

        matched.add(twin_index)
        logger.info(
            "Dropped legacy ledger row mirrored in current ledger",
            legacy_entry_id=entry.entry_id,
            current_entry_id=current[twin_index].entry_id,
            amount=entry.amount,
        )

    return kept


def _sort_key(entry: LedgerEntry) -> tuple[datetime, str, str]:
    return (entry.created_at, entry.source, entry.entry_id)


class LedgerAggregator:
    """Read ledger entries for a resolved id-set across every registered source."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        sources: Sequence[LedgerSource] = DEFAULT_SOURCES,
        policy: ReconciliationPolicy = ReconciliationPolicy.SUM_ALL,
        window: timedelta = timedelta(seconds=5),
    ) -> None:
        self._db = db_session
        self._sources = tuple(sources)
        self._policy = policy
        self._window = window

    @property
    def sources(self) -> tuple[LedgerSource, ...]:
        return self._sources

    async def load_entries(
        self, subject_ids: Sequence[str], since: Optional[datetime] = None
    ) -> List[LedgerEntry]:
        ids = [subject_id for subject_id in dict.fromkeys(subject_ids) if subject_id]
        if not ids:
            return []

        entries: List[LedgerEntry] = []
        for source in self._sources:
            try:
                with ledger_span("ledger.load", source=source.name, subjects=len(ids)):
                    entries.extend(await source.fetch(self._db, ids, since))
            except DBAPIError as exc:
                logger.error("Ledger source unavailable", source=source.name, error=str(exc))
                raise StoreUnavailableError(f"ledger source {source.name} unavailable") from exc

        entries.sort(key=_sort_key, reverse=True)
        return reconcile_entries(entries, self._policy, self._window)


__all__ = [
    "CURRENT_SOURCE",
    "DEFAULT_SOURCES",
    "LEGACY_SOURCE",
    "CurrentLedgerSource",
    "LedgerAggregator",
    "LedgerEntry",
    "LedgerSource",
    "LegacyLedgerSource",
    "ReconciliationPolicy",
    "as_utc",
    "reconcile_entries",
]
