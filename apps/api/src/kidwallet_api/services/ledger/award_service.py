"""Idempotent appends to the points ledger."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta, timezone
from typing import Optional

from loguru import logger
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.core.settings import Settings, get_settings
from kidwallet_api.models.ledger import PointsLedgerEntry
from kidwallet_api.observability.ledger import LedgerObservabilityStore, get_ledger_store
from kidwallet_api.observability.tracing import ledger_span
from kidwallet_api.services.errors import (
    InvalidAmountError,
    InvalidReasonError,
    InvalidSubjectError,
    StoreUnavailableError,
)
from kidwallet_api.services.events import EventPublisher, LedgerEvent, NullEventPublisher, publish_safely
from kidwallet_api.services.ledger.aggregator import (
    LedgerAggregator,
    LedgerEntry,
    ReconciliationPolicy,
    as_utc,
)
from kidwallet_api.services.ledger.identities import IdentityResolver
from kidwallet_api.services.wallet.caps import apply_daily_cap, local_day, resolve_timezone
from kidwallet_api.services.wallet.classifier import Category, ExclusionRules, classify


@dataclass(slots=True)
class AwardOutcome:
    entry: LedgerEntry
    awarded: bool


class PointAwardService:
    """Append signed point movements, at most once per subject and idempotency key."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        config: Settings | None = None,
        resolver: IdentityResolver | None = None,
        aggregator: LedgerAggregator | None = None,
        publisher: EventPublisher | None = None,
        telemetry: LedgerObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._config = config or get_settings()
        self._resolver = resolver or IdentityResolver(db_session)
        self._aggregator = aggregator or LedgerAggregator(
            db_session,
            policy=ReconciliationPolicy(self._config.ledger_reconciliation_policy),
            window=timedelta(seconds=self._config.ledger_reconciliation_window_seconds),
        )
        self._publisher = publisher or NullEventPublisher()
        self._telemetry = telemetry or get_ledger_store()
        self._exclusions = ExclusionRules.from_lists(
            self._config.ledger_excluded_reasons,
            self._config.ledger_excluded_reason_prefixes,
            self._config.ledger_excluded_reason_fragments,
        )
        self._tz = resolve_timezone(self._config.wallet_timezone)

    async def _find_existing(self, subject_id: str, source_key: str) -> Optional[PointsLedgerEntry]:
        stmt = select(PointsLedgerEntry).where(
            PointsLedgerEntry.subject_id == subject_id,
            PointsLedgerEntry.source_key == source_key,
        )
        result = await self._db.execute(stmt)
        return result.scalar_one_or_none()

    async def award(
        self,
        subject_key: str,
        amount: int,
        reason: str,
        idempotency_key: Optional[str] = None,
        *,
        occurred_at: Optional[datetime] = None,
    ) -> AwardOutcome:
        """Record ``amount`` points for the subject.

        A repeat call with a key that is already stored returns the stored
        entry with ``awarded=False``. Nothing is written when validation fails.
        The insert runs in a savepoint, so losing a key race leaves the rest
        of the caller's transaction intact.
        """

        if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
            raise InvalidAmountError(amount)
        if not isinstance(reason, str) or not reason.strip():
            raise InvalidReasonError()

        source_key = idempotency_key.strip() if idempotency_key and idempotency_key.strip() else None

        try:
            subject_id = await self._resolver.canonical_id(subject_key)
            if not subject_id:
                raise InvalidSubjectError(subject_key)

            with ledger_span("ledger.award", subject_id=subject_id, source_key=source_key):
                if source_key is not None:
                    existing = await self._find_existing(subject_id, source_key)
                    if existing is not None:
                        return self._duplicate(existing)

                created_at = as_utc(occurred_at) if occurred_at else datetime.now(timezone.utc)
                row = PointsLedgerEntry(
                    subject_id=subject_id,
                    delta=amount,
                    reason=reason.strip(),
                    source_key=source_key,
                    created_at=created_at,
                )
                try:
                    async with self._db.begin_nested():
                        self._db.add(row)
                        await self._db.flush()
                except IntegrityError:
                    if source_key is None:
                        raise
                    logger.warning(
                        "Detected race when recording points award",
                        subject_id=subject_id,
                        source_key=source_key,
                    )
                    winner = await self._find_existing(subject_id, source_key)
                    if winner is None:
                        raise
                    return self._duplicate(winner)
        except (OperationalError, InterfaceError) as exc:
            logger.error("Ledger store unavailable during award", subject_key=subject_key, error=str(exc))
            raise StoreUnavailableError("points ledger unavailable") from exc

        entry = LedgerEntry.from_current(row)
        self._telemetry.record_award(duplicate=False)
        logger.info(
            "Recorded points award",
            subject_id=subject_id,
            amount=amount,
            reason=entry.reason,
            source_key=source_key,
        )
        await self._record_entry_telemetry(entry)
        await publish_safely(
            self._publisher,
            LedgerEvent(
                kind="ledger.appended",
                subject_id=subject_id,
                payload={"amount": amount, "reason": entry.reason, "source_key": source_key},
            ),
        )
        return AwardOutcome(entry=entry, awarded=True)

    def _duplicate(self, row: PointsLedgerEntry) -> AwardOutcome:
        self._telemetry.record_award(duplicate=True)
        logger.info(
            "Points award already recorded",
            subject_id=row.subject_id,
            source_key=row.source_key,
        )
        return AwardOutcome(entry=LedgerEntry.from_current(row), awarded=False)

    async def _record_entry_telemetry(self, entry: LedgerEntry) -> None:
        """Count exclusions, unmatched reasons, and cap overflow once per stored entry."""

        if self._exclusions.is_excluded(entry.reason):
            self._telemetry.record_exclusion(entry.amount)
            return
        if entry.amount <= 0:
            return

        category = classify(entry.reason)
        if category is Category.OTHER:
            logger.info("Ledger reason matched no category", subject_id=entry.subject_id, reason=entry.reason)
            self._telemetry.record_ambiguous_classification()
            return

        cap = self._config.category_daily_caps.get(category.value)
        day = local_day(entry.created_at, self._tz)
        if cap is None or day != local_day(datetime.now(timezone.utc), self._tz):
            return

        day_start = datetime.combine(day, time.min, tzinfo=self._tz).astimezone(timezone.utc)
        try:
            subject_ids = await self._resolver.resolve(entry.subject_id)
            entries = await self._aggregator.load_entries(subject_ids, day_start)
        except StoreUnavailableError as exc:
            logger.warning("Skipped cap telemetry for award", subject_id=entry.subject_id, error=str(exc))
            return

        same_category = [
            item
            for item in entries
            if not self._exclusions.is_excluded(item.reason) and classify(item.reason) is category
        ]
        status = apply_daily_cap(category.value, same_category, cap, today=day, tz=self._tz)
        excess_before = max(0, status.raw_today - entry.amount - cap)
        clamped = status.excess - excess_before
        if clamped > 0:
            self._telemetry.record_cap_clamp(category.value, clamped)


__all__ = ["AwardOutcome", "PointAwardService"]
