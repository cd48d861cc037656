"""Monthly allowances for actions that cost nothing in points."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Sequence

from loguru import logger
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.core.settings import Settings, get_settings
from kidwallet_api.models.usage import UsageEvent
from kidwallet_api.services.errors import StoreUnavailableError, UsageLimitExceededError
from kidwallet_api.services.ledger.aggregator import as_utc
from kidwallet_api.services.wallet.caps import resolve_timezone


class UsageWindow(str, Enum):
    DAY = "day"
    MONTH = "month"


class UsageCounter:
    """Count and record discrete actions inside calendar windows."""

    def __init__(self, db_session: AsyncSession, *, config: Settings | None = None) -> None:
        self._db = db_session
        self._config = config or get_settings()
        self._tz = resolve_timezone(self._config.wallet_timezone)

    @property
    def limits(self) -> Dict[str, int]:
        return dict(self._config.usage_monthly_limits)

    def window_start(self, window: UsageWindow, now: datetime) -> datetime:
        local_now = as_utc(now).astimezone(self._tz)
        start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        if window is UsageWindow.MONTH:
            start = start.replace(day=1)
        return start.astimezone(timezone.utc)

    async def count(
        self,
        subject_ids: Sequence[str],
        action_kind: str,
        window: UsageWindow,
        *,
        now: Optional[datetime] = None,
    ) -> int:
        ids = list(subject_ids)
        if not ids:
            return 0
        start = self.window_start(window, now or datetime.now(timezone.utc))
        stmt = select(func.count(UsageEvent.id)).where(
            UsageEvent.subject_id.in_(ids),
            UsageEvent.action_kind == action_kind,
            UsageEvent.created_at >= start,
        )
        try:
            result = await self._db.execute(stmt)
        except DBAPIError as exc:
            raise StoreUnavailableError("usage events unavailable") from exc
        return int(result.scalar_one() or 0)

    async def remaining(
        self,
        subject_ids: Sequence[str],
        action_kind: str,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[int]:
        """Actions left this month, or ``None`` when the action has no limit."""

        limit = self.limits.get(action_kind)
        if limit is None:
            return None
        used = await self.count(subject_ids, action_kind, UsageWindow.MONTH, now=now)
        return max(0, limit - used)

    async def record(
        self,
        subject_id: str,
        action_kind: str,
        *,
        counted_ids: Optional[Sequence[str]] = None,
        now: Optional[datetime] = None,
    ) -> UsageEvent:
        """Store one action, refusing it once the monthly limit is spent.

        ``counted_ids`` lets callers count events stored under legacy ids too.
        """

        occurred_at = as_utc(now) if now else datetime.now(timezone.utc)
        limit = self.limits.get(action_kind)
        if limit is not None:
            ids = list(counted_ids) if counted_ids else [subject_id]
            used = await self.count(ids, action_kind, UsageWindow.MONTH, now=occurred_at)
            if used >= limit:
                logger.warning(
                    "Usage limit reached",
                    subject_id=subject_id,
                    action_kind=action_kind,
                    limit=limit,
                )
                raise UsageLimitExceededError(action_kind, limit)

        event = UsageEvent(subject_id=subject_id, action_kind=action_kind, created_at=occurred_at)
        self._db.add(event)
        try:
            await self._db.flush()
        except DBAPIError as exc:
            raise StoreUnavailableError("usage events unavailable") from exc
        logger.info("Recorded usage event", subject_id=subject_id, action_kind=action_kind)
        return event


__all__ = ["UsageCounter", "UsageWindow"]
