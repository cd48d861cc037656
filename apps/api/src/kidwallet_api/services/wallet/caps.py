"""Read-time daily caps per category."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, tzinfo
from typing import Iterable
from zoneinfo import ZoneInfo

from kidwallet_api.services.ledger.aggregator import LedgerEntry, as_utc


def resolve_timezone(name: str) -> ZoneInfo:
    return ZoneInfo(name or "UTC")


def local_day(moment: datetime, tz: tzinfo) -> date:
    """Calendar day of ``moment`` in ``tz``; naive values are read as UTC."""

    return as_utc(moment).astimezone(tz).date()


@dataclass(frozen=True, slots=True)
class CapStatus:
    category: str
    cap: int
    raw_today: int
    counted_today: int
    excess: int
    remaining: int
    cap_reached: bool

    def as_dict(self) -> dict[str, object]:
        return {
            "category": self.category,
            "cap": self.cap,
            "rawToday": self.raw_today,
            "countedToday": self.counted_today,
            "excess": self.excess,
            "remaining": self.remaining,
            "capReached": self.cap_reached,
        }


def apply_daily_cap(
    category: str,
    entries: Iterable[LedgerEntry],
    cap: int,
    *,
    today: date,
    tz: tzinfo,
) -> CapStatus:
    """Clamp today's positive earnings for ``category``.

    ``entries`` must already be limited to the category. Rows from other days
    pass through uncapped and stored rows are never modified.
    """

    if cap < 0:
        raise ValueError("cap must be non-negative")

    raw_today = sum(
        entry.amount for entry in entries if entry.amount > 0 and local_day(entry.created_at, tz) == today
    )
    return CapStatus(
        category=category,
        cap=cap,
        raw_today=raw_today,
        counted_today=min(raw_today, cap),
        excess=max(0, raw_today - cap),
        remaining=max(0, cap - raw_today),
        cap_reached=raw_today >= cap,
    )


__all__ = ["CapStatus", "apply_daily_cap", "local_day", "resolve_timezone"]
