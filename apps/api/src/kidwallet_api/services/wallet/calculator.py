"""Derive wallet figures from the ledger on every read."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.core.settings import Settings, get_settings
from kidwallet_api.services.errors import InvalidSubjectError
from kidwallet_api.services.ledger.aggregator import LedgerAggregator, LedgerEntry, ReconciliationPolicy
from kidwallet_api.services.ledger.identities import IdentityResolver
from kidwallet_api.services.wallet.caps import CapStatus, apply_daily_cap, local_day, resolve_timezone
from kidwallet_api.services.wallet.classifier import Category, ExclusionRules, classify
from kidwallet_api.services.wallet.reservations import ReservationCalculator


@dataclass
class WalletSnapshot:
    """Point-in-time wallet figures. Never persisted."""

    subject_id: str
    subject_ids: List[str]
    total_earned: int
    total_spent: int
    reserved: int
    available: int
    balance: int
    per_category_totals: Dict[str, int]
    raw_total_earned: int
    excluded_total: int
    caps: Dict[str, CapStatus] = field(default_factory=dict)
    total_completions: int = 0
    with_evidence: int = 0
    quick_count: int = 0
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class FamilyWallet:
    child_id: str
    display_name: str
    snapshot: WalletSnapshot


def build_exclusion_rules(config: Settings) -> ExclusionRules:
    return ExclusionRules.from_lists(
        config.ledger_excluded_reasons,
        config.ledger_excluded_reason_prefixes,
        config.ledger_excluded_reason_fragments,
    )


class WalletCalculator:
    """Compute earned, spent, reserved, and available points for a child."""

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        config: Settings | None = None,
        resolver: IdentityResolver | None = None,
        aggregator: LedgerAggregator | None = None,
        reservations: ReservationCalculator | None = None,
    ) -> None:
        self._config = config or get_settings()
        self._resolver = resolver or IdentityResolver(db_session)
        self._aggregator = aggregator or LedgerAggregator(
            db_session,
            policy=ReconciliationPolicy(self._config.ledger_reconciliation_policy),
            window=timedelta(seconds=self._config.ledger_reconciliation_window_seconds),
        )
        self._reservations = reservations or ReservationCalculator(db_session)
        self._exclusions = build_exclusion_rules(self._config)
        self._tz = resolve_timezone(self._config.wallet_timezone)

    async def compute_wallet(
        self,
        subject_key: str,
        *,
        since: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> WalletSnapshot:
        subject_ids = await self._resolver.resolve(subject_key)
        if not subject_ids:
            raise InvalidSubjectError(subject_key)
        canonical = await self._resolver.canonical_id(subject_key) or subject_ids[0]

        entries = await self._aggregator.load_entries(subject_ids, since)
        reservations = await self._reservations.reserved_points(subject_ids)
        return self.summarize(
            canonical,
            subject_ids,
            entries,
            reserved_points=reservations.total,
            now=now,
        )

    def summarize(
        self,
        subject_id: str,
        subject_ids: List[str],
        entries: List[LedgerEntry],
        *,
        reserved_points: int = 0,
        now: Optional[datetime] = None,
    ) -> WalletSnapshot:
        """Pure wallet math over already-loaded entries."""

        computed_at = now or datetime.now(timezone.utc)
        today = local_day(computed_at, self._tz)

        per_category: Dict[Category, int] = {category: 0 for category in Category}
        by_category: Dict[Category, List[LedgerEntry]] = {category: [] for category in Category}
        excluded_total = 0
        raw_total_earned = 0
        total_spent = 0
        completions = 0
        with_evidence = 0

        for entry in entries:
            if self._exclusions.is_excluded(entry.reason):
                excluded_total += entry.amount
                continue

            if entry.amount < 0:
                total_spent += -entry.amount
                continue

            category = classify(entry.reason)
            per_category[category] += entry.amount
            by_category[category].append(entry)
            raw_total_earned += entry.amount
            completions += 1
            if entry.evidence_count > 0:
                with_evidence += 1

        caps: Dict[str, CapStatus] = {}
        for name, cap in self._config.category_daily_caps.items():
            try:
                category = Category(name)
            except ValueError:
                logger.warning("Ignoring daily cap for unknown category", category=name)
                continue
            status = apply_daily_cap(category.value, by_category[category], cap, today=today, tz=self._tz)
            caps[category.value] = status
            if status.excess:
                per_category[category] -= status.excess
                logger.debug(
                    "Clamped daily category earnings",
                    subject_id=subject_id,
                    category=category.value,
                    raw_today=status.raw_today,
                    excess=status.excess,
                )

        total_earned = sum(per_category.values())
        net = max(0, total_earned - total_spent)
        reserved = min(max(0, reserved_points), net)
        available = net - reserved

        return WalletSnapshot(
            subject_id=subject_id,
            subject_ids=list(subject_ids),
            total_earned=total_earned,
            total_spent=total_spent,
            reserved=reserved,
            available=available,
            balance=available + reserved,
            per_category_totals={category.value: total for category, total in per_category.items()},
            raw_total_earned=raw_total_earned,
            excluded_total=excluded_total,
            caps=caps,
            total_completions=completions,
            with_evidence=with_evidence,
            quick_count=completions - with_evidence,
            computed_at=computed_at,
        )

    async def compute_family_wallets(
        self,
        family_id: str,
        *,
        since: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> List[FamilyWallet]:
        wallets: List[FamilyWallet] = []
        for profile in await self._resolver.family_profiles(family_id):
            snapshot = await self.compute_wallet(profile.id, since=since, now=now)
            wallets.append(FamilyWallet(child_id=profile.id, display_name=profile.display_name, snapshot=snapshot))
        return wallets


__all__ = ["FamilyWallet", "WalletCalculator", "WalletSnapshot", "build_exclusion_rules"]
