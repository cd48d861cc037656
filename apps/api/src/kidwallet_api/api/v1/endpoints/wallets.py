"""Wallet snapshot endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.api.errors import to_http_exception
from kidwallet_api.core.settings import settings
from kidwallet_api.db.session import get_session
from kidwallet_api.services.errors import PointsLedgerError
from kidwallet_api.services.wallet import WalletCalculator, WalletSnapshot


router = APIRouter(prefix="/wallets", tags=["Wallets"])


class CapStatusResponse(BaseModel):
    cap: int
    rawToday: int
    countedToday: int
    excess: int
    remaining: int
    capReached: bool


class WalletResponse(BaseModel):
    subjectId: str
    subjectIds: List[str]
    totalEarned: int
    totalSpent: int
    reserved: int
    available: int
    balance: int
    perCategory: Dict[str, int]
    rawTotalEarned: int
    excludedTotal: int
    caps: Dict[str, CapStatusResponse]
    totalCompletions: int
    withEvidence: int
    quickCount: int
    cashoutMinimumPoints: int
    computedAt: datetime


class FamilyWalletResponse(BaseModel):
    childId: str
    displayName: str
    wallet: WalletResponse


def serialize_wallet(snapshot: WalletSnapshot) -> WalletResponse:
    return WalletResponse(
        subjectId=snapshot.subject_id,
        subjectIds=snapshot.subject_ids,
        totalEarned=snapshot.total_earned,
        totalSpent=snapshot.total_spent,
        reserved=snapshot.reserved,
        available=snapshot.available,
        balance=snapshot.balance,
        perCategory=snapshot.per_category_totals,
        rawTotalEarned=snapshot.raw_total_earned,
        excludedTotal=snapshot.excluded_total,
        caps={
            name: CapStatusResponse(
                cap=status.cap,
                rawToday=status.raw_today,
                countedToday=status.counted_today,
                excess=status.excess,
                remaining=status.remaining,
                capReached=status.cap_reached,
            )
            for name, status in snapshot.caps.items()
        },
        totalCompletions=snapshot.total_completions,
        withEvidence=snapshot.with_evidence,
        quickCount=snapshot.quick_count,
        cashoutMinimumPoints=settings.cashout_minimum_points,
        computedAt=snapshot.computed_at,
    )


def _since(days: Optional[int]) -> Optional[datetime]:
    if days is None:
        return None
    return datetime.now(timezone.utc) - timedelta(days=days)


@router.get("/families/{family_id}", response_model=List[FamilyWalletResponse])
async def get_family_wallets(
    family_id: str,
    days: Optional[int] = Query(None, ge=0),
    session: AsyncSession = Depends(get_session),
) -> List[FamilyWalletResponse]:
    calculator = WalletCalculator(session)
    try:
        wallets = await calculator.compute_family_wallets(family_id, since=_since(days))
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    return [
        FamilyWalletResponse(childId=item.child_id, displayName=item.display_name, wallet=serialize_wallet(item.snapshot))
        for item in wallets
    ]


@router.get("/{subject_key}", response_model=WalletResponse)
async def get_wallet(
    subject_key: str,
    days: Optional[int] = Query(None, ge=0, description="Limit to recent days; omit for the full history"),
    session: AsyncSession = Depends(get_session),
) -> WalletResponse:
    calculator = WalletCalculator(session)
    try:
        snapshot = await calculator.compute_wallet(subject_key, since=_since(days))
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    return serialize_wallet(snapshot)
