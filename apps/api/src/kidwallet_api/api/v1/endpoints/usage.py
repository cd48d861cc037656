from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.api.errors import to_http_exception
from kidwallet_api.db.session import get_session
from kidwallet_api.services.errors import InvalidSubjectError, PointsLedgerError
from kidwallet_api.services.ledger import IdentityResolver
from kidwallet_api.services.usage import UsageCounter, UsageWindow


router = APIRouter(prefix="/usage", tags=["Usage"])


class UsageResponse(BaseModel):
    subjectId: str
    actionKind: str
    window: str
    used: int
    limit: Optional[int]
    remaining: Optional[int]


async def _build_usage(
    session: AsyncSession, subject_key: str, action_kind: str, window: UsageWindow
) -> UsageResponse:
    resolver = IdentityResolver(session)
    subject_ids = await resolver.resolve(subject_key)
    if not subject_ids:
        raise InvalidSubjectError(subject_key)
    canonical = await resolver.canonical_id(subject_key) or subject_ids[0]

    counter = UsageCounter(session)
    used = await counter.count(subject_ids, action_kind, window)
    return UsageResponse(
        subjectId=canonical,
        actionKind=action_kind,
        window=window.value,
        used=used,
        limit=counter.limits.get(action_kind),
        remaining=await counter.remaining(subject_ids, action_kind),
    )


@router.get("/{subject_key}/{action_kind}", response_model=UsageResponse)
async def get_usage(
    subject_key: str,
    action_kind: str,
    window: UsageWindow = Query(UsageWindow.MONTH),
    session: AsyncSession = Depends(get_session),
) -> UsageResponse:
    try:
        return await _build_usage(session, subject_key, action_kind, window)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc


@router.post("/{subject_key}/{action_kind}", response_model=UsageResponse, status_code=status.HTTP_201_CREATED)
async def record_usage(
    subject_key: str,
    action_kind: str,
    session: AsyncSession = Depends(get_session),
) -> UsageResponse:
    """Record one premium action; refused with 429 once the monthly allowance is spent."""

    resolver = IdentityResolver(session)
    try:
        subject_ids = await resolver.resolve(subject_key)
        if not subject_ids:
            raise InvalidSubjectError(subject_key)
        canonical = await resolver.canonical_id(subject_key) or subject_ids[0]
        await UsageCounter(session).record(canonical, action_kind, counted_ids=subject_ids)
        await session.commit()
        return await _build_usage(session, subject_key, action_kind, UsageWindow.MONTH)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
