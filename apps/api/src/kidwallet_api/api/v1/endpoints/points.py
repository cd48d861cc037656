"""Ledger append and read endpoints."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.api.dependencies.events import get_event_publisher
from kidwallet_api.api.errors import to_http_exception
from kidwallet_api.core.settings import settings
from kidwallet_api.db.session import get_session
from kidwallet_api.services.errors import PointsLedgerError
from kidwallet_api.services.events import DeferredEventPublisher
from kidwallet_api.services.ledger import (
    GAME_REASONS,
    AwardOutcome,
    IdentityResolver,
    LedgerAggregator,
    PointAwardService,
    ReconciliationPolicy,
    game_segment_key,
    segment_from_count,
)
from kidwallet_api.services.wallet import classify


router = APIRouter(prefix="/points", tags=["Points"])


class AwardRequest(BaseModel):
    subjectKey: str = Field(..., min_length=1, description="Canonical or legacy child id")
    amount: int = Field(..., description="Signed point delta; negative for spends")
    reason: str = Field(..., description="Free-text reason shown to the family")
    idempotencyKey: Optional[str] = Field(None, description="Retries with the same key never double-award")
    occurredAt: Optional[datetime] = Field(None, description="Event time; defaults to now")


class LedgerEntryResponse(BaseModel):
    entryId: str
    subjectId: str
    amount: int
    reason: str
    category: Optional[str] = None
    evidenceCount: int = 0
    sourceKey: Optional[str] = None
    source: str
    createdAt: datetime


class AwardResponse(BaseModel):
    awarded: bool
    entry: LedgerEntryResponse


class GameSegmentRequest(BaseModel):
    subjectKey: str = Field(..., min_length=1)
    count: int = Field(..., ge=0, description="Progress counter reported by the game")
    every: int = Field(..., gt=0, description="Counter size of one rewarded segment")
    pointsPerSegment: int = Field(..., gt=0)
    day: Optional[date] = Field(None, description="Scope the key to a calendar day")


class GameSegmentResponse(BaseModel):
    game: str
    segment: int
    idempotencyKey: Optional[str]
    award: Optional[AwardResponse]


class LedgerResponse(BaseModel):
    subjectIds: List[str]
    entries: List[LedgerEntryResponse]


class IdentityResponse(BaseModel):
    subjectKey: str
    canonicalId: Optional[str]
    subjectIds: List[str]


def _serialize_outcome(outcome: AwardOutcome) -> AwardResponse:
    entry = outcome.entry
    return AwardResponse(
        awarded=outcome.awarded,
        entry=LedgerEntryResponse(
            entryId=entry.entry_id,
            subjectId=entry.subject_id,
            amount=entry.amount,
            reason=entry.reason,
            evidenceCount=entry.evidence_count,
            sourceKey=entry.source_key,
            source=entry.source,
            createdAt=entry.created_at,
        ),
    )


@router.post("/awards", response_model=AwardResponse, status_code=status.HTTP_201_CREATED)
async def record_award(
    payload: AwardRequest,
    response: Response,
    session: AsyncSession = Depends(get_session),
    publisher: DeferredEventPublisher = Depends(get_event_publisher),
) -> AwardResponse:
    """Append a signed award; a repeated idempotency key returns the stored entry."""

    service = PointAwardService(session, publisher=publisher)
    try:
        outcome = await service.award(
            payload.subjectKey,
            payload.amount,
            payload.reason,
            payload.idempotencyKey,
            occurred_at=payload.occurredAt,
        )
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    await session.commit()
    await publisher.release()

    if not outcome.awarded:
        response.status_code = status.HTTP_200_OK
    return _serialize_outcome(outcome)


@router.post("/games/{game}/segments", response_model=GameSegmentResponse)
async def record_game_segment(
    game: str,
    payload: GameSegmentRequest,
    session: AsyncSession = Depends(get_session),
    publisher: DeferredEventPublisher = Depends(get_event_publisher),
) -> GameSegmentResponse:
    if game not in GAME_REASONS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Unknown game '{game}'")

    segment = segment_from_count(payload.count, payload.every)
    if segment == 0:
        return GameSegmentResponse(game=game, segment=0, idempotencyKey=None, award=None)

    key = game_segment_key(game, segment, day=payload.day)
    service = PointAwardService(session, publisher=publisher)
    try:
        outcome = await service.award(payload.subjectKey, payload.pointsPerSegment, GAME_REASONS[game], key)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    await session.commit()
    await publisher.release()

    return GameSegmentResponse(game=game, segment=segment, idempotencyKey=key, award=_serialize_outcome(outcome))


@router.get("/{subject_key}/ledger", response_model=LedgerResponse)
async def list_ledger_entries(
    subject_key: str,
    days: Optional[int] = Query(None, ge=0, description="Look-back window in days"),
    session: AsyncSession = Depends(get_session),
) -> LedgerResponse:
    window_days = settings.ledger_default_days if days is None else days
    since = datetime.now(timezone.utc) - timedelta(days=window_days)

    aggregator = LedgerAggregator(
        session,
        policy=ReconciliationPolicy(settings.ledger_reconciliation_policy),
        window=timedelta(seconds=settings.ledger_reconciliation_window_seconds),
    )
    try:
        subject_ids = await IdentityResolver(session).resolve(subject_key)
        entries = await aggregator.load_entries(subject_ids, since)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc

    return LedgerResponse(
        subjectIds=subject_ids,
        entries=[
            LedgerEntryResponse(
                entryId=entry.entry_id,
                subjectId=entry.subject_id,
                amount=entry.amount,
                reason=entry.reason,
                category=classify(entry.reason).value if entry.amount > 0 else None,
                evidenceCount=entry.evidence_count,
                sourceKey=entry.source_key,
                source=entry.source,
                createdAt=entry.created_at,
            )
            for entry in entries
        ],
    )


@router.get("/{subject_key}/identities", response_model=IdentityResponse)
async def resolve_identities(
    subject_key: str,
    session: AsyncSession = Depends(get_session),
) -> IdentityResponse:
    resolver = IdentityResolver(session)
    try:
        subject_ids = await resolver.resolve(subject_key)
        canonical = await resolver.canonical_id(subject_key)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    return IdentityResponse(subjectKey=subject_key, canonicalId=canonical, subjectIds=subject_ids)
