"""Cash-out request endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.api.dependencies.events import get_event_publisher
from kidwallet_api.api.dependencies.security import require_wallet_api_key
from kidwallet_api.api.errors import to_http_exception
from kidwallet_api.db.session import get_session
from kidwallet_api.models.redemption import RedemptionRequest, RedemptionStatus
from kidwallet_api.services.errors import PointsLedgerError
from kidwallet_api.services.events import DeferredEventPublisher, EventPublisher
from kidwallet_api.services.redemptions import RedemptionWorkflow


router = APIRouter(prefix="/redemptions", tags=["Redemptions"])


class RedemptionCreateRequest(BaseModel):
    subjectKey: str = Field(..., min_length=1)
    points: int = Field(..., description="Points to convert to cash")
    note: Optional[str] = Field(None, max_length=500)


class RedemptionDecisionRequest(BaseModel):
    actor: Optional[str] = Field(None, description="Parent or operator making the decision")


class RedemptionResponse(BaseModel):
    id: UUID
    subjectId: str
    familyId: Optional[str]
    requestedPoints: int
    ratePerPoint: float
    currencyCents: int
    note: Optional[str]
    status: str
    requestedAt: datetime
    decidedAt: Optional[datetime]
    decidedBy: Optional[str]
    acceptedAt: Optional[datetime]
    fulfilledAt: Optional[datetime]
    cancelledAt: Optional[datetime]


def _serialize(request: RedemptionRequest) -> RedemptionResponse:
    return RedemptionResponse(
        id=request.id,
        subjectId=request.subject_id,
        familyId=request.family_id,
        requestedPoints=request.requested_points,
        ratePerPoint=float(request.rate_per_point),
        currencyCents=request.currency_cents,
        note=request.note,
        status=request.status.value,
        requestedAt=request.requested_at,
        decidedAt=request.decided_at,
        decidedBy=request.decided_by,
        acceptedAt=request.accepted_at,
        fulfilledAt=request.fulfilled_at,
        cancelledAt=request.cancelled_at,
    )


def _workflow(session: AsyncSession, publisher: EventPublisher) -> RedemptionWorkflow:
    return RedemptionWorkflow(session, publisher=publisher)


@router.post("", response_model=RedemptionResponse, status_code=status.HTTP_201_CREATED)
async def create_redemption(
    payload: RedemptionCreateRequest,
    session: AsyncSession = Depends(get_session),
    publisher: DeferredEventPublisher = Depends(get_event_publisher),
) -> RedemptionResponse:
    try:
        request = await _workflow(session, publisher).create_request(payload.subjectKey, payload.points, payload.note)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    await session.commit()
    await publisher.release()
    return _serialize(request)


@router.get("", response_model=List[RedemptionResponse])
async def list_redemptions(
    subject_key: Optional[str] = Query(None, alias="subjectKey"),
    status_filter: Optional[RedemptionStatus] = Query(None, alias="status"),
    session: AsyncSession = Depends(get_session),
    publisher: DeferredEventPublisher = Depends(get_event_publisher),
) -> List[RedemptionResponse]:
    try:
        requests = await _workflow(session, publisher).list_requests(subject_key=subject_key, status=status_filter)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    return [_serialize(request) for request in requests]


@router.post(
    "/{request_id}/approve",
    response_model=RedemptionResponse,
    dependencies=[Depends(require_wallet_api_key)],
)
async def approve_redemption(
    request_id: UUID,
    payload: Optional[RedemptionDecisionRequest] = None,
    session: AsyncSession = Depends(get_session),
    publisher: DeferredEventPublisher = Depends(get_event_publisher),
) -> RedemptionResponse:
    try:
        request = await _workflow(session, publisher).approve(request_id, payload.actor if payload else None)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    await session.commit()
    await publisher.release()
    return _serialize(request)


@router.post(
    "/{request_id}/reject",
    response_model=RedemptionResponse,
    dependencies=[Depends(require_wallet_api_key)],
)
async def reject_redemption(
    request_id: UUID,
    payload: Optional[RedemptionDecisionRequest] = None,
    session: AsyncSession = Depends(get_session),
    publisher: DeferredEventPublisher = Depends(get_event_publisher),
) -> RedemptionResponse:
    try:
        request = await _workflow(session, publisher).reject(request_id, payload.actor if payload else None)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    await session.commit()
    await publisher.release()
    return _serialize(request)


@router.post(
    "/{request_id}/fulfill",
    response_model=RedemptionResponse,
    dependencies=[Depends(require_wallet_api_key)],
)
async def fulfill_redemption(
    request_id: UUID,
    payload: Optional[RedemptionDecisionRequest] = None,
    session: AsyncSession = Depends(get_session),
    publisher: DeferredEventPublisher = Depends(get_event_publisher),
) -> RedemptionResponse:
    try:
        request = await _workflow(session, publisher).fulfill(request_id, payload.actor if payload else None)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    await session.commit()
    await publisher.release()
    return _serialize(request)


@router.post("/{request_id}/accept", response_model=RedemptionResponse)
async def accept_redemption(
    request_id: UUID,
    session: AsyncSession = Depends(get_session),
    publisher: DeferredEventPublisher = Depends(get_event_publisher),
) -> RedemptionResponse:
    """Child accepts an approved payout. Points have been deducted once this returns."""

    try:
        request = await _workflow(session, publisher).accept(request_id)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    await session.commit()
    await publisher.release()
    return _serialize(request)


@router.post("/{request_id}/cancel", response_model=RedemptionResponse)
async def cancel_redemption(
    request_id: UUID,
    session: AsyncSession = Depends(get_session),
    publisher: DeferredEventPublisher = Depends(get_event_publisher),
) -> RedemptionResponse:
    try:
        request = await _workflow(session, publisher).cancel(request_id)
    except PointsLedgerError as exc:
        raise to_http_exception(exc) from exc
    await session.commit()
    await publisher.release()
    return _serialize(request)
