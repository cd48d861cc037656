"""Cash-out request lifecycle."""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.core.settings import Settings, get_settings
from kidwallet_api.models.redemption import RedemptionRequest, RedemptionStatus
from kidwallet_api.observability.ledger import LedgerObservabilityStore, get_ledger_store
from kidwallet_api.services.errors import (
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidSubjectError,
    InvalidTransitionError,
    RedemptionNotFoundError,
)
from kidwallet_api.services.events import EventPublisher, LedgerEvent, NullEventPublisher, publish_safely
from kidwallet_api.services.ledger.award_service import PointAwardService
from kidwallet_api.services.ledger.identities import IdentityResolver
from kidwallet_api.services.wallet.calculator import WalletCalculator

CASHOUT_REASON = "Accepted cash-out"

TERMINAL_STATUSES = frozenset(
    {RedemptionStatus.FULFILLED, RedemptionStatus.REJECTED, RedemptionStatus.CANCELLED}
)


def cashout_idempotency_key(request_id: UUID) -> str:
    return f"cashout:{request_id}"


class RedemptionWorkflow:
    """Moves cash-out requests through their lifecycle and books the spend on acceptance."""

    _ALLOWED_TRANSITIONS: dict[RedemptionStatus, set[RedemptionStatus]] = {
        RedemptionStatus.REQUESTED: {
            RedemptionStatus.APPROVED,
            RedemptionStatus.REJECTED,
            RedemptionStatus.CANCELLED,
        },
        RedemptionStatus.APPROVED: {
            RedemptionStatus.ACCEPTED,
            RedemptionStatus.CANCELLED,
        },
        RedemptionStatus.ACCEPTED: {
            RedemptionStatus.FULFILLED,
        },
        RedemptionStatus.FULFILLED: set(),
        RedemptionStatus.REJECTED: set(),
        RedemptionStatus.CANCELLED: set(),
    }

    def __init__(
        self,
        db_session: AsyncSession,
        *,
        config: Settings | None = None,
        calculator: WalletCalculator | None = None,
        award_service: PointAwardService | None = None,
        resolver: IdentityResolver | None = None,
        publisher: EventPublisher | None = None,
        telemetry: LedgerObservabilityStore | None = None,
    ) -> None:
        self._db = db_session
        self._config = config or get_settings()
        self._resolver = resolver or IdentityResolver(db_session)
        self._publisher = publisher or NullEventPublisher()
        self._calculator = calculator or WalletCalculator(
            db_session, config=self._config, resolver=self._resolver
        )
        self._awards = award_service or PointAwardService(
            db_session, config=self._config, resolver=self._resolver, publisher=self._publisher
        )
        self._telemetry = telemetry or get_ledger_store()

    @property
    def minimum_points(self) -> int:
        return self._config.cashout_minimum_points

    async def create_request(
        self,
        subject_key: str,
        points: int,
        note: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> RedemptionRequest:
        """Open a cash-out request. Nothing is written to the ledger yet."""

        if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
            raise InvalidAmountError(points)

        profile = await self._resolver.get_profile(subject_key)
        snapshot = await self._calculator.compute_wallet(subject_key, now=now)

        if points < self.minimum_points:
            raise InsufficientBalanceError(
                InsufficientBalanceError.BELOW_MINIMUM, requested=points, limit=self.minimum_points
            )
        if points > snapshot.available:
            raise InsufficientBalanceError(
                InsufficientBalanceError.EXCEEDS_AVAILABLE, requested=points, limit=snapshot.available
            )

        points_per_dollar = self._config.cashout_points_per_dollar
        request = RedemptionRequest(
            subject_id=snapshot.subject_id,
            family_id=profile.family_id if profile is not None else None,
            requested_points=points,
            rate_per_point=Decimal(1) / Decimal(points_per_dollar),
            currency_cents=round(points * 100 / points_per_dollar),
            note=(note or "").strip() or None,
            status=RedemptionStatus.REQUESTED,
            requested_at=now or datetime.now(timezone.utc),
        )
        self._db.add(request)
        await self._db.flush()
        logger.info(
            "Created cash-out request",
            request_id=str(request.id),
            subject_id=request.subject_id,
            requested_points=points,
            currency_cents=request.currency_cents,
        )
        await self._announce(request)
        return request

    async def approve(self, request_id: UUID, actor: Optional[str] = None) -> RedemptionRequest:
        request = await self.get_request(request_id)
        if not self._should_apply(request, RedemptionStatus.APPROVED):
            return request

        snapshot = await self._calculator.compute_wallet(request.subject_id)
        if request.requested_points > snapshot.available:
            raise InsufficientBalanceError(
                InsufficientBalanceError.EXCEEDS_AVAILABLE,
                requested=request.requested_points,
                limit=snapshot.available,
            )

        request.decided_at = datetime.now(timezone.utc)
        request.decided_by = actor
        return await self._apply(request, RedemptionStatus.APPROVED)

    async def reject(self, request_id: UUID, actor: Optional[str] = None) -> RedemptionRequest:
        request = await self.get_request(request_id)
        if not self._should_apply(request, RedemptionStatus.REJECTED):
            return request
        request.decided_at = datetime.now(timezone.utc)
        request.decided_by = actor
        return await self._apply(request, RedemptionStatus.REJECTED)

    async def accept(self, request_id: UUID) -> RedemptionRequest:
        """Child accepts an approved payout; the points leave the wallet now."""

        request = await self.get_request(request_id)
        if not self._should_apply(request, RedemptionStatus.ACCEPTED):
            return request

        await self._awards.award(
            request.subject_id,
            -int(request.requested_points),
            CASHOUT_REASON,
            cashout_idempotency_key(request.id),
        )
        request = await self.get_request(request_id)
        request.accepted_at = datetime.now(timezone.utc)
        return await self._apply(request, RedemptionStatus.ACCEPTED)

    async def fulfill(self, request_id: UUID, actor: Optional[str] = None) -> RedemptionRequest:
        request = await self.get_request(request_id)
        if not self._should_apply(request, RedemptionStatus.FULFILLED):
            return request
        request.fulfilled_at = datetime.now(timezone.utc)
        if actor:
            logger.info("Cash-out paid out", request_id=str(request.id), actor=actor)
        return await self._apply(request, RedemptionStatus.FULFILLED)

    async def cancel(self, request_id: UUID) -> RedemptionRequest:
        request = await self.get_request(request_id)
        if not self._should_apply(request, RedemptionStatus.CANCELLED):
            return request
        request.cancelled_at = datetime.now(timezone.utc)
        return await self._apply(request, RedemptionStatus.CANCELLED)

    async def get_request(self, request_id: UUID) -> RedemptionRequest:
        stmt = select(RedemptionRequest).where(RedemptionRequest.id == request_id)
        result = await self._db.execute(stmt)
        request = result.scalar_one_or_none()
        if request is None:
            raise RedemptionNotFoundError(f"Redemption request {request_id} not found")
        return request

    async def list_requests(
        self,
        *,
        subject_key: Optional[str] = None,
        status: Optional[RedemptionStatus] = None,
    ) -> List[RedemptionRequest]:
        stmt = select(RedemptionRequest).order_by(RedemptionRequest.requested_at.desc())
        if subject_key is not None:
            subject_ids = await self._resolver.resolve(subject_key)
            if not subject_ids:
                raise InvalidSubjectError(subject_key)
            stmt = stmt.where(RedemptionRequest.subject_id.in_(subject_ids))
        if status is not None:
            stmt = stmt.where(RedemptionRequest.status == status)
        result = await self._db.execute(stmt)
        return list(result.scalars().all())

    def _should_apply(self, request: RedemptionRequest, target: RedemptionStatus) -> bool:
        current = request.status
        if current in TERMINAL_STATUSES or current == target:
            logger.info(
                "Ignoring repeated cash-out transition",
                request_id=str(request.id),
                status=current.value,
                requested=target.value,
            )
            return False
        if target not in self._ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidTransitionError(current, target)
        return True

    async def _apply(self, request: RedemptionRequest, target: RedemptionStatus) -> RedemptionRequest:
        previous = request.status
        request.status = target
        await self._db.flush()
        self._telemetry.record_redemption_transition(target.value)
        logger.info(
            "Cash-out request transitioned",
            request_id=str(request.id),
            from_status=previous.value,
            to_status=target.value,
        )
        await self._announce(request)
        return request

    async def _announce(self, request: RedemptionRequest) -> None:
        await publish_safely(
            self._publisher,
            LedgerEvent(
                kind=f"redemption.{request.status.value.lower()}",
                subject_id=request.subject_id,
                payload={"request_id": str(request.id), "requested_points": request.requested_points},
            ),
        )


__all__ = ["CASHOUT_REASON", "RedemptionWorkflow", "TERMINAL_STATUSES", "cashout_idempotency_key"]
