"""Points held by pending commitments that have not hit the ledger yet."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from kidwallet_api.models.redemption import RedemptionRequest, RedemptionStatus
from kidwallet_api.models.reward_offer import RewardOffer, RewardOfferStatus
from kidwallet_api.observability.tracing import ledger_span
from kidwallet_api.services.errors import StoreUnavailableError


@dataclass(frozen=True, slots=True)
class ReservationSummary:
    redemptions: int
    reward_offers: int

    @property
    def total(self) -> int:
        return self.redemptions + self.reward_offers


def effective_offer_cost(offer: RewardOffer) -> int:
    """Override beats the offer's own cost, which beats the catalog cost."""

    if offer.points_cost_override is not None:
        return max(0, int(offer.points_cost_override))
    if offer.points_cost is not None:
        return max(0, int(offer.points_cost))
    if offer.reward is not None and offer.reward.points_cost is not None:
        return max(0, int(offer.reward.points_cost))
    return 0


class ReservationCalculator:
    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def reserved_points(self, subject_ids: Sequence[str]) -> ReservationSummary:
        ids = list(subject_ids)
        if not ids:
            return ReservationSummary(redemptions=0, reward_offers=0)

        redemption_stmt = select(RedemptionRequest.requested_points).where(
            RedemptionRequest.subject_id.in_(ids),
            RedemptionRequest.status == RedemptionStatus.APPROVED,
        )
        offer_stmt = (
            select(RewardOffer)
            .options(selectinload(RewardOffer.reward))
            .where(
                RewardOffer.subject_id.in_(ids),
                RewardOffer.status == RewardOfferStatus.ACCEPTED,
            )
        )

        try:
            with ledger_span("wallet.reservations", subjects=len(ids)):
                redemption_rows = (await self._db.execute(redemption_stmt)).scalars().all()
                offers = (await self._db.execute(offer_stmt)).scalars().all()
        except DBAPIError as exc:
            raise StoreUnavailableError("reservations unavailable") from exc

        return ReservationSummary(
            redemptions=sum(int(points) for points in redemption_rows),
            reward_offers=sum(effective_offer_cost(offer) for offer in offers),
        )


__all__ = ["ReservationCalculator", "ReservationSummary", "effective_offer_cost"]
