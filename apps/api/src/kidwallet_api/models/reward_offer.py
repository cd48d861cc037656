"""Parent reward catalog and offers made to a child."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Enum as SqlEnum, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship

from kidwallet_api.db.base import Base


class RewardCatalogItem(Base):
    """Reusable reward a parent can offer."""

    __tablename__ = "rewards_catalog"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    family_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    points_cost = Column(Integer, nullable=False, default=0, server_default="0")
    is_active = Column(Boolean, nullable=False, default=True, server_default="true")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    offers = relationship("RewardOffer", back_populates="reward")


class RewardOfferStatus(str, Enum):
    OFFERED = "Offered"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    FULFILLED = "Fulfilled"
    EXPIRED = "Expired"


class RewardOffer(Base):
    """A reward offered to a child; accepted offers hold points until fulfilled."""

    __tablename__ = "reward_offers"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    subject_id = Column(String, nullable=False, index=True)
    reward_id = Column(
        UUID(as_uuid=True),
        ForeignKey("rewards_catalog.id", ondelete="SET NULL"),
        nullable=True,
    )
    title = Column(String, nullable=True)
    points_cost = Column(Integer, nullable=True)
    points_cost_override = Column(Integer, nullable=True)
    status = Column(
        SqlEnum(RewardOfferStatus, name="reward_offer_status"),
        nullable=False,
        default=RewardOfferStatus.OFFERED,
        server_default=RewardOfferStatus.OFFERED.name,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    decided_at = Column(DateTime(timezone=True), nullable=True)

    reward = relationship("RewardCatalogItem", back_populates="offers")
