"""Cash-out redemption requests."""

from __future__ import annotations

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum as SqlEnum, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID

from kidwallet_api.db.base import Base


class RedemptionStatus(str, Enum):
    """Lifecycle statuses for a cash-out request."""

    REQUESTED = "Requested"
    APPROVED = "Approved"
    REJECTED = "Rejected"
    ACCEPTED = "Accepted"
    FULFILLED = "Fulfilled"
    CANCELLED = "Cancelled"


class RedemptionRequest(Base):
    """A child's request to convert points into cash."""

    __tablename__ = "points_redemption_requests"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    subject_id = Column(String, nullable=False, index=True)
    family_id = Column(String, nullable=True)
    requested_points = Column(Integer, nullable=False)
    rate_per_point = Column(Numeric(12, 6), nullable=False)
    currency_cents = Column(Integer, nullable=False)
    note = Column(Text, nullable=True)
    status = Column(
        SqlEnum(RedemptionStatus, name="points_redemption_status"),
        nullable=False,
        default=RedemptionStatus.REQUESTED,
        server_default=RedemptionStatus.REQUESTED.name,
    )
    requested_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    decided_at = Column(DateTime(timezone=True), nullable=True)
    decided_by = Column(String, nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    fulfilled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
