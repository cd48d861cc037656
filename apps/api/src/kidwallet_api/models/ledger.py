"""Points ledger tables.

Two physical tables carry ledger history. ``points_ledger`` is the table the
award service writes to; ``child_points_ledger`` holds rows written by the
earlier activity flow and is only ever read.
"""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID

from kidwallet_api.db.base import Base


class PointsLedgerEntry(Base):
    """Append-only signed point movements keyed by an optional idempotency key."""

    __tablename__ = "points_ledger"
    __table_args__ = (
        UniqueConstraint("subject_id", "source_key", name="uq_points_ledger_subject_source_key"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    subject_id = Column(String, nullable=False, index=True)
    delta = Column(Integer, nullable=False)
    reason = Column(Text, nullable=False)
    source_key = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


class LegacyChildPointsEntry(Base):
    """Activity completions recorded before the unified ledger existed."""

    __tablename__ = "child_points_ledger"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid4)
    subject_id = Column(String, nullable=False, index=True)
    points = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    evidence_count = Column(Integer, nullable=False, default=0, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
