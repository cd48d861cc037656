"""Child profile records used to resolve legacy identifiers."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, String, func

from kidwallet_api.db.base import Base


class ChildProfile(Base):
    """A child known to the wallet, addressable by canonical id or legacy uid."""

    __tablename__ = "child_profiles"

    id = Column(String, primary_key=True)
    child_uid = Column(String, nullable=True, unique=True, index=True)
    family_id = Column(String, nullable=True, index=True)
    nick_name = Column(String, nullable=True)
    first_name = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    @property
    def display_name(self) -> str:
        return self.nick_name or self.first_name or self.id
