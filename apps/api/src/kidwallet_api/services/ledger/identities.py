"""Resolve the identifiers a child's ledger rows may be stored under."""

from __future__ import annotations

import json
from typing import List, Optional

from loguru import logger
from sqlalchemy import or_, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from kidwallet_api.models.child import ChildProfile
from kidwallet_api.observability.tracing import ledger_span
from kidwallet_api.services.errors import StoreUnavailableError

_JSON_ID_FIELDS = ("child_uid", "id", "childId", "uid")


def normalize_subject_key(raw: Optional[str]) -> Optional[str]:
    """Clean a subject key passed around by clients.

    Keys occasionally arrive wrapped in quotes or as a serialized profile
    object. Objects without a usable id yield ``None``.
    """

    if raw is None:
        return None
    value = raw.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
        value = value[1:-1].strip()

    if value.startswith("{") and value.endswith("}"):
        try:
            payload = json.loads(value)
        except ValueError:
            return None
        if isinstance(payload, dict):
            for field in _JSON_ID_FIELDS:
                candidate = payload.get(field)
                if isinstance(candidate, str) and candidate.strip():
                    return candidate.strip()
        return None

    return value or None


class IdentityResolver:
    """Map a subject key to the canonical and legacy ids of the same child."""

    def __init__(self, db_session: AsyncSession) -> None:
        self._db = db_session

    async def _lookup(self, seed: str) -> Optional[ChildProfile]:
        stmt = (
            select(ChildProfile)
            .where(or_(ChildProfile.id == seed, ChildProfile.child_uid == seed))
            .limit(1)
        )
        try:
            with ledger_span("identities.lookup", seed=seed):
                result = await self._db.execute(stmt)
        except (OperationalError, InterfaceError) as exc:
            logger.error("Child profile lookup failed", seed=seed, error=str(exc))
            raise StoreUnavailableError("child profiles unavailable") from exc
        return result.scalar_one_or_none()

    async def resolve(self, raw_key: Optional[str]) -> List[str]:
        """Return ``[seed, id, child_uid]`` without duplicates, or ``[]`` for unusable keys."""

        seed = normalize_subject_key(raw_key)
        if not seed:
            return []

        profile = await self._lookup(seed)
        if profile is None:
            return [seed]

        resolved: List[str] = []
        for candidate in (seed, profile.id, profile.child_uid):
            if candidate and candidate not in resolved:
                resolved.append(candidate)
        return resolved

    async def get_profile(self, raw_key: Optional[str]) -> Optional[ChildProfile]:
        seed = normalize_subject_key(raw_key)
        if not seed:
            return None
        return await self._lookup(seed)

    async def canonical_id(self, raw_key: Optional[str]) -> Optional[str]:
        seed = normalize_subject_key(raw_key)
        if not seed:
            return None
        profile = await self._lookup(seed)
        return profile.id if profile is not None else seed

    async def family_profiles(self, family_id: str) -> List[ChildProfile]:
        stmt = select(ChildProfile).where(ChildProfile.family_id == family_id).order_by(ChildProfile.created_at)
        try:
            result = await self._db.execute(stmt)
        except (OperationalError, InterfaceError) as exc:
            raise StoreUnavailableError("child profiles unavailable") from exc
        return list(result.scalars().all())


__all__ = ["IdentityResolver", "normalize_subject_key"]
