"""Seed development child profiles and a little ledger history into the API database."""

from __future__ import annotations

import asyncio
import os
from typing import TypedDict

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from kidwallet_api.core.settings import settings
from kidwallet_api.models.child import ChildProfile
from kidwallet_api.services.ledger import PointAwardService


class SeedChild(TypedDict):
    id: str
    child_uid: str
    family_id: str
    nick_name: str


DEV_FAMILY_ID = os.getenv("DEV_FAMILY_ID", "family-dev")

DEV_CHILDREN: list[SeedChild] = [
    {"id": "child-ava", "child_uid": "legacy-ava", "family_id": DEV_FAMILY_ID, "nick_name": "Ava"},
    {"id": "child-leo", "child_uid": "legacy-leo", "family_id": DEV_FAMILY_ID, "nick_name": "Leo"},
]

DEV_AWARDS: list[tuple[str, int, str, str]] = [
    ("child-ava", 50, "Daily activity: brushed teeth", "seed:ava:daily"),
    ("child-ava", 120, "Math Sprint reward", "seed:ava:mathsprint"),
    ("child-leo", 30, "Checklist complete", "seed:leo:checklist"),
]


async def seed_children(session: AsyncSession) -> None:
    for child in DEV_CHILDREN:
        with session.no_autoflush:
            existing = await session.execute(select(ChildProfile).where(ChildProfile.id == child["id"]))
        record = existing.scalar_one_or_none()

        if record:
            record.child_uid = child["child_uid"]
            record.family_id = child["family_id"]
            record.nick_name = child["nick_name"]
        else:
            session.add(ChildProfile(**child))
    await session.flush()

    service = PointAwardService(session)
    for subject_id, amount, reason, key in DEV_AWARDS:
        await service.award(subject_id, amount, reason, key)
    await session.commit()


async def main() -> None:
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    try:
        async with session_factory() as session:
            await seed_children(session)
        print("Development children ready ✅")
    finally:
        await engine.dispose()


if __name__ == "__main__":
    asyncio.run(main())
