from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from kidwallet_api.core.settings import Settings
from kidwallet_api.models.child import ChildProfile
from kidwallet_api.models.ledger import PointsLedgerEntry
from kidwallet_api.services.errors import (
    InvalidAmountError,
    InvalidReasonError,
    InvalidSubjectError,
    StoreUnavailableError,
)
from kidwallet_api.services.events import InMemoryEventBus, LedgerEvent
from kidwallet_api.services.ledger import PointAwardService
from kidwallet_api.services.wallet import WalletCalculator


async def _row_count(session) -> int:
    result = await session.execute(select(func.count(PointsLedgerEntry.id)))
    return int(result.scalar_one())


@pytest.mark.asyncio
async def test_award_appends_entry(session_factory, reset_ledger_store) -> None:
    async with session_factory() as session:
        service = PointAwardService(session)
        outcome = await service.award("child-1", 25, "Daily activity: reading", "daily:2025-01-01")
        await session.commit()

        assert outcome.awarded is True
        assert outcome.entry.amount == 25
        assert outcome.entry.subject_id == "child-1"
        assert outcome.entry.source_key == "daily:2025-01-01"
        assert outcome.entry.source == "points_ledger"
        assert outcome.entry.created_at.tzinfo is not None
        assert await _row_count(session) == 1

    assert reset_ledger_store.snapshot().awards == {"recorded": 1}


@pytest.mark.asyncio
async def test_repeated_key_returns_stored_entry(session_factory, reset_ledger_store) -> None:
    async with session_factory() as session:
        service = PointAwardService(session)
        first = await service.award("child-1", 10, "Math Sprint reward", "game:mathsprint:1")
        await session.commit()
        second = await service.award("child-1", 10, "Math Sprint reward", "game:mathsprint:1")
        await session.commit()

        assert first.awarded is True
        assert second.awarded is False
        assert second.entry.entry_id == first.entry.entry_id
        assert await _row_count(session) == 1

    assert reset_ledger_store.snapshot().awards == {"recorded": 1, "duplicates": 1}


@pytest.mark.asyncio
async def test_same_key_for_different_subjects_is_independent(session_factory) -> None:
    async with session_factory() as session:
        service = PointAwardService(session)
        first = await service.award("child-1", 10, "StarCatcher reward", "game:starcatcher:1")
        second = await service.award("child-2", 10, "StarCatcher reward", "game:starcatcher:1")
        await session.commit()

        assert first.awarded and second.awarded
        assert await _row_count(session) == 2


@pytest.mark.asyncio
async def test_awards_without_key_never_collide(session_factory) -> None:
    async with session_factory() as session:
        service = PointAwardService(session)
        await service.award("child-1", 5, "Checklist done")
        await service.award("child-1", 5, "Checklist done")
        await session.commit()

        assert await _row_count(session) == 2


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", [0, True, 2.5, "10"])
async def test_invalid_amount_rejected_before_write(session_factory, amount) -> None:
    async with session_factory() as session:
        service = PointAwardService(session)
        with pytest.raises(InvalidAmountError):
            await service.award("child-1", amount, "Daily activity")
        assert await _row_count(session) == 0


@pytest.mark.asyncio
async def test_blank_reason_rejected(session_factory) -> None:
    async with session_factory() as session:
        service = PointAwardService(session)
        with pytest.raises(InvalidReasonError):
            await service.award("child-1", 5, "   ")
        assert await _row_count(session) == 0


@pytest.mark.asyncio
async def test_unusable_subject_key_rejected(session_factory) -> None:
    async with session_factory() as session:
        service = PointAwardService(session)
        with pytest.raises(InvalidSubjectError):
            await service.award('{"name": "no id here"}', 5, "Daily activity")


@pytest.mark.asyncio
async def test_legacy_uid_is_written_under_canonical_id(session_factory) -> None:
    async with session_factory() as session:
        session.add(ChildProfile(id="child-canonical", child_uid="legacy-uid", family_id="fam-1"))
        await session.commit()

        service = PointAwardService(session)
        outcome = await service.award("legacy-uid", 40, "Target: tidy room", "target:room")
        await session.commit()

        assert outcome.entry.subject_id == "child-canonical"
        duplicate = await service.award("child-canonical", 40, "Target: tidy room", "target:room")
        assert duplicate.awarded is False


@pytest.mark.asyncio
async def test_concurrent_insert_race_returns_winner(session_factory, monkeypatch) -> None:
    async with session_factory() as session:
        session.add(
            PointsLedgerEntry(
                subject_id="child-1",
                delta=15,
                reason="Word Builder reward",
                source_key="game:wordbuilder:2",
                created_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
            )
        )
        await session.commit()

    async with session_factory() as session:
        service = PointAwardService(session)
        original_lookup = service._find_existing
        calls = {"count": 0}

        async def lookup_missing_once(subject_id, source_key):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return await original_lookup(subject_id, source_key)

        monkeypatch.setattr(service, "_find_existing", lookup_missing_once)

        outcome = await service.award("child-1", 15, "Word Builder reward", "game:wordbuilder:2")

        assert outcome.awarded is False
        assert outcome.entry.amount == 15
        assert calls["count"] == 2
        assert await _row_count(session) == 1


@pytest.mark.asyncio
async def test_store_failure_is_reported(session_factory, monkeypatch) -> None:
    async with session_factory() as session:
        async def broken_execute(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("database is locked"))

        monkeypatch.setattr(session, "execute", broken_execute)
        service = PointAwardService(session)

        with pytest.raises(StoreUnavailableError):
            await service.award("child-1", 5, "Daily activity", "daily:1")


@pytest.mark.asyncio
async def test_award_publishes_change_event(session_factory) -> None:
    bus = InMemoryEventBus()
    received: list[LedgerEvent] = []

    async def handler(event: LedgerEvent) -> None:
        received.append(event)

    bus.subscribe(handler)

    async with session_factory() as session:
        service = PointAwardService(session, publisher=bus)
        await service.award("child-1", 30, "Wishlist: new book", "wish:1")
        await service.award("child-1", 30, "Wishlist: new book", "wish:1")

    assert [event.kind for event in bus.published] == ["ledger.appended"]
    assert received[0].payload["amount"] == 30


@pytest.mark.asyncio
async def test_publisher_failure_does_not_fail_award(session_factory) -> None:
    class ExplodingPublisher:
        async def publish(self, event: LedgerEvent) -> None:
            raise RuntimeError("feed offline")

    async with session_factory() as session:
        service = PointAwardService(session, publisher=ExplodingPublisher())
        outcome = await service.award("child-1", 12, "Daily activity")

    assert outcome.awarded is True


@pytest.mark.asyncio
async def test_lost_race_keeps_earlier_awards_in_the_transaction(session_factory, monkeypatch) -> None:
    async with session_factory() as session:
        await PointAwardService(session).award("child-1", 15, "Word Builder reward", "game:wordbuilder:3")
        await session.commit()

    async with session_factory() as session:
        service = PointAwardService(session)
        original_lookup = service._find_existing
        calls = {"count": 0}

        async def lookup_missing_once(subject_id, source_key):
            calls["count"] += 1
            if calls["count"] == 1:
                return None
            return await original_lookup(subject_id, source_key)

        daily = await service.award("child-1", 60, "Daily Activity")
        monkeypatch.setattr(service, "_find_existing", lookup_missing_once)
        raced = await service.award("child-1", 15, "Word Builder reward", "game:wordbuilder:3")
        await session.commit()

    async with session_factory() as session:
        rows = (
            await session.execute(select(PointsLedgerEntry).where(PointsLedgerEntry.reason == "Daily Activity"))
        ).scalars().all()
        total = await _row_count(session)

    assert daily.awarded is True
    assert raced.awarded is False
    assert [row.delta for row in rows] == [60]
    assert total == 2


@pytest.mark.asyncio
async def test_cap_overflow_is_counted_once_per_write(session_factory, reset_ledger_store) -> None:
    config = Settings(wallet_timezone="UTC", category_daily_caps={"games": 500})
    async with session_factory() as session:
        service = PointAwardService(session, config=config)
        await service.award("child-1", 400, "Math Sprint reward")
        await service.award("child-1", 300, "StarCatcher reward")
        await session.commit()

        assert reset_ledger_store.snapshot().caps == {"clamped:games": 1, "excess_points:games": 200}

        calculator = WalletCalculator(session, config=config)
        for _ in range(3):
            snapshot = await calculator.compute_wallet("child-1")

    assert snapshot.caps["games"].excess == 200
    assert reset_ledger_store.snapshot().caps == {"clamped:games": 1, "excess_points:games": 200}


@pytest.mark.asyncio
async def test_excluded_and_unmatched_reasons_are_counted_at_write(session_factory, reset_ledger_store) -> None:
    async with session_factory() as session:
        service = PointAwardService(session, config=Settings(wallet_timezone="UTC"))
        await service.award("child-1", 5, "debug award")
        await service.award("child-1", 10, "Mystery points")
        await service.award("child-1", 20, "Daily activity")
        await session.commit()

        await WalletCalculator(session, config=Settings(wallet_timezone="UTC")).compute_wallet("child-1")

    snapshot = reset_ledger_store.snapshot()
    assert snapshot.exclusions == {"entries": 1, "points": 5}
    assert snapshot.classifications == {"ambiguous": 1}
