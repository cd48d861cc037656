from datetime import datetime, timedelta, timezone

import pytest

from kidwallet_api.core.settings import Settings
from kidwallet_api.models.child import ChildProfile
from kidwallet_api.models.ledger import LegacyChildPointsEntry, PointsLedgerEntry
from kidwallet_api.models.redemption import RedemptionRequest, RedemptionStatus
from kidwallet_api.models.reward_offer import RewardCatalogItem, RewardOffer, RewardOfferStatus
from kidwallet_api.services.errors import InvalidSubjectError
from kidwallet_api.services.ledger import PointAwardService
from kidwallet_api.services.wallet import Category, WalletCalculator

NOW = datetime(2025, 5, 10, 20, 0, tzinfo=timezone.utc)


def _config(**overrides) -> Settings:
    values = {"wallet_timezone": "UTC", "category_daily_caps": {"games": 500}}
    values.update(overrides)
    return Settings(**values)


async def _award(session, amount: int, reason: str, *, at: datetime = NOW - timedelta(hours=1), subject: str = "child-1"):
    return await PointAwardService(session).award(subject, amount, reason, occurred_at=at)


@pytest.mark.asyncio
async def test_spent_beyond_earned_floors_available_at_zero(session_factory) -> None:
    async with session_factory() as session:
        await _award(session, 50, "Daily activity: piano")
        await _award(session, 35, "Checklist complete")
        await _award(session, -500, "Redeem reward: bike")
        await session.commit()

        snapshot = await WalletCalculator(session, config=_config()).compute_wallet("child-1", now=NOW)

    assert snapshot.total_earned == 85
    assert snapshot.total_spent == 500
    assert snapshot.reserved == 0
    assert snapshot.available == 0
    assert snapshot.balance == 0


@pytest.mark.asyncio
async def test_activity_checklist_game_and_cashout_scenario(session_factory) -> None:
    async with session_factory() as session:
        await _award(session, 60, "Daily Activity")
        await _award(session, 20, "Checklist: Approved")
        await _award(session, 5, "Math Sprint reward")
        await _award(session, -500, "Accepted cash-out")
        await session.commit()

        snapshot = await WalletCalculator(session, config=_config()).compute_wallet("child-1", now=NOW)

    assert snapshot.total_earned == 85
    assert snapshot.total_spent == 500
    assert snapshot.available == 0
    assert snapshot.per_category_totals["daily"] == 60
    assert snapshot.per_category_totals["checklists"] == 20
    assert snapshot.per_category_totals["games"] == 5


@pytest.mark.asyncio
async def test_daily_game_cap_reduces_available(session_factory, reset_ledger_store) -> None:
    async with session_factory() as session:
        await _award(session, 300, "Math Sprint reward", at=NOW - timedelta(hours=6))
        await _award(session, 300, "StarCatcher reward", at=NOW - timedelta(hours=4))
        await _award(session, 100, "Memory Match reward", at=NOW - timedelta(hours=2))
        await _award(session, 50, "Daily activity: reading")
        await session.commit()

        calculator = WalletCalculator(session, config=_config())
        snapshot = await calculator.compute_wallet("child-1", now=NOW)
        again = await calculator.compute_wallet("child-1", now=NOW)

    games = snapshot.caps["games"]
    assert games.raw_today == 700
    assert games.counted_today == 500
    assert games.excess == 200
    assert snapshot.raw_total_earned == 750
    assert snapshot.total_earned == 550
    assert snapshot.per_category_totals[Category.GAMES.value] == 500
    assert snapshot.available == 550
    assert again.total_earned == snapshot.total_earned
    assert reset_ledger_store.snapshot().caps == {}
    assert reset_ledger_store.snapshot().exclusions == {}


@pytest.mark.asyncio
async def test_yesterdays_games_are_not_clamped_today(session_factory) -> None:
    async with session_factory() as session:
        await _award(session, 600, "Math Sprint reward", at=NOW - timedelta(days=1))
        await _award(session, 100, "Math Sprint reward", at=NOW - timedelta(hours=1))
        await session.commit()

        snapshot = await WalletCalculator(session, config=_config()).compute_wallet("child-1", now=NOW)

    assert snapshot.total_earned == 700
    assert snapshot.caps["games"].excess == 0


@pytest.mark.asyncio
async def test_conservation_and_non_negativity(session_factory) -> None:
    amounts = [
        (400, "Math Sprint reward"),
        (300, "Word Builder reward"),
        (25, "Target: homework"),
        (100, "target approved"),
        (-40, "Redeem reward: sticker"),
        (-10, "debug: cleanup"),
        (15, "Mystery points"),
    ]
    async with session_factory() as session:
        for amount, reason in amounts:
            await _award(session, amount, reason)
        await session.commit()

        snapshot = await WalletCalculator(session, config=_config()).compute_wallet("child-1", now=NOW)

    total = sum(amount for amount, _ in amounts)
    assert total == snapshot.raw_total_earned - snapshot.total_spent + snapshot.excluded_total
    excess = sum(status.excess for status in snapshot.caps.values())
    assert snapshot.total_earned == snapshot.raw_total_earned - excess
    assert snapshot.excluded_total == 90
    assert snapshot.available >= 0
    assert all(value >= 0 for value in snapshot.per_category_totals.values())
    assert set(snapshot.per_category_totals) == {category.value for category in Category}


@pytest.mark.asyncio
async def test_reserved_includes_approved_cashouts_and_accepted_offers(session_factory) -> None:
    async with session_factory() as session:
        await _award(session, 4000, "Target: summer reading")
        catalog = RewardCatalogItem(title="Zoo trip", points_cost=150)
        session.add(catalog)
        await session.flush()
        session.add_all(
            [
                RedemptionRequest(
                    subject_id="child-1",
                    requested_points=2000,
                    rate_per_point=0.005,
                    currency_cents=1000,
                    status=RedemptionStatus.APPROVED,
                ),
                RedemptionRequest(
                    subject_id="child-1",
                    requested_points=2500,
                    rate_per_point=0.005,
                    currency_cents=1250,
                    status=RedemptionStatus.REQUESTED,
                ),
                RewardOffer(
                    subject_id="child-1",
                    points_cost=500,
                    points_cost_override=300,
                    status=RewardOfferStatus.ACCEPTED,
                ),
                RewardOffer(subject_id="child-1", reward_id=catalog.id, status=RewardOfferStatus.ACCEPTED),
                RewardOffer(subject_id="child-1", points_cost=999, status=RewardOfferStatus.OFFERED),
            ]
        )
        await session.commit()

        snapshot = await WalletCalculator(session, config=_config()).compute_wallet("child-1", now=NOW)

    assert snapshot.reserved == 2450
    assert snapshot.available == 4000 - 2450
    assert snapshot.balance == 4000


@pytest.mark.asyncio
async def test_reserved_never_exceeds_net_balance(session_factory) -> None:
    async with session_factory() as session:
        await _award(session, 100, "Daily activity")
        session.add(RewardOffer(subject_id="child-1", points_cost=300, status=RewardOfferStatus.ACCEPTED))
        await session.commit()

        snapshot = await WalletCalculator(session, config=_config()).compute_wallet("child-1", now=NOW)

    assert snapshot.reserved == 100
    assert snapshot.available == 0


@pytest.mark.asyncio
async def test_legacy_rows_and_completion_stats(session_factory) -> None:
    async with session_factory() as session:
        session.add(ChildProfile(id="child-1", child_uid="legacy-1"))
        session.add_all(
            [
                LegacyChildPointsEntry(
                    subject_id="legacy-1",
                    points=20,
                    reason="Daily activity: drawing",
                    evidence_count=1,
                    created_at=NOW - timedelta(days=2),
                ),
                LegacyChildPointsEntry(
                    subject_id="legacy-1",
                    points=10,
                    reason="Checklist: bedtime",
                    created_at=NOW - timedelta(days=2),
                ),
            ]
        )
        await session.commit()
        await _award(session, 30, "Wishlist: puzzle")
        await session.commit()

        snapshot = await WalletCalculator(session, config=_config()).compute_wallet("legacy-1", now=NOW)

    assert snapshot.subject_id == "child-1"
    assert snapshot.subject_ids == ["legacy-1", "child-1"]
    assert snapshot.total_earned == 60
    assert snapshot.total_completions == 3
    assert snapshot.with_evidence == 1
    assert snapshot.quick_count == 2


@pytest.mark.asyncio
async def test_configured_timezone_moves_the_cap_window(session_factory) -> None:
    late_evening_utc = datetime(2025, 5, 11, 3, 0, tzinfo=timezone.utc)
    async with session_factory() as session:
        await _award(session, 400, "Math Sprint reward", at=datetime(2025, 5, 10, 15, 0, tzinfo=timezone.utc))
        await _award(session, 400, "Math Sprint reward", at=late_evening_utc)
        await session.commit()

        toronto = await WalletCalculator(
            session, config=_config(wallet_timezone="America/Toronto")
        ).compute_wallet("child-1", now=late_evening_utc)
        utc = await WalletCalculator(session, config=_config()).compute_wallet("child-1", now=late_evening_utc)

    assert toronto.total_earned == 500
    assert utc.total_earned == 800


@pytest.mark.asyncio
async def test_family_wallets_cover_each_child(session_factory) -> None:
    async with session_factory() as session:
        session.add_all(
            [
                ChildProfile(id="child-1", family_id="fam-1", nick_name="Ava"),
                ChildProfile(id="child-2", family_id="fam-1", nick_name="Leo"),
            ]
        )
        await session.commit()
        await _award(session, 40, "Daily activity", subject="child-1")
        await _award(session, 70, "Checklist", subject="child-2")
        await session.commit()

        wallets = await WalletCalculator(session, config=_config()).compute_family_wallets("fam-1", now=NOW)

    totals = {wallet.display_name: wallet.snapshot.available for wallet in wallets}
    assert totals == {"Ava": 40, "Leo": 70}


@pytest.mark.asyncio
async def test_unusable_subject_key_is_rejected(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(InvalidSubjectError):
            await WalletCalculator(session, config=_config()).compute_wallet("   ")
