from datetime import date

import pytest

from kidwallet_api.services.ledger.idempotency import (
    GAME_REASONS,
    game_segment_key,
    make_idempotency_key,
    segment_from_count,
)


def test_key_is_deterministic() -> None:
    assert make_idempotency_key("mathsprint", 3) == "mathsprint:3"
    assert make_idempotency_key("mathsprint", 3) == make_idempotency_key("mathsprint", 3)


def test_day_scoped_key_format() -> None:
    key = make_idempotency_key("game", 2, day=date(2025, 3, 9))
    assert key == "game:2025-03-09:seg:2"


def test_distinct_segments_produce_distinct_keys() -> None:
    assert make_idempotency_key("wordbuilder", 1) != make_idempotency_key("wordbuilder", 2)


@pytest.mark.parametrize("source", ["", "   "])
def test_blank_source_rejected(source: str) -> None:
    with pytest.raises(ValueError):
        make_idempotency_key(source, 1)


def test_negative_segment_rejected() -> None:
    with pytest.raises(ValueError):
        make_idempotency_key("starcatcher", -1)


def test_segment_from_count_floors() -> None:
    assert segment_from_count(0, 5) == 0
    assert segment_from_count(4, 5) == 0
    assert segment_from_count(5, 5) == 1
    assert segment_from_count(14, 5) == 2


def test_segment_from_count_requires_positive_every() -> None:
    with pytest.raises(ValueError):
        segment_from_count(10, 0)


def test_game_segment_key_uses_game_namespace() -> None:
    assert game_segment_key("mathsprint", 4) == "game:mathsprint:4"
    assert GAME_REASONS["jump"] == "Jumping Platformer reward"


def test_game_segment_key_rejects_unknown_game() -> None:
    with pytest.raises(ValueError):
        game_segment_key("pinball", 1)
