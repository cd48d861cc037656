"""Deterministic idempotency keys for point awards."""

from __future__ import annotations

from datetime import date
from typing import Dict, Optional

GAME_REASONS: Dict[str, str] = {
    "mathsprint": "Math Sprint reward",
    "wordbuilder": "Word Builder reward",
    "memory": "Memory Match reward",
    "starcatcher": "StarCatcher reward",
    "jump": "Jumping Platformer reward",
}


def make_idempotency_key(source_name: str, segment: int, *, day: Optional[date] = None) -> str:
    """Build ``<source>:<segment>``, or ``<source>:<YYYY-MM-DD>:seg:<segment>`` when scoped to a day."""

    source = (source_name or "").strip()
    if not source:
        raise ValueError("source_name must not be blank")
    if isinstance(segment, bool) or not isinstance(segment, int):
        raise ValueError("segment must be an integer")
    if segment < 0:
        raise ValueError("segment must be non-negative")

    if day is not None:
        return f"{source}:{day.isoformat()}:seg:{segment}"
    return f"{source}:{segment}"


def segment_from_count(count: int, every: int) -> int:
    """Number of complete ``every``-sized segments in ``count``."""

    if every <= 0:
        raise ValueError("every must be positive")
    if count < 0:
        raise ValueError("count must be non-negative")
    return count // every


def game_segment_key(game: str, segment: int, *, day: Optional[date] = None) -> str:
    if game not in GAME_REASONS:
        raise ValueError(f"Unknown game '{game}'")
    return make_idempotency_key(f"game:{game}", segment, day=day)


__all__ = ["GAME_REASONS", "game_segment_key", "make_idempotency_key", "segment_from_count"]
