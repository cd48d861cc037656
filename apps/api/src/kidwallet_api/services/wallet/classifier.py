"""Free-text reason classification into wallet categories.

Every rule lives in ``CATEGORY_RULES``; the first matching rule wins. Adding
a new reason pattern means adding a row, not another branch.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional, Sequence

from loguru import logger



class Category(str, Enum):
    DAILY = "daily"
    CHECKLISTS = "checklists"
    GAMES = "games"
    TARGETS = "targets"
    WISHLIST = "wishlist"
    REWARD_ENCOURAGE = "rewardEncourage"
    REWARD_REDEMPTION = "rewardRedemption"
    OTHER = "other"


_COMPACT_RE = re.compile(r"[\s\W_]+")


def normalize_reason(reason: Optional[str]) -> str:
    return " ".join((reason or "").lower().split())


def compact_reason(reason: Optional[str]) -> str:
    return _COMPACT_RE.sub("", (reason or "").lower())


@dataclass(frozen=True)
class CategoryRule:
    """Match a reason by substring, prefix, compacted substring, or token pair."""

    category: Category
    contains: tuple[str, ...] = ()
    prefixes: tuple[str, ...] = ()
    compact_contains: tuple[str, ...] = ()
    compact_pairs: tuple[tuple[str, str], ...] = ()
    predicate: Optional[Callable[[str], bool]] = field(default=None, compare=False)

    def matches(self, normalized: str, compacted: str) -> bool:
        if any(token in normalized for token in self.contains):
            return True
        if any(normalized.startswith(prefix) for prefix in self.prefixes):
            return True
        if any(token in compacted for token in self.compact_contains):
            return True
        if any(first in compacted and second in compacted for first, second in self.compact_pairs):
            return True
        return bool(self.predicate and self.predicate(normalized))


STORY_MISSION_TITLES = (
    "read 10 pages",
    "dusting adventure",
    "block city",
    "blue sky with rainbow",
    "quick forest painting",
    "draw a monkey",
)

CATEGORY_RULES: tuple[CategoryRule, ...] = (
    CategoryRule(
        Category.GAMES,
        contains=("play game", "game reward"),
        prefixes=("game:",),
        compact_contains=(
            "starcatcher",
            "mathsprint",
            "wordbuilder",
            "memorymatch",
            "jumpingplatformer",
            "jumpplatformer",
            "jumpinggame",
            "jumpgame",
            "anyrunner",
            "quizgame",
            "trivia",
            "game",
        ),
        compact_pairs=(
            ("math", "sprint"),
            ("word", "builder"),
            ("memory", "match"),
            ("jump", "platformer"),
            ("runner", "game"),
        ),
    ),
    CategoryRule(Category.DAILY, contains=("daily activity",)),
    CategoryRule(Category.CHECKLISTS, contains=("checklist",)),
    CategoryRule(Category.TARGETS, contains=("target",)),
    CategoryRule(Category.WISHLIST, contains=("wishlist", "wish")),
    CategoryRule(Category.TARGETS, contains=STORY_MISSION_TITLES),
    CategoryRule(
        Category.REWARD_ENCOURAGE,
        contains=("encourage reward", "encouragement reward", "high five", "high-five", "bonus"),
        prefixes=("encouragement:",),
    ),
    CategoryRule(
        Category.REWARD_REDEMPTION,
        contains=("redemption reward",),
        prefixes=("reward redemption", "redeem reward"),
    ),
)


def classify(reason: Optional[str], rules: Sequence[CategoryRule] = CATEGORY_RULES) -> Category:
    """Return the category of ``reason``; unmatched reasons fall back to ``OTHER``."""

    normalized = normalize_reason(reason)
    if normalized:
        compacted = compact_reason(normalized)
        for rule in rules:
            if rule.matches(normalized, compacted):
                return rule.category

    logger.debug("Ambiguous ledger reason classified as other", reason=reason)
    return Category.OTHER


@dataclass(frozen=True)
class ExclusionRules:
    """Reasons that never contribute to wallet figures."""

    exact: tuple[str, ...] = ("target approved",)
    prefixes: tuple[str, ...] = ("debug",)
    fragments: tuple[str, ...] = ("rpc debug award",)

    @classmethod
    def from_lists(
        cls, exact: Iterable[str], prefixes: Iterable[str], fragments: Iterable[str]
    ) -> "ExclusionRules":
        return cls(
            exact=tuple(normalize_reason(item) for item in exact),
            prefixes=tuple(normalize_reason(item) for item in prefixes),
            fragments=tuple(normalize_reason(item) for item in fragments),
        )

    def is_excluded(self, reason: Optional[str]) -> bool:
        normalized = normalize_reason(reason)
        if not normalized:
            return False
        if normalized in self.exact:
            return True
        if any(normalized.startswith(prefix) for prefix in self.prefixes if prefix):
            return True
        return any(fragment in normalized for fragment in self.fragments if fragment)


__all__ = [
    "CATEGORY_RULES",
    "Category",
    "CategoryRule",
    "ExclusionRules",
    "STORY_MISSION_TITLES",
    "classify",
    "compact_reason",
    "normalize_reason",
]
