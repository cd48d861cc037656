from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from threading import Lock
from typing import Dict


@dataclass
class LedgerSnapshot:
    awards: Dict[str, int]
    classifications: Dict[str, int]
    caps: Dict[str, int]
    exclusions: Dict[str, int]
    redemptions: Dict[str, int]

    def as_dict(self) -> Dict[str, object]:
        return {
            "awards": dict(self.awards),
            "classifications": dict(self.classifications),
            "caps": dict(self.caps),
            "exclusions": dict(self.exclusions),
            "redemptions": dict(self.redemptions),
        }


class LedgerObservabilityStore:
    """Collect ledger, wallet, and redemption telemetry for dashboards."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._awards: Dict[str, int] = defaultdict(int)
        self._classifications: Dict[str, int] = defaultdict(int)
        self._caps: Dict[str, int] = defaultdict(int)
        self._exclusions: Dict[str, int] = defaultdict(int)
        self._redemptions: Dict[str, int] = defaultdict(int)

    def record_award(self, *, duplicate: bool) -> None:
        with self._lock:
            self._awards["duplicates" if duplicate else "recorded"] += 1

    def record_ambiguous_classification(self) -> None:
        with self._lock:
            self._classifications["ambiguous"] += 1

    def record_cap_clamp(self, category: str, excess: int) -> None:
        with self._lock:
            self._caps[f"clamped:{category}"] += 1
            self._caps[f"excess_points:{category}"] += excess

    def record_exclusion(self, amount: int) -> None:
        with self._lock:
            self._exclusions["entries"] += 1
            self._exclusions["points"] += abs(amount)

    def record_redemption_transition(self, status: str) -> None:
        with self._lock:
            self._redemptions[status.lower()] += 1

    def snapshot(self) -> LedgerSnapshot:
        with self._lock:
            return LedgerSnapshot(
                awards=dict(self._awards),
                classifications=dict(self._classifications),
                caps=dict(self._caps),
                exclusions=dict(self._exclusions),
                redemptions=dict(self._redemptions),
            )

    def reset(self) -> None:
        with self._lock:
            self._awards.clear()
            self._classifications.clear()
            self._caps.clear()
            self._exclusions.clear()
            self._redemptions.clear()


_STORE = LedgerObservabilityStore()


def get_ledger_store() -> LedgerObservabilityStore:
    return _STORE


__all__ = ["get_ledger_store", "LedgerObservabilityStore", "LedgerSnapshot"]
