"""Wallet derivation: classification, caps, reservations, and totals."""

from .calculator import FamilyWallet, WalletCalculator, WalletSnapshot
from .caps import CapStatus, apply_daily_cap
from .classifier import CATEGORY_RULES, Category, ExclusionRules, classify
from .reservations import ReservationCalculator, ReservationSummary

__all__ = [
    "CATEGORY_RULES",
    "CapStatus",
    "Category",
    "ExclusionRules",
    "FamilyWallet",
    "ReservationCalculator",
    "ReservationSummary",
    "WalletCalculator",
    "WalletSnapshot",
    "apply_daily_cap",
    "classify",
]
