"""SQLAlchemy models package."""

from .child import ChildProfile  # noqa: F401
from .ledger import LegacyChildPointsEntry, PointsLedgerEntry  # noqa: F401
from .redemption import RedemptionRequest, RedemptionStatus  # noqa: F401
from .reward_offer import RewardCatalogItem, RewardOffer, RewardOfferStatus  # noqa: F401
from .usage import UsageEvent  # noqa: F401
