from .models import Auction, AuctionOutcome, OutcomeStatus, SweepSummary
from .scheduler import SweepHistory, run_on_interval
from .sweep import BidFinalizationSweep, SweepSelectionError

__all__ = [
    "Auction",
    "AuctionOutcome",
    "BidFinalizationSweep",
    "OutcomeStatus",
    "SweepHistory",
    "SweepSelectionError",
    "SweepSummary",
    "run_on_interval",
]
