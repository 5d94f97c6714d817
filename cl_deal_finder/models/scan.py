"""
Scan and batch sweep result models.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class ScanResult:
    """Counts produced by scanning one search."""

    new_listings: int = 0
    good_deals: int = 0
    alerts_sent: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "new_listings": self.new_listings,
            "good_deals": self.good_deals,
            "alerts_sent": self.alerts_sent,
        }


@dataclass
class SearchScanOutcome:
    """One search's entry in a batch sweep."""

    search_id: str
    result: ScanResult
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


@dataclass
class BatchResult:
    """Aggregate of a sweep over every active search."""

    searches_processed: int = 0
    total_new_listings: int = 0
    total_good_deals: int = 0
    total_alerts_sent: int = 0
    outcomes: List[SearchScanOutcome] = field(default_factory=list)

    def add(self, outcome: SearchScanOutcome) -> None:
        """Fold one search's outcome into the totals."""
        self.outcomes.append(outcome)
        self.searches_processed += 1
        self.total_new_listings += outcome.result.new_listings
        self.total_good_deals += outcome.result.good_deals
        self.total_alerts_sent += outcome.result.alerts_sent

    @property
    def failed_searches(self) -> List[str]:
        return [o.search_id for o in self.outcomes if not o.succeeded]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "searches_processed": self.searches_processed,
            "total_new_listings": self.total_new_listings,
            "total_good_deals": self.total_good_deals,
            "total_alerts_sent": self.total_alerts_sent,
            "failed_searches": self.failed_searches,
        }
