"""
Protocol interfaces for the Craigslist Deal Finder.

These protocols are the seams between the scan orchestrator and its
collaborators, so each stage can be swapped or mocked independently.
"""

from typing import Iterable, List, Optional, Protocol

from .models.alert import DigestRequest, FormattedDigest
from .models.delivery import DeliveryResult
from .models.evaluation import DealEvaluation, EvaluationRequest
from .models.listing import CandidateListing, Listing
from .models.search import Search


class IListingSource(Protocol):
    """Protocol for marketplace acquisition adapters."""

    async def fetch_listings(
        self,
        query: str,
        zipcode: str,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        radius: Optional[int] = None,
        limit: int = 20,
    ) -> List[CandidateListing]:
        """Return candidate listings; an empty list on any search-page failure."""
        ...

    async def close(self) -> None:
        """Release the browser session; safe when none was started."""
        ...


class IDealEvaluator(Protocol):
    """Protocol for AI deal evaluation."""

    async def evaluate(self, request: EvaluationRequest) -> DealEvaluation:
        """Assess a listing; never raises."""
        ...


class IDigestFormatter(Protocol):
    """Protocol for rendering digest emails."""

    def format_digest(self, request: DigestRequest) -> FormattedDigest:
        """Render a digest for the given deals."""
        ...


class IMessageDispatcher(Protocol):
    """Protocol for email delivery providers."""

    def send_alert(self, digest: FormattedDigest) -> DeliveryResult:
        """Send a rendered digest."""
        ...

    def test_connection(self) -> bool:
        """Check that the provider accepts our credentials."""
        ...


class INotifier(Protocol):
    """Protocol for digest notification."""

    def send_digest(self, request: DigestRequest) -> bool:
        """Render and send one digest; never raises."""
        ...


class IScanRepository(Protocol):
    """Protocol for the persistence operations the pipeline consumes."""

    def get_search(self, search_id: str) -> Optional[Search]:
        ...

    def list_active_searches(self) -> List[Search]:
        ...

    def listing_exists(self, search_id: str, external_id: str) -> bool:
        ...

    def create_listing(
        self, search_id: str, candidate: CandidateListing, evaluation: DealEvaluation
    ) -> Listing:
        ...

    def update_last_checked(self, search_id: str, checked_at=None) -> None:
        ...

    def mark_alerts_sent(
        self, search_id: str, listing_ids: Optional[Iterable[str]] = None
    ) -> int:
        ...
