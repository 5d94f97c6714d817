"""
Listing data models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional


@dataclass
class ListingDetails:
    """Content scraped from a single listing page."""

    description: str = ""
    image_urls: List[str] = field(default_factory=list)


@dataclass
class CandidateListing:
    """A listing as scraped from Craigslist, before deduplication."""

    external_id: str
    title: str
    price: Optional[int]  # cents
    url: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    image_urls: List[str] = field(default_factory=list)
    location: Optional[str] = None
    posted_at: Optional[datetime] = None

    def validate(self) -> bool:
        """Validate candidate listing data."""
        if not self.external_id:
            raise ValueError("external_id cannot be empty")

        if not self.title or not self.title.strip():
            raise ValueError("title cannot be empty")

        if not self.url.startswith(("http://", "https://")):
            raise ValueError(f"url must be absolute: {self.url!r}")

        if self.price is not None and (not isinstance(self.price, int) or self.price < 0):
            raise ValueError("price must be a non-negative integer of cents")

        return True


@dataclass
class Listing:
    """A stored listing with its evaluation."""

    id: str
    search_id: str
    external_id: str
    title: str
    price: Optional[int]
    url: str
    description: Optional[str]
    image_url: Optional[str]
    location: Optional[str]
    posted_at: Optional[datetime]
    deal_score: int
    deal_reason: str
    is_good_deal: bool
    alert_sent: bool
    identified_product: Optional[str] = None
    retail_price_low: Optional[int] = None
    retail_price_high: Optional[int] = None
    condition: Optional[str] = None
    created_at: Optional[datetime] = None
