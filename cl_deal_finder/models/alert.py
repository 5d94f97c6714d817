"""
Deal alert and digest email models.
"""

from dataclasses import dataclass, field
from typing import List, Optional

from .evaluation import PriceRange


@dataclass
class DealAlert:
    """Summary of one good deal included in a digest."""

    title: str
    price: Optional[int]  # cents
    url: str
    deal_score: int
    reasoning: str
    image_url: Optional[str] = None
    identified_product: Optional[str] = None
    retail_price_range: Optional[PriceRange] = None
    condition: str = "unknown"
    market_comparison: str = ""


@dataclass
class DigestRequest:
    """Everything needed to render and address one digest email."""

    recipient_email: str
    search_query: str
    zipcode: str
    deals: List[DealAlert] = field(default_factory=list)
    recipient_name: Optional[str] = None

    def validate(self) -> bool:
        """Validate digest request data."""
        if not self.recipient_email or "@" not in self.recipient_email:
            raise ValueError("recipient_email must be an email address")

        if not self.deals:
            raise ValueError("A digest needs at least one deal")

        return True


@dataclass
class FormattedDigest:
    """A rendered digest ready for dispatch."""

    recipient: str
    subject: str
    html: str
    text: str

    def validate(self) -> bool:
        """Validate formatted digest data."""
        if not self.subject or not self.subject.strip():
            raise ValueError("Digest subject cannot be empty")

        if not self.html.strip():
            raise ValueError("Digest HTML body cannot be empty")

        return True
