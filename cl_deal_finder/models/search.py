"""
Saved search and user models.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional

from ..utils.validation import is_valid_email, is_valid_zipcode


@dataclass
class User:
    """Owner of saved searches, identified by email."""

    id: str
    email: str
    name: Optional[str] = None

    def validate(self) -> bool:
        """Validate user data."""
        if not self.id:
            raise ValueError("User id cannot be empty")

        if not is_valid_email(self.email):
            raise ValueError(f"Invalid email address: {self.email!r}")

        return True


@dataclass
class Search:
    """A standing request to monitor Craigslist for a query near a zipcode."""

    id: str
    owner: User
    query: str
    zipcode: str
    min_price: Optional[int] = None  # cents
    max_price: Optional[int] = None  # cents
    radius: Optional[int] = None  # miles
    preferences: Optional[Any] = None
    is_active: bool = True
    last_checked: Optional[datetime] = None

    @property
    def min_price_dollars(self) -> Optional[int]:
        """Lower price bound in whole dollars, as Craigslist expects."""
        return self.min_price // 100 if self.min_price else None

    @property
    def max_price_dollars(self) -> Optional[int]:
        """Upper price bound in whole dollars, as Craigslist expects."""
        return self.max_price // 100 if self.max_price else None

    def validate(self) -> bool:
        """Validate search data."""
        if not self.id:
            raise ValueError("Search id cannot be empty")

        if not self.query or not self.query.strip():
            raise ValueError("Search query cannot be empty")

        if not is_valid_zipcode(self.zipcode):
            raise ValueError(f"Invalid zipcode: {self.zipcode!r}")

        for name, value in (("min_price", self.min_price), ("max_price", self.max_price)):
            if value is not None and (not isinstance(value, int) or value < 0):
                raise ValueError(f"{name} must be a non-negative integer of cents")

        if (
            self.min_price is not None
            and self.max_price is not None
            and self.min_price > self.max_price
        ):
            raise ValueError("min_price cannot exceed max_price")

        if self.radius is not None and (not isinstance(self.radius, int) or self.radius <= 0):
            raise ValueError("radius must be a positive integer")

        self.owner.validate()
        return True
