"""
Data models for the Craigslist Deal Finder.

Dataclasses describing saved searches, scraped and stored listings,
evaluations, digests and configuration.
"""

from .alert import DealAlert, DigestRequest, FormattedDigest
from .config import (
    Configuration,
    DatabaseConfig,
    EvaluatorConfig,
    MarketplaceConfig,
    NotifierConfig,
    ScanConfig,
    SystemConfig,
)
from .delivery import DeliveryResult
from .evaluation import DealEvaluation, EvaluationRequest, PriceRange
from .listing import CandidateListing, Listing, ListingDetails
from .scan import BatchResult, ScanResult, SearchScanOutcome
from .search import Search, User

__all__ = [
    "User",
    "Search",
    "CandidateListing",
    "ListingDetails",
    "Listing",
    "EvaluationRequest",
    "PriceRange",
    "DealEvaluation",
    "DealAlert",
    "DigestRequest",
    "FormattedDigest",
    "DeliveryResult",
    "ScanResult",
    "SearchScanOutcome",
    "BatchResult",
    "Configuration",
    "DatabaseConfig",
    "MarketplaceConfig",
    "EvaluatorConfig",
    "NotifierConfig",
    "ScanConfig",
    "SystemConfig",
]
