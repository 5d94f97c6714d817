"""
Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests
in the Craigslist Deal Finder test suite.
"""

import os
from datetime import datetime, timezone
from unittest.mock import AsyncMock, Mock

import pytest

from cl_deal_finder.models.config import Configuration, EvaluatorConfig
from cl_deal_finder.models.delivery import DeliveryResult
from cl_deal_finder.models.evaluation import DealEvaluation, PriceRange
from cl_deal_finder.models.listing import CandidateListing
from cl_deal_finder.storage.repository import ScanRepository
from cl_deal_finder.utils.pacing import PacingPolicy


# Test data fixtures
@pytest.fixture
def sample_candidate():
    """Create a sample CandidateListing for testing."""
    return CandidateListing(
        external_id="7712345678",
        title="Trek Marlin 7 mountain bike",
        price=45000,
        url="https://sfbay.craigslist.org/sfc/bik/d/trek-marlin/7712345678.html",
        description="Lightly used, new tires, size M.",
        image_url="https://images.craigslist.org/abc_300x300.jpg",
        image_urls=[
            "https://images.craigslist.org/abc_600x450.jpg",
            "https://images.craigslist.org/def_600x450.jpg",
        ],
        location="mission district",
        posted_at=datetime(2024, 6, 1, 9, 30, tzinfo=timezone.utc),
    )


def make_candidate(external_id: str, title: str = None, price: int = 10000):
    return CandidateListing(
        external_id=external_id,
        title=title or f"Listing {external_id}",
        price=price,
        url=f"https://sfbay.craigslist.org/sfc/bik/d/item/{external_id}.html",
    )


def make_evaluation(score: int) -> DealEvaluation:
    return DealEvaluation(
        score=score,
        is_good_deal=score >= 70,
        reasoning=f"Scored {score}.",
        identified_product="Trek Marlin 7",
        retail_price_range=PriceRange(low=60000, high=90000),
        condition="good",
        market_comparison="Below typical used prices.",
    )


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def evaluation_factory():
    return make_evaluation


@pytest.fixture
def good_evaluation():
    return make_evaluation(85)


@pytest.fixture
def fair_evaluation():
    return make_evaluation(55)


@pytest.fixture
def configuration():
    """Configuration with an evaluator credential set."""
    return Configuration(evaluator=EvaluatorConfig(api_key="test-gemini-key"))


@pytest.fixture
def no_pause():
    return PacingPolicy(detail_delay=0, evaluation_delay=0, search_delay=0)


@pytest.fixture
def repository():
    """Repository on a fresh in-memory SQLite database."""
    return ScanRepository.from_url("sqlite://")


@pytest.fixture
def owner_and_search(repository):
    user = repository.create_user("Buyer@Example.com", "Buyer")
    search = repository.create_search(
        user_id=user.id,
        query="mountain bike",
        zipcode="94110",
        min_price=10000,
        max_price=80000,
        radius=10,
    )
    return user, search


# Mock fixtures
@pytest.fixture
def mock_listing_source():
    source = Mock()
    source.fetch_listings = AsyncMock(return_value=[])
    source.close = AsyncMock()
    return source


@pytest.fixture
def mock_notifier():
    notifier = Mock()
    notifier.send_digest.return_value = True
    return notifier


@pytest.fixture
def mock_dispatcher():
    """Create a mock email dispatcher for testing."""
    dispatcher = Mock()
    dispatcher.send_alert.return_value = DeliveryResult(
        success=True,
        delivery_time=datetime.now(timezone.utc),
        error_message=None,
        message_id="email_123",
    )
    dispatcher.test_connection.return_value = True
    return dispatcher


# Environment fixtures
@pytest.fixture
def mock_env_vars():
    """Mock environment variables for testing."""
    env_vars = {
        "GEMINI_API_KEY": "test_gemini_key",
        "RESEND_API_KEY": "test_resend_key",
    }

    original_values = {}
    for key, value in env_vars.items():
        original_values[key] = os.environ.get(key)
        os.environ[key] = value

    yield env_vars

    for key, original_value in original_values.items():
        if original_value is None:
            os.environ.pop(key, None)
        else:
            os.environ[key] = original_value


# Pytest configuration
def pytest_collection_modifyitems(config, items):
    """Add the unit marker to every test not marked integration or slow."""
    for item in items:
        if not any(
            marker.name in ["integration", "slow"] for marker in item.iter_markers()
        ):
            item.add_marker(pytest.mark.unit)
