"""
Tests for the SQLAlchemy scan repository.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import Text
from sqlalchemy.exc import IntegrityError

from cl_deal_finder.storage.repository import DuplicateListingError, ScanRepository
from cl_deal_finder.storage.tables import ListingRow


class TestSearches:
    def test_get_search_includes_owner(self, repository, owner_and_search):
        user, search = owner_and_search

        loaded = repository.get_search(search.id)

        assert loaded.query == "mountain bike"
        assert loaded.owner.email == "buyer@example.com"
        assert loaded.owner.name == "Buyer"
        assert loaded.min_price == 10000
        assert loaded.min_price_dollars == 100
        assert loaded.max_price_dollars == 800
        assert loaded.is_active is True
        assert loaded.last_checked is None

    def test_missing_search(self, repository):
        assert repository.get_search("does-not-exist") is None

    def test_list_active_searches(self, repository, owner_and_search):
        user, search = owner_and_search
        paused = repository.create_search(user.id, "couch", "94110", is_active=False)
        other = repository.create_search(user.id, "lamp", "94110")

        active_ids = [s.id for s in repository.list_active_searches()]

        assert search.id in active_ids
        assert other.id in active_ids
        assert paused.id not in active_ids

    def test_set_search_active(self, repository, owner_and_search):
        _, search = owner_and_search

        assert repository.set_search_active(search.id, False) is True
        assert repository.get_search(search.id).is_active is False
        assert repository.set_search_active("missing", True) is False

    def test_update_last_checked(self, repository, owner_and_search):
        _, search = owner_and_search

        repository.update_last_checked(search.id, datetime(2024, 6, 1, tzinfo=timezone.utc))

        assert repository.get_search(search.id).last_checked is not None

    def test_preferences_round_trip_json(self, repository, owner_and_search):
        user, _ = owner_and_search
        search = repository.create_search(
            user.id, "bike", "94110", preferences={"size": "M", "brands": ["Trek"]}
        )
        assert repository.get_search(search.id).preferences == {
            "size": "M",
            "brands": ["Trek"],
        }


class TestUsers:
    def test_email_is_normalised_and_unique(self, repository):
        repository.create_user("Someone@Example.com")

        assert repository.get_user_by_email("someone@example.com") is not None
        with pytest.raises(IntegrityError):
            repository.create_user("someone@example.com")


class TestListings:
    def test_create_and_dedup(self, repository, owner_and_search, sample_candidate, good_evaluation):
        _, search = owner_and_search

        listing = repository.create_listing(search.id, sample_candidate, good_evaluation)

        assert listing.deal_score == 85
        assert listing.is_good_deal is True
        assert listing.alert_sent is False
        assert listing.deal_reason == "Scored 85. Below typical used prices."
        assert listing.retail_price_low == 60000
        assert listing.retail_price_high == 90000
        assert repository.listing_exists(search.id, sample_candidate.external_id)

        with pytest.raises(DuplicateListingError):
            repository.create_listing(search.id, sample_candidate, good_evaluation)

    def test_same_external_id_allowed_across_searches(
        self, repository, owner_and_search, sample_candidate, good_evaluation
    ):
        user, search = owner_and_search
        other = repository.create_search(user.id, "trek", "94110")

        repository.create_listing(search.id, sample_candidate, good_evaluation)
        repository.create_listing(other.id, sample_candidate, good_evaluation)

        assert len(repository.get_listings(search.id)) == 1
        assert len(repository.get_listings(other.id)) == 1
        assert not repository.listing_exists(other.id, "other-id")

    def test_url_fallback_external_id_is_unbounded(
        self, repository, owner_and_search, sample_candidate, good_evaluation
    ):
        _, search = owner_and_search
        # listings without a posting id are keyed by their full URL
        sample_candidate.external_id = "https://sfbay.craigslist.org/sfc/bik/d/" + "x" * 300

        repository.create_listing(search.id, sample_candidate, good_evaluation)

        assert repository.listing_exists(search.id, sample_candidate.external_id)
        assert isinstance(ListingRow.__table__.c.external_id.type, Text)

    def test_delete_search_cascades_to_listings(
        self, repository, owner_and_search, sample_candidate, good_evaluation
    ):
        _, search = owner_and_search
        repository.create_listing(search.id, sample_candidate, good_evaluation)

        assert repository.delete_search(search.id) is True

        assert repository.get_search(search.id) is None
        assert repository.get_listings(search.id) == []
        assert repository.delete_search(search.id) is False


class TestMarkAlertsSent:
    def test_only_good_unsent_rows_of_the_search(
        self, repository, owner_and_search, candidate_factory, evaluation_factory
    ):
        user, search = owner_and_search
        other = repository.create_search(user.id, "lamp", "94110")

        good = repository.create_listing(search.id, candidate_factory("1"), evaluation_factory(90))
        fair = repository.create_listing(search.id, candidate_factory("2"), evaluation_factory(40))
        other_good = repository.create_listing(other.id, candidate_factory("3"), evaluation_factory(90))

        assert repository.mark_alerts_sent(search.id) == 1

        flags = {l.id: l.alert_sent for l in repository.get_listings(search.id)}
        assert flags[good.id] is True
        assert flags[fair.id] is False
        assert repository.get_listings(other.id)[0].alert_sent is False
        assert other_good.alert_sent is False

        # already flagged rows are not touched again
        assert repository.mark_alerts_sent(search.id) == 0

    def test_scoped_to_listing_ids(
        self, repository, owner_and_search, candidate_factory, evaluation_factory
    ):
        _, search = owner_and_search
        first = repository.create_listing(search.id, candidate_factory("1"), evaluation_factory(90))
        second = repository.create_listing(search.id, candidate_factory("2"), evaluation_factory(95))

        assert repository.mark_alerts_sent(search.id, [second.id]) == 1

        flags = {l.id: l.alert_sent for l in repository.get_listings(search.id)}
        assert flags == {first.id: False, second.id: True}

    def test_empty_id_list_updates_nothing(self, repository, owner_and_search):
        _, search = owner_and_search
        assert repository.mark_alerts_sent(search.id, []) == 0
