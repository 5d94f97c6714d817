"""
Tests for the scan orchestrator and the application lifecycle.
"""

import logging
import os
from unittest.mock import AsyncMock, Mock

import pytest

from cl_deal_finder.models.config import Configuration
from cl_deal_finder.models.evaluation import EvaluationRequest
from cl_deal_finder.orchestrator import ApplicationOrchestrator, ScanOrchestrator
from cl_deal_finder.storage.repository import DuplicateListingError
from cl_deal_finder.utils.error_handling import ErrorCategory, ErrorSeverity, get_error_tracker


def _evaluation_service(scores, evaluation_factory):
    """Evaluation service stub scoring listings by title."""
    service = Mock()

    async def evaluate(request: EvaluationRequest):
        return evaluation_factory(scores.get(request.title, 50))

    service.evaluate = AsyncMock(side_effect=evaluate)
    return service


@pytest.fixture
def build_orchestrator(
    repository, mock_listing_source, mock_notifier, configuration, no_pause, evaluation_factory
):
    def build(scores=None, config=None):
        return ScanOrchestrator(
            repository=repository,
            listing_source=mock_listing_source,
            evaluation_service=_evaluation_service(scores or {}, evaluation_factory),
            notifier=mock_notifier,
            config=config or configuration,
            pacing=no_pause,
        )

    return build


class TestProcessSearch:
    @pytest.mark.asyncio
    async def test_full_pipeline(
        self, build_orchestrator, owner_and_search, mock_listing_source, mock_notifier,
        candidate_factory, repository,
    ):
        _, search = owner_and_search
        mock_listing_source.fetch_listings.return_value = [
            candidate_factory("1", title="great"),
            candidate_factory("2", title="meh"),
        ]
        orchestrator = build_orchestrator({"great": 90, "meh": 40})

        result = await orchestrator.process_search(search.id)

        assert result.new_listings == 2
        assert result.good_deals == 1
        assert result.alerts_sent == 1

        mock_listing_source.fetch_listings.assert_awaited_once_with(
            "mountain bike", "94110", min_price=100, max_price=800, radius=10, limit=15
        )

        request = mock_notifier.send_digest.call_args.args[0]
        assert request.recipient_email == "buyer@example.com"
        assert request.search_query == "mountain bike"
        assert request.zipcode == "94110"
        assert [d.title for d in request.deals] == ["great"]
        assert request.deals[0].deal_score == 90

        stored = {l.external_id: l for l in repository.get_listings(search.id)}
        assert stored["1"].alert_sent is True
        assert stored["2"].alert_sent is False
        assert repository.get_search(search.id).last_checked is not None

    @pytest.mark.asyncio
    async def test_second_run_only_evaluates_new_listings(
        self, build_orchestrator, owner_and_search, mock_listing_source, mock_notifier,
        candidate_factory,
    ):
        _, search = owner_and_search
        orchestrator = build_orchestrator({"a": 90, "b": 30, "c": 95})

        mock_listing_source.fetch_listings.return_value = [
            candidate_factory("a", title="a"),
            candidate_factory("b", title="b"),
        ]
        first = await orchestrator.process_search(search.id)

        mock_listing_source.fetch_listings.return_value = [
            candidate_factory("a", title="a"),
            candidate_factory("b", title="b"),
            candidate_factory("c", title="c"),
        ]
        second = await orchestrator.process_search(search.id)

        assert first.new_listings == 2
        assert second.new_listings == 1
        assert second.good_deals == 1
        assert orchestrator.evaluation_service.evaluate.await_count == 3
        last_request = mock_notifier.send_digest.call_args.args[0]
        assert [d.title for d in last_request.deals] == ["c"]

    @pytest.mark.asyncio
    async def test_no_deals_means_no_email(
        self, build_orchestrator, owner_and_search, mock_listing_source, mock_notifier,
        candidate_factory,
    ):
        _, search = owner_and_search
        mock_listing_source.fetch_listings.return_value = [candidate_factory("1", title="meh")]

        result = await build_orchestrator({"meh": 69}).process_search(search.id)

        assert result.new_listings == 1
        assert result.good_deals == 0
        assert result.alerts_sent == 0
        mock_notifier.send_digest.assert_not_called()

    @pytest.mark.asyncio
    async def test_failed_notification_leaves_alerts_unsent(
        self, build_orchestrator, owner_and_search, mock_listing_source, mock_notifier,
        candidate_factory, repository,
    ):
        _, search = owner_and_search
        mock_listing_source.fetch_listings.return_value = [candidate_factory("1", title="great")]
        mock_notifier.send_digest.return_value = False

        result = await build_orchestrator({"great": 90}).process_search(search.id)

        assert result.good_deals == 1
        assert result.alerts_sent == 0
        assert repository.get_listings(search.id)[0].alert_sent is False

    @pytest.mark.asyncio
    async def test_notifier_exception_is_contained(
        self, build_orchestrator, owner_and_search, mock_listing_source, mock_notifier,
        candidate_factory, repository,
    ):
        _, search = owner_and_search
        mock_listing_source.fetch_listings.return_value = [candidate_factory("1", title="great")]
        mock_notifier.send_digest.side_effect = RuntimeError("smtp down")

        result = await build_orchestrator({"great": 90}).process_search(search.id)

        assert result.alerts_sent == 0
        assert repository.get_listings(search.id)[0].alert_sent is False

    @pytest.mark.asyncio
    async def test_alert_flags_scoped_to_this_scan(
        self, build_orchestrator, owner_and_search, mock_listing_source,
        candidate_factory, evaluation_factory, repository,
    ):
        _, search = owner_and_search
        # good deal from an earlier scan whose email failed
        earlier = repository.create_listing(
            search.id, candidate_factory("old"), evaluation_factory(90)
        )
        mock_listing_source.fetch_listings.return_value = [candidate_factory("new", title="new")]

        await build_orchestrator({"new": 88}).process_search(search.id)

        flags = {l.id: l.alert_sent for l in repository.get_listings(search.id)}
        assert flags[earlier.id] is False
        assert sum(flags.values()) == 1

    @pytest.mark.asyncio
    async def test_missing_credential_returns_zeros(
        self, build_orchestrator, owner_and_search, mock_listing_source, repository,
    ):
        _, search = owner_and_search
        orchestrator = build_orchestrator(config=Configuration())

        result = await orchestrator.process_search(search.id)

        assert result.to_dict() == {"new_listings": 0, "good_deals": 0, "alerts_sent": 0}
        mock_listing_source.fetch_listings.assert_not_awaited()
        assert repository.get_search(search.id).last_checked is None

    @pytest.mark.asyncio
    async def test_inactive_or_missing_search(
        self, build_orchestrator, owner_and_search, mock_listing_source, repository,
    ):
        _, search = owner_and_search
        repository.set_search_active(search.id, False)
        orchestrator = build_orchestrator()

        assert (await orchestrator.process_search(search.id)).new_listings == 0
        assert (await orchestrator.process_search("missing")).new_listings == 0
        mock_listing_source.fetch_listings.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_concurrent_insert_counts_as_seen(
        self, build_orchestrator, owner_and_search, mock_listing_source, mock_notifier,
        candidate_factory, repository,
    ):
        _, search = owner_and_search
        mock_listing_source.fetch_listings.return_value = [candidate_factory("1", title="great")]
        orchestrator = build_orchestrator({"great": 90})
        orchestrator.repository = Mock(wraps=repository)
        orchestrator.repository.create_listing.side_effect = DuplicateListingError("dup")

        result = await orchestrator.process_search(search.id)

        assert result.new_listings == 0
        assert result.good_deals == 0
        mock_notifier.send_digest.assert_not_called()

    @pytest.mark.asyncio
    async def test_pauses_after_each_evaluation(
        self, build_orchestrator, owner_and_search, mock_listing_source, candidate_factory,
        no_pause,
    ):
        _, search = owner_and_search
        mock_listing_source.fetch_listings.return_value = [
            candidate_factory("1"),
            candidate_factory("2"),
            candidate_factory("3"),
        ]

        await build_orchestrator().process_search(search.id)

        assert no_pause.pauses["evaluation"] == 3

    def test_evaluation_request_falls_back_to_thumbnail(self, sample_candidate, owner_and_search):
        _, search = owner_and_search
        sample_candidate.image_urls = []

        request = ScanOrchestrator._evaluation_request(search, sample_candidate)

        assert request.image_urls == ["https://images.craigslist.org/abc_300x300.jpg"]
        assert request.query == "mountain bike"


class TestProcessAllSearches:
    @pytest.mark.asyncio
    async def test_failing_search_does_not_stop_the_sweep(
        self, build_orchestrator, repository, mock_listing_source, candidate_factory, no_pause,
    ):
        user = repository.create_user("owner@example.com")
        first = repository.create_search(user.id, "first", "94110")
        second = repository.create_search(user.id, "second", "94110")
        third = repository.create_search(user.id, "third", "94110")

        async def fetch(query, zipcode, **kwargs):
            if query == "second":
                raise RuntimeError("results never loaded")
            return [candidate_factory(f"{query}-1", title="great")]

        mock_listing_source.fetch_listings.side_effect = fetch
        orchestrator = build_orchestrator({"great": 90})

        batch = await orchestrator.process_all_searches()

        assert batch.searches_processed == 3
        assert batch.total_new_listings == 2
        assert batch.total_good_deals == 2
        assert batch.total_alerts_sent == 2
        assert batch.failed_searches == [second.id]
        assert {o.search_id for o in batch.outcomes if o.succeeded} == {first.id, third.id}
        mock_listing_source.close.assert_awaited_once()
        assert no_pause.pauses["search"] == 3

        errors = get_error_tracker().get_component_errors("orchestrator")
        assert "results never loaded" in errors[-1].message

    @pytest.mark.asyncio
    async def test_closes_source_when_listing_searches_fails(
        self, build_orchestrator, mock_listing_source
    ):
        orchestrator = build_orchestrator()
        orchestrator.repository = Mock()
        orchestrator.repository.list_active_searches.side_effect = RuntimeError("db gone")

        with pytest.raises(RuntimeError):
            await orchestrator.process_all_searches()

        mock_listing_source.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_skips_inactive_searches(
        self, build_orchestrator, repository, mock_listing_source
    ):
        user = repository.create_user("owner@example.com")
        repository.create_search(user.id, "paused", "94110", is_active=False)

        batch = await build_orchestrator().process_all_searches()

        assert batch.searches_processed == 0
        mock_listing_source.fetch_listings.assert_not_awaited()


class TestApplicationOrchestrator:
    def _write_config(self, tmp_path, database_url, api_key=""):
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "database:\n"
            f"  url: {database_url}\n"
            "evaluator:\n"
            f"  api_key: '{api_key}'\n"
            "notifier:\n"
            "  api_key: ''\n"
            "system:\n"
            f"  log_dir: {tmp_path / 'logs'}\n"
            "  log_level: INFO\n"
            "  polling_interval: 3600\n"
        )
        return config_file

    @pytest.mark.asyncio
    async def test_initialize_builds_components(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.delenv("RESEND_API_KEY", raising=False)
        config_file = self._write_config(tmp_path, f"sqlite:///{tmp_path / 'app.db'}")
        app = ApplicationOrchestrator(str(config_file))

        assert await app.initialize() is True

        status = app.get_system_status()
        assert status["config_loaded"] is True
        assert status["component_health"]["repository"] is True
        assert status["component_health"]["evaluator"] is False
        assert status["component_health"]["notifier"] is False
        assert app.scan_orchestrator is not None
        await app.shutdown()
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_initialize_fails_on_bad_config(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("scan:\n  max_results: -1\n")

        assert await ApplicationOrchestrator(str(config_file)).initialize() is False

    @pytest.mark.asyncio
    async def test_run_once_requires_initialize(self):
        with pytest.raises(RuntimeError, match="not initialized"):
            await ApplicationOrchestrator().run_once()

    @pytest.mark.asyncio
    async def test_run_once_records_last_sweep(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        config_file = self._write_config(tmp_path, f"sqlite:///{tmp_path / 'app.db'}")
        app = ApplicationOrchestrator(str(config_file))
        await app.initialize()
        app.scan_orchestrator.listing_source = Mock(close=AsyncMock())

        batch = await app.run_once()

        assert batch.searches_processed == 0
        status = app.get_system_status()
        assert status["sweeps_completed"] == 1
        assert status["last_sweep"]["searches_processed"] == 0
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_log_level_override(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        config_file = self._write_config(tmp_path, f"sqlite:///{tmp_path / 'app.db'}")
        app = ApplicationOrchestrator(str(config_file), log_level="DEBUG")

        await app.initialize()

        assert logging.getLogger("cl_deal_finder").level == logging.DEBUG
        assert app.get_system_status()["logging"]["log_level"] == "DEBUG"
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_status_lists_recent_component_errors(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        config_file = self._write_config(tmp_path, f"sqlite:///{tmp_path / 'app.db'}")
        app = ApplicationOrchestrator(str(config_file))
        await app.initialize()

        get_error_tracker().record_error(
            component="craigslist",
            category=ErrorCategory.ACQUISITION,
            severity=ErrorSeverity.MEDIUM,
            message="Results never loaded",
        )

        status = app.get_system_status()
        assert status["recent_errors"]["craigslist"][-1].endswith("medium: Results never loaded")
        assert status["logging"]["log_directory"] == str(tmp_path / "logs")
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_reload_applies_scan_settings(self, tmp_path, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        config_file = self._write_config(tmp_path, f"sqlite:///{tmp_path / 'app.db'}")
        app = ApplicationOrchestrator(str(config_file))
        await app.initialize()
        evaluator_config = app.config.evaluator

        assert app.reload_config_if_changed() is False

        config_file.write_text(
            config_file.read_text().replace("polling_interval: 3600", "polling_interval: 600")
            + "scan:\n  max_results: 5\n  evaluation_delay: 0.25\n"
        )
        later = os.path.getmtime(config_file) + 10
        os.utime(config_file, (later, later))

        assert app.reload_config_if_changed() is True

        assert app.config.system.polling_interval == 600
        assert app.scan_orchestrator.config.scan.max_results == 5
        assert app.scan_orchestrator.pacing.evaluation_delay == 0.25
        # the listing source shares the same policy object
        assert app.scan_orchestrator.listing_source.pacing is app.scan_orchestrator.pacing
        assert app.config.evaluator is evaluator_config
        await app.shutdown()
