"""
Scan orchestration for the Craigslist Deal Finder.

ScanOrchestrator runs the pipeline for one saved search (acquire,
deduplicate, evaluate, persist, notify) and the batch sweep over all
active searches. ApplicationOrchestrator owns configuration, component
construction and the periodic trigger loop.
"""

import asyncio
import signal
import sys
from datetime import datetime
from typing import Any, Dict, List, Optional

from .components.browser_session import BrowserSession
from .components.craigslist_client import CraigslistClient
from .components.deal_evaluator import DealEvaluator
from .components.llm_clients import GeminiClient
from .components.message_dispatcher import DealNotifier, EmailDispatcherFactory
from .components.prompt_manager import PromptManager
from .interfaces import IListingSource, INotifier, IScanRepository
from .models.alert import DealAlert, DigestRequest
from .models.config import Configuration
from .models.evaluation import DealEvaluation, EvaluationRequest
from .models.listing import CandidateListing
from .models.scan import BatchResult, ScanResult, SearchScanOutcome
from .models.search import Search
from .services.config_manager import ConfigurationManager
from .services.evaluation_service import EvaluationService
from .storage.repository import DuplicateListingError, ScanRepository
from .utils.error_handling import (
    ErrorCategory,
    ErrorSeverity,
    get_error_tracker,
    with_error_handling,
)
from .utils.logging import (
    PIPELINE_COMPONENTS,
    get_logger,
    get_logging_stats,
    setup_logging,
)
from .utils.pacing import PacingPolicy

logger = get_logger("orchestrator")


def _deal_alert(candidate: CandidateListing, evaluation: DealEvaluation) -> DealAlert:
    return DealAlert(
        title=candidate.title,
        price=candidate.price,
        url=candidate.url,
        deal_score=evaluation.score,
        reasoning=evaluation.reasoning,
        image_url=candidate.image_url,
        identified_product=evaluation.identified_product,
        retail_price_range=evaluation.retail_price_range,
        condition=evaluation.condition,
        market_comparison=evaluation.market_comparison,
    )


class ScanOrchestrator:
    """Runs the scan pipeline for saved searches."""

    def __init__(
        self,
        repository: IScanRepository,
        listing_source: IListingSource,
        evaluation_service: EvaluationService,
        notifier: INotifier,
        config: Optional[Configuration] = None,
        pacing: Optional[PacingPolicy] = None,
    ):
        self.repository = repository
        self.listing_source = listing_source
        self.evaluation_service = evaluation_service
        self.notifier = notifier
        self.config = config or Configuration()
        self.pacing = pacing or PacingPolicy.from_config(self.config.scan)
        self.error_tracker = get_error_tracker()

    async def process_search(self, search_id: str) -> ScanResult:
        """
        Scan one saved search.

        Args:
            search_id: Id of the search to scan

        Returns:
            ScanResult with new listing, good deal and alert counts

        Raises:
            Exception: Persistence errors propagate to the caller
        """
        search = self.repository.get_search(search_id)
        if search is None or not search.is_active:
            logger.info(
                "Search missing or inactive, skipping", extra={"search_id": search_id}
            )
            return ScanResult()

        if not self.config.evaluator.has_credentials():
            logger.error("GEMINI_API_KEY not set", extra={"search_id": search_id})
            return ScanResult()

        logger.info(f'Processing search: "{search.query}" for {search.owner.email}')

        candidates = await self.listing_source.fetch_listings(
            search.query,
            search.zipcode,
            min_price=search.min_price_dollars,
            max_price=search.max_price_dollars,
            radius=search.radius,
            limit=self.config.scan.max_results,
        )
        logger.info(f"Fetched {len(candidates)} listings from Craigslist")

        result = ScanResult()
        deals: List[DealAlert] = []
        deal_listing_ids: List[str] = []

        for candidate in candidates:
            if self.repository.listing_exists(search.id, candidate.external_id):
                continue

            evaluation = await self.evaluation_service.evaluate(
                self._evaluation_request(search, candidate)
            )

            try:
                listing = self.repository.create_listing(search.id, candidate, evaluation)
            except DuplicateListingError:
                logger.info(
                    "Listing stored concurrently, treating as seen",
                    extra={"search_id": search.id, "external_id": candidate.external_id},
                )
            else:
                result.new_listings += 1
                if listing.is_good_deal:
                    result.good_deals += 1
                    deals.append(_deal_alert(candidate, evaluation))
                    deal_listing_ids.append(listing.id)

            await self.pacing.after_evaluation()

        self.repository.update_last_checked(search.id)

        if deals:
            sent = await self._notify(
                DigestRequest(
                    recipient_email=search.owner.email,
                    recipient_name=search.owner.name,
                    search_query=search.query,
                    zipcode=search.zipcode,
                    deals=deals,
                )
            )
            if sent:
                self.repository.mark_alerts_sent(search.id, deal_listing_ids)
                result.alerts_sent = len(deals)
                logger.info(f"Sent alert email with {result.alerts_sent} deals")

        logger.info(
            f"Search results: {result.new_listings} new listings, "
            f"{result.good_deals} good deals, {result.alerts_sent} alerts sent",
            extra={"search_id": search.id},
        )
        return result

    @staticmethod
    def _evaluation_request(search: Search, candidate: CandidateListing) -> EvaluationRequest:
        image_urls = candidate.image_urls or (
            [candidate.image_url] if candidate.image_url else []
        )
        return EvaluationRequest(
            title=candidate.title,
            price=candidate.price,
            description=candidate.description,
            image_urls=image_urls,
            query=search.query,
            preferences=search.preferences,
        )

    @with_error_handling(
        component="notifier",
        category=ErrorCategory.NOTIFICATION,
        severity=ErrorSeverity.HIGH,
        fallback_value=False,
        suppress_exceptions=True,
    )
    async def _notify(self, request: DigestRequest) -> bool:
        return await asyncio.to_thread(self.notifier.send_digest, request)

    async def process_all_searches(self) -> BatchResult:
        """
        Scan every active search in turn.

        A failing search is recorded and skipped; the listing source is
        closed exactly once when the sweep ends.
        """
        batch = BatchResult()

        try:
            searches = self.repository.list_active_searches()
            logger.info(f"Found {len(searches)} active searches")

            for search in searches:
                try:
                    result = await self.process_search(search.id)
                    batch.add(SearchScanOutcome(search_id=search.id, result=result))
                except Exception as e:
                    logger.error(
                        f"Error processing search {search.id}: {e}", exc_info=True
                    )
                    self.error_tracker.record_error(
                        component="orchestrator",
                        category=ErrorCategory.SYSTEM,
                        severity=ErrorSeverity.HIGH,
                        message=f"Error processing search {search.id}: {e}",
                        exception=e,
                        context={"search_id": search.id},
                    )
                    batch.add(
                        SearchScanOutcome(
                            search_id=search.id, result=ScanResult(), error=str(e)
                        )
                    )

                await self.pacing.after_search()
        finally:
            await self.listing_source.close()

        logger.info(
            f"Sweep complete: {batch.searches_processed} searches processed, "
            f"{batch.total_new_listings} new listings, "
            f"{batch.total_good_deals} good deals, "
            f"{batch.total_alerts_sent} alerts sent",
            extra={"failed_searches": batch.failed_searches},
        )
        return batch


class ApplicationOrchestrator:
    """
    Application lifecycle around the scan orchestrator.

    Loads configuration, builds the components, runs single scans or
    sweeps on demand and drives the periodic sweep loop until a shutdown
    signal arrives.
    """

    def __init__(self, config_path: Optional[str] = None, log_level: Optional[str] = None):
        """
        Initialize the application orchestrator.

        Args:
            config_path: Path to configuration file. If None, uses default paths.
            log_level: Overrides the configured log level when given.
        """
        self.config_path = config_path
        self.log_level = log_level
        self._running = False
        self._shutdown_event = asyncio.Event()
        self.error_tracker = get_error_tracker()

        self._config_manager: Optional[ConfigurationManager] = None
        self._config: Optional[Configuration] = None
        self._repository: Optional[ScanRepository] = None
        self._browser_session: Optional[BrowserSession] = None
        self._scan_orchestrator: Optional[ScanOrchestrator] = None
        self._evaluation_service: Optional[EvaluationService] = None

        self._startup_time: Optional[datetime] = None
        self._component_health: Dict[str, bool] = {}
        self._last_sweep: Optional[Dict[str, Any]] = None
        self._sweeps_completed = 0

    @property
    def config(self) -> Optional[Configuration]:
        return self._config

    @property
    def repository(self) -> Optional[ScanRepository]:
        return self._repository

    @property
    def scan_orchestrator(self) -> Optional[ScanOrchestrator]:
        return self._scan_orchestrator

    def _setup_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to a graceful shutdown of the running loop."""
        loop = asyncio.get_running_loop()
        signals = [signal.SIGINT, signal.SIGTERM]
        if sys.platform == "win32":
            for signum in signals:
                signal.signal(signum, self._signal_handler)
            return
        for signum in signals:
            loop.add_signal_handler(signum, self._request_shutdown, signum)

    def _signal_handler(self, signum: int, frame) -> None:
        self._request_shutdown(signum)

    def _request_shutdown(self, signum: int) -> None:
        logger.info(
            "Received shutdown signal, initiating graceful shutdown",
            extra={"signal": signum},
        )
        self._shutdown_event.set()

    async def initialize(self) -> bool:
        """
        Load configuration and build every component.

        Returns:
            True if initialization successful, False otherwise.
        """
        try:
            self._config_manager = ConfigurationManager(self.config_path)
            self._config = self._config_manager.get_config()
        except (ValueError, FileNotFoundError) as e:
            logger.critical(f"Failed to load configuration: {e}")
            self.error_tracker.record_error(
                component="orchestrator",
                category=ErrorCategory.CONFIGURATION,
                severity=ErrorSeverity.CRITICAL,
                message=f"Failed to load configuration: {e}",
                exception=e,
            )
            return False

        logging_manager = setup_logging(
            self._config.system.log_dir, self._config.system.log_level
        )
        if self.log_level:
            logging_manager.set_log_level(self.log_level)
        logger.info("Initializing Craigslist Deal Finder...")

        try:
            self._build_components(self._config)
        except Exception as e:
            logger.critical(f"Failed to initialize components: {e}", exc_info=True)
            self.error_tracker.record_error(
                component="orchestrator",
                category=ErrorCategory.SYSTEM,
                severity=ErrorSeverity.CRITICAL,
                message=f"Failed to initialize components: {e}",
                exception=e,
            )
            return False

        self._startup_time = datetime.now()
        logger.info("System initialization completed successfully")
        return True

    def _build_components(self, config: Configuration) -> None:
        self._repository = ScanRepository.from_url(
            config.database.url, echo=config.database.echo
        )
        self._component_health["repository"] = True

        pacing = PacingPolicy.from_config(config.scan)
        self._browser_session = BrowserSession.from_config(config.marketplace)
        listing_source = CraigslistClient(
            self._browser_session, config.marketplace, pacing
        )
        self._component_health["craigslist"] = True

        self._evaluation_service = self._build_evaluation_service(config)
        self._component_health["evaluator"] = self._evaluation_service is not None

        dispatcher = EmailDispatcherFactory.from_config(config.notifier)
        notifier = DealNotifier(dispatcher=dispatcher)
        self._component_health["notifier"] = dispatcher is not None
        if dispatcher is None:
            logger.warning("RESEND_API_KEY not set - digests will not be emailed")

        self._scan_orchestrator = ScanOrchestrator(
            repository=self._repository,
            listing_source=listing_source,
            evaluation_service=self._evaluation_service,
            notifier=notifier,
            config=config,
            pacing=pacing,
        )

    @staticmethod
    def _build_evaluation_service(config: Configuration) -> Optional[EvaluationService]:
        evaluator_config = config.evaluator
        if not evaluator_config.has_credentials():
            logger.warning("GEMINI_API_KEY not set - scans will be skipped")
            return None

        client = GeminiClient(
            api_key=evaluator_config.credential,
            model=evaluator_config.model,
            timeout=evaluator_config.timeout,
        )
        evaluator = DealEvaluator(
            client,
            PromptManager(),
            prompt_template=evaluator_config.prompt_template,
            max_images=evaluator_config.max_images,
        )
        return EvaluationService(evaluator, evaluation_timeout=evaluator_config.timeout)

    def _require_initialized(self) -> ScanOrchestrator:
        if self._scan_orchestrator is None:
            raise RuntimeError("Application is not initialized")
        return self._scan_orchestrator

    async def run_once(self) -> BatchResult:
        """Run one sweep over all active searches."""
        batch = await self._require_initialized().process_all_searches()
        self._sweeps_completed += 1
        self._last_sweep = {
            "finished_at": datetime.now().isoformat(),
            **batch.to_dict(),
        }
        return batch

    async def run_search(self, search_id: str) -> ScanResult:
        """Scan a single search and release the browser afterwards."""
        scan_orchestrator = self._require_initialized()
        try:
            return await scan_orchestrator.process_search(search_id)
        finally:
            await scan_orchestrator.listing_source.close()

    async def start(self) -> None:
        """Sweep, then wait for the polling interval, until shut down."""
        if self._running:
            logger.warning("System is already running")
            return

        self._require_initialized()
        self._setup_signal_handlers()
        self._running = True
        logger.info(f"Starting sweep loop (every {self._config.system.polling_interval}s)")

        try:
            while not self._shutdown_event.is_set():
                try:
                    await self.run_once()
                    logger.info("System status", extra={"status": self.get_system_status()})
                except Exception as e:
                    logger.error(f"Error in sweep loop: {e}", exc_info=True)
                    self.error_tracker.record_error(
                        component="orchestrator",
                        category=ErrorCategory.SYSTEM,
                        severity=ErrorSeverity.HIGH,
                        message=f"Error in sweep loop: {e}",
                        exception=e,
                    )

                try:
                    await asyncio.wait_for(
                        self._shutdown_event.wait(),
                        timeout=self._config.system.polling_interval,
                    )
                except asyncio.TimeoutError:
                    self.reload_config_if_changed()
        finally:
            self._running = False

    def reload_config_if_changed(self) -> bool:
        """
        Pick up edits to the config file between sweeps.

        Scan limits, pacing delays and the polling interval take effect on
        the next sweep. Credentials and the database URL need a restart.
        """
        if self._config_manager is None or not self._config_manager.reload_if_changed():
            return False

        previous = self._config
        self._config = self._config_manager.get_config()
        self._config.database = previous.database
        self._config.evaluator = previous.evaluator
        self._config.notifier = previous.notifier
        scan_orchestrator = self._require_initialized()
        scan_orchestrator.config = self._config

        # the listing source shares this policy
        pacing = scan_orchestrator.pacing
        pacing.detail_delay = self._config.scan.detail_delay
        pacing.evaluation_delay = self._config.scan.evaluation_delay
        pacing.search_delay = self._config.scan.search_delay

        logger.info(
            "Configuration reloaded",
            extra={"config_path": self._config_manager.config_path},
        )
        return True

    async def shutdown(self) -> None:
        """Gracefully shut down; safe to call more than once."""
        self._shutdown_event.set()

        if self._browser_session is not None and self._browser_session.is_open:
            await self._browser_session.close()

        if self._startup_time is not None:
            uptime = datetime.now() - self._startup_time
            logger.info(f"System shutdown complete. Uptime: {uptime}")
            self._startup_time = None

    def get_system_status(self) -> Dict[str, Any]:
        """Get current system status information."""
        status = {
            "running": self._running,
            "startup_time": self._startup_time.isoformat()
            if self._startup_time
            else None,
            "component_health": self._component_health.copy(),
            "config_loaded": self._config is not None,
            "sweeps_completed": self._sweeps_completed,
            "last_sweep": self._last_sweep,
            "errors": self.error_tracker.get_error_stats(),
            "recent_errors": self._recent_errors(),
            "logging": get_logging_stats(),
        }
        if self._evaluation_service is not None:
            status["evaluation"] = self._evaluation_service.get_evaluation_stats()
        return status

    def _recent_errors(self, per_component: int = 3) -> Dict[str, List[str]]:
        recent = {}
        for component in PIPELINE_COMPONENTS:
            errors = self.error_tracker.get_component_errors(component, limit=per_component)
            if errors:
                recent[component] = [
                    f"{e.timestamp.isoformat()} {e.severity.value}: {e.message}" for e in errors
                ]
        return recent

    async def run(self) -> None:
        """Initialize and run the sweep loop until shut down."""
        try:
            if not await self.initialize():
                logger.error("System initialization failed")
                return
            await self.start()
        finally:
            await self.shutdown()
