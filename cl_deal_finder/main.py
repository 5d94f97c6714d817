"""
Command line entry point for the Craigslist Deal Finder.
"""

import argparse
import asyncio
import json
import os
import sys
from typing import List, Optional

from .components.browser_session import BrowserSession
from .components.craigslist_client import CraigslistClient, build_rss_url
from .components.llm_clients import GeminiClient
from .components.message_dispatcher import EmailDispatcherFactory
from .models.config import Configuration, DatabaseConfig, EvaluatorConfig, NotifierConfig
from .models.search import Search, User
from .orchestrator import ApplicationOrchestrator
from .services.config_manager import (
    DATABASE_URL_ENV,
    GEMINI_API_KEY_ENV,
    RESEND_API_KEY_ENV,
    ConfigurationManager,
)
from .storage.repository import ScanRepository
from .utils.logging import get_logger, setup_logging
from .utils.pacing import PacingPolicy
from .utils.validation import sanitize_input


def _dollars_to_cents(value: Optional[float]) -> Optional[int]:
    if value is None:
        return None
    return int(round(value * 100))


def _format_price(cents: Optional[int]) -> str:
    return f"${cents / 100:,.2f}" if cents is not None else "Not listed"


def _load_config(config_path: Optional[str]):
    """Load configuration when a file is available; None otherwise."""
    try:
        return ConfigurationManager(config_path).load_config()
    except (ValueError, FileNotFoundError):
        if config_path:
            raise
        return None


def _env_config() -> Configuration:
    """Default settings with credentials taken from the environment."""
    return Configuration(
        evaluator=EvaluatorConfig(api_key=os.getenv(GEMINI_API_KEY_ENV)),
        notifier=NotifierConfig(api_key=os.getenv(RESEND_API_KEY_ENV)),
    )


def _resolve_database_url(args) -> str:
    if args.database_url:
        return args.database_url
    config = _load_config(args.config)
    if config is not None:
        return config.database.url
    return os.getenv(DATABASE_URL_ENV) or DatabaseConfig.url


async def _initialized_app(args) -> Optional[ApplicationOrchestrator]:
    app = ApplicationOrchestrator(args.config, log_level=args.log_level)
    if not await app.initialize():
        print("Initialization failed; see logs for details", file=sys.stderr)
        return None
    return app


async def cmd_sweep(args) -> int:
    app = await _initialized_app(args)
    if app is None:
        return 1
    try:
        batch = await app.run_once()
    finally:
        await app.shutdown()
    print(json.dumps(batch.to_dict(), indent=2))
    return 1 if batch.failed_searches else 0


async def cmd_scan(args) -> int:
    app = await _initialized_app(args)
    if app is None:
        return 1
    try:
        result = await app.run_search(args.search_id)
    finally:
        await app.shutdown()
    print(json.dumps(result.to_dict(), indent=2))
    return 0


async def cmd_watch(args) -> int:
    app = ApplicationOrchestrator(args.config, log_level=args.log_level)
    await app.run()
    return 0


async def _check_services(config: Configuration) -> bool:
    """Check the model and email credentials against their APIs."""
    evaluator_config = config.evaluator
    if evaluator_config.has_credentials():
        gemini = GeminiClient(
            api_key=evaluator_config.credential,
            model=evaluator_config.model,
            timeout=evaluator_config.timeout,
        )
        healthy = await gemini.test_connection()
        print(f"Gemini ({evaluator_config.model}): {'OK' if healthy else 'FAILED'}")
    else:
        print("Gemini: GEMINI_API_KEY not set")
        healthy = False

    # a missing email key only disables digests
    dispatcher = EmailDispatcherFactory.from_config(config.notifier)
    if dispatcher is None:
        print("Resend: RESEND_API_KEY not set")
    else:
        reachable = await asyncio.to_thread(dispatcher.test_connection)
        print(f"Resend: {'OK' if reachable else 'FAILED'}")
        healthy = healthy and reachable

    return healthy


async def cmd_diagnose(args) -> int:
    """Run acquisition only and print what was found."""
    config = _load_config(args.config) or _env_config()
    marketplace = config.marketplace

    services_ok = True
    if args.check_services:
        services_ok = await _check_services(config)

    client = CraigslistClient(
        BrowserSession.from_config(marketplace), marketplace, PacingPolicy()
    )
    print(f"Region: {client.region_base_url(args.zipcode)}")
    search_url = client.build_search_url(
        args.query, args.zipcode, args.min_price, args.max_price, args.radius
    )
    print(f"Search URL: {search_url}")
    rss_url = build_rss_url(
        args.query,
        args.zipcode,
        min_price=args.min_price,
        max_price=args.max_price,
        radius=args.radius,
        site=marketplace.site,
        default_region=marketplace.default_region,
        default_radius=marketplace.default_radius,
    )
    print(f"RSS URL: {rss_url}")

    try:
        listings = await client.fetch_listings(
            args.query,
            args.zipcode,
            min_price=args.min_price,
            max_price=args.max_price,
            radius=args.radius,
            limit=args.limit,
        )
    finally:
        await client.close()

    print(f"Found {len(listings)} listings")
    if not listings:
        print("No listings found. The browser may have been blocked.")
        return 1

    for index, listing in enumerate(listings[: args.show], start=1):
        print(f"\n{index}. {listing.title}")
        print(f"   Price: {_format_price(listing.price)}")
        print(f"   URL: {listing.url}")
        print(f"   Images: {len(listing.image_urls)}")
        print(f"   Description: {(listing.description or 'N/A')[:100]}")
    return 0 if services_ok else 1


def cmd_check_config(args) -> int:
    try:
        manager = ConfigurationManager(args.config)
        manager.validate_config_file(manager.config_path)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 1
    print(f"Configuration OK: {manager.config_path}")
    return 0


def cmd_init_db(args) -> int:
    url = _resolve_database_url(args)
    ScanRepository.from_url(url, create_schema=True)
    print(f"Database schema ready: {url}")
    return 0


def cmd_add_search(args) -> int:
    preferences = sanitize_input(args.preferences) if args.preferences else None
    candidate = Search(
        id="new",
        owner=User(id="new", email=args.email.strip().lower(), name=args.name),
        query=sanitize_input(args.query),
        zipcode=args.zipcode.strip(),
        min_price=_dollars_to_cents(args.min_price),
        max_price=_dollars_to_cents(args.max_price),
        radius=args.radius,
        preferences=preferences,
    )
    try:
        candidate.validate()
    except ValueError as e:
        print(f"Invalid search: {e}", file=sys.stderr)
        return 2

    repository = ScanRepository.from_url(_resolve_database_url(args))
    user = repository.get_user_by_email(candidate.owner.email)
    if user is None:
        user = repository.create_user(candidate.owner.email, args.name)

    search = repository.create_search(
        user_id=user.id,
        query=candidate.query,
        zipcode=candidate.zipcode,
        min_price=candidate.min_price,
        max_price=candidate.max_price,
        radius=candidate.radius,
        preferences=candidate.preferences,
    )
    print(f"Created search {search.id} for {user.email}")
    return 0


def cmd_set_active(args) -> int:
    """Pause or resume a saved search."""
    active = args.command == "resume"
    repository = ScanRepository.from_url(_resolve_database_url(args))
    if not repository.set_search_active(args.search_id, active):
        print(f"Search not found: {args.search_id}", file=sys.stderr)
        return 1
    print(f"Search {args.search_id} {'resumed' if active else 'paused'}")
    return 0


def cmd_remove(args) -> int:
    repository = ScanRepository.from_url(_resolve_database_url(args))
    if not repository.delete_search(args.search_id):
        print(f"Search not found: {args.search_id}", file=sys.stderr)
        return 1
    print(f"Removed search {args.search_id} and its listings")
    return 0


def cmd_listings(args) -> int:
    """Print the evaluated listings stored for a search."""
    repository = ScanRepository.from_url(_resolve_database_url(args))
    listings = repository.get_listings(args.search_id)
    if args.good_only:
        listings = [listing for listing in listings if listing.is_good_deal]

    for listing in listings:
        marker = "*" if listing.is_good_deal else " "
        emailed = " (emailed)" if listing.alert_sent else ""
        print(
            f"{marker} {listing.deal_score:>3}  {_format_price(listing.price):>12}  "
            f"{listing.title}{emailed}"
        )
        print(f"        {listing.url}")
    print(f"{len(listings)} listings")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cl-deal-finder",
        description="Monitor Craigslist searches and email AI-scored deals",
    )
    parser.add_argument("-c", "--config", help="Path to configuration file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Overrides system.log_level from the config file",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sweep", help="Scan every active search once")

    scan = subparsers.add_parser("scan", help="Scan a single search")
    scan.add_argument("search_id")

    subparsers.add_parser("watch", help="Sweep periodically until interrupted")

    diagnose = subparsers.add_parser("diagnose", help="Run acquisition only")
    diagnose.add_argument("query")
    diagnose.add_argument("zipcode")
    diagnose.add_argument("--min-price", type=int, help="Whole dollars")
    diagnose.add_argument("--max-price", type=int, help="Whole dollars")
    diagnose.add_argument("--radius", type=int, help="Miles")
    diagnose.add_argument("--limit", type=int, default=5)
    diagnose.add_argument("--show", type=int, default=5)
    diagnose.add_argument(
        "--check-services",
        action="store_true",
        help="Also check the Gemini and Resend credentials",
    )

    subparsers.add_parser("check-config", help="Validate the configuration file")

    init_db = subparsers.add_parser("init-db", help="Create database tables")
    init_db.add_argument("--database-url")

    add_search = subparsers.add_parser("add-search", help="Save a search for a user")
    add_search.add_argument("email")
    add_search.add_argument("query")
    add_search.add_argument("zipcode")
    add_search.add_argument("--name")
    add_search.add_argument("--min-price", type=float, help="Dollars")
    add_search.add_argument("--max-price", type=float, help="Dollars")
    add_search.add_argument("--radius", type=int, help="Miles")
    add_search.add_argument("--preferences", help="Free-text preferences")
    add_search.add_argument("--database-url")

    for name, help_text in (
        ("pause", "Stop scanning a search"),
        ("resume", "Resume scanning a search"),
        ("remove", "Delete a search and its listings"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument("search_id")
        command.add_argument("--database-url")

    listings = subparsers.add_parser("listings", help="Show stored listings for a search")
    listings.add_argument("search_id")
    listings.add_argument("--good-only", action="store_true")
    listings.add_argument("--database-url")

    return parser


ASYNC_COMMANDS = {
    "sweep": cmd_sweep,
    "scan": cmd_scan,
    "watch": cmd_watch,
    "diagnose": cmd_diagnose,
}

SYNC_COMMANDS = {
    "init-db": cmd_init_db,
    "add-search": cmd_add_search,
    "check-config": cmd_check_config,
    "pause": cmd_set_active,
    "resume": cmd_set_active,
    "remove": cmd_remove,
    "listings": cmd_listings,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(log_level=args.log_level or "INFO")
    logger = get_logger("main")
    logger.info(f"Running command: {args.command}", extra={"config_path": args.config})

    try:
        if args.command in SYNC_COMMANDS:
            return SYNC_COMMANDS[args.command](args)
        return asyncio.run(ASYNC_COMMANDS[args.command](args))
    except KeyboardInterrupt:
        print("\nShutdown requested by user")
        return 130
    except Exception as e:
        logger.error("Command failed", extra={"error": str(e)}, exc_info=True)
        print(f"Fatal error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
