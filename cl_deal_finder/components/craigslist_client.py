"""
Craigslist acquisition adapter.

This module maps a saved search onto a Craigslist search URL, drives the
shared headless browser to render the results and listing pages, and
extracts candidate listings from the rendered HTML with BeautifulSoup.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlencode, urljoin

from bs4 import BeautifulSoup
from dateutil import parser as date_parser

from ..models.config import MarketplaceConfig
from ..models.listing import CandidateListing, ListingDetails
from ..utils.error_handling import ErrorCategory, ErrorSeverity, get_error_tracker
from ..utils.logging import get_logger
from ..utils.pacing import PacingPolicy
from .browser_session import BrowserSession

logger = get_logger("craigslist")

DEFAULT_REGION = "sfbay"
DEFAULT_CATEGORY = "sss"  # all for sale
DEFAULT_RADIUS = 25
SITE = "craigslist.org"

# 3-digit ZIP prefix -> Craigslist regional subdomain
ZIP_TO_REGION = {
    # California
    "940": "sfbay", "941": "sfbay", "942": "sfbay", "943": "sfbay", "944": "sfbay",
    "945": "sfbay", "946": "sfbay", "947": "sfbay", "948": "sfbay", "949": "sfbay",
    "950": "sfbay", "951": "inlandempire", "952": "inlandempire",
    "900": "losangeles", "901": "losangeles", "902": "losangeles", "903": "losangeles",
    "904": "losangeles", "905": "losangeles", "906": "losangeles", "907": "losangeles",
    "908": "losangeles", "910": "losangeles", "911": "losangeles", "912": "losangeles",
    "913": "losangeles", "914": "losangeles", "915": "losangeles", "916": "losangeles",
    "917": "losangeles", "918": "losangeles",
    "920": "sandiego", "921": "sandiego", "922": "sandiego",
    "956": "sacramento", "958": "sacramento", "959": "sacramento",
    # New York
    "100": "newyork", "101": "newyork", "102": "newyork", "103": "newyork",
    "104": "newyork", "110": "newyork", "111": "newyork", "112": "newyork",
    "113": "newyork", "114": "newyork",
    # Texas
    "750": "dallas", "751": "dallas", "752": "dallas", "753": "dallas",
    "770": "houston", "771": "houston", "772": "houston", "773": "houston",
    "774": "houston", "775": "houston",
    "786": "austin", "787": "austin",
    # Illinois
    "600": "chicago", "606": "chicago", "607": "chicago", "608": "chicago",
    # Washington
    "980": "seattle", "981": "seattle", "982": "seattle", "983": "seattle",
    "984": "seattle",
    # Colorado
    "800": "denver", "801": "denver", "802": "denver", "803": "denver", "804": "denver",
    # Massachusetts
    "020": "boston", "021": "boston", "022": "boston", "024": "boston",
    # Georgia
    "300": "atlanta", "301": "atlanta", "302": "atlanta", "303": "atlanta",
    # Florida
    "330": "miami", "331": "miami", "332": "miami", "333": "miami",
    # Arizona
    "850": "phoenix", "851": "phoenix", "852": "phoenix", "853": "phoenix",
    # Michigan
    "480": "detroit", "481": "detroit", "482": "detroit", "483": "detroit",
    # Pennsylvania
    "190": "philadelphia", "191": "philadelphia", "192": "philadelphia",
    # Oregon
    "970": "portland", "971": "portland", "972": "portland", "973": "portland",
    # Minnesota
    "550": "minneapolis", "551": "minneapolis", "553": "minneapolis", "554": "minneapolis",
}

# Checked in order; first keyword contained in the query wins
QUERY_KEYWORD_CATEGORIES = [
    ("bicycle", "bia"),
    ("bike", "bia"),
    ("car", "cta"),
    ("auto", "cta"),
    ("furniture", "fua"),
    ("electronics", "ela"),
    ("computer", "sya"),
    ("laptop", "sya"),
    ("phone", "moa"),
    ("motorcycle", "mca"),
]

RESULT_ROW_SELECTOR = ".cl-search-result, .result-row, li.cl-static-search-result"
RESULT_LINK_SELECTOR = "a.cl-app-anchor, a.titlestring, a.result-title"
RESULT_PRICE_SELECTOR = ".priceinfo, .result-price, .price"
RESULT_LOCATION_SELECTOR = ".meta .location, .result-hood"
POSTING_BODY_SELECTOR = "#postingbody"
POSTING_BODY_NOISE_SELECTOR = ".print-information, .print-qrcode-container"
GALLERY_IMAGE_SELECTOR = (
    '.gallery img, .swipe img, .thumb img, img[src*="images.craigslist.org"]'
)

PRICE_PATTERN = re.compile(r"\$?([\d,]+)")
LISTING_ID_PATTERN = re.compile(r"/(\d+)\.html")


@dataclass
class SearchResultRow:
    """One row of the rendered search results page."""

    url: str
    title: str
    price: Optional[int]  # cents
    image_url: Optional[str]
    location: Optional[str]
    posted_at: Optional[datetime]


def get_region_from_zipcode(zipcode: str, default: str = DEFAULT_REGION) -> str:
    """Map a ZIP code to a Craigslist region by its 3-digit prefix."""
    return ZIP_TO_REGION.get((zipcode or "")[:3], default)


def get_category_from_query(query: str) -> str:
    """Pick a Craigslist category code from keywords in the query."""
    lowered = (query or "").lower()
    for keyword, category in QUERY_KEYWORD_CATEGORIES:
        if keyword in lowered:
            return category
    return DEFAULT_CATEGORY


def build_search_url(
    query: str,
    zipcode: str,
    min_price: Optional[int] = None,
    max_price: Optional[int] = None,
    radius: Optional[int] = None,
    site: str = SITE,
    default_region: str = DEFAULT_REGION,
    default_radius: int = DEFAULT_RADIUS,
) -> str:
    """
    Build the Craigslist search URL for today's postings, newest first.

    Price bounds are whole dollars and are only included when non-zero.
    """
    region = get_region_from_zipcode(zipcode, default_region)
    category = get_category_from_query(query)

    params = {
        "query": query,
        "postal": zipcode,
        "search_distance": str(radius or default_radius),
        "sort": "date",
        "postedToday": "1",
    }
    if min_price:
        params["min_price"] = str(min_price)
    if max_price:
        params["max_price"] = str(max_price)

    return f"https://{region}.{site}/search/{category}?{urlencode(params)}"


def build_rss_url(query: str, zipcode: str, **options) -> str:
    """RSS variant of the search URL."""
    return build_search_url(query, zipcode, **options) + "&format=rss"


def parse_price(text: Optional[str]) -> Optional[int]:
    """Parse a displayed price such as '$1,250' into cents."""
    if not text:
        return None
    match = PRICE_PATTERN.search(text)
    if not match:
        return None
    digits = match.group(1).replace(",", "")
    if not digits:
        return None
    return int(digits) * 100


def extract_listing_id(url: str) -> str:
    """Craigslist posting id from a listing URL, or the URL itself."""
    match = LISTING_ID_PATTERN.search(url)
    return match.group(1) if match else url


def _clean_text(text: str) -> str:
    return " ".join(text.split())


def _parse_posted_at(value: Optional[str]):
    if not value:
        return None
    try:
        return date_parser.isoparse(value)
    except (ValueError, OverflowError):
        try:
            return date_parser.parse(value)
        except (ValueError, OverflowError):
            logger.debug(f"Unparseable posting date: {value}")
            return None


def parse_search_results(html: str, base_url: str, limit: int) -> List[SearchResultRow]:
    """Extract up to ``limit`` result rows from a rendered search page."""
    soup = BeautifulSoup(html, "html.parser")
    rows: List[SearchResultRow] = []

    for element in soup.select(RESULT_ROW_SELECTOR)[:limit]:
        link = element.select_one(RESULT_LINK_SELECTOR)
        href = (link.get("href") or "").strip() if link else ""
        title = _clean_text(link.get_text(" ")) if link else ""

        price_el = element.select_one(RESULT_PRICE_SELECTOR)
        price = parse_price(price_el.get_text(strip=True)) if price_el else None

        img = element.select_one("img")
        image_src = img.get("src") if img else None

        location_el = element.select_one(RESULT_LOCATION_SELECTOR)
        location = _clean_text(location_el.get_text(" ")) if location_el else ""

        time_el = element.select_one("time")
        posted_at = _parse_posted_at(time_el.get("datetime") if time_el else None)

        rows.append(
            SearchResultRow(
                url=urljoin(base_url, href) if href else "",
                title=title,
                price=price,
                image_url=urljoin(base_url, image_src) if image_src else None,
                location=location or None,
                posted_at=posted_at,
            )
        )

    return rows


def parse_listing_details(html: str, base_url: str) -> ListingDetails:
    """Extract the description and gallery image URLs from a listing page."""
    soup = BeautifulSoup(html, "html.parser")

    description = ""
    body = soup.select_one(POSTING_BODY_SELECTOR)
    if body is not None:
        for noise in body.select(POSTING_BODY_NOISE_SELECTOR):
            noise.decompose()
        description = body.get_text("\n", strip=True)

    image_urls: List[str] = []
    for img in soup.select(GALLERY_IMAGE_SELECTOR):
        src = img.get("src") or img.get("data-src")
        if not src:
            continue
        absolute = urljoin(base_url, src)
        if absolute not in image_urls:
            image_urls.append(absolute)

    return ListingDetails(description=description, image_urls=image_urls)


class CraigslistClient:
    """Fetches candidate listings for a saved search from Craigslist."""

    def __init__(
        self,
        browser_session: Optional[BrowserSession] = None,
        config: Optional[MarketplaceConfig] = None,
        pacing: Optional[PacingPolicy] = None,
    ):
        self.config = config or MarketplaceConfig()
        self.browser_session = browser_session or BrowserSession.from_config(self.config)
        self.pacing = pacing or PacingPolicy()

    def build_search_url(self, query, zipcode, min_price=None, max_price=None, radius=None) -> str:
        return build_search_url(
            query,
            zipcode,
            min_price=min_price,
            max_price=max_price,
            radius=radius,
            site=self.config.site,
            default_region=self.config.default_region,
            default_radius=self.config.default_radius,
        )

    def region_base_url(self, zipcode: str) -> str:
        region = get_region_from_zipcode(zipcode, self.config.default_region)
        return f"https://{region}.{self.config.site}"

    async def fetch_listing_details(self, listing_url: str, page) -> ListingDetails:
        """Visit a listing page; any failure yields empty details."""
        try:
            await page.goto(
                listing_url,
                wait_until="domcontentloaded",
                timeout=self.config.detail_timeout * 1000,
            )
            await page.wait_for_selector("body", timeout=self.config.body_timeout * 1000)
            return parse_listing_details(await page.content(), listing_url)
        except Exception as e:
            logger.warning(f"Error fetching listing details from {listing_url}: {e}")
            return ListingDetails()

    async def fetch_listings(
        self,
        query: str,
        zipcode: str,
        min_price: Optional[int] = None,
        max_price: Optional[int] = None,
        radius: Optional[int] = None,
        limit: int = 20,
    ) -> List[CandidateListing]:
        """
        Fetch today's listings for a query near a ZIP code.

        Args:
            query: Free-text search query
            zipcode: US ZIP code used for region and distance
            min_price: Lower bound in whole dollars
            max_price: Upper bound in whole dollars
            radius: Search distance in miles
            limit: Maximum number of result rows to read

        Returns:
            Candidate listings with details; empty if the search page fails.
        """
        search_url = self.build_search_url(query, zipcode, min_price, max_price, radius)
        base_url = self.region_base_url(zipcode)
        logger.info(f"Fetching Craigslist search: {search_url}")

        context = None
        try:
            context = await self.browser_session.new_context()
            page = await context.new_page()

            await page.goto(
                search_url,
                wait_until="domcontentloaded",
                timeout=self.config.navigation_timeout * 1000,
            )
            await page.wait_for_selector(
                RESULT_ROW_SELECTOR, timeout=self.config.results_timeout * 1000
            )

            rows = parse_search_results(await page.content(), base_url, limit)
            logger.info(f"Found {len(rows)} listings on search page")

            listings: List[CandidateListing] = []
            for row in rows[: self.config.max_detail_fetches]:
                if not row.url or not row.title:
                    continue

                details = await self.fetch_listing_details(row.url, page)
                listings.append(
                    CandidateListing(
                        external_id=extract_listing_id(row.url),
                        title=row.title,
                        price=row.price,
                        url=row.url,
                        description=details.description or None,
                        image_url=row.image_url
                        or (details.image_urls[0] if details.image_urls else None),
                        image_urls=details.image_urls,
                        location=row.location,
                        posted_at=row.posted_at,
                    )
                )
                await self.pacing.after_detail()

            logger.info(f"Fetched details for {len(listings)} listings")
            return listings

        except Exception as e:
            logger.error(f"Error fetching Craigslist search: {e}")
            get_error_tracker().record_error(
                component="craigslist",
                category=ErrorCategory.ACQUISITION,
                severity=ErrorSeverity.MEDIUM,
                message=f"Error fetching Craigslist search: {e}",
                exception=e,
                context={"url": search_url},
            )
            return []

        finally:
            if context is not None:
                try:
                    await context.close()
                except Exception as e:
                    logger.warning(f"Error closing browser context: {e}")

    async def close(self) -> None:
        """Release the shared browser session."""
        await self.browser_session.close()
