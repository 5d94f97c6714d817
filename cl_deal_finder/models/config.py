"""
Configuration models for the system.
"""

from dataclasses import dataclass, field
from typing import List, Optional

MISSING_ENV_PREFIX = "__MISSING_ENV_VAR_"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_BROWSER_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
]


def resolve_secret(value: Optional[str]) -> Optional[str]:
    """Return a credential, or None when it is empty or an unresolved env var."""
    if not value or not isinstance(value, str):
        return None
    if value.startswith(MISSING_ENV_PREFIX):
        return None
    return value


@dataclass
class DatabaseConfig:
    """Database connection settings."""

    url: str = "sqlite:///cl_deal_finder.db"
    echo: bool = False

    def validate(self) -> bool:
        """Validate database configuration."""
        if not self.url or "://" not in self.url:
            raise ValueError("Database url must be a SQLAlchemy URL")
        return True


@dataclass
class MarketplaceConfig:
    """Craigslist and browser settings."""

    site: str = "craigslist.org"
    default_region: str = "sfbay"
    default_radius: int = 25
    headless: bool = True
    max_detail_fetches: int = 10
    navigation_timeout: float = 30.0
    results_timeout: float = 10.0
    detail_timeout: float = 15.0
    body_timeout: float = 5.0
    user_agent: str = DEFAULT_USER_AGENT
    viewport_width: int = 1280
    viewport_height: int = 720
    browser_args: List[str] = field(default_factory=lambda: list(DEFAULT_BROWSER_ARGS))

    def validate(self) -> bool:
        """Validate marketplace configuration."""
        if not self.site or not self.site.strip():
            raise ValueError("Marketplace site cannot be empty")

        if not self.default_region:
            raise ValueError("Default region cannot be empty")

        if not isinstance(self.default_radius, int) or self.default_radius <= 0:
            raise ValueError("Default radius must be a positive integer")

        if not isinstance(self.max_detail_fetches, int) or self.max_detail_fetches < 0:
            raise ValueError("Max detail fetches must be a non-negative integer")

        for name in ("navigation_timeout", "results_timeout", "detail_timeout", "body_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")

        return True


@dataclass
class EvaluatorConfig:
    """Generative model settings."""

    provider: str = "google"
    api_key: Optional[str] = None
    model: str = "gemini-3-flash-preview"
    max_images: int = 2
    timeout: float = 60.0
    prompt_template: Optional[str] = None

    @property
    def credential(self) -> Optional[str]:
        return resolve_secret(self.api_key)

    def has_credentials(self) -> bool:
        return self.credential is not None

    def validate(self) -> bool:
        """Validate evaluator configuration."""
        valid_providers = ["google"]
        if self.provider not in valid_providers:
            raise ValueError(f"Evaluator provider must be one of: {valid_providers}")

        if not self.model:
            raise ValueError("Evaluator model cannot be empty")

        if not isinstance(self.max_images, int) or self.max_images < 0:
            raise ValueError("max_images must be a non-negative integer")

        if self.timeout <= 0:
            raise ValueError("Evaluator timeout must be positive")

        return True


@dataclass
class NotifierConfig:
    """Email delivery settings."""

    provider: str = "resend"
    api_key: Optional[str] = None
    from_address: str = "DealFinder <deals@yourdomain.com>"
    max_retries: int = 2
    retry_delay: float = 1.0

    @property
    def credential(self) -> Optional[str]:
        return resolve_secret(self.api_key)

    def has_credentials(self) -> bool:
        return self.credential is not None

    def validate(self) -> bool:
        """Validate notifier configuration."""
        valid_providers = ["resend"]
        if self.provider not in valid_providers:
            raise ValueError(f"Notifier provider must be one of: {valid_providers}")

        if not self.from_address or "@" not in self.from_address:
            raise ValueError("Notifier from_address must contain an email address")

        if not isinstance(self.max_retries, int) or self.max_retries < 0:
            raise ValueError("Notifier max_retries must be a non-negative integer")

        if self.retry_delay < 0:
            raise ValueError("Notifier retry_delay cannot be negative")

        return True


@dataclass
class ScanConfig:
    """Per-scan limits and pacing."""

    max_results: int = 15
    detail_delay: float = 0.5
    evaluation_delay: float = 1.5
    search_delay: float = 3.0

    def validate(self) -> bool:
        """Validate scan configuration."""
        if not isinstance(self.max_results, int) or self.max_results <= 0:
            raise ValueError("max_results must be a positive integer")

        if self.max_results > 100:
            raise ValueError("max_results cannot exceed 100")

        for name in ("detail_delay", "evaluation_delay", "search_delay"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative")

        return True


@dataclass
class SystemConfig:
    """Process-level settings."""

    log_level: str = "INFO"
    log_dir: str = "logs"
    polling_interval: int = 3600

    def validate(self) -> bool:
        """Validate system configuration."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")

        if not isinstance(self.polling_interval, int) or self.polling_interval <= 0:
            raise ValueError("Polling interval must be a positive integer")

        if self.polling_interval < 60:
            raise ValueError("Polling interval must be at least 60 seconds")

        return True


@dataclass
class Configuration:
    """System configuration."""

    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    marketplace: MarketplaceConfig = field(default_factory=MarketplaceConfig)
    evaluator: EvaluatorConfig = field(default_factory=EvaluatorConfig)
    notifier: NotifierConfig = field(default_factory=NotifierConfig)
    scan: ScanConfig = field(default_factory=ScanConfig)
    system: SystemConfig = field(default_factory=SystemConfig)

    def validate(self) -> bool:
        """Validate system configuration."""
        self.database.validate()
        self.marketplace.validate()
        self.evaluator.validate()
        self.notifier.validate()
        self.scan.validate()
        self.system.validate()

        if self.marketplace.max_detail_fetches > self.scan.max_results:
            raise ValueError("max_detail_fetches cannot exceed scan max_results")

        return True
