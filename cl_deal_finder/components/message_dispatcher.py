"""
Email dispatching for deal digests.

Dispatchers deliver a rendered digest through an email provider with
retry logic; the DealNotifier ties formatting and delivery together and
reports a plain success flag to the scan orchestrator.
"""

import hashlib
import time
from abc import abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ..interfaces import IDigestFormatter, IMessageDispatcher
from ..models.alert import DigestRequest, FormattedDigest
from ..models.delivery import MAX_ERROR_MESSAGE_LENGTH, DeliveryResult
from ..utils.logging import get_logger
from .alert_formatter import DigestFormatter

logger = get_logger("notifier")

RESEND_API_URL = "https://api.resend.com"
DEFAULT_FROM_ADDRESS = "DealFinder <deals@yourdomain.com>"


class BaseEmailDispatcher:
    """Base class for email dispatchers with common retry logic."""

    def __init__(self, max_retries: int = 2, retry_delay: float = 1.0):
        """
        Initialize base dispatcher.

        Args:
            max_retries: Maximum number of retry attempts after the first send
            retry_delay: Initial delay between retries in seconds
        """
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.session = self._create_session()

    def _create_session(self) -> requests.Session:
        """
        Create a requests session with retry configuration.

        Transport retries apply to reads only. send_alert owns the retry
        loop for sends.
        """
        session = requests.Session()

        retry_strategy = Retry(
            total=self.max_retries,
            backoff_factor=1,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET"],
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        return session

    def send_alert(self, digest: FormattedDigest) -> DeliveryResult:
        """
        Send a digest with retry logic.

        Args:
            digest: Rendered digest to send

        Returns:
            DeliveryResult: Result of delivery attempt
        """
        start_time = datetime.now()
        last_error = None

        for attempt in range(self.max_retries + 1):
            try:
                logger.info(
                    f"Sending digest to {digest.recipient} "
                    f"(attempt {attempt + 1}/{self.max_retries + 1})"
                )
                message_id = self._send_message(digest)

                delivery_time = datetime.now()
                logger.info(
                    f"Digest sent in {(delivery_time - start_time).total_seconds():.2f}s"
                )
                result = DeliveryResult(
                    success=True,
                    delivery_time=delivery_time,
                    error_message=None,
                    message_id=message_id,
                    recipient=digest.recipient,
                    attempts=attempt + 1,
                )
                result.validate()
                return result

            except Exception as e:
                last_error = str(e)
                logger.warning(f"Send attempt {attempt + 1} failed: {last_error}")

                if attempt < self.max_retries:
                    sleep_time = self.retry_delay * (2**attempt)
                    logger.info(f"Retrying in {sleep_time:.1f} seconds...")
                    time.sleep(sleep_time)

        error_msg = (
            f"Failed after {self.max_retries + 1} attempts. Last error: {last_error}"
        )[:MAX_ERROR_MESSAGE_LENGTH]
        logger.error(error_msg)

        result = DeliveryResult(
            success=False,
            delivery_time=datetime.now(),
            error_message=error_msg,
            recipient=digest.recipient,
            attempts=self.max_retries + 1,
        )
        result.validate()
        return result

    @abstractmethod
    def _send_message(self, digest: FormattedDigest) -> Optional[str]:
        """
        Provider-specific send.

        Returns:
            Provider message id, if the provider returns one

        Raises:
            Exception: If sending fails
        """
        pass

    @abstractmethod
    def test_connection(self) -> bool:
        """Test connection to the email provider."""
        pass


class ResendDispatcher(BaseEmailDispatcher):
    """Resend HTTP API email dispatcher."""

    def __init__(
        self,
        api_key: str,
        from_address: str = DEFAULT_FROM_ADDRESS,
        max_retries: int = 2,
        retry_delay: float = 1.0,
        timeout: float = 30.0,
        api_url: str = RESEND_API_URL,
    ):
        if not api_key:
            raise ValueError("Resend API key is required")
        super().__init__(max_retries, retry_delay)
        self.api_key = api_key
        self.from_address = from_address
        self.timeout = timeout
        self.api_url = api_url.rstrip("/")
        self.session.headers.update(
            {
                "Authorization": f"Bearer {api_key}",
                "Content-Type": "application/json",
            }
        )

    @staticmethod
    def idempotency_key(digest: FormattedDigest) -> str:
        """Stable key for a digest so a retried send is delivered once."""
        content = "\n".join([digest.recipient, digest.subject, digest.html])
        return "digest-" + hashlib.sha256(content.encode("utf-8")).hexdigest()

    def _send_message(self, digest: FormattedDigest) -> Optional[str]:
        payload = {
            "from": self.from_address,
            "to": [digest.recipient],
            "subject": digest.subject,
            "html": digest.html,
            "text": digest.text,
        }

        response = self.session.post(
            f"{self.api_url}/emails",
            json=payload,
            headers={"Idempotency-Key": self.idempotency_key(digest)},
            timeout=self.timeout,
        )

        try:
            body = response.json()
        except ValueError:
            body = {}

        if not response.ok:
            message = body.get("message") if isinstance(body, dict) else None
            raise RuntimeError(
                f"Resend error (HTTP {response.status_code}): "
                f"{message or response.text[:200]}"
            )

        return body.get("id") if isinstance(body, dict) else None

    def test_connection(self) -> bool:
        try:
            response = self.session.get(
                f"{self.api_url}/domains", timeout=self.timeout
            )
            return response.status_code == 200
        except requests.exceptions.RequestException as e:
            logger.error(f"Resend connection test failed: {e}")
            return False


class EmailDispatcherFactory:
    """Factory for creating email dispatchers."""

    @staticmethod
    def create_dispatcher(provider: str, config: Dict[str, Any]) -> BaseEmailDispatcher:
        """
        Create an email dispatcher.

        Args:
            provider: Provider name (currently only 'resend')
            config: Provider settings (api_key, from_address, retry settings)

        Raises:
            ValueError: If the provider is unsupported or misconfigured
        """
        provider = provider.lower()

        if provider == "resend":
            return ResendDispatcher(
                api_key=config.get("api_key", ""),
                from_address=config.get("from_address", DEFAULT_FROM_ADDRESS),
                max_retries=config.get("max_retries", 2),
                retry_delay=config.get("retry_delay", 1.0),
            )

        raise ValueError(f"Unsupported email provider: {provider}")

    @classmethod
    def from_config(cls, notifier_config) -> Optional[BaseEmailDispatcher]:
        """Build a dispatcher from NotifierConfig; None when no key is set."""
        if not notifier_config.has_credentials():
            return None
        return cls.create_dispatcher(
            notifier_config.provider,
            {
                "api_key": notifier_config.credential,
                "from_address": notifier_config.from_address,
                "max_retries": notifier_config.max_retries,
                "retry_delay": notifier_config.retry_delay,
            },
        )


class DealNotifier:
    """Renders and sends one digest email per scan."""

    def __init__(
        self,
        formatter: Optional[IDigestFormatter] = None,
        dispatcher: Optional[IMessageDispatcher] = None,
    ):
        self.formatter = formatter or DigestFormatter()
        self.dispatcher = dispatcher

    def send_digest(self, request: DigestRequest) -> bool:
        """Send a digest; returns False on any failure instead of raising."""
        if self.dispatcher is None:
            logger.warning("RESEND_API_KEY not set - skipping email")
            logger.info(
                f"Would have sent {len(request.deals)} deals to {request.recipient_email}"
            )
            return False

        try:
            digest = self.formatter.format_digest(request)
            result = self.dispatcher.send_alert(digest)
        except Exception as e:
            logger.error(f"Error sending digest to {request.recipient_email}: {e}")
            return False

        if result.success:
            logger.info(f"Email sent to {request.recipient_email}")
        else:
            logger.error(
                f"Digest delivery to {request.recipient_email} failed: "
                f"{result.error_message}"
            )
        return result.success
