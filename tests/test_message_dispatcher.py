"""
Unit tests for email dispatchers and the deal notifier.
"""

import threading
from datetime import datetime
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from unittest.mock import Mock

import pytest

from cl_deal_finder.components.message_dispatcher import (
    BaseEmailDispatcher,
    DealNotifier,
    EmailDispatcherFactory,
    ResendDispatcher,
)
from cl_deal_finder.models.alert import DealAlert, DigestRequest, FormattedDigest
from cl_deal_finder.models.config import NotifierConfig
from cl_deal_finder.models.delivery import DeliveryResult


class MockEmailDispatcher(BaseEmailDispatcher):
    """Test implementation of BaseEmailDispatcher."""

    def __init__(self, should_succeed: bool = True, max_retries: int = 2, retry_delay: float = 0.0):
        super().__init__(max_retries, retry_delay)
        self.should_succeed = should_succeed
        self.send_attempts = 0

    def _send_message(self, digest):
        self.send_attempts += 1
        if self.should_succeed:
            return "msg_1"
        raise Exception("Test send failure")

    def test_connection(self) -> bool:
        return self.should_succeed


class UnavailableEmailApi(BaseHTTPRequestHandler):
    """Email API stub that answers every send with 503."""

    posts: list

    def do_POST(self):
        self.posts.append(self.headers.get("Idempotency-Key"))
        self.rfile.read(int(self.headers.get("Content-Length", 0)))
        body = b'{"message": "Service unavailable"}'
        self.send_response(503)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


@pytest.fixture
def unavailable_api():
    """Serve UnavailableEmailApi on a free local port; yields (url, recorded posts)."""
    posts = []
    handler = type("Handler", (UnavailableEmailApi,), {"posts": posts})
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}", posts
    finally:
        server.shutdown()
        server.server_close()


def _digest() -> FormattedDigest:
    return FormattedDigest(
        recipient="buyer@example.com",
        subject='🎯 1 new deal for "bike"',
        html="<p>deal</p>",
        text="deal",
    )


def _request() -> DigestRequest:
    return DigestRequest(
        recipient_email="buyer@example.com",
        search_query="bike",
        zipcode="94110",
        deals=[
            DealAlert(
                title="Trek",
                price=45000,
                url="https://sfbay.craigslist.org/sfc/bik/d/trek/1.html",
                deal_score=85,
                reasoning="Cheap.",
            )
        ],
    )


class TestBaseEmailDispatcher:
    def test_successful_send(self):
        dispatcher = MockEmailDispatcher()

        result = dispatcher.send_alert(_digest())

        assert result.success is True
        assert result.message_id == "msg_1"
        assert result.attempts == 1
        assert result.recipient == "buyer@example.com"
        assert dispatcher.send_attempts == 1

    def test_retries_then_fails(self):
        dispatcher = MockEmailDispatcher(should_succeed=False, max_retries=2)

        result = dispatcher.send_alert(_digest())

        assert result.success is False
        assert dispatcher.send_attempts == 3
        assert result.attempts == 3
        assert "Failed after 3 attempts" in result.error_message
        assert len(result.error_message) <= 500

    def test_session_has_retry_adapter(self):
        dispatcher = MockEmailDispatcher(max_retries=4)
        adapter = dispatcher.session.get_adapter("https://api.resend.com")
        assert adapter.max_retries.total == 4

    def test_transport_retries_exclude_post(self):
        adapter = MockEmailDispatcher().session.get_adapter("https://api.resend.com")

        assert "GET" in adapter.max_retries.allowed_methods
        assert "POST" not in adapter.max_retries.allowed_methods


class TestResendDispatcher:
    def test_requires_api_key(self):
        with pytest.raises(ValueError):
            ResendDispatcher(api_key="")

    def test_send_posts_payload(self):
        dispatcher = ResendDispatcher(api_key="re_test", max_retries=0)
        response = Mock(ok=True, status_code=200)
        response.json.return_value = {"id": "email_42"}
        dispatcher.session.post = Mock(return_value=response)

        result = dispatcher.send_alert(_digest())

        assert result.success is True
        assert result.message_id == "email_42"
        url = dispatcher.session.post.call_args.args[0]
        payload = dispatcher.session.post.call_args.kwargs["json"]
        assert url == "https://api.resend.com/emails"
        assert payload["from"] == "DealFinder <deals@yourdomain.com>"
        assert payload["to"] == ["buyer@example.com"]
        assert payload["subject"] == '🎯 1 new deal for "bike"'
        assert payload["html"] == "<p>deal</p>"
        assert payload["text"] == "deal"
        assert dispatcher.session.headers["Authorization"] == "Bearer re_test"

    def test_provider_error_fails_delivery(self):
        dispatcher = ResendDispatcher(api_key="re_test", max_retries=0)
        response = Mock(ok=False, status_code=422, text="bad from")
        response.json.return_value = {"message": "Invalid from address"}
        dispatcher.session.post = Mock(return_value=response)

        result = dispatcher.send_alert(_digest())

        assert result.success is False
        assert "Invalid from address" in result.error_message

    def test_failing_endpoint_receives_one_post_per_attempt(self, unavailable_api):
        url, posts = unavailable_api
        dispatcher = ResendDispatcher(
            api_key="re_test", max_retries=2, retry_delay=0.0, timeout=5.0, api_url=url
        )
        dispatcher.session.trust_env = False

        result = dispatcher.send_alert(_digest())

        assert result.success is False
        assert result.attempts == 3
        assert "HTTP 503" in result.error_message
        assert len(posts) == 3
        assert len(set(posts)) == 1

    def test_idempotency_key_stable_across_attempts(self):
        dispatcher = ResendDispatcher(api_key="re_test", max_retries=1, retry_delay=0.0)
        unavailable = Mock(ok=False, status_code=503, text="unavailable")
        unavailable.json.return_value = {}
        accepted = Mock(ok=True, status_code=200)
        accepted.json.return_value = {"id": "email_7"}
        dispatcher.session.post = Mock(side_effect=[unavailable, accepted])

        result = dispatcher.send_alert(_digest())

        assert result.success is True
        assert result.attempts == 2
        keys = [
            c.kwargs["headers"]["Idempotency-Key"]
            for c in dispatcher.session.post.call_args_list
        ]
        assert keys[0] == keys[1] == ResendDispatcher.idempotency_key(_digest())
        assert keys[0].startswith("digest-")

        other = _digest()
        other.recipient = "someone.com"
        assert ResendDispatcher.idempotency_key(other) != keys[0]

    def test_connection_check(self):
        dispatcher = ResendDispatcher(api_key="re_test")
        dispatcher.session.get = Mock(return_value=Mock(status_code=200))
        assert dispatcher.test_connection() is True


class TestEmailDispatcherFactory:
    def test_create_resend(self):
        dispatcher = EmailDispatcherFactory.create_dispatcher(
            "Resend", {"api_key": "re_test", "from_address": "Deals <d@example.com>"}
        )
        assert isinstance(dispatcher, ResendDispatcher)
        assert dispatcher.from_address == "Deals <d@example.com>"

    def test_unsupported_provider(self):
        with pytest.raises(ValueError, match="Unsupported"):
            EmailDispatcherFactory.create_dispatcher("smtp", {})

    def test_from_config_without_key(self):
        assert EmailDispatcherFactory.from_config(NotifierConfig(api_key=None)) is None
        assert (
            EmailDispatcherFactory.from_config(
                NotifierConfig(api_key="__MISSING_ENV_VAR_RESEND_API_KEY__")
            )
            is None
        )

    def test_from_config_with_key(self):
        dispatcher = EmailDispatcherFactory.from_config(NotifierConfig(api_key="re_test"))
        assert isinstance(dispatcher, ResendDispatcher)


class TestDealNotifier:
    def test_missing_key_returns_false(self, caplog):
        notifier = DealNotifier(dispatcher=None)

        with caplog.at_level("INFO"):
            assert notifier.send_digest(_request()) is False

        assert "RESEND_API_KEY not set - skipping email" in caplog.text
        assert "Would have sent 1 deals to buyer@example.com" in caplog.text

    def test_logs_to_notifier_component(self, caplog):
        with caplog.at_level("INFO", logger="cl_deal_finder.notifier"):
            DealNotifier(dispatcher=None).send_digest(_request())

        messages = [r.getMessage() for r in caplog.records if r.name == "cl_deal_finder.notifier"]
        assert any("RESEND_API_KEY not set" in m for m in messages)

    def test_successful_send(self, mock_dispatcher):
        notifier = DealNotifier(dispatcher=mock_dispatcher)

        assert notifier.send_digest(_request()) is True
        digest = mock_dispatcher.send_alert.call_args.args[0]
        assert digest.subject == '🎯 1 new deal for "bike"'

    def test_delivery_failure_returns_false(self, mock_dispatcher):
        mock_dispatcher.send_alert.return_value = DeliveryResult(
            success=False, delivery_time=datetime.now(), error_message="rejected"
        )
        assert DealNotifier(dispatcher=mock_dispatcher).send_digest(_request()) is False

    def test_dispatcher_exception_returns_false(self, mock_dispatcher):
        mock_dispatcher.send_alert.side_effect = RuntimeError("network down")
        assert DealNotifier(dispatcher=mock_dispatcher).send_digest(_request()) is False
