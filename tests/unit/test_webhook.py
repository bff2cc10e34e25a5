"""Unit tests for the webhook endpoint."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from docsync.config import Settings
from docsync.dependencies import settings_dependency
from docsync.utils.security import sign_payload, verify_webhook_signature
from docsync.webhook import reset_delivery_cache, router

SECRET = "hush"

PUSH_PAYLOAD = {
    "ref": "refs/heads/main",
    "before": "0000000",
    "after": "bbbbbbb",
    "repository": {"id": 1, "full_name": "octo/widgets", "name": "widgets", "owner": {"login": "octo"}},
    "installation": {"id": 99},
    "pusher": {"name": "octocat"},
    "commits": [{"id": "aaaaaaa"}, {"id": "bbbbbbb"}],
}


def _headers(body, event="push", delivery="delivery-1", secret=SECRET):
    headers = {"X-GitHub-Event": event, "X-GitHub-Delivery": delivery, "Content-Type": "application/json"}
    if secret:
        headers["X-Hub-Signature-256"] = sign_payload(secret, body)
    return headers


class TestWebhookSignature:
    """Test cases for signature verification."""

    def test_valid_signature(self):
        """A signature computed with the shared secret verifies."""
        body = b'{"zen": "hi"}'
        assert verify_webhook_signature(SECRET, body, sign_payload(SECRET, body)) is True

    def test_missing_or_wrong_signature(self):
        """Missing or tampered signatures are rejected when a secret is configured."""
        body = b'{"zen": "hi"}'
        assert verify_webhook_signature(SECRET, body, None) is False
        assert verify_webhook_signature(SECRET, body, sign_payload("other", body)) is False

    def test_no_secret_accepts_everything(self):
        """Without a secret the check is skipped."""
        assert verify_webhook_signature(None, b"{}", None) is True


class TestWebhookEndpoint:
    """Test cases for POST /webhook."""

    def setup_method(self):
        """Set up test fixtures."""
        reset_delivery_cache()
        self.app = FastAPI()
        self.app.include_router(router)
        self.settings = Settings(github_webhook_secret=SECRET)
        self.app.dependency_overrides[settings_dependency] = lambda: self.settings
        self.client = TestClient(self.app)

    def teardown_method(self):
        """Clean up test fixtures."""
        reset_delivery_cache()

    def _post(self, payload, **kwargs):
        body = json.dumps(payload).encode("utf-8")
        return self.client.post("/webhook", content=body, headers=_headers(body, **kwargs))

    def test_ping(self):
        """The ping event answers pong."""
        response = self._post({"zen": "Keep it simple."}, event="ping")

        assert response.status_code == 200
        assert response.json() == {"status": "pong"}

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_push_is_accepted_and_enqueued(self, mock_enqueue):
        """A signed push is acknowledged and its commits are queued in order."""
        response = self._post(PUSH_PAYLOAD)

        assert response.status_code == 200
        assert response.json() == {"status": "accepted"}
        job = mock_enqueue.await_args.args[0]
        assert job.delivery_id == "delivery-1"
        assert job.repository.full_name == "octo/widgets"
        assert job.repository.owner == "octo"
        assert job.installation_id == 99
        assert job.commits == ["aaaaaaa", "bbbbbbb"]

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_invalid_signature_is_rejected(self, mock_enqueue):
        """A bad signature yields 401 and nothing is queued."""
        response = self._post(PUSH_PAYLOAD, secret="wrong")

        assert response.status_code == 401
        mock_enqueue.assert_not_awaited()

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_duplicate_delivery_is_ignored(self, mock_enqueue):
        """GitHub redeliveries with the same id are processed once."""
        self._post(PUSH_PAYLOAD)
        response = self._post(PUSH_PAYLOAD)

        assert response.json() == {"status": "ignored", "reason": "duplicate"}
        mock_enqueue.assert_awaited_once()

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_push_without_commits_is_ignored(self, mock_enqueue):
        """Branch deletions and empty pushes are acknowledged without work."""
        payload = dict(PUSH_PAYLOAD, commits=[])

        response = self._post(payload)

        assert response.status_code == 200
        assert response.json()["status"] == "ignored"
        mock_enqueue.assert_not_awaited()

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_other_events_are_ignored(self, mock_enqueue):
        """Only push events are processed."""
        response = self._post({"action": "opened"}, event="issues")

        assert response.json() == {"status": "ignored", "reason": "event=issues"}
        mock_enqueue.assert_not_awaited()

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_invalid_json(self, mock_enqueue):
        """A push body that is not JSON is a client error."""
        body = b"not json"
        response = self.client.post("/webhook", content=body, headers=_headers(body))

        assert response.status_code == 400
        mock_enqueue.assert_not_awaited()

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_malformed_commit_entries_are_skipped(self, mock_enqueue):
        """Non-object entries in the commit list are dropped rather than crashing the handler."""
        payload = dict(PUSH_PAYLOAD, commits=["aaaaaaa", None, {"id": "bbbbbbb"}])

        response = self._post(payload)

        assert response.status_code == 200
        assert mock_enqueue.await_args.args[0].commits == ["bbbbbbb"]

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_malformed_payload_shapes_are_client_errors(self, mock_enqueue):
        """Wrongly typed payload sections answer 400 instead of a server error."""
        for payload in ([1, 2], dict(PUSH_PAYLOAD, commits="aaaaaaa"), dict(PUSH_PAYLOAD, repository="octo/widgets")):
            reset_delivery_cache()
            response = self._post(payload)
            assert response.status_code == 400

        mock_enqueue.assert_not_awaited()

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_repository_falls_back_to_configuration(self, mock_enqueue):
        """Payloads without repository metadata use GITHUB_OWNER/GITHUB_REPO."""
        self.settings = Settings(github_webhook_secret=SECRET, github_owner="octo", github_repo="fallback")
        payload = {"commits": [{"id": "aaaaaaa"}]}

        response = self._post(payload)

        assert response.status_code == 200
        assert mock_enqueue.await_args.args[0].repository.full_name == "octo/fallback"

    @patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock)
    def test_missing_repository_is_rejected(self, mock_enqueue):
        """Without payload or configured repository the push cannot be processed."""
        response = self._post({"commits": [{"id": "aaaaaaa"}]})

        assert response.status_code == 400
        mock_enqueue.assert_not_awaited()


@pytest.fixture
def unsigned_client():
    """A client for an app with no webhook secret configured."""
    reset_delivery_cache()
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[settings_dependency] = lambda: Settings()
    yield TestClient(app)
    reset_delivery_cache()


def test_unsigned_delivery_accepted_without_secret(unsigned_client):
    """Deliveries are not verified when no secret is configured."""
    with patch("docsync.webhook.enqueue_push_job", new_callable=AsyncMock) as mock_enqueue:
        body = json.dumps(PUSH_PAYLOAD).encode("utf-8")
        response = unsigned_client.post("/webhook", content=body, headers=_headers(body, secret=None))

    assert response.status_code == 200
    mock_enqueue.assert_awaited_once()
