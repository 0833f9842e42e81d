"""Tests for the webhook application."""

import json
import logging
from unittest.mock import AsyncMock, MagicMock

import pytest
from starlette.testclient import TestClient

from prguard_core.errors import PayloadError
from prguard_core.events import CheckRunEvent, CommentEvent, PullRequestEvent
from prguard_server.app import SIGNATURE_HEADER, create_app, sign_payload, verify_signature
from prguard_server.live import Broadcaster

SECRET = "s3cret"
REPOSITORY = {"name": "shop", "owner": {"login": "acme"}}

PR_PAYLOAD = {
    "action": "opened",
    "repository": REPOSITORY,
    "installation": {"id": 99},
    "pull_request": {"number": 7, "title": "Add coupons", "head": {"ref": "feature/coupons", "sha": "abc"}},
}
COMMENT_PAYLOAD = {
    "action": "created",
    "repository": REPOSITORY,
    "installation": {"id": 99},
    "issue": {"number": 7, "pull_request": {}},
    "comment": {"body": "/prguard analyze", "user": {"login": "dev", "type": "User"}},
}
CHECK_PAYLOAD = {
    "action": "completed",
    "repository": REPOSITORY,
    "installation": {"id": 99},
    "check_run": {"name": "pytest", "conclusion": "failure", "head_sha": "abc", "pull_requests": [{"number": 12}]},
}


@pytest.fixture
def orchestrator():
    orchestrator = MagicMock()
    orchestrator.settings.trigger = "hybrid"
    orchestrator.handle_pull_request = AsyncMock()
    orchestrator.handle_comment = AsyncMock()
    orchestrator.handle_check_run = AsyncMock()
    return orchestrator


@pytest.fixture
def broadcaster():
    return Broadcaster()


def _client(orchestrator, broadcaster, secret=None):
    return TestClient(create_app(orchestrator, broadcaster, webhook_secret=secret))


def _post(client, event, payload, secret=None, signature=None):
    body = json.dumps(payload).encode()
    headers = {"X-GitHub-Event": event, "X-GitHub-Delivery": "d-1", "Content-Type": "application/json"}
    if signature is not None:
        headers[SIGNATURE_HEADER] = signature
    elif secret is not None:
        headers[SIGNATURE_HEADER] = sign_payload(secret, body)
    return client.post("/webhook", content=body, headers=headers)


# ---------------------------------------------------------------------------
# Signatures
# ---------------------------------------------------------------------------


class TestSignatures:
    def test_sign_payload_format(self):
        signature = sign_payload(SECRET, b"{}")
        assert signature.startswith("sha256=")
        assert len(signature) == len("sha256=") + 64

    def test_verify(self):
        body = b'{"a": 1}'
        assert verify_signature(SECRET, body, sign_payload(SECRET, body))
        assert not verify_signature(SECRET, body, sign_payload("other", body))
        assert not verify_signature(SECRET, body, None)
        assert not verify_signature(SECRET, b'{"a": 2}', sign_payload(SECRET, body))


# ---------------------------------------------------------------------------
# Webhook
# ---------------------------------------------------------------------------


class TestWebhook:
    @pytest.mark.parametrize(
        "event, payload, handler, event_type",
        [
            ("pull_request", PR_PAYLOAD, "handle_pull_request", PullRequestEvent),
            ("issue_comment", COMMENT_PAYLOAD, "handle_comment", CommentEvent),
            ("check_run", CHECK_PAYLOAD, "handle_check_run", CheckRunEvent),
        ],
    )
    def test_dispatches_parsed_event(self, orchestrator, broadcaster, event, payload, handler, event_type):
        response = _post(_client(orchestrator, broadcaster), event, payload)

        assert response.status_code == 202
        assert response.json() == {"status": "accepted", "event": event}
        mock = getattr(orchestrator, handler)
        mock.assert_awaited_once()
        assert isinstance(mock.await_args.args[0], event_type)

    def test_unknown_event_ignored(self, orchestrator, broadcaster):
        response = _post(_client(orchestrator, broadcaster), "push", {"ref": "refs/heads/main"})
        assert response.status_code == 200
        assert response.json() == {"status": "ignored", "event": "push"}

    def test_invalid_json(self, orchestrator, broadcaster):
        client = _client(orchestrator, broadcaster)
        response = client.post("/webhook", content=b"not json", headers={"X-GitHub-Event": "pull_request"})
        assert response.status_code == 400

    def test_non_object_payload(self, orchestrator, broadcaster):
        response = _post(_client(orchestrator, broadcaster), "pull_request", [1, 2])
        assert response.status_code == 400

    def test_payload_missing_fields(self, orchestrator, broadcaster):
        response = _post(_client(orchestrator, broadcaster), "pull_request", {"action": "opened"})
        assert response.status_code == 400
        assert "pull_request" in response.json()["error"]
        orchestrator.handle_pull_request.assert_not_awaited()

    @pytest.mark.parametrize(
        "event, payload",
        [
            ("pull_request", {**PR_PAYLOAD, "installation": {"id": "not-a-number"}}),
            ("pull_request", {**PR_PAYLOAD, "pull_request": "7"}),
            ("issue_comment", {**COMMENT_PAYLOAD, "issue": {"number": None, "pull_request": {}}}),
            ("issue_comment", {**COMMENT_PAYLOAD, "issue": {"number": "seven"}}),
            ("check_run", {**CHECK_PAYLOAD, "check_run": {"head_sha": "abc", "pull_requests": [{"number": "x"}]}}),
        ],
    )
    def test_malformed_fields_rejected(self, orchestrator, broadcaster, event, payload):
        response = _post(_client(orchestrator, broadcaster), event, payload)
        assert response.status_code == 400
        assert "error" in response.json()

    def test_handler_failure_is_logged(self, orchestrator, broadcaster, caplog):
        orchestrator.handle_pull_request.side_effect = PayloadError("no installation id")
        with caplog.at_level(logging.ERROR, logger="prguard_server.app"):
            response = _post(_client(orchestrator, broadcaster), "pull_request", PR_PAYLOAD)
        assert response.status_code == 202
        assert "Delivery d-1 (pull_request) failed" in caplog.text


class TestWebhookSignature:
    def test_valid_signature(self, orchestrator, broadcaster):
        client = _client(orchestrator, broadcaster, secret=SECRET)
        assert _post(client, "pull_request", PR_PAYLOAD, secret=SECRET).status_code == 202

    def test_missing_signature(self, orchestrator, broadcaster):
        client = _client(orchestrator, broadcaster, secret=SECRET)
        assert _post(client, "pull_request", PR_PAYLOAD).status_code == 401
        orchestrator.handle_pull_request.assert_not_awaited()

    def test_wrong_signature(self, orchestrator, broadcaster):
        client = _client(orchestrator, broadcaster, secret=SECRET)
        response = _post(client, "pull_request", PR_PAYLOAD, signature=sign_payload("wrong", b"{}"))
        assert response.status_code == 401

    def test_no_secret_warns(self, orchestrator, broadcaster, caplog):
        with caplog.at_level(logging.WARNING, logger="prguard_server.app"):
            create_app(orchestrator, broadcaster)
        assert "will not be verified" in caplog.text


# ---------------------------------------------------------------------------
# Health and websocket
# ---------------------------------------------------------------------------


def test_health(orchestrator, broadcaster):
    response = _client(orchestrator, broadcaster).get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "trigger": "hybrid", "websocket_clients": 0}


def test_websocket_receives_live_events(orchestrator, broadcaster):
    client = _client(orchestrator, broadcaster)
    with client.websocket_connect("/ws") as ws:
        assert ws.receive_json() == {"type": "connected", "trigger": "hybrid"}
        assert broadcaster.client_count == 1
        broadcaster.analysis_started({"repo": "acme/shop", "pr_number": 7})
        msg = ws.receive_json()
    assert msg["type"] == "analysis:started"
    assert msg["data"]["pr_number"] == 7
