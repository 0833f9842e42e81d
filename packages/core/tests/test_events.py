"""Tests for webhook payload parsing."""

import re

import pytest

from prguard_core.errors import PayloadError
from prguard_core.events import CheckRunEvent, CommentEvent, PullRequestEvent
from prguard_core.models import RepoRef

REPOSITORY = {"name": "shop", "owner": {"login": "acme"}}


class TestPullRequestEvent:
    def test_from_payload(self):
        payload = {
            "action": "opened",
            "repository": REPOSITORY,
            "installation": {"id": 99},
            "pull_request": {
                "number": 7,
                "title": "Add coupons",
                "body": None,
                "head": {"ref": "feature/coupons", "sha": "abc123"},
            },
        }
        event = PullRequestEvent.from_payload(payload)
        assert event.action == "opened"
        assert event.ref == RepoRef("acme", "shop", 99)
        assert event.number == 7
        assert event.body == ""
        assert event.head_branch == "feature/coupons"
        assert event.head_sha == "abc123"

    def test_missing_installation_is_none(self):
        payload = {"action": "opened", "repository": REPOSITORY, "pull_request": {"number": 7, "title": "t"}}
        assert PullRequestEvent.from_payload(payload).ref.installation_id is None

    def test_missing_number(self):
        with pytest.raises(PayloadError, match="pull_request.number"):
            PullRequestEvent.from_payload({"repository": REPOSITORY, "pull_request": {"title": "t"}})

    def test_missing_repository(self):
        with pytest.raises(PayloadError, match="repository"):
            PullRequestEvent.from_payload({"pull_request": {"number": 1}})


class TestCommentEvent:
    def _payload(self, **comment):
        return {
            "action": "created",
            "repository": REPOSITORY,
            "installation": {"id": 99},
            "issue": {"number": 7, "pull_request": {"url": "https://api.github.com/..."}},
            "comment": {"body": "/prguard analyze", "user": {"login": "dev", "type": "User"}, **comment},
        }

    def test_from_payload(self):
        event = CommentEvent.from_payload(self._payload())
        assert event.number == 7
        assert event.body == "/prguard analyze"
        assert event.author == "dev"
        assert event.author_type == "User"
        assert event.is_pull_request is True

    def test_plain_issue(self):
        payload = self._payload()
        del payload["issue"]["pull_request"]
        assert CommentEvent.from_payload(payload).is_pull_request is False

    def test_bot_author(self):
        event = CommentEvent.from_payload(self._payload(user={"login": "prguard[bot]", "type": "Bot"}))
        assert event.author_type == "Bot"

    def test_missing_comment(self):
        payload = self._payload()
        del payload["comment"]
        with pytest.raises(PayloadError):
            CommentEvent.from_payload(payload)


class TestCheckRunEvent:
    def test_from_payload(self):
        payload = {
            "action": "completed",
            "repository": REPOSITORY,
            "installation": {"id": 99},
            "check_run": {
                "name": "pytest",
                "conclusion": "failure",
                "head_sha": "def456",
                "check_suite": {"head_branch": "prguard/tests-pr-7-1"},
                "pull_requests": [{"number": 12}, {"number": None}],
            },
        }
        event = CheckRunEvent.from_payload(payload)
        assert event.name == "pytest"
        assert event.conclusion == "failure"
        assert event.head_sha == "def456"
        assert event.head_branch == "prguard/tests-pr-7-1"
        assert event.pr_numbers == (12,)

    def test_missing_head_sha(self):
        payload = {"action": "completed", "repository": REPOSITORY, "check_run": {"name": "ci"}}
        with pytest.raises(PayloadError, match="head_sha"):
            CheckRunEvent.from_payload(payload)


# ---------------------------------------------------------------------------
# Malformed payloads
# ---------------------------------------------------------------------------

PR = {"number": 7, "title": "t"}
CHECK_RUN = {"name": "ci", "head_sha": "def456"}


@pytest.mark.parametrize(
    "parse, payload, field",
    [
        (PullRequestEvent, {"installation": {"id": "not-a-number"}, "pull_request": PR}, "installation.id"),
        (PullRequestEvent, {"installation": "99", "pull_request": PR}, "installation"),
        (PullRequestEvent, {"pull_request": "7"}, "pull_request"),
        (PullRequestEvent, {"pull_request": {"number": "seven"}}, "pull_request.number"),
        (PullRequestEvent, {"pull_request": {"number": [7]}}, "pull_request.number"),
        (PullRequestEvent, {"pull_request": {"number": 7, "head": "main"}}, "pull_request.head"),
        (CommentEvent, {"issue": {"number": "x"}, "comment": {"body": "hi"}}, "issue.number"),
        (CommentEvent, {"issue": {"number": 7}, "comment": {"user": "dev"}}, "comment.user"),
        (CheckRunEvent, {"check_run": {**CHECK_RUN, "pull_requests": {"number": 1}}}, "pull_requests"),
        (CheckRunEvent, {"check_run": {**CHECK_RUN, "pull_requests": [{"number": "x"}]}}, "pull_requests"),
        (CheckRunEvent, {"check_run": {**CHECK_RUN, "pull_requests": [12]}}, "pull_requests"),
    ],
)
def test_malformed_field_is_payload_error(parse, payload, field):
    with pytest.raises(PayloadError, match=re.escape(field)):
        parse.from_payload({"action": "opened", "repository": REPOSITORY, **payload})


def test_numeric_strings_accepted():
    payload = {"repository": REPOSITORY, "installation": {"id": "99"}, "pull_request": {"number": "7"}}
    event = PullRequestEvent.from_payload(payload)
    assert event.number == 7
    assert event.ref.installation_id == 99
