"""Typed views of the GitHub webhook payloads prguard reacts to.

Parsing happens once at the boundary; handlers never index into raw dicts.
A payload missing the repository or change number raises PayloadError.
"""

from __future__ import annotations

from dataclasses import dataclass

from prguard_core.errors import PayloadError
from prguard_core.models import RepoRef


def _require(payload: dict, *keys: str):
    node = payload
    for key in keys:
        if not isinstance(node, dict) or node.get(key) is None:
            raise PayloadError(f"Webhook payload is missing {'.'.join(keys)}")
        node = node[key]
    return node


def _object(value, name: str) -> dict:
    """*value* as a mapping; an absent section reads as empty."""
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise PayloadError(f"Webhook payload field {name} must be an object")
    return value


def _integer(value, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise PayloadError(f"Webhook payload field {name} must be an integer, got {value!r}") from e


def _installation_id(payload: dict) -> int | None:
    value = _object(payload.get("installation"), "installation").get("id")
    return _integer(value, "installation.id") if value is not None else None


def _pr_numbers(pull_requests) -> tuple[int, ...]:
    if pull_requests is None:
        return ()
    if not isinstance(pull_requests, list):
        raise PayloadError("Webhook payload field check_run.pull_requests must be a list")
    numbers = []
    for pr in pull_requests:
        number = _object(pr, "check_run.pull_requests[]").get("number")
        if number:
            numbers.append(_integer(number, "check_run.pull_requests[].number"))
    return tuple(numbers)


def _repo_ref(payload: dict) -> RepoRef:
    return RepoRef(
        owner=_require(payload, "repository", "owner", "login"),
        repo=_require(payload, "repository", "name"),
        installation_id=_installation_id(payload),
    )


@dataclass(frozen=True)
class PullRequestEvent:
    action: str
    ref: RepoRef
    number: int
    title: str
    body: str = ""
    head_branch: str | None = None
    head_sha: str | None = None

    @classmethod
    def from_payload(cls, payload: dict) -> PullRequestEvent:
        pr = _object(_require(payload, "pull_request"), "pull_request")
        head = _object(pr.get("head"), "pull_request.head")
        return cls(
            action=payload.get("action") or "",
            ref=_repo_ref(payload),
            number=_integer(_require(payload, "pull_request", "number"), "pull_request.number"),
            title=pr.get("title") or "",
            body=pr.get("body") or "",
            head_branch=head.get("ref"),
            head_sha=head.get("sha"),
        )


@dataclass(frozen=True)
class CommentEvent:
    action: str
    ref: RepoRef
    number: int
    body: str
    author: str
    author_type: str
    is_pull_request: bool

    @classmethod
    def from_payload(cls, payload: dict) -> CommentEvent:
        issue = _object(_require(payload, "issue"), "issue")
        comment = _object(_require(payload, "comment"), "comment")
        user = _object(comment.get("user"), "comment.user")
        return cls(
            action=payload.get("action") or "",
            ref=_repo_ref(payload),
            number=_integer(_require(payload, "issue", "number"), "issue.number"),
            body=comment.get("body") or "",
            author=user.get("login") or "",
            author_type=user.get("type") or "User",
            is_pull_request=bool(issue.get("pull_request")),
        )


@dataclass(frozen=True)
class CheckRunEvent:
    action: str
    ref: RepoRef
    name: str
    conclusion: str | None
    head_sha: str
    head_branch: str | None
    pr_numbers: tuple[int, ...] = ()

    @classmethod
    def from_payload(cls, payload: dict) -> CheckRunEvent:
        run = _object(_require(payload, "check_run"), "check_run")
        suite = _object(run.get("check_suite"), "check_run.check_suite")
        return cls(
            action=payload.get("action") or "",
            ref=_repo_ref(payload),
            name=run.get("name") or "",
            conclusion=run.get("conclusion"),
            head_sha=_require(payload, "check_run", "head_sha"),
            head_branch=suite.get("head_branch"),
            pr_numbers=_pr_numbers(run.get("pull_requests")),
        )