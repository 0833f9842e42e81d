"""GitHub access for prguard, on top of PyGithub.

All methods are synchronous; the orchestrator runs them in worker threads.
Authentication is either a personal/Actions token or a GitHub App, in which
case each installation gets its own client.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass

import requests
from github import Auth, Github, GithubException, GithubIntegration, InputGitTreeElement

from prguard_core.config import Settings
from prguard_core.errors import ConfigError, HostError
from prguard_core.models import ChangeDetails, RepoRef

logger = logging.getLogger(__name__)

LABEL_PREFIX = "prguard:"
RISK_LABEL_COLORS = {"critical": "B60205", "high": "D93F0B", "medium": "FBCA04", "low": "0E8A16"}
MERGE_LABELS = {
    "merge_ok": ("prguard:merge-ok", "0E8A16"),
    "attention": ("prguard:attention", "FBCA04"),
    "block": ("prguard:block-merge", "B60205"),
}

JOB_LOG_TAIL = 5000
_LOG_TIMEOUT = 10


@dataclass(frozen=True)
class CheckRunReport:
    """What a failed check run says about itself."""

    name: str
    annotations: tuple[str, ...] = ()
    failed_paths: tuple[str, ...] = ()
    summary: str = ""
    text: str = ""


@dataclass(frozen=True)
class JobLog:
    name: str
    log: str


@dataclass(frozen=True)
class PullRequestRef:
    number: int
    url: str
    head_branch: str = ""


@dataclass(frozen=True)
class IssueRef:
    number: int
    url: str


def risk_label(level: str) -> str:
    return f"{LABEL_PREFIX}risk-{level}"


def build_unified_diff(files) -> str:
    """Rebuild a unified diff from the PR file list (binary files have no patch)."""
    parts = []
    for f in files:
        old = f.previous_filename or f.filename
        parts.append(f"diff --git a/{old} b/{f.filename}")
        parts.append(f"--- a/{old}")
        parts.append(f"+++ b/{f.filename}")
        if f.patch:
            parts.append(f.patch)
    return "\n".join(parts)


class GitHubHost:
    def __init__(self, token: str | None = None, app_id: str | None = None, private_key: str | None = None):
        self._token = token
        self._integration = None
        if not token and app_id and private_key:
            self._integration = GithubIntegration(auth=Auth.AppAuth(int(app_id), private_key))
        if not token and self._integration is None:
            raise ConfigError("GitHub credentials missing: set GITHUB_TOKEN or GITHUB_APP_ID and GITHUB_PRIVATE_KEY.")
        self._clients: dict[int | None, Github] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings) -> GitHubHost:
        return cls(token=settings.github_token, app_id=settings.github_app_id, private_key=settings.github_private_key)

    def _client(self, installation_id: int | None) -> Github:
        key = None if self._token else installation_id
        with self._lock:
            client = self._clients.get(key)
            if client is None:
                if self._token:
                    client = Github(auth=Auth.Token(self._token))
                elif installation_id is None:
                    raise HostError("A GitHub App client needs an installation id.")
                else:
                    client = self._integration.get_github_for_installation(installation_id)
                self._clients[key] = client
        return client

    def _repo(self, ref: RepoRef):
        return self._client(ref.installation_id).get_repo(ref.full_name)

    def installation_id_for(self, owner: str, repo: str) -> int | None:
        """The App installation covering owner/repo, or None when a token is in use."""
        if self._integration is None:
            return None
        try:
            return self._integration.get_repo_installation(owner, repo).id
        except GithubException as e:
            raise HostError(f"{owner}/{repo}: the GitHub App is not installed on this repository ({e.status})") from e

    # ------------------------------------------------------------------ #
    # Changes and comments                                                #
    # ------------------------------------------------------------------ #

    def fetch_change_details(self, ref: RepoRef, number: int) -> ChangeDetails:
        try:
            pr = self._repo(ref).get_pull(number)
            diff = build_unified_diff(pr.get_files())
            return ChangeDetails(
                title=pr.title or "",
                body=pr.body or "",
                diff=diff,
                head_sha=pr.head.sha,
                head_branch=pr.head.ref,
                base_branch=pr.base.ref,
            )
        except GithubException as e:
            raise HostError(f"{ref.full_name}#{number}: could not fetch change details ({e.status})") from e

    def post_comment(self, ref: RepoRef, number: int, body: str) -> None:
        try:
            self._repo(ref).get_issue(number).create_comment(body)
        except GithubException as e:
            raise HostError(f"{ref.full_name}#{number}: could not post comment ({e.status})") from e

    def create_issue(self, ref: RepoRef, title: str, body: str, labels: list[str]) -> IssueRef:
        try:
            issue = self._repo(ref).create_issue(title=title, body=body, labels=labels)
        except GithubException as e:
            raise HostError(f"{ref.full_name}: could not create issue {title!r} ({e.status})") from e
        logger.info("%s: created issue #%d", ref.full_name, issue.number)
        return IssueRef(issue.number, issue.html_url)

    def apply_risk_labels(self, ref: RepoRef, number: int, overall_risk: str, merge_recommendation: str) -> bool:
        """Replace prguard labels on the change. Failures are logged, never raised."""
        try:
            repo = self._repo(ref)
            issue = repo.get_issue(number)
            for label in issue.labels:
                if label.name.startswith(LABEL_PREFIX):
                    issue.remove_from_labels(label)

            wanted = [(risk_label(overall_risk), RISK_LABEL_COLORS.get(overall_risk, "FBCA04"))]
            if merge_recommendation in MERGE_LABELS:
                wanted.append(MERGE_LABELS[merge_recommendation])
            for name, color in wanted:
                self._ensure_label(repo, name, color)
            issue.add_to_labels(*(name for name, _ in wanted))
            return True
        except GithubException as e:
            logger.warning("%s#%d: could not apply labels (%s): %s", ref.full_name, number, e.status, e.data)
            return False

    @staticmethod
    def _ensure_label(repo, name: str, color: str) -> None:
        try:
            repo.get_label(name)
        except GithubException as e:
            if e.status != 404:
                raise
            repo.create_label(name=name, color=color)

    def get_file_text(self, ref: RepoRef, path: str, git_ref: str | None = None) -> str | None:
        """Return a file's text, or None if it does not exist or is not a file."""
        try:
            repo = self._repo(ref)
            content = repo.get_contents(path, ref=git_ref) if git_ref else repo.get_contents(path)
        except GithubException as e:
            if e.status != 404:
                logger.debug("%s: reading %s failed (%s)", ref.full_name, path, e.status)
            return None
        if isinstance(content, list):
            return None
        return content.decoded_content.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------ #
    # Branches, commits and pull requests                                 #
    # ------------------------------------------------------------------ #

    def default_branch(self, ref: RepoRef) -> tuple[str, str]:
        repo = self._repo(ref)
        branch = repo.get_branch(repo.default_branch)
        return branch.name, branch.commit.sha

    def create_branch(self, ref: RepoRef, branch: str, sha: str) -> None:
        self._repo(ref).create_git_ref(ref=f"refs/heads/{branch}", sha=sha)

    def commit_files(self, ref: RepoRef, branch: str, files: dict[str, str], message: str) -> str:
        """Commit files on top of a branch in one commit and return its sha."""
        repo = self._repo(ref)
        head = repo.get_git_ref(f"heads/{branch}")
        parent = repo.get_git_commit(head.object.sha)
        elements = [InputGitTreeElement(path, "100644", "blob", content=content) for path, content in files.items()]
        tree = repo.create_git_tree(elements, parent.tree)
        commit = repo.create_git_commit(message, tree, [parent])
        head.edit(commit.sha)
        return commit.sha

    def open_pull_request(self, ref: RepoRef, title: str, body: str, head: str, base: str) -> PullRequestRef:
        pr = self._repo(ref).create_pull(title=title, body=body, head=head, base=base)
        return PullRequestRef(number=pr.number, url=pr.html_url, head_branch=head)

    def pull_request_head(self, ref: RepoRef, number: int) -> tuple[str, str]:
        pr = self._repo(ref).get_pull(number)
        return pr.head.ref, pr.head.sha

    # ------------------------------------------------------------------ #
    # CI diagnostics                                                      #
    # ------------------------------------------------------------------ #

    def failed_check_runs(self, ref: RepoRef, head_sha: str) -> list[CheckRunReport]:
        reports = []
        for run in self._repo(ref).get_commit(head_sha).get_check_runs():
            if run.conclusion != "failure":
                continue
            annotations, failed_paths = [], []
            for a in run.get_annotations():
                annotations.append(f"{a.path}:{a.start_line}: {a.message}")
                if a.annotation_level == "failure":
                    failed_paths.append(a.path)
            output = run.output
            reports.append(
                CheckRunReport(
                    name=run.name,
                    annotations=tuple(annotations),
                    failed_paths=tuple(dict.fromkeys(failed_paths)),
                    summary=(output.summary or "") if output else "",
                    text=(output.text or "") if output else "",
                )
            )
        return reports

    def failed_job_logs(self, ref: RepoRef, head_sha: str) -> list[JobLog]:
        """Tail of the logs of every failed Actions job for a commit."""
        logs = []
        repo = self._repo(ref)
        for run in repo.get_workflow_runs(head_sha=head_sha):
            if run.conclusion != "failure":
                continue
            for job in run.jobs():
                if job.conclusion != "failure":
                    continue
                try:
                    response = requests.get(job.logs_url(), timeout=_LOG_TIMEOUT)
                    response.raise_for_status()
                except (GithubException, requests.RequestException) as e:
                    logger.warning("%s: could not download logs for job %s: %s", ref.full_name, job.name, e)
                    continue
                logs.append(JobLog(name=job.name, log=response.text[-JOB_LOG_TAIL:]))
        return logs
