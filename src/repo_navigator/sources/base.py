"""Source-hosting capability contract and normalised listing items.

Listings are returned most-recent-first; the keyword filter relies on that
order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

from repo_navigator.timeouts import Deadline
from repo_navigator.types import RepositoryRef, TreeEntry


@dataclass(slots=True)
class CommitInfo:
    sha: str
    message: str
    author: str = ""
    author_email: str = ""
    commit_date: str = ""
    url: str = ""
    files_changed: list[str] = field(default_factory=list)
    lines_added: int = 0
    lines_deleted: int = 0


@dataclass(slots=True)
class FileChange:
    filename: str
    status: str = ""
    additions: int = 0
    deletions: int = 0
    patch: str = ""


@dataclass(slots=True)
class PullRequestInfo:
    number: int
    title: str
    state: str
    created_at: str = ""
    closed_at: str = ""
    merged_at: str = ""
    author: str = ""
    url: str = ""
    labels: list[str] = field(default_factory=list)
    reviewers: list[str] = field(default_factory=list)
    description: str = ""
    files: list[str] = field(default_factory=list)
    additions: int = 0
    deletions: int = 0
    # Per-file changes; only filled in for a single pull request.
    changes: list[FileChange] = field(default_factory=list)


@dataclass(slots=True)
class IssueInfo:
    number: int
    title: str
    state: str
    created_at: str = ""
    closed_at: str = ""
    author: str = ""
    url: str = ""
    labels: list[str] = field(default_factory=list)
    assignees: list[str] = field(default_factory=list)
    description: str = ""


@dataclass(slots=True)
class ReleaseInfo:
    id: int
    tag_name: str
    name: str = ""
    created_at: str = ""
    published_at: str = ""
    author: str = ""
    url: str = ""
    pre_release: bool = False
    description: str = ""
    assets: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ContributorInfo:
    username: str
    contributions: int = 0
    url: str = ""
    avatar_url: str = ""
    is_bot: bool = False


@dataclass(slots=True)
class ContributorStats:
    author: str
    commits: int = 0
    additions: int = 0
    deletions: int = 0
    weeks: int = 0


@dataclass(slots=True)
class RepositoryStats:
    contributors: list[ContributorStats] = field(default_factory=list)
    weekly_commits: dict[str, int] = field(default_factory=dict)
    code_frequency: dict[str, dict[str, int]] = field(default_factory=dict)


@dataclass(slots=True)
class RepositoryMetadata:
    full_name: str
    description: str = ""
    default_branch: str = ""
    url: str = ""
    stars: int = 0
    forks: int = 0
    open_issues: int = 0
    license: str = ""
    languages: dict[str, int] = field(default_factory=dict)
    topics: list[str] = field(default_factory=list)
    extra: dict[str, Any] = field(default_factory=dict)


class RepositorySource(Protocol):
    """Read-only access to a hosted repository.

    `timeout` is the caller's remaining budget in seconds; adapters pass it to
    their transport. Failures raise `UpstreamUnavailable` or `OperationTimeout`.
    """

    def default_branch(self, owner: str, name: str, *, timeout: float | None = None) -> str:
        ...

    def fetch_tree(self, repo: RepositoryRef, *, timeout: float | None = None) -> list[TreeEntry]:
        ...

    def fetch_file_content(
        self, repo: RepositoryRef, path: str, *, timeout: float | None = None
    ) -> str:
        ...

    def list_commits(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> list[CommitInfo]:
        ...

    def list_pull_requests(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> list[PullRequestInfo]:
        ...

    def get_pull_request(
        self, repo: RepositoryRef, number: int, *, timeout: float | None = None
    ) -> PullRequestInfo:
        """One pull request with its per-file `changes`."""

    def list_issues(self, repo: RepositoryRef, *, timeout: float | None = None) -> list[IssueInfo]:
        ...

    def list_releases(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> list[ReleaseInfo]:
        ...

    def list_contributors(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> list[ContributorInfo]:
        ...

    def repository_stats(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> RepositoryStats:
        ...

    def repository_metadata(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> RepositoryMetadata:
        ...


def resolve_repository(
    source: RepositorySource, repo: RepositoryRef, deadline: Deadline
) -> RepositoryRef:
    """Fill in the default branch when the reference names none."""

    if repo.is_resolved:
        return repo
    deadline.check()
    branch = source.default_branch(repo.owner, repo.name, timeout=deadline.remaining())
    deadline.check()
    return repo.with_branch(branch)
