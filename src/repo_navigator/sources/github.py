"""GitHub REST adapter for the source-hosting capability."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any
from urllib.parse import quote

import httpx

from repo_navigator.errors import OperationTimeout, UpstreamUnavailable
from repo_navigator.sources.base import (
    CommitInfo,
    ContributorInfo,
    ContributorStats,
    FileChange,
    IssueInfo,
    PullRequestInfo,
    ReleaseInfo,
    RepositoryMetadata,
    RepositoryStats,
)
from repo_navigator.timeouts import Deadline
from repo_navigator.types import RepositoryRef, TreeEntry

LOG = logging.getLogger(__name__)

_API_VERSION = "2022-11-28"


class GitHubSource:
    """Reads trees, file contents and activity listings from the GitHub API.

    Listings are paginated up to `max_items`. Changed files are fetched for the
    first `detail_limit` commits and pull requests only, since each costs one
    extra request.
    """

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str = "https://api.github.com",
        client: httpx.Client | None = None,
        max_items: int = 100,
        detail_limit: int = 20,
        default_timeout: float = 30.0,
    ) -> None:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": _API_VERSION,
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.Client(
            base_url=base_url, headers=headers, timeout=default_timeout
        )
        self.max_items = max_items
        self.detail_limit = detail_limit

    def close(self) -> None:
        self._client.close()

    def default_branch(self, owner: str, name: str, *, timeout: float | None = None) -> str:
        payload = self._get_json(f"/repos/{owner}/{name}", _budget(timeout))
        branch = payload.get("default_branch")
        if not branch:
            raise UpstreamUnavailable("source", f"{owner}/{name} reports no default branch")
        return str(branch)

    def fetch_tree(self, repo: RepositoryRef, *, timeout: float | None = None) -> list[TreeEntry]:
        ref = quote(repo.branch or "HEAD", safe="")
        payload = self._get_json(
            f"/repos/{repo.full_name}/git/trees/{ref}",
            _budget(timeout),
            params={"recursive": "1"},
        )
        if payload.get("truncated"):
            LOG.warning("Tree for %s@%s is truncated by the API", repo.full_name, repo.branch)
        entries: list[TreeEntry] = []
        for item in payload.get("tree", []):
            kind = "dir" if item.get("type") == "tree" else "file"
            if item.get("type") not in {"tree", "blob"}:
                continue
            entries.append(TreeEntry(path=item["path"], kind=kind, size=int(item.get("size") or 0)))
        return entries

    def fetch_file_content(
        self, repo: RepositoryRef, path: str, *, timeout: float | None = None
    ) -> str:
        response = self._get(
            f"/repos/{repo.full_name}/contents/{quote(path, safe='/')}",
            _budget(timeout),
            params={"ref": repo.branch} if repo.branch else None,
            headers={"Accept": "application/vnd.github.raw"},
        )
        return response.content.decode("utf-8", errors="replace")

    def list_commits(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> list[CommitInfo]:
        budget = _budget(timeout)
        params = {"sha": repo.branch} if repo.branch else {}
        commits: list[CommitInfo] = []
        for index, item in enumerate(self._paginate(f"/repos/{repo.full_name}/commits", budget, params)):
            commit = item.get("commit") or {}
            author = commit.get("author") or {}
            info = CommitInfo(
                sha=item.get("sha", ""),
                message=commit.get("message", ""),
                author=author.get("name", ""),
                author_email=author.get("email", ""),
                commit_date=author.get("date", ""),
                url=item.get("html_url", ""),
            )
            if index < self.detail_limit and info.sha:
                self._add_commit_files(repo, info, budget)
            commits.append(info)
        return commits

    def list_pull_requests(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> list[PullRequestInfo]:
        budget = _budget(timeout)
        pulls: list[PullRequestInfo] = []
        for index, item in enumerate(
            self._paginate(f"/repos/{repo.full_name}/pulls", budget, {"state": "all"})
        ):
            info = _pull_request(item)
            if index < self.detail_limit:
                try:
                    files = self._paginate(
                        f"/repos/{repo.full_name}/pulls/{info.number}/files", budget, {}
                    )
                    info.files = [entry["filename"] for entry in files if entry.get("filename")]
                except UpstreamUnavailable as exc:
                    LOG.warning("Could not list files of pull request #%d: %s", info.number, exc)
            pulls.append(info)
        return pulls

    def get_pull_request(
        self, repo: RepositoryRef, number: int, *, timeout: float | None = None
    ) -> PullRequestInfo:
        budget = _budget(timeout)
        path = f"/repos/{repo.full_name}/pulls/{number}"
        info = _pull_request(self._get_json(path, budget))
        info.changes = [
            FileChange(
                filename=entry["filename"],
                status=entry.get("status", ""),
                additions=int(entry.get("additions") or 0),
                deletions=int(entry.get("deletions") or 0),
                patch=entry.get("patch") or "",
            )
            for entry in self._paginate(f"{path}/files", budget, {})
            if entry.get("filename")
        ]
        info.files = [change.filename for change in info.changes]
        return info

    def list_issues(self, repo: RepositoryRef, *, timeout: float | None = None) -> list[IssueInfo]:
        issues: list[IssueInfo] = []
        for item in self._paginate(
            f"/repos/{repo.full_name}/issues", _budget(timeout), {"state": "all"}
        ):
            if "pull_request" in item:
                continue
            issues.append(
                IssueInfo(
                    number=int(item["number"]),
                    title=item.get("title", ""),
                    state=item.get("state", ""),
                    created_at=item.get("created_at") or "",
                    closed_at=item.get("closed_at") or "",
                    author=(item.get("user") or {}).get("login", ""),
                    url=item.get("html_url", ""),
                    labels=[label["name"] for label in item.get("labels", []) if label.get("name")],
                    assignees=[
                        user["login"] for user in item.get("assignees", []) if user.get("login")
                    ],
                    description=item.get("body") or "",
                )
            )
        return issues

    def list_releases(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> list[ReleaseInfo]:
        return [
            ReleaseInfo(
                id=int(item["id"]),
                tag_name=item.get("tag_name", ""),
                name=item.get("name") or "",
                created_at=item.get("created_at") or "",
                published_at=item.get("published_at") or "",
                author=(item.get("author") or {}).get("login", ""),
                url=item.get("html_url", ""),
                pre_release=bool(item.get("prerelease")),
                description=item.get("body") or "",
                assets=[asset["name"] for asset in item.get("assets", []) if asset.get("name")],
            )
            for item in self._paginate(f"/repos/{repo.full_name}/releases", _budget(timeout), {})
        ]

    def list_contributors(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> list[ContributorInfo]:
        return [
            ContributorInfo(
                username=item.get("login", ""),
                contributions=int(item.get("contributions") or 0),
                url=item.get("html_url", ""),
                avatar_url=item.get("avatar_url", ""),
                is_bot=item.get("type") == "Bot",
            )
            for item in self._paginate(
                f"/repos/{repo.full_name}/contributors", _budget(timeout), {}
            )
        ]

    def repository_stats(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> RepositoryStats:
        budget = _budget(timeout)
        stats = RepositoryStats()
        # The statistics endpoints answer 202 with no body while GitHub computes them.
        for item in self._get_stats(f"/repos/{repo.full_name}/stats/contributors", budget):
            weeks = item.get("weeks") or []
            stats.contributors.append(
                ContributorStats(
                    author=(item.get("author") or {}).get("login", ""),
                    commits=int(item.get("total") or 0),
                    additions=sum(int(week.get("a") or 0) for week in weeks),
                    deletions=sum(int(week.get("d") or 0) for week in weeks),
                    weeks=sum(1 for week in weeks if week.get("c")),
                )
            )
        for item in self._get_stats(f"/repos/{repo.full_name}/stats/commit_activity", budget):
            stats.weekly_commits[_week(item.get("week"))] = int(item.get("total") or 0)
        for row in self._get_stats(f"/repos/{repo.full_name}/stats/code_frequency", budget):
            if len(row) == 3:
                stats.code_frequency[_week(row[0])] = {
                    "additions": int(row[1]),
                    "deletions": abs(int(row[2])),
                }
        stats.contributors.sort(key=lambda entry: entry.commits, reverse=True)
        return stats

    def repository_metadata(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> RepositoryMetadata:
        budget = _budget(timeout)
        payload = self._get_json(f"/repos/{repo.full_name}", budget)
        metadata = RepositoryMetadata(
            full_name=payload.get("full_name", repo.full_name),
            description=payload.get("description") or "",
            default_branch=payload.get("default_branch", ""),
            url=payload.get("html_url", ""),
            stars=int(payload.get("stargazers_count") or 0),
            forks=int(payload.get("forks_count") or 0),
            open_issues=int(payload.get("open_issues_count") or 0),
            license=((payload.get("license") or {}).get("spdx_id") or ""),
            topics=list(payload.get("topics") or []),
            extra={
                key: payload.get(key)
                for key in ("created_at", "updated_at", "pushed_at", "homepage", "archived")
            },
        )
        try:
            languages = self._get_json(f"/repos/{repo.full_name}/languages", budget)
            metadata.languages = {str(key): int(value) for key, value in languages.items()}
        except UpstreamUnavailable as exc:
            LOG.warning("Failed to get repository languages for %s: %s", repo.full_name, exc)
        return metadata

    def _add_commit_files(self, repo: RepositoryRef, info: CommitInfo, budget: Deadline | None) -> None:
        try:
            detail = self._get_json(f"/repos/{repo.full_name}/commits/{info.sha}", budget)
        except UpstreamUnavailable as exc:
            LOG.warning("Could not load files of commit %s: %s", info.sha[:12], exc)
            return
        for entry in detail.get("files", []):
            if entry.get("filename"):
                info.files_changed.append(entry["filename"])
            info.lines_added += int(entry.get("additions") or 0)
            info.lines_deleted += int(entry.get("deletions") or 0)

    def _get_stats(self, path: str, budget: Deadline | None) -> list[Any]:
        response = self._get(path, budget)
        if response.status_code == 202 or not response.content:
            LOG.info("Statistics at %s are still being computed", path)
            return []
        payload = _decode(response, path)
        return payload if isinstance(payload, list) else []

    def _paginate(
        self, path: str, budget: Deadline | None, params: dict[str, Any]
    ) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        url: str | None = path
        query: dict[str, Any] | None = {**params, "per_page": min(100, self.max_items)}
        while url and len(items) < self.max_items:
            response = self._get(url, budget, params=query)
            page = _decode(response, path)
            if not isinstance(page, list):
                raise UpstreamUnavailable("source", f"expected a list from {path}")
            items.extend(page)
            url = response.links.get("next", {}).get("url")
            query = None  # the next link already carries the query string
        return items[: self.max_items]

    def _get_json(self, path: str, budget: Deadline | None, **kwargs: Any) -> dict[str, Any]:
        payload = _decode(self._get(path, budget, **kwargs), path)
        if not isinstance(payload, dict):
            raise UpstreamUnavailable("source", f"expected an object from {path}")
        return payload

    def _get(
        self,
        path: str,
        budget: Deadline | None,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        timeout: Any = httpx.USE_CLIENT_DEFAULT
        if budget is not None:
            budget.check()
            timeout = budget.remaining()
        try:
            response = self._client.get(path, params=params, headers=headers, timeout=timeout)
        except httpx.TimeoutException as exc:
            raise OperationTimeout("source request", budget.budget_seconds if budget else 0.0) from exc
        except httpx.HTTPError as exc:
            raise UpstreamUnavailable("source", f"GET {path} failed: {exc}") from exc
        if response.status_code >= 400:
            raise UpstreamUnavailable(
                "source", f"GET {path} returned HTTP {response.status_code}"
            )
        return response


def _pull_request(item: dict[str, Any]) -> PullRequestInfo:
    return PullRequestInfo(
        number=int(item["number"]),
        title=item.get("title", ""),
        state=item.get("state", ""),
        created_at=item.get("created_at") or "",
        closed_at=item.get("closed_at") or "",
        merged_at=item.get("merged_at") or "",
        author=(item.get("user") or {}).get("login", ""),
        url=item.get("html_url", ""),
        labels=[label["name"] for label in item.get("labels", []) if label.get("name")],
        reviewers=[
            user["login"] for user in item.get("requested_reviewers", []) if user.get("login")
        ],
        description=item.get("body") or "",
        additions=int(item.get("additions") or 0),
        deletions=int(item.get("deletions") or 0),
    )


def _decode(response: httpx.Response, path: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamUnavailable("source", f"GET {path} returned invalid JSON") from exc


def _budget(timeout: float | None) -> Deadline | None:
    if timeout is None:
        return None
    if timeout <= 0:
        raise OperationTimeout("source request", 0.0)
    return Deadline("source request", timeout)


def _week(timestamp: Any) -> str:
    return datetime.fromtimestamp(int(timestamp or 0), tz=timezone.utc).date().isoformat()
