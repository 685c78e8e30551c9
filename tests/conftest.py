from __future__ import annotations

from dataclasses import dataclass, field

import pytest

from repo_navigator.errors import UpstreamUnavailable
from repo_navigator.sources.base import (
    CommitInfo,
    ContributorInfo,
    IssueInfo,
    PullRequestInfo,
    ReleaseInfo,
    RepositoryMetadata,
    RepositoryStats,
)
from repo_navigator.types import RepositoryRef, TreeEntry


@dataclass
class FakeSource:
    """In-memory repository source; listings are most recent first."""

    files: dict[str, str] = field(default_factory=dict)
    default: str = "main"
    extra_tree: list[TreeEntry] = field(default_factory=list)
    failing_paths: set[str] = field(default_factory=set)
    commits: list[CommitInfo] = field(default_factory=list)
    pulls: list[PullRequestInfo] = field(default_factory=list)
    issues: list[IssueInfo] = field(default_factory=list)
    releases: list[ReleaseInfo] = field(default_factory=list)
    contributors: list[ContributorInfo] = field(default_factory=list)
    stats: RepositoryStats = field(default_factory=RepositoryStats)
    metadata: RepositoryMetadata | None = None
    fetched: list[str] = field(default_factory=list)

    def default_branch(self, owner, name, *, timeout=None):
        return self.default

    def fetch_tree(self, repo, *, timeout=None):
        entries = [
            TreeEntry(path=path, kind="file", size=len(text.encode("utf-8")))
            for path, text in self.files.items()
        ]
        return entries + list(self.extra_tree)

    def fetch_file_content(self, repo, path, *, timeout=None):
        self.fetched.append(path)
        if path in self.failing_paths:
            raise UpstreamUnavailable("source", f"cannot fetch {path}")
        return self.files[path]

    def list_commits(self, repo, *, timeout=None):
        return list(self.commits)

    def list_pull_requests(self, repo, *, timeout=None):
        return list(self.pulls)

    def get_pull_request(self, repo, number, *, timeout=None):
        for pull in self.pulls:
            if pull.number == number:
                return pull
        raise UpstreamUnavailable("source", f"GET pull request {number} returned 404")

    def list_issues(self, repo, *, timeout=None):
        return list(self.issues)

    def list_releases(self, repo, *, timeout=None):
        return list(self.releases)

    def list_contributors(self, repo, *, timeout=None):
        return list(self.contributors)

    def repository_stats(self, repo, *, timeout=None):
        return self.stats

    def repository_metadata(self, repo, *, timeout=None):
        return self.metadata or RepositoryMetadata(full_name=repo.full_name)


class FakeGenerator:
    """Scripted text generator: one reply for routing prompts, one for the rest."""

    def __init__(self, router_reply: str = '{"domain": "code", "keywords": []}', answer_reply: str = "ok") -> None:
        self.router_reply = router_reply
        self.answer_reply = answer_reply
        self.prompts: list[str] = []

    def generate(self, prompt, *, timeout=None):
        self.prompts.append(prompt)
        if "router for questions" in prompt:
            return self.router_reply
        return self.answer_reply


class FailingGenerator:
    def __init__(self) -> None:
        self.calls = 0

    def generate(self, prompt, *, timeout=None):
        self.calls += 1
        raise UpstreamUnavailable("text-generation", "provider down")


MATH_GO = """package utils

// Add returns the sum of two integers. It implements addition.
func Add(a int, b int) int {
\treturn a + b
}
"""


@pytest.fixture
def demo_repo() -> RepositoryRef:
    return RepositoryRef("octo", "demo", "main")


@pytest.fixture
def demo_source() -> FakeSource:
    return FakeSource(
        files={
            "utils/math.go": MATH_GO,
            "cmd/main.go": 'package main\n\nimport "github.com/octo/demo/utils"\n\nfunc main() {\n\tprintln(utils.Add(1, 2))\n}\n',
            "README.md": "# demo\n\nA tiny demo repository.\n",
            "assets/logo.png": "binary",
        }
    )
