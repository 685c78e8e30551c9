import httpx
import pytest

from repo_navigator.errors import OperationTimeout, UpstreamUnavailable
from repo_navigator.sources.github import GitHubSource
from repo_navigator.types import RepositoryRef

REPO = RepositoryRef("octo", "demo", "main")
API = "https://api.github.com"


def _source(routes: dict[str, object], **kwargs) -> tuple[GitHubSource, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        key = request.url.path
        if request.url.params.get("page"):
            key = f"{key}?page={request.url.params['page']}"
        route = routes.get(key)
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(route, httpx.Response):
            return route
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    client = httpx.Client(base_url=API, transport=httpx.MockTransport(handler))
    return GitHubSource(client=client, **kwargs), seen


def test_default_branch_and_tree() -> None:
    source, _ = _source(
        {
            "/repos/octo/demo": {"default_branch": "trunk"},
            "/repos/octo/demo/git/trees/main": {
                "tree": [
                    {"path": "utils", "type": "tree"},
                    {"path": "utils/math.go", "type": "blob", "size": 120},
                    {"path": "vendor/lib", "type": "commit"},
                ]
            },
        }
    )

    assert source.default_branch("octo", "demo") == "trunk"
    tree = source.fetch_tree(REPO)
    assert [(entry.path, entry.kind, entry.size) for entry in tree] == [
        ("utils", "dir", 0),
        ("utils/math.go", "file", 120),
    ]


def test_file_content_is_requested_raw_at_branch() -> None:
    source, seen = _source(
        {"/repos/octo/demo/contents/utils/math.go": httpx.Response(200, content=b"package utils\n")}
    )

    assert source.fetch_file_content(REPO, "utils/math.go") == "package utils\n"
    assert seen[0].url.params["ref"] == "main"
    assert seen[0].headers["Accept"] == "application/vnd.github.raw"


def test_listings_follow_pagination_links() -> None:
    next_link = {"Link": f'<{API}/repos/octo/demo/releases?page=2>; rel="next"'}
    source, _ = _source(
        {
            "/repos/octo/demo/releases": httpx.Response(
                200, json=[{"id": 2, "tag_name": "v2"}], headers=next_link
            ),
            "/repos/octo/demo/releases?page=2": [{"id": 1, "tag_name": "v1", "prerelease": True}],
        }
    )

    releases = source.list_releases(REPO)

    assert [release.tag_name for release in releases] == ["v2", "v1"]
    assert releases[1].pre_release


def test_issues_exclude_pull_requests() -> None:
    source, _ = _source(
        {
            "/repos/octo/demo/issues": [
                {"number": 3, "title": "Bug", "state": "open", "labels": [{"name": "security"}]},
                {"number": 2, "title": "PR", "state": "open", "pull_request": {}},
            ]
        }
    )

    issues = source.list_issues(REPO)

    assert [issue.number for issue in issues] == [3]
    assert issues[0].labels == ["security"]


def test_commits_carry_changed_files_for_first_items_only() -> None:
    source, _ = _source(
        {
            "/repos/octo/demo/commits": [
                {"sha": "aaa", "commit": {"message": "fix", "author": {"name": "Ann"}}},
                {"sha": "bbb", "commit": {"message": "init", "author": {"name": "Bob"}}},
            ],
            "/repos/octo/demo/commits/aaa": {
                "files": [{"filename": "cache.py", "additions": 3, "deletions": 1}]
            },
        },
        detail_limit=1,
    )

    commits = source.list_commits(REPO)

    assert commits[0].files_changed == ["cache.py"]
    assert (commits[0].lines_added, commits[0].lines_deleted) == (3, 1)
    assert commits[1].files_changed == []


def test_statistics_still_computing_yield_empty_results() -> None:
    source, _ = _source(
        {
            "/repos/octo/demo/stats/contributors": httpx.Response(202),
            "/repos/octo/demo/stats/commit_activity": [{"week": 0, "total": 4}],
            "/repos/octo/demo/stats/code_frequency": [[0, 10, -3]],
        }
    )

    stats = source.repository_stats(REPO)

    assert stats.contributors == []
    assert stats.weekly_commits == {"1970-01-01": 4}
    assert stats.code_frequency == {"1970-01-01": {"additions": 10, "deletions": 3}}


def test_metadata_tolerates_missing_languages() -> None:
    source, _ = _source(
        {
            "/repos/octo/demo": {
                "full_name": "octo/demo",
                "stargazers_count": 5,
                "license": {"spdx_id": "MIT"},
                "topics": ["cli"],
            }
        }
    )

    metadata = source.repository_metadata(REPO)

    assert (metadata.stars, metadata.license, metadata.topics) == (5, "MIT", ["cli"])
    assert metadata.languages == {}


def test_errors_map_to_navigator_taxonomy() -> None:
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    source, _ = _source({"/repos/octo/demo/git/trees/main": _timeout})

    with pytest.raises(UpstreamUnavailable):
        source.list_contributors(REPO)
    with pytest.raises(OperationTimeout):
        source.fetch_tree(REPO, timeout=5)


def test_non_json_success_bodies_are_upstream_errors() -> None:
    def html(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>rate limit page</html>")

    source, _ = _source({"/repos/octo/demo": html, "/repos/octo/demo/contributors": html})

    with pytest.raises(UpstreamUnavailable, match="invalid JSON"):
        source.default_branch("octo", "demo")
    with pytest.raises(UpstreamUnavailable, match="invalid JSON"):
        source.list_contributors(REPO)


def test_single_pull_request_carries_per_file_changes() -> None:
    source, _ = _source(
        {
            "/repos/octo/demo/pulls/7": {
                "number": 7,
                "title": "Add subtraction",
                "state": "open",
                "user": {"login": "ada"},
                "body": "Adds Sub",
                "additions": 12,
                "deletions": 2,
            },
            "/repos/octo/demo/pulls/7/files": [
                {
                    "filename": "utils/math.go",
                    "status": "modified",
                    "additions": 10,
                    "deletions": 2,
                    "patch": "@@ -1 +1 @@\n+func Sub(a, b int) int",
                },
                {"filename": "utils/math_test.go", "status": "added", "additions": 2},
            ],
        }
    )

    pull = source.get_pull_request(REPO, 7)

    assert (pull.number, pull.author, pull.additions, pull.deletions) == (7, "ada", 12, 2)
    assert pull.files == ["utils/math.go", "utils/math_test.go"]
    assert pull.changes[0].patch.startswith("@@")
    assert pull.changes[1].deletions == 0
    with pytest.raises(UpstreamUnavailable):
        source.get_pull_request(REPO, 8)
