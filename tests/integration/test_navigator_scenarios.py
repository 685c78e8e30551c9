import time

import pytest

from conftest import FailingGenerator, FakeGenerator, FakeSource
from repo_navigator.agent.navigator import RepositoryNavigator
from repo_navigator.errors import InputError, OperationTimeout, UpstreamUnavailable
from repo_navigator.ingest.embedder import HashingEmbedder
from repo_navigator.obs.tracing import TraceStore
from repo_navigator.retrieval.vector_store import InMemoryVectorIndex
from repo_navigator.sources.base import (
    FileChange,
    IssueInfo,
    PullRequestInfo,
    ReleaseInfo,
    RepositoryMetadata,
)
from repo_navigator.types import Domain, RepositoryRef

ANSWER = """Addition is implemented by `Add` in utils/math.go.

### Follow-up questions
- How is Add tested?
- Where is Add called?
"""


def _navigator(source: FakeSource, generator, **kwargs) -> RepositoryNavigator:
    return RepositoryNavigator(
        source=source,
        embedder=HashingEmbedder(),
        vector_index=InMemoryVectorIndex(),
        generator=generator,
        **kwargs,
    )


def test_indexed_code_question_cites_the_implementing_file(demo_source) -> None:
    generator = FakeGenerator(
        router_reply='{"domain": "code", "explanation": "implementation", "keywords": ["addition"]}',
        answer_reply=ANSWER,
    )
    traces = TraceStore()
    navigator = _navigator(demo_source, generator, trace_store=traces)
    repo = RepositoryRef("octo", "demo", "main")

    navigator.index_repository(repo)
    answer = navigator.answer_question(repo, "How is addition implemented?")

    assert answer.domain is Domain.CODE
    assert "utils/math.go" in [item.path for item in answer.relevant_files]
    assert answer.followup_questions == ["How is Add tested?", "Where is Add called?"]
    assert answer.namespace == "octo/demo@main"
    assert answer.fallbacks == []
    record = traces.get(answer.extra_data["trace_id"])
    assert record.domain == "code"
    assert "utils/math.go" in record.relevant_paths


def test_release_question_uses_release_listing(demo_source) -> None:
    demo_source.releases = [ReleaseInfo(id=2, tag_name="v1.1.0", description="Faster Add")]
    generator = FakeGenerator(router_reply="Hard to say.", answer_reply="v1.1.0 made Add faster.")
    navigator = _navigator(demo_source, generator)

    decision = navigator.route_question("What changed in the last release?")
    answer = navigator.answer_question(
        RepositoryRef("octo", "demo", "main"), "What changed in the last release?"
    )

    assert decision.domain is Domain.RELEASES
    assert answer.domain is Domain.RELEASES
    assert '"tag_name": "v1.1.0"' in generator.prompts[-1]


def test_unmatched_issue_keywords_fall_back_to_recent_issues(demo_source) -> None:
    demo_source.issues = [
        IssueInfo(number=number, title=f"Performance regression {number}", state="open")
        for number in range(40, 0, -1)
    ]
    generator = FakeGenerator(router_reply='{"domain": "issues", "keywords": ["security"]}')
    navigator = _navigator(demo_source, generator)

    answer = navigator.answer_question(
        RepositoryRef("octo", "demo", "main"), "Are there security issues?"
    )

    assert answer.fallbacks == ["recent_items_fallback"]
    assert answer.extra_data["filter_mode"] == "recent_fallback"
    assert answer.extra_data["item_count"] == 20
    assert "Performance regression 40" in generator.prompts[-1]
    assert "Performance regression 20" not in generator.prompts[-1]


def test_repository_without_sources_answers_without_context() -> None:
    source = FakeSource(files={"logo.png": "binary"})
    generator = FakeGenerator(answer_reply="The repository is not indexed.")
    navigator = _navigator(source, generator)
    repo = RepositoryRef("octo", "empty")

    report = navigator.index_repository(repo)
    result = navigator.retrieve_chunks(report.namespace, "How is addition implemented?", 5)
    answer = navigator.answer_question(repo, "How is addition implemented?")

    assert report.chunk_count == 0
    assert result.is_empty
    assert answer.fallbacks == ["no_context"]
    assert answer.relevant_files == []


def test_repo_meta_answer_carries_repository_payload(demo_source) -> None:
    demo_source.metadata = RepositoryMetadata(full_name="octo/demo", license="MIT")
    navigator = _navigator(demo_source, FakeGenerator(router_reply='{"domain": "repo"}'))

    answer = navigator.answer_question(RepositoryRef("octo", "demo"), "Which license applies?")

    assert answer.domain is Domain.REPO_META
    assert answer.extra_data["repository"]["license"] == "MIT"


def test_generation_failure_surfaces_to_caller(demo_source) -> None:
    navigator = _navigator(demo_source, FailingGenerator())

    with pytest.raises(UpstreamUnavailable):
        navigator.answer_question(RepositoryRef("octo", "demo", "main"), "How does Add work?")


def test_generation_slower_than_deadline_times_out_without_partial_answer(demo_source) -> None:
    class SlowAnswerGenerator(FakeGenerator):
        def generate(self, prompt, *, timeout=None):
            reply = super().generate(prompt, timeout=timeout)
            if "router for questions" not in prompt:
                time.sleep(0.3)
            return reply

    traces = TraceStore()
    navigator = _navigator(demo_source, SlowAnswerGenerator(answer_reply=ANSWER), trace_store=traces)
    repo = RepositoryRef("octo", "demo", "main")
    navigator.index_repository(repo)

    with pytest.raises(OperationTimeout):
        navigator.answer_question(repo, "How does Add work?", timeout=0.1)
    assert len(traces) == 0


def test_empty_question_is_rejected_before_any_call(demo_source) -> None:
    generator = FakeGenerator()
    navigator = _navigator(demo_source, generator)

    with pytest.raises(InputError):
        navigator.answer_question(RepositoryRef("octo", "demo", "main"), "  ")
    assert generator.prompts == []


def test_delete_index_removes_vectors_and_graph(demo_source) -> None:
    navigator = _navigator(demo_source, FakeGenerator())
    repo = RepositoryRef("octo", "demo", "main")
    navigator.index_repository(repo)
    navigator.build_architecture_graph(repo)

    namespace = navigator.delete_index(repo)

    assert navigator.vector_index.describe_namespace(namespace).vector_count == 0
    assert navigator.get_architecture_graph(repo).nodes == []


def test_artifacts_make_one_generation_call_each(demo_source) -> None:
    demo_source.metadata = RepositoryMetadata(
        full_name="octo/demo", languages={"Go": 1200, "Shell": 40}
    )
    generator = FakeGenerator(answer_reply="generated")
    navigator = _navigator(demo_source, generator)
    repo = RepositoryRef("octo", "demo", "main")

    assert navigator.generate_readme(repo) == "generated"
    assert "- utils/math.go" in generator.prompts[-1]
    assert navigator.generate_dockerfile(repo) == "generated"
    assert "main programming language of this repository is: Go" in generator.prompts[-1]
    assert navigator.comment_code("x = 1", "python") == "generated"
    assert navigator.refactor_code("x = 1", "python", "use constants") == "generated"
    assert len(generator.prompts) == 4
    with pytest.raises(InputError):
        navigator.refactor_code("x = 1", "python", "")


def test_pull_request_summary_reads_the_single_pull_request(demo_source, demo_repo) -> None:
    demo_source.pulls = [
        PullRequestInfo(
            number=7,
            title="Add subtraction",
            state="open",
            additions=12,
            deletions=2,
            changes=[
                FileChange("utils/math.go", "modified", 10, 2, "@@ +func Sub(a, b int) int"),
                FileChange("utils/math_test.go", "added", 2, 0),
            ],
        )
    ]
    generator = FakeGenerator(
        answer_reply='{"description": "Adds Sub", "file_groups": [{"name": "utils", "files": []}]}'
    )
    navigator = _navigator(demo_source, generator)

    summary = navigator.summarize_pull_request(demo_repo, 7)

    assert summary.repository == "octo/demo"
    assert summary.description == "Adds Sub"
    assert summary.file_groups[0].files == ["utils/math.go", "utils/math_test.go"]
    assert "+func Sub" in generator.prompts[0]
    with pytest.raises(UpstreamUnavailable):
        navigator.summarize_pull_request(demo_repo, 8)
    with pytest.raises(InputError):
        navigator.summarize_pull_request(demo_repo, 0)


def test_walkthrough_covers_entry_points_and_focus_directory(demo_source, demo_repo) -> None:
    generator = FakeGenerator(answer_reply="## Walkthrough")
    navigator = _navigator(demo_source, generator)

    result = navigator.generate_walkthrough(demo_repo, focus_path="utils")

    assert result.entry_points == ["cmd/main.go"]
    assert result.files == ["cmd/main.go", "utils/math.go"]
    assert "File: utils/math.go\n```go" in generator.prompts[0]
    assert result.walkthrough == "## Walkthrough"


def test_walkthrough_leaves_out_unreadable_files(demo_source, demo_repo) -> None:
    demo_source.failing_paths = {"utils/math.go"}
    navigator = _navigator(demo_source, FakeGenerator())

    result = navigator.generate_walkthrough(demo_repo, focus_path="utils/math.go")

    assert result.files == ["cmd/main.go"]


def test_walkthrough_rejects_paths_outside_the_tree(demo_source, demo_repo) -> None:
    generator = FakeGenerator()
    navigator = _navigator(demo_source, generator)

    with pytest.raises(InputError):
        navigator.generate_walkthrough(demo_repo, entry_points=["cmd/missing.go"])
    with pytest.raises(InputError):
        navigator.generate_walkthrough(demo_repo, focus_path="docs")
    assert generator.prompts == []


def test_explain_function_fetches_the_file_and_finds_the_body(demo_source, demo_repo) -> None:
    navigator = _navigator(demo_source, FakeGenerator(answer_reply="Adds numbers."))

    result = navigator.explain_function(demo_repo, "utils/math.go", "Add")

    assert (result.start_line, result.end_line) == (4, 6)
    assert "return a + b" in result.code
    assert demo_source.fetched == ["utils/math.go"]
    with pytest.raises(InputError):
        navigator.explain_function(demo_repo, "utils/math.go")


def test_architecture_explanation_prefers_the_stored_graph(demo_source, demo_repo) -> None:
    navigator = _navigator(demo_source, FakeGenerator(answer_reply="Two packages."))

    from_tree = navigator.explain_architecture(demo_repo)
    assert not from_tree.from_stored_graph
    assert from_tree.components == {"assets": "module", "cmd": "module", "utils": "utility"}
    assert from_tree.key_files == []

    navigator.build_architecture_graph(demo_repo)
    from_store = navigator.explain_architecture(demo_repo)
    assert from_store.from_stored_graph
    assert from_store.key_files == ["cmd/main.go"]
    assert from_store.import_count == 1
