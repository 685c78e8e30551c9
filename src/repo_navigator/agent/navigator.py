"""Repository navigator facade: the operations offered to a request layer."""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any

from repo_navigator.agent.artifacts import ArtifactGenerator, primary_language
from repo_navigator.agent.insights import (
    ArchitectureOverview,
    CodeInsightGenerator,
    CodeWalkthrough,
    FunctionExplanation,
    PullRequestSummary,
    detect_entry_points,
    select_focus_files,
)
from repo_navigator.agent.llm import TextGenerator
from repo_navigator.agent.router import QuestionRouter
from repo_navigator.agent.synthesizer import AnswerSynthesizer
from repo_navigator.config import NavigatorConfig
from repo_navigator.errors import InputError, UpstreamUnavailable
from repo_navigator.graph.builder import (
    ArchitectureGraph,
    ArchitectureGraphBuilder,
    structure_graph,
)
from repo_navigator.graph.store import GraphStore, InMemoryGraphStore
from repo_navigator.ingest.chunker import LineWindowChunker
from repo_navigator.ingest.embedder import Embedder
from repo_navigator.ingest.indexer import CodebaseIndexer
from repo_navigator.obs.tracing import Timer, TraceStore, estimate_token_count
from repo_navigator.retrieval.keyword_filter import KeywordFallbackFilter
from repo_navigator.retrieval.retriever import SemanticRetriever
from repo_navigator.retrieval.vector_store import VectorIndex
from repo_navigator.sources.base import RepositorySource, resolve_repository
from repo_navigator.timeouts import Deadline, OperationKind, TimeoutPolicy
from repo_navigator.types import (
    Domain,
    FilteredListing,
    IndexReport,
    RepositoryRef,
    RetrievalResult,
    RouterDecision,
    SynthesizedAnswer,
)

LOG = logging.getLogger(__name__)


class RepositoryNavigator:
    """Wires the pipeline components from injected capabilities.

    Every public method runs under one deadline taken from the timeout policy
    (interactive or indexing) unless an explicit `timeout` is passed.

    Design notes:
    - The router's domain selects the semantic retriever (code) or the keyword
      filter over a fetched listing (every other domain); both paths end in the
      answer synthesizer.
    - Answering never indexes implicitly. A repository that was never indexed
      yields an answer flagged `no_context`.
    """

    def __init__(
        self,
        source: RepositorySource,
        embedder: Embedder,
        vector_index: VectorIndex,
        generator: TextGenerator,
        *,
        graph_store: GraphStore | None = None,
        trace_store: TraceStore | None = None,
        config: NavigatorConfig | None = None,
    ) -> None:
        self.config = config or NavigatorConfig()
        self.source = source
        self.vector_index = vector_index
        self.timeouts = TimeoutPolicy(self.config.timeouts)
        self.router = QuestionRouter(generator)
        self.indexer = CodebaseIndexer(
            source,
            LineWindowChunker(self.config.chunking),
            embedder,
            vector_index,
            self.config.indexing,
        )
        self.retriever = SemanticRetriever(embedder, vector_index, self.config.retrieval)
        self.keyword_filter = KeywordFallbackFilter(self.config.keyword_filter)
        self.synthesizer = AnswerSynthesizer(generator, self.config.synthesis)
        self.artifacts = ArtifactGenerator(generator)
        self.insights = CodeInsightGenerator(generator)
        self.graph_builder = ArchitectureGraphBuilder(source)
        self.graph_store = graph_store or InMemoryGraphStore()
        self.trace_store = trace_store

    def route_question(self, question: str, *, timeout: float | None = None) -> RouterDecision:
        deadline = self._deadline(OperationKind.INTERACTIVE, "route question", timeout)
        return self.router.route(question, deadline=deadline)

    def index_repository(
        self, repo: RepositoryRef, *, force: bool = False, timeout: float | None = None
    ) -> IndexReport:
        deadline = self._deadline(OperationKind.INDEXING, "index repository", timeout)
        return self.indexer.index_repository(repo, force=force, deadline=deadline)

    def retrieve_chunks(
        self,
        namespace: str,
        question: str,
        top_k: int | None = None,
        *,
        timeout: float | None = None,
    ) -> RetrievalResult:
        deadline = self._deadline(OperationKind.INTERACTIVE, "retrieve chunks", timeout)
        return self.retriever.retrieve(namespace, question, top_k, deadline=deadline)

    def answer_question(
        self,
        repo: RepositoryRef,
        question: str,
        top_k: int | None = None,
        *,
        timeout: float | None = None,
    ) -> SynthesizedAnswer:
        text = (question or "").strip()
        if not text:
            raise InputError("question must not be empty")
        final_k = self.retriever.resolve_top_k(top_k)
        deadline = self._deadline(OperationKind.INTERACTIVE, "answer question", timeout)

        with Timer() as timer:
            resolved = resolve_repository(self.source, repo, deadline)
            decision = self.router.route(text, deadline=deadline)

            retrieval: RetrievalResult | None = None
            listing: FilteredListing | None = None
            extra: dict[str, Any] = {}
            if decision.domain is Domain.CODE:
                retrieval = self.retriever.retrieve(
                    resolved.namespace, text, final_k, deadline=deadline
                )
            else:
                items, extra = self._fetch_listing(decision.domain, resolved, deadline)
                listing = self.keyword_filter.filter(decision.domain, items, decision.keywords)

            answer = self.synthesizer.synthesize(
                resolved.full_name,
                text,
                decision,
                retrieval=retrieval,
                listing=listing,
                extra_data=extra,
                deadline=deadline,
            )
        answer.namespace = resolved.namespace
        self._record_trace(resolved, text, decision, answer, timer.elapsed_ms)
        return answer

    def build_architecture_graph(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> ArchitectureGraph:
        deadline = self._deadline(OperationKind.INDEXING, "build architecture graph", timeout)
        resolved = resolve_repository(self.source, repo, deadline)
        graph = self.graph_builder.build(resolved, deadline=deadline)
        deadline.check()
        # A rebuild replaces the stored graph so removed files disappear.
        self.graph_store.delete_namespace(graph.namespace)
        self.graph_store.upsert(graph.namespace, graph.nodes, graph.edges)
        return graph

    def get_architecture_graph(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> ArchitectureGraph:
        deadline = self._deadline(OperationKind.INTERACTIVE, "get architecture graph", timeout)
        resolved = resolve_repository(self.source, repo, deadline)
        nodes, edges = self.graph_store.query(resolved.namespace)
        return ArchitectureGraph(namespace=resolved.namespace, nodes=nodes, edges=edges)

    def delete_index(self, repo: RepositoryRef, *, timeout: float | None = None) -> str:
        """Remove vectors and graph data of the repository's namespace."""
        deadline = self._deadline(OperationKind.INTERACTIVE, "delete index", timeout)
        namespace = resolve_repository(self.source, repo, deadline).namespace
        self.vector_index.delete_namespace(namespace)
        self.graph_store.delete_namespace(namespace)
        LOG.info("Deleted namespace %s", namespace)
        return namespace

    def generate_readme(self, repo: RepositoryRef, *, timeout: float | None = None) -> str:
        deadline = self._deadline(OperationKind.INTERACTIVE, "generate readme", timeout)
        resolved = resolve_repository(self.source, repo, deadline)
        metadata = self.source.repository_metadata(resolved, timeout=deadline.remaining())
        deadline.check()
        tree = self.source.fetch_tree(resolved, timeout=deadline.remaining())
        files = [entry.path for entry in tree if entry.kind == "file"]
        return self.artifacts.generate_readme(metadata, files, deadline=deadline)

    def generate_dockerfile(self, repo: RepositoryRef, *, timeout: float | None = None) -> str:
        deadline = self._deadline(OperationKind.INTERACTIVE, "generate dockerfile", timeout)
        resolved = resolve_repository(self.source, repo, deadline)
        metadata = self.source.repository_metadata(resolved, timeout=deadline.remaining())
        return self.artifacts.generate_dockerfile(metadata, deadline=deadline)

    def comment_code(self, code: str, language: str, *, timeout: float | None = None) -> str:
        deadline = self._deadline(OperationKind.INTERACTIVE, "comment code", timeout)
        return self.artifacts.comment_code(code, language, deadline=deadline)

    def refactor_code(
        self, code: str, language: str, instructions: str, *, timeout: float | None = None
    ) -> str:
        deadline = self._deadline(OperationKind.INTERACTIVE, "refactor code", timeout)
        return self.artifacts.refactor_code(code, language, instructions, deadline=deadline)

    def summarize_pull_request(
        self, repo: RepositoryRef, number: int, *, timeout: float | None = None
    ) -> PullRequestSummary:
        if number <= 0:
            raise InputError("pull request number must be positive")
        deadline = self._deadline(OperationKind.INTERACTIVE, "summarize pull request", timeout)
        resolved = resolve_repository(self.source, repo, deadline)
        pull = self.source.get_pull_request(resolved, number, timeout=deadline.remaining())
        return self.insights.summarize_pull_request(resolved.full_name, pull, deadline=deadline)

    def generate_walkthrough(
        self,
        repo: RepositoryRef,
        *,
        focus_path: str | None = None,
        entry_points: list[str] | None = None,
        timeout: float | None = None,
    ) -> CodeWalkthrough:
        """Walk through the entry points, plus an optional focus file or directory.

        Entry points are detected from the primary language unless given.
        Paths that are not in the repository tree are rejected before any
        model call; a file that cannot be fetched is left out of the prompt.
        """
        deadline = self._deadline(OperationKind.INTERACTIVE, "generate walkthrough", timeout)
        resolved = resolve_repository(self.source, repo, deadline)
        metadata = self.source.repository_metadata(resolved, timeout=deadline.remaining())
        deadline.check()
        tree = self.source.fetch_tree(resolved, timeout=deadline.remaining())
        files = [entry.path for entry in tree if entry.kind == "file"]

        if entry_points:
            unknown = [path for path in entry_points if path not in files]
            if unknown:
                raise InputError(f"entry points not in repository: {', '.join(unknown)}")
            points = list(entry_points)
        else:
            points = detect_entry_points(files, primary_language(metadata))
        selected = list(points)
        if focus_path:
            focus = select_focus_files(files, focus_path)
            if not focus:
                raise InputError(f"focus path {focus_path} has no source files")
            selected.extend(path for path in focus if path not in selected)

        excerpts: dict[str, str] = {}
        for path in selected:
            deadline.check()
            try:
                excerpts[path] = self.source.fetch_file_content(
                    resolved, path, timeout=deadline.remaining()
                )
            except UpstreamUnavailable as exc:
                LOG.warning("Leaving %s out of the walkthrough: %s", path, exc)
        return self.insights.generate_walkthrough(metadata, points, excerpts, deadline=deadline)

    def explain_function(
        self,
        repo: RepositoryRef,
        path: str,
        function_name: str = "",
        *,
        line_start: int | None = None,
        line_end: int | None = None,
        timeout: float | None = None,
    ) -> FunctionExplanation:
        if not path.strip():
            raise InputError("path must not be empty")
        if not function_name.strip() and (line_start is None or line_end is None):
            raise InputError("a function name or a line range is required")
        deadline = self._deadline(OperationKind.INTERACTIVE, "explain function", timeout)
        resolved = resolve_repository(self.source, repo, deadline)
        text = self.source.fetch_file_content(resolved, path, timeout=deadline.remaining())
        return self.insights.explain_function(
            path,
            text,
            function_name,
            line_start=line_start,
            line_end=line_end,
            deadline=deadline,
        )

    def explain_architecture(
        self, repo: RepositoryRef, *, timeout: float | None = None
    ) -> ArchitectureOverview:
        """Overview from the stored graph, or from the file tree when none was built."""
        deadline = self._deadline(OperationKind.INTERACTIVE, "explain architecture", timeout)
        resolved = resolve_repository(self.source, repo, deadline)
        nodes, edges = self.graph_store.query(resolved.namespace)
        if nodes:
            graph = ArchitectureGraph(namespace=resolved.namespace, nodes=nodes, edges=edges)
        else:
            tree = self.source.fetch_tree(resolved, timeout=deadline.remaining())
            graph = structure_graph(tree)
            graph.namespace = resolved.namespace
        return self.insights.explain_architecture(
            resolved.full_name, graph, from_stored_graph=bool(nodes), deadline=deadline
        )

    def _deadline(self, kind: OperationKind, operation: str, timeout: float | None) -> Deadline:
        return self.timeouts.deadline(kind, operation, override=timeout)

    def _fetch_listing(
        self, domain: Domain, repo: RepositoryRef, deadline: Deadline
    ) -> tuple[list[Any], dict[str, Any]]:
        deadline.check()
        remaining = deadline.remaining()
        extra: dict[str, Any] = {}
        if domain is Domain.COMMITS:
            items: list[Any] = self.source.list_commits(repo, timeout=remaining)
        elif domain is Domain.PULLS:
            items = self.source.list_pull_requests(repo, timeout=remaining)
        elif domain is Domain.ISSUES:
            items = self.source.list_issues(repo, timeout=remaining)
        elif domain is Domain.RELEASES:
            items = self.source.list_releases(repo, timeout=remaining)
        elif domain is Domain.USERS:
            items = self.source.list_contributors(repo, timeout=remaining)
        elif domain is Domain.STATS:
            stats = self.source.repository_stats(repo, timeout=remaining)
            items = [stats]
            extra["stats"] = asdict(stats)
        elif domain is Domain.REPO_META:
            metadata = self.source.repository_metadata(repo, timeout=remaining)
            items = [metadata]
            extra["repository"] = asdict(metadata)
        else:
            raise InputError(f"no listing for domain {domain.value}")
        deadline.check()
        LOG.info("Fetched %d %s items for %s", len(items), domain.value, repo.full_name)
        return items, extra

    def _record_trace(
        self,
        repo: RepositoryRef,
        question: str,
        decision: RouterDecision,
        answer: SynthesizedAnswer,
        latency_ms: float,
    ) -> None:
        if self.trace_store is None:
            return
        context = " ".join(item.snippet for item in answer.relevant_files)
        record = self.trace_store.create_record(
            repository=repo.full_name,
            question=question,
            domain=answer.domain.value,
            parse_stage=decision.stage.value,
            keywords=list(decision.keywords),
            fallbacks=list(answer.fallbacks),
            relevant_paths=[item.path for item in answer.relevant_files],
            followup_count=len(answer.followup_questions),
            input_tokens=estimate_token_count(question) + estimate_token_count(context),
            output_tokens=estimate_token_count(answer.answer_text),
            latency_ms=latency_ms,
            namespace=answer.namespace,
        )
        answer.extra_data["trace_id"] = record.trace_id
