"""FastAPI entrypoint for route/index/answer/graph/artifact/trace endpoints."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict
from typing import Any, Literal

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from repo_navigator.agent.llm import ChatModelGenerator, TextGenerator, UnconfiguredGenerator
from repo_navigator.agent.navigator import RepositoryNavigator
from repo_navigator.config import NavigatorConfig
from repo_navigator.errors import InputError, NavigatorError, OperationTimeout, UpstreamUnavailable
from repo_navigator.graph.builder import ArchitectureGraph
from repo_navigator.graph.store import GraphStore, InMemoryGraphStore, SqliteGraphStore
from repo_navigator.ingest.embedder import Embedder, HashingEmbedder, LangChainEmbedder
from repo_navigator.obs.tracing import TraceStore
from repo_navigator.retrieval.vector_store import FaissVectorIndex, InMemoryVectorIndex, VectorIndex
from repo_navigator.sources.github import GitHubSource
from repo_navigator.types import RepositoryRef

LOG = logging.getLogger(__name__)

_EMBEDDING_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


def _create_llm(request_timeout: float) -> Any:
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        return None

    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=os.getenv("OPENAI_MODEL", "gpt-4o-mini"),
        temperature=0,
        timeout=request_timeout,
        max_retries=1,
    )


def _create_embedder(request_timeout: float) -> Embedder:
    if not os.getenv("OPENAI_API_KEY"):
        return HashingEmbedder()

    from langchain_openai import OpenAIEmbeddings

    model = os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small")
    return LangChainEmbedder(
        OpenAIEmbeddings(model=model, timeout=request_timeout, max_retries=1),
        dimension=_EMBEDDING_DIMENSIONS.get(model, 1536),
    )


def _create_vector_index() -> VectorIndex:
    if os.getenv("REPO_NAVIGATOR_VECTOR_STORE", "memory").lower() == "faiss":
        return FaissVectorIndex()
    return InMemoryVectorIndex()


def _create_graph_store() -> GraphStore:
    db_path = os.getenv("REPO_NAVIGATOR_GRAPH_DB")
    if db_path:
        return SqliteGraphStore(db_path)
    return InMemoryGraphStore()


def build_navigator() -> RepositoryNavigator:
    config = NavigatorConfig()
    request_timeout = config.timeouts.request_seconds
    llm = _create_llm(request_timeout)
    generator: TextGenerator = (
        ChatModelGenerator(llm)
        if llm is not None
        else UnconfiguredGenerator("OPENAI_API_KEY is not set")
    )
    return RepositoryNavigator(
        source=GitHubSource(os.getenv("GITHUB_TOKEN")),
        embedder=_create_embedder(request_timeout),
        vector_index=_create_vector_index(),
        generator=generator,
        graph_store=_create_graph_store(),
        trace_store=TraceStore(),
        config=config,
    )


class RepositoryRequest(BaseModel):
    repository: str = Field(min_length=1, description="owner/name or a github.com URL")
    branch: str | None = None
    timeout: float | None = Field(default=None, gt=0)

    def ref(self) -> RepositoryRef:
        return RepositoryRef.parse(self.repository, self.branch)


class RouteRequest(BaseModel):
    question: str = Field(min_length=1)
    timeout: float | None = Field(default=None, gt=0)


class IndexRequest(RepositoryRequest):
    force: bool = False


class AnswerRequest(RepositoryRequest):
    question: str = Field(min_length=1)
    top_k: int | None = Field(default=None, ge=1)


class RetrieveRequest(BaseModel):
    namespace: str = Field(min_length=1)
    question: str = Field(min_length=1)
    top_k: int = Field(default=5, ge=1)
    timeout: float | None = Field(default=None, gt=0)


class WalkthroughRequest(RepositoryRequest):
    focus_path: str | None = None
    entry_points: list[str] = Field(default_factory=list)


class FunctionRequest(RepositoryRequest):
    path: str = Field(min_length=1)
    function_name: str = ""
    line_start: int | None = Field(default=None, ge=1)
    line_end: int | None = Field(default=None, ge=1)


class ArtifactRequest(BaseModel):
    repository: str | None = None
    branch: str | None = None
    code: str = ""
    language: str = ""
    instructions: str = ""
    timeout: float | None = Field(default=None, gt=0)

    def ref(self) -> RepositoryRef:
        if not self.repository:
            raise InputError("repository is required for this artifact")
        return RepositoryRef.parse(self.repository, self.branch)


def _graph_payload(graph: ArchitectureGraph) -> dict[str, Any]:
    return {
        "namespace": graph.namespace,
        "nodes": [asdict(node) for node in graph.nodes],
        "edges": [asdict(edge) for edge in graph.edges],
        "skipped_files": graph.skipped_files,
    }


def create_app(navigator: RepositoryNavigator | None = None) -> FastAPI:
    app = FastAPI(title="Repository Navigator", version="0.1.0")
    nav = navigator or build_navigator()
    app.state.navigator = nav

    @app.exception_handler(NavigatorError)
    async def _navigator_error(request: Request, exc: NavigatorError) -> JSONResponse:
        if isinstance(exc, InputError):
            status = 400
        elif isinstance(exc, OperationTimeout):
            status = 504
        elif isinstance(exc, UpstreamUnavailable):
            status = 502
        else:
            status = 500
        LOG.warning("%s %s failed with %d: %s", request.method, request.url.path, status, exc)
        return JSONResponse(status_code=status, content={"detail": str(exc)})

    @app.get("/health")
    def health() -> dict[str, Any]:
        generator = nav.router.generator
        return {
            "status": "ok",
            "llm_configured": not isinstance(generator, UnconfiguredGenerator),
            "embedding_dimension": nav.indexer.embedder.dimension,
            "trace_count": len(nav.trace_store) if nav.trace_store is not None else 0,
        }

    @app.post("/route")
    def route(request: RouteRequest) -> dict[str, Any]:
        decision = nav.route_question(request.question, timeout=request.timeout)
        return asdict(decision)

    @app.post("/index")
    def index(request: IndexRequest) -> dict[str, Any]:
        report = nav.index_repository(request.ref(), force=request.force, timeout=request.timeout)
        return asdict(report)

    @app.post("/answer")
    def answer(request: AnswerRequest) -> dict[str, Any]:
        result = nav.answer_question(
            request.ref(), request.question, request.top_k, timeout=request.timeout
        )
        return asdict(result)

    @app.post("/retrieve")
    def retrieve(request: RetrieveRequest) -> dict[str, Any]:
        result = nav.retrieve_chunks(
            request.namespace, request.question, request.top_k, timeout=request.timeout
        )
        return {
            "namespace": result.namespace,
            "items": [
                {
                    "chunk_id": hit.chunk.chunk_id,
                    "path": hit.chunk.path,
                    "start_line": hit.chunk.start_line,
                    "end_line": hit.chunk.end_line,
                    "score": hit.score,
                    "rank": hit.rank,
                    "text": hit.chunk.text,
                }
                for hit in result
            ],
        }

    @app.post("/graph")
    def build_graph(request: RepositoryRequest) -> dict[str, Any]:
        return _graph_payload(nav.build_architecture_graph(request.ref(), timeout=request.timeout))

    @app.get("/graph")
    def get_graph(repository: str, branch: str | None = None) -> dict[str, Any]:
        ref = RepositoryRef.parse(repository, branch)
        return _graph_payload(nav.get_architecture_graph(ref))

    @app.delete("/index")
    def delete_index(repository: str, branch: str | None = None) -> dict[str, Any]:
        namespace = nav.delete_index(RepositoryRef.parse(repository, branch))
        return {"namespace": namespace, "deleted": True}

    @app.post("/artifacts/{kind}")
    def artifact(
        kind: Literal["readme", "dockerfile", "comments", "refactor"], request: ArtifactRequest
    ) -> dict[str, Any]:
        if kind == "readme":
            content = nav.generate_readme(request.ref(), timeout=request.timeout)
        elif kind == "dockerfile":
            content = nav.generate_dockerfile(request.ref(), timeout=request.timeout)
        elif kind == "comments":
            content = nav.comment_code(request.code, request.language, timeout=request.timeout)
        else:
            content = nav.refactor_code(
                request.code, request.language, request.instructions, timeout=request.timeout
            )
        return {"kind": kind, "content": content}

    @app.post("/pulls/{number}/summary")
    def pull_request_summary(number: int, request: RepositoryRequest) -> dict[str, Any]:
        return asdict(nav.summarize_pull_request(request.ref(), number, timeout=request.timeout))

    @app.post("/walkthrough")
    def walkthrough(request: WalkthroughRequest) -> dict[str, Any]:
        result = nav.generate_walkthrough(
            request.ref(),
            focus_path=request.focus_path,
            entry_points=request.entry_points,
            timeout=request.timeout,
        )
        return asdict(result)

    @app.post("/explain/function")
    def explain_function(request: FunctionRequest) -> dict[str, Any]:
        result = nav.explain_function(
            request.ref(),
            request.path,
            request.function_name,
            line_start=request.line_start,
            line_end=request.line_end,
            timeout=request.timeout,
        )
        return asdict(result)

    @app.post("/explain/architecture")
    def explain_architecture(request: RepositoryRequest) -> dict[str, Any]:
        return asdict(nav.explain_architecture(request.ref(), timeout=request.timeout))

    @app.get("/traces")
    def traces(limit: int = 20) -> dict[str, Any]:
        if nav.trace_store is None:
            return {"items": []}
        return {"items": [asdict(record) for record in nav.trace_store.list_recent(limit=limit)]}

    @app.get("/traces/{trace_id}")
    def trace_detail(trace_id: str) -> dict[str, Any]:
        if nav.trace_store is None:
            raise HTTPException(status_code=404, detail=f"Trace not found: {trace_id}")
        try:
            record = nav.trace_store.get(trace_id)
        except KeyError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return asdict(record)

    @app.get("/metrics")
    def metrics() -> dict[str, Any]:
        if nav.trace_store is None:
            return {"total_requests": 0}
        return nav.trace_store.summary()

    return app


app = create_app()
