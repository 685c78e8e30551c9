"""Semantic retriever over one namespace of the vector index."""

from __future__ import annotations

import logging

from repo_navigator.config import RetrievalConfig
from repo_navigator.errors import InputError
from repo_navigator.ingest.embedder import Embedder
from repo_navigator.retrieval.vector_store import VectorIndex
from repo_navigator.timeouts import Deadline
from repo_navigator.types import Chunk, RetrievalResult, ScoredChunk, VectorHit

LOG = logging.getLogger(__name__)


class SemanticRetriever:
    """Embeds a question and ranks the nearest chunks in a namespace.

    The index is queried for `top_k * oversample_factor` candidates so that
    hits dropped for foreign or incomplete metadata do not shrink the result
    below `top_k`. Final ordering is by descending score with ties broken by
    chunk id, which keeps rankings stable for an unchanged index.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_index: VectorIndex,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.embedder = embedder
        self.vector_index = vector_index
        self.config = config or RetrievalConfig()

    def resolve_top_k(self, top_k: int | None) -> int:
        if top_k is None:
            return self.config.default_top_k
        if top_k <= 0:
            raise InputError("top_k must be a positive integer")
        return min(top_k, self.config.max_top_k)

    def retrieve(
        self,
        namespace: str,
        question: str,
        top_k: int | None = None,
        *,
        deadline: Deadline | None = None,
    ) -> RetrievalResult:
        if not namespace:
            raise InputError("namespace must not be empty")
        text = (question or "").strip()
        if not text:
            raise InputError("question must not be empty")
        final_k = self.resolve_top_k(top_k)

        if deadline is not None:
            deadline.check()
        vector = self.embedder.embed_query(
            text, timeout=deadline.remaining() if deadline is not None else None
        )
        if deadline is not None:
            deadline.check()
        hits = self.vector_index.query(
            namespace, vector, final_k * self.config.oversample_factor
        )
        if deadline is not None:
            deadline.check()

        scored: list[ScoredChunk] = []
        for hit in hits:
            chunk = _chunk_from_hit(namespace, hit)
            if chunk is not None:
                scored.append(ScoredChunk(chunk=chunk, score=hit.score))

        scored.sort(key=lambda item: (-item.score, item.chunk.chunk_id))
        scored = scored[:final_k]
        for rank, item in enumerate(scored, start=1):
            item.rank = rank

        if not scored:
            LOG.info("No indexed context for namespace %s", namespace)
        return RetrievalResult(namespace=namespace, hits=scored)


def _chunk_from_hit(namespace: str, hit: VectorHit) -> Chunk | None:
    metadata = hit.metadata or {}
    if metadata.get("namespace", namespace) != namespace:
        LOG.warning("Dropping hit %s from foreign namespace %s", hit.id, metadata.get("namespace"))
        return None
    path = metadata.get("path")
    if not path:
        LOG.warning("Dropping hit %s without a path", hit.id)
        return None
    return Chunk(
        chunk_id=str(metadata.get("chunk_id") or hit.id),
        path=str(path),
        start_line=int(metadata.get("start_line", 1)),
        end_line=int(metadata.get("end_line", metadata.get("start_line", 1))),
        text=str(metadata.get("text", "")),
        language=str(metadata.get("language", "text")),
    )
