"""Vector index interfaces and concrete adapters.

Every operation is scoped to one namespace; no adapter method can read or
write across namespaces.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from math import sqrt
from typing import Any, Protocol

from repo_navigator.errors import UpstreamUnavailable
from repo_navigator.types import NamespaceStats, VectorHit, VectorRecord

LOG = logging.getLogger(__name__)


class VectorIndex(Protocol):
    """Namespace-scoped vector store contract."""

    def ensure_index(self, dimension: int) -> None:
        """Create the backing index if missing; fail on a dimension mismatch."""

    def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        """Insert or replace vectors by id."""

    def query(self, namespace: str, vector: list[float], top_k: int) -> list[VectorHit]:
        """Return up to `top_k` hits by descending similarity."""

    def delete_namespace(self, namespace: str) -> None:
        """Remove every vector in the namespace."""

    def describe_namespace(self, namespace: str) -> NamespaceStats:
        """Vector and distinct-path counts for the namespace."""


@dataclass(slots=True)
class _StoredVector:
    vector: list[float]
    metadata: dict[str, Any]


class InMemoryVectorIndex:
    """Deterministic vector index used for tests and local runs."""

    def __init__(self) -> None:
        self._dimension: int | None = None
        self._namespaces: dict[str, dict[str, _StoredVector]] = {}
        self._lock = threading.Lock()

    @property
    def dimension(self) -> int | None:
        return self._dimension

    def ensure_index(self, dimension: int) -> None:
        with self._lock:
            if self._dimension is None:
                LOG.info("Creating in-memory vector index with dimension %d", dimension)
                self._dimension = dimension
            elif self._dimension != dimension:
                raise UpstreamUnavailable(
                    "vector-store",
                    f"index dimension is {self._dimension}, embedder produces {dimension}",
                )

    def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        with self._lock:
            if self._dimension is None:
                raise UpstreamUnavailable("vector-store", "index does not exist")
            for record in records:
                if len(record.vector) != self._dimension:
                    raise UpstreamUnavailable(
                        "vector-store",
                        f"vector {record.id} has dimension {len(record.vector)}",
                    )
            store = self._namespaces.setdefault(namespace, {})
            for record in records:
                store[record.id] = _StoredVector(
                    vector=list(record.vector), metadata=dict(record.metadata)
                )

    def query(self, namespace: str, vector: list[float], top_k: int) -> list[VectorHit]:
        with self._lock:
            items = list(self._namespaces.get(namespace, {}).items())
        ranked = sorted(
            (
                VectorHit(
                    id=record_id,
                    score=_cosine_similarity(vector, stored.vector),
                    metadata=dict(stored.metadata),
                )
                for record_id, stored in items
            ),
            key=lambda hit: (-hit.score, hit.id),
        )
        return ranked[:top_k]

    def delete_namespace(self, namespace: str) -> None:
        with self._lock:
            self._namespaces.pop(namespace, None)

    def describe_namespace(self, namespace: str) -> NamespaceStats:
        with self._lock:
            store = self._namespaces.get(namespace, {})
            paths = {stored.metadata.get("path") for stored in store.values()}
            return NamespaceStats(vector_count=len(store), path_count=len(paths))


class FaissVectorIndex:
    """FAISS adapter via LangChain community integration.

    Keeps one FAISS store per namespace with inner-product scoring over
    L2-normalised vectors, which makes scores cosine similarities. It keeps the
    same contract as `InMemoryVectorIndex` so either can back the navigator.
    """

    def __init__(self) -> None:
        try:
            from langchain_community.docstore.in_memory import InMemoryDocstore
            from langchain_community.vectorstores import FAISS
            from langchain_community.vectorstores.utils import DistanceStrategy
        except Exception as exc:  # pragma: no cover - import path is environment-dependent
            raise RuntimeError(
                "FAISS dependencies are not available. Install langchain-community/faiss-cpu."
            ) from exc

        self._faiss_cls = FAISS
        self._docstore_cls = InMemoryDocstore
        self._distance = DistanceStrategy.MAX_INNER_PRODUCT
        self._dimension: int | None = None
        self._stores: dict[str, Any] = {}
        self._lock = threading.Lock()

    def ensure_index(self, dimension: int) -> None:
        with self._lock:
            if self._dimension is None:
                self._dimension = dimension
            elif self._dimension != dimension:
                raise UpstreamUnavailable(
                    "vector-store",
                    f"index dimension is {self._dimension}, embedder produces {dimension}",
                )

    def upsert(self, namespace: str, records: list[VectorRecord]) -> None:
        if not records:
            return
        if self._dimension is None:
            raise UpstreamUnavailable("vector-store", "index does not exist")
        with self._lock:
            store = self._stores.get(namespace)
            if store is None:
                store = self._new_store()
                self._stores[namespace] = store
            ids = [record.id for record in records]
            existing = set(store.index_to_docstore_id.values()).intersection(ids)
            try:
                if existing:
                    store.delete(ids=sorted(existing))
                store.add_embeddings(
                    text_embeddings=[
                        (str(record.metadata.get("text", "")), record.vector)
                        for record in records
                    ],
                    metadatas=[dict(record.metadata) for record in records],
                    ids=ids,
                )
            except Exception as exc:
                raise UpstreamUnavailable("vector-store", str(exc)) from exc

    def query(self, namespace: str, vector: list[float], top_k: int) -> list[VectorHit]:
        store = self._stores.get(namespace)
        if store is None or not store.index_to_docstore_id:
            return []
        try:
            docs_and_scores = store.similarity_search_with_score_by_vector(vector, k=top_k)
        except Exception as exc:
            raise UpstreamUnavailable("vector-store", str(exc)) from exc
        hits = [
            VectorHit(
                id=str(doc.metadata.get("chunk_id") or doc.id),
                score=float(score),
                metadata=dict(doc.metadata),
            )
            for doc, score in docs_and_scores
        ]
        return sorted(hits, key=lambda hit: (-hit.score, hit.id))

    def delete_namespace(self, namespace: str) -> None:
        with self._lock:
            self._stores.pop(namespace, None)

    def describe_namespace(self, namespace: str) -> NamespaceStats:
        store = self._stores.get(namespace)
        if store is None:
            return NamespaceStats()
        ids = list(store.index_to_docstore_id.values())
        paths = {store.docstore.search(doc_id).metadata.get("path") for doc_id in ids}
        return NamespaceStats(vector_count=len(ids), path_count=len(paths))

    def _new_store(self) -> Any:
        import faiss

        return self._faiss_cls(
            embedding_function=_NoQueryEmbedding(),
            index=faiss.IndexFlatIP(self._dimension),
            docstore=self._docstore_cls(),
            index_to_docstore_id={},
            distance_strategy=self._distance,
            normalize_L2=True,
        )


class _NoQueryEmbedding:
    """Placeholder embedding function; queries always arrive as vectors."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        raise NotImplementedError("FaissVectorIndex receives precomputed vectors")

    def embed_query(self, text: str) -> list[float]:
        raise NotImplementedError("FaissVectorIndex receives precomputed vectors")


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)
