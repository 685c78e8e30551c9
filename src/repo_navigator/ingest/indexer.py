"""Codebase indexer: tree -> filter -> fetch/chunk/embed -> upsert."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass

from repo_navigator.config import IndexingConfig
from repo_navigator.errors import UpstreamUnavailable
from repo_navigator.ingest.chunker import LineWindowChunker
from repo_navigator.ingest.embedder import Embedder
from repo_navigator.ingest.languages import is_source_file
from repo_navigator.retrieval.vector_store import VectorIndex
from repo_navigator.sources.base import RepositorySource, resolve_repository
from repo_navigator.timeouts import Deadline
from repo_navigator.types import Chunk, IndexReport, RepositoryRef, TreeEntry, VectorRecord

LOG = logging.getLogger(__name__)


@dataclass(slots=True)
class _FileResult:
    path: str
    chunks: list[Chunk]
    vectors: dict[str, list[float]]


class CodebaseIndexer:
    """Materializes one namespace of vectors from a live repository snapshot.

    Design notes:
    - Re-indexing is an authoritative replace: once every file has been
      fetched and embedded the namespace is deleted and rewritten, so chunks of
      removed or renamed files do not survive. A run that fails before that
      point leaves the previous index untouched; a run that fails while
      writing leaves the namespace empty rather than partial.
    - Fetch, chunk and embed run per file on a bounded worker pool. Vectors are
      associated with chunks by chunk id, never by completion order.
    - Per-file upstream failures are logged and the file is skipped. Tree
      fetch, vector store and deadline failures abort the run.
    - A query racing a re-index may observe a half-written namespace; this is
      accepted as eventually consistent.
    """

    def __init__(
        self,
        source: RepositorySource,
        chunker: LineWindowChunker,
        embedder: Embedder,
        vector_index: VectorIndex,
        config: IndexingConfig | None = None,
    ) -> None:
        self.source = source
        self.chunker = chunker
        self.embedder = embedder
        self.vector_index = vector_index
        self.config = config or IndexingConfig()

    def index_repository(
        self, repo: RepositoryRef, *, force: bool = False, deadline: Deadline
    ) -> IndexReport:
        resolved = resolve_repository(self.source, repo, deadline)
        namespace = resolved.namespace

        self.vector_index.ensure_index(self.embedder.dimension)
        if not force:
            stats = self.vector_index.describe_namespace(namespace)
            if stats.vector_count > 0:
                LOG.info("Namespace %s already indexed, reusing %d vectors", namespace, stats.vector_count)
                return IndexReport(
                    namespace=namespace,
                    branch=resolved.branch or "",
                    file_count=stats.path_count,
                    chunk_count=stats.vector_count,
                    reused=True,
                )

        deadline.check()
        tree = self.source.fetch_tree(resolved, timeout=deadline.remaining())
        deadline.check()
        files = self.eligible_files(tree)
        LOG.info("Indexing %s: %d of %d tree entries eligible", namespace, len(files), len(tree))

        results, skipped = self._process_files(resolved, files, deadline)
        records = _records(namespace, results)
        deadline.check()
        self._replace_namespace(namespace, records, deadline)

        report = IndexReport(
            namespace=namespace,
            branch=resolved.branch or "",
            file_count=sum(1 for result in results if result.chunks),
            chunk_count=len(records),
            skipped_files=sorted(skipped),
        )
        LOG.info(
            "Indexed %s: %d files, %d chunks, %d skipped",
            namespace,
            report.file_count,
            report.chunk_count,
            len(report.skipped_files),
        )
        return report

    def _replace_namespace(
        self, namespace: str, records: list[VectorRecord], deadline: Deadline
    ) -> None:
        self.vector_index.delete_namespace(namespace)
        batch_size = self.config.upsert_batch_size
        try:
            for offset in range(0, len(records), batch_size):
                deadline.check()
                self.vector_index.upsert(namespace, records[offset : offset + batch_size])
        except Exception:
            # A partially written namespace must not be reused as complete.
            LOG.warning("Upsert into %s failed, clearing partial namespace", namespace)
            self.vector_index.delete_namespace(namespace)
            raise

    def eligible_files(self, tree: list[TreeEntry]) -> list[TreeEntry]:
        return sorted(
            (
                entry
                for entry in tree
                if entry.kind == "file"
                and is_source_file(entry.path)
                and entry.size <= self.config.max_file_bytes
            ),
            key=lambda entry: entry.path,
        )

    def _process_files(
        self, repo: RepositoryRef, files: list[TreeEntry], deadline: Deadline
    ) -> tuple[list[_FileResult], list[str]]:
        if not files:
            return [], []

        executor = ThreadPoolExecutor(
            max_workers=self.config.embed_concurrency, thread_name_prefix="indexer"
        )
        try:
            futures: dict[Future[_FileResult], str] = {
                executor.submit(self._process_file, repo, entry.path, deadline): entry.path
                for entry in files
            }
            _, pending = wait(futures, timeout=deadline.remaining())
            if pending:
                for future in pending:
                    future.cancel()
                raise deadline.timeout_error()

            results: list[_FileResult] = []
            skipped: list[str] = []
            for future, path in futures.items():
                error = future.exception()
                if error is None:
                    results.append(future.result())
                elif isinstance(error, UpstreamUnavailable):
                    LOG.warning("Skipping %s: %s", path, error)
                    skipped.append(path)
                else:
                    raise error
            results.sort(key=lambda result: result.path)
            return results, skipped
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _process_file(self, repo: RepositoryRef, path: str, deadline: Deadline) -> _FileResult:
        deadline.check()
        text = self.source.fetch_file_content(repo, path, timeout=deadline.remaining())
        chunks = self.chunker.chunk_file(path, text)
        if not chunks:
            return _FileResult(path=path, chunks=[], vectors={})
        deadline.check()
        vectors = self.embedder.embed_documents(
            [chunk.text for chunk in chunks], timeout=deadline.remaining()
        )
        if len(vectors) != len(chunks):
            raise UpstreamUnavailable(
                "embedding", f"expected {len(chunks)} vectors for {path}, got {len(vectors)}"
            )
        return _FileResult(
            path=path,
            chunks=chunks,
            vectors={chunk.chunk_id: vector for chunk, vector in zip(chunks, vectors, strict=True)},
        )


def _records(namespace: str, results: list[_FileResult]) -> list[VectorRecord]:
    records: list[VectorRecord] = []
    for result in results:
        for index, chunk in enumerate(result.chunks):
            records.append(
                VectorRecord(
                    id=chunk.chunk_id,
                    vector=result.vectors[chunk.chunk_id],
                    metadata={
                        "namespace": namespace,
                        "chunk_id": chunk.chunk_id,
                        "path": chunk.path,
                        "start_line": chunk.start_line,
                        "end_line": chunk.end_line,
                        "chunk_index": index,
                        "language": chunk.language,
                        "text": chunk.text,
                    },
                )
            )
    return records
