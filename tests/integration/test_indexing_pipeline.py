import time

import pytest

from conftest import FakeSource
from repo_navigator.config import IndexingConfig
from repo_navigator.errors import OperationTimeout, UpstreamUnavailable
from repo_navigator.ingest.chunker import LineWindowChunker
from repo_navigator.ingest.embedder import HashingEmbedder
from repo_navigator.ingest.indexer import CodebaseIndexer
from repo_navigator.retrieval.vector_store import InMemoryVectorIndex
from repo_navigator.timeouts import Deadline
from repo_navigator.types import RepositoryRef, TreeEntry


def _indexer(source: FakeSource, index: InMemoryVectorIndex | None = None, **config) -> CodebaseIndexer:
    return CodebaseIndexer(
        source,
        LineWindowChunker(),
        HashingEmbedder(dimension=64),
        index or InMemoryVectorIndex(),
        IndexingConfig(**config),
    )


def test_indexing_filters_chunks_and_records_metadata(demo_source) -> None:
    index = InMemoryVectorIndex()
    report = _indexer(demo_source, index).index_repository(
        RepositoryRef("octo", "demo"), deadline=Deadline("index", 30)
    )

    assert report.namespace == "octo/demo@main"
    assert report.branch == "main"
    assert report.file_count == 3
    assert report.chunk_count == 3
    assert "assets/logo.png" not in demo_source.fetched
    stats = index.describe_namespace("octo/demo@main")
    assert stats.vector_count == 3
    assert stats.path_count == 3

    hits = index.query("octo/demo@main", HashingEmbedder(dimension=64).embed_query("Add"), top_k=3)
    metadata = next(hit.metadata for hit in hits if hit.metadata["path"] == "utils/math.go")
    assert metadata["namespace"] == "octo/demo@main"
    assert metadata["start_line"] == 1
    assert metadata["language"] == "go"
    assert "func Add" in metadata["text"]


def test_forced_reindex_is_idempotent_and_unforced_reuses(demo_source, demo_repo) -> None:
    index = InMemoryVectorIndex()
    indexer = _indexer(demo_source, index)

    first = indexer.index_repository(demo_repo, force=True, deadline=Deadline("index", 30))
    second = indexer.index_repository(demo_repo, force=True, deadline=Deadline("index", 30))
    reused = indexer.index_repository(demo_repo, deadline=Deadline("index", 30))

    assert first.chunk_count == second.chunk_count
    assert index.describe_namespace(demo_repo.namespace).vector_count == second.chunk_count
    assert reused.reused
    assert reused.chunk_count == second.chunk_count


def test_reindex_drops_chunks_of_removed_files(demo_source, demo_repo) -> None:
    index = InMemoryVectorIndex()
    _indexer(demo_source, index).index_repository(demo_repo, deadline=Deadline("index", 30))

    del demo_source.files["README.md"]
    report = _indexer(demo_source, index).index_repository(
        demo_repo, force=True, deadline=Deadline("index", 30)
    )

    hits = index.query(demo_repo.namespace, [1.0] * 64, top_k=50)
    assert report.file_count == 2
    assert all(hit.metadata["path"] != "README.md" for hit in hits)


def test_per_file_failures_are_skipped_not_fatal(demo_source, demo_repo) -> None:
    demo_source.failing_paths.add("cmd/main.go")

    report = _indexer(demo_source).index_repository(demo_repo, deadline=Deadline("index", 30))

    assert report.skipped_files == ["cmd/main.go"]
    assert report.file_count == 2


def test_oversized_and_non_file_entries_are_not_indexed(demo_repo) -> None:
    source = FakeSource(
        files={"big.py": "x = 1\n" * 100, "ok.py": "y = 2\n"},
        extra_tree=[TreeEntry(path="pkg", kind="dir")],
    )

    report = _indexer(source, max_file_bytes=100).index_repository(
        demo_repo, deadline=Deadline("index", 30)
    )

    assert report.file_count == 1
    assert source.fetched == ["ok.py"]


def test_repository_without_source_files_indexes_zero_chunks(demo_repo) -> None:
    source = FakeSource(files={"logo.png": "binary", "LICENSE": "MIT"})

    report = _indexer(source).index_repository(demo_repo, deadline=Deadline("index", 30))

    assert report.chunk_count == 0
    assert report.file_count == 0


def test_upserts_are_batched(demo_repo) -> None:
    class CountingIndex(InMemoryVectorIndex):
        def __init__(self) -> None:
            super().__init__()
            self.batches: list[int] = []

        def upsert(self, namespace, records):
            self.batches.append(len(records))
            super().upsert(namespace, records)

    source = FakeSource(files={f"pkg/mod_{index}.py": f"value = {index}\n" for index in range(5)})
    index = CountingIndex()

    _indexer(source, index, upsert_batch_size=2).index_repository(
        demo_repo, deadline=Deadline("index", 30)
    )

    assert index.batches == [2, 2, 1]


def test_expired_deadline_aborts_indexing(demo_source, demo_repo) -> None:
    deadline = Deadline("index repository", 0.001)
    while not deadline.expired:
        pass

    with pytest.raises(OperationTimeout):
        _indexer(demo_source).index_repository(demo_repo, deadline=deadline)


def test_timed_out_reindex_keeps_previous_index(demo_source, demo_repo) -> None:
    class SlowSource(FakeSource):
        def fetch_file_content(self, repo, path, *, timeout=None):
            time.sleep(0.5)
            return super().fetch_file_content(repo, path, timeout=timeout)

    index = InMemoryVectorIndex()
    _indexer(demo_source, index).index_repository(demo_repo, deadline=Deadline("index", 30))
    slow = SlowSource(files=dict(demo_source.files))

    with pytest.raises(OperationTimeout):
        _indexer(slow, index).index_repository(
            demo_repo, force=True, deadline=Deadline("index repository", 0.1)
        )

    assert index.describe_namespace(demo_repo.namespace).vector_count == 3


def test_failed_upsert_leaves_no_partial_namespace_to_reuse(demo_repo) -> None:
    class FlakyIndex(InMemoryVectorIndex):
        def __init__(self) -> None:
            super().__init__()
            self.fail_on_batch: int | None = 2
            self.batches = 0

        def upsert(self, namespace, records):
            self.batches += 1
            if self.batches == self.fail_on_batch:
                raise UpstreamUnavailable("vector-store", "write rejected")
            super().upsert(namespace, records)

    source = FakeSource(files={f"pkg/mod_{index}.py": f"value = {index}\n" for index in range(4)})
    index = FlakyIndex()
    indexer = _indexer(source, index, upsert_batch_size=1)

    with pytest.raises(UpstreamUnavailable):
        indexer.index_repository(demo_repo, deadline=Deadline("index", 30))
    assert index.describe_namespace(demo_repo.namespace).vector_count == 0

    index.fail_on_batch = None
    report = indexer.index_repository(demo_repo, deadline=Deadline("index", 30))

    assert not report.reused
    assert report.chunk_count == 4


def test_vectors_stay_with_their_chunks_when_embedding_finishes_out_of_order(demo_repo) -> None:
    class ReverseOrderEmbedder(HashingEmbedder):
        def embed_documents(self, texts, *, timeout=None):
            # mod_0 finishes last, mod_5 first
            number = int(texts[0].split("=")[1])
            time.sleep(0.02 * (6 - number))
            return super().embed_documents(texts, timeout=timeout)

    class CapturingIndex(InMemoryVectorIndex):
        def __init__(self) -> None:
            super().__init__()
            self.records: list = []

        def upsert(self, namespace, records):
            self.records.extend(records)
            super().upsert(namespace, records)

    source = FakeSource(files={f"pkg/mod_{index}.py": f"value = {index}\n" for index in range(6)})
    index = CapturingIndex()
    indexer = CodebaseIndexer(
        source,
        LineWindowChunker(),
        ReverseOrderEmbedder(dimension=64),
        index,
        IndexingConfig(embed_concurrency=6),
    )

    indexer.index_repository(demo_repo, deadline=Deadline("index", 30))

    reference = HashingEmbedder(dimension=64)
    assert len(index.records) == 6
    for record in index.records:
        assert record.id == record.metadata["chunk_id"]
        assert record.metadata["path"] in record.id
        assert record.vector == reference.embed_query(record.metadata["text"])
