import pytest
from langchain_core.embeddings import DeterministicFakeEmbedding
from langchain_core.language_models import FakeListChatModel

from repo_navigator.agent.llm import ChatModelGenerator, UnconfiguredGenerator
from repo_navigator.errors import UpstreamUnavailable
from repo_navigator.ingest.embedder import HashingEmbedder, LangChainEmbedder
from repo_navigator.types import VectorRecord


def test_hashing_embedder_is_deterministic_and_splits_identifiers() -> None:
    embedder = HashingEmbedder(dimension=32)

    assert embedder.embed_query("parseConfig") == embedder.embed_query("parse_config")
    assert len(embedder.embed_documents(["a b", "c"])[1]) == 32


def test_langchain_embedder_checks_dimension() -> None:
    embedder = LangChainEmbedder(DeterministicFakeEmbedding(size=16), dimension=16)

    vectors = embedder.embed_documents(["func Add", "func Sub"], timeout=5)
    assert [len(vector) for vector in vectors] == [16, 16]
    assert embedder.embed_documents([]) == []

    mismatched = LangChainEmbedder(DeterministicFakeEmbedding(size=8), dimension=16)
    with pytest.raises(UpstreamUnavailable):
        mismatched.embed_query("func Add")


def test_chat_model_generator_returns_reply_text() -> None:
    generator = ChatModelGenerator(FakeListChatModel(responses=["the answer"]))

    assert generator.generate("question?", timeout=5) == "the answer"
    with pytest.raises(ValueError):
        generator.generate("   ")


def test_chat_model_generator_maps_provider_errors() -> None:
    class _Broken:
        def invoke(self, prompt):
            raise RuntimeError("rate limited")

    with pytest.raises(UpstreamUnavailable, match="rate limited"):
        ChatModelGenerator(_Broken()).generate("question?")
    with pytest.raises(UpstreamUnavailable):
        UnconfiguredGenerator("OPENAI_API_KEY is not set").generate("question?")


def test_faiss_index_matches_in_memory_contract() -> None:
    pytest.importorskip("faiss")
    from repo_navigator.retrieval.vector_store import FaissVectorIndex

    embedder = HashingEmbedder(dimension=32)
    index = FaissVectorIndex()
    index.ensure_index(32)
    records = [
        VectorRecord(
            id=f"{path}::chunk-0000",
            vector=embedder.embed_query(text),
            metadata={"chunk_id": f"{path}::chunk-0000", "path": path, "text": text},
        )
        for path, text in (("a.go", "func Add sum"), ("b.go", "func Reverse string"))
    ]
    index.upsert("octo/demo@main", records)
    index.upsert("octo/demo@main", records[:1])

    hits = index.query("octo/demo@main", embedder.embed_query("Add sum"), top_k=2)

    assert hits[0].id == "a.go::chunk-0000"
    assert index.describe_namespace("octo/demo@main").vector_count == 2
    assert index.query("octo/other@main", embedder.embed_query("Add"), top_k=2) == []
    index.delete_namespace("octo/demo@main")
    assert index.describe_namespace("octo/demo@main").vector_count == 0


def test_chat_model_generator_forwards_budget_as_request_timeout() -> None:
    class _Recording:
        def __init__(self) -> None:
            self.kwargs: list[dict] = []

        def invoke(self, prompt, **kwargs):
            self.kwargs.append(kwargs)
            return "done"

    llm = _Recording()
    generator = ChatModelGenerator(llm)

    generator.generate("question?", timeout=3.0)
    generator.generate("question?")

    assert llm.kwargs[0]["timeout"] == pytest.approx(3.0)
    assert llm.kwargs[1] == {}
