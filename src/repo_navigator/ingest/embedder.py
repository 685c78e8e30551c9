"""Embedding gateway: abstractions, a deterministic baseline and a LangChain adapter."""

from __future__ import annotations

from abc import ABC, abstractmethod
from hashlib import blake2b
from math import sqrt
from typing import Any

from repo_navigator.errors import OperationTimeout, UpstreamUnavailable
from repo_navigator.timeouts import call_with_timeout


class Embedder(ABC):
    """Embedder interface used by the indexer and the retriever.

    Every vector an embedder returns has exactly `dimension` components.
    """

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Fixed output dimension."""

    @abstractmethod
    def embed_documents(
        self, texts: list[str], *, timeout: float | None = None
    ) -> list[list[float]]:
        """Embed many documents, one vector per text in input order."""

    @abstractmethod
    def embed_query(self, text: str, *, timeout: float | None = None) -> list[float]:
        """Embed one query."""


class HashingEmbedder(Embedder):
    """Deterministic sparse-like embedding without external model calls.

    This class is primarily used for local runs and deterministic integration
    tests. In production, use `LangChainEmbedder` over a hosted model.
    """

    def __init__(self, dimension: int = 256) -> None:
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_documents(
        self, texts: list[str], *, timeout: float | None = None
    ) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str, *, timeout: float | None = None) -> list[float]:
        return self._embed(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self._dimension)]
        tokens = _split_identifiers(text)
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self._dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]


class LangChainEmbedder(Embedder):
    """Adapts any `langchain_core.embeddings.Embeddings` (e.g. `OpenAIEmbeddings`)."""

    def __init__(self, embeddings: Any, dimension: int) -> None:
        self._embeddings = embeddings
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    def embed_documents(
        self, texts: list[str], *, timeout: float | None = None
    ) -> list[list[float]]:
        if not texts:
            return []
        vectors = self._call(lambda: self._embeddings.embed_documents(texts), timeout)
        if len(vectors) != len(texts):
            raise UpstreamUnavailable(
                "embedding", f"expected {len(texts)} vectors, got {len(vectors)}"
            )
        return [self._checked(vector) for vector in vectors]

    def embed_query(self, text: str, *, timeout: float | None = None) -> list[float]:
        return self._checked(self._call(lambda: self._embeddings.embed_query(text), timeout))

    def _call(self, func: Any, timeout: float | None) -> Any:
        try:
            return call_with_timeout(func, timeout, operation="embedding")
        except OperationTimeout:
            raise
        except Exception as exc:
            raise UpstreamUnavailable("embedding", str(exc)) from exc

    def _checked(self, vector: list[float]) -> list[float]:
        if len(vector) != self._dimension:
            raise UpstreamUnavailable(
                "embedding",
                f"expected dimension {self._dimension}, got {len(vector)}",
            )
        return [float(value) for value in vector]


def _split_identifiers(text: str) -> list[str]:
    """Lower-cased word tokens, with snake_case and camelCase identifiers split."""

    tokens: list[str] = []
    word: list[str] = []

    def _flush() -> None:
        if word:
            tokens.append("".join(word).lower())
            word.clear()

    previous = ""
    for char in text:
        if char.isalnum():
            if char.isupper() and previous.islower():
                _flush()
            word.append(char)
        else:
            _flush()
        previous = char
    _flush()
    return tokens
