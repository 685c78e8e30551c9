"""Shared domain models."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any
from urllib.parse import quote

from repo_navigator.errors import InputError

_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")
_URL_PATTERN = re.compile(
    r"^(?:https?://)?(?:www\.)?github\.com/(?P<owner>[^/\s]+)/(?P<name>[^/\s]+?)(?:\.git)?/?$"
)


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    """Identifies one indexable unit: a repository on one branch."""

    owner: str
    name: str
    branch: str | None = None

    def __post_init__(self) -> None:
        for label, value in (("owner", self.owner), ("name", self.name)):
            if not value or not _NAME_PATTERN.match(value) or value in {".", ".."}:
                raise InputError(f"invalid repository {label}: {value!r}")
        if self.branch is not None and not self.branch.strip():
            raise InputError("branch must not be blank")

    @classmethod
    def parse(cls, value: str, branch: str | None = None) -> "RepositoryRef":
        """Parse `owner/name` or a github.com URL."""

        text = (value or "").strip()
        match = _URL_PATTERN.match(text)
        if match:
            return cls(match.group("owner"), match.group("name"), branch or None)
        parts = text.split("/")
        if len(parts) != 2:
            raise InputError(f"expected 'owner/name' or a repository URL, got {value!r}")
        return cls(parts[0], parts[1], branch or None)

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def is_resolved(self) -> bool:
        return self.branch is not None

    def with_branch(self, branch: str) -> "RepositoryRef":
        return replace(self, branch=branch)

    @property
    def namespace(self) -> str:
        """Deterministic, collision-free key scoping vector and graph data."""

        if self.branch is None:
            raise InputError(f"{self.full_name} has no resolved branch")
        return "{}/{}@{}".format(
            quote(self.owner, safe=""),
            quote(self.name, safe=""),
            quote(self.branch, safe=""),
        )


class Domain(str, Enum):
    CODE = "code"
    COMMITS = "commits"
    PULLS = "pulls"
    ISSUES = "issues"
    RELEASES = "releases"
    STATS = "stats"
    USERS = "users"
    REPO_META = "repo_meta"


class ParseStage(str, Enum):
    """Which stage of the router's reply parser produced a decision."""

    STRUCTURED = "structured"
    HEURISTIC = "heuristic"
    DEFAULT = "default"


@dataclass(frozen=True, slots=True)
class RouterDecision:
    domain: Domain
    keywords: tuple[str, ...]
    stage: ParseStage
    explanation: str = ""


@dataclass(frozen=True, slots=True)
class Chunk:
    """A bounded, contiguous slice of one file."""

    chunk_id: str
    path: str
    start_line: int
    end_line: int
    text: str
    language: str


@dataclass(slots=True)
class ScoredChunk:
    chunk: Chunk
    score: float
    rank: int = 0


@dataclass(slots=True)
class RetrievalResult:
    """Chunks ranked by descending relevance within one namespace."""

    namespace: str
    hits: list[ScoredChunk] = field(default_factory=list)

    def __iter__(self):
        return iter(self.hits)

    def __len__(self) -> int:
        return len(self.hits)

    @property
    def is_empty(self) -> bool:
        return not self.hits


@dataclass(frozen=True, slots=True)
class TreeEntry:
    path: str
    kind: str
    size: int = 0


@dataclass(slots=True)
class VectorRecord:
    """An IndexedVector as handed to the vector index."""

    id: str
    vector: list[float]
    metadata: dict[str, Any]


@dataclass(slots=True)
class VectorHit:
    id: str
    score: float
    metadata: dict[str, Any]


@dataclass(frozen=True, slots=True)
class NamespaceStats:
    vector_count: int = 0
    path_count: int = 0


@dataclass(slots=True)
class IndexReport:
    namespace: str
    branch: str
    file_count: int
    chunk_count: int
    skipped_files: list[str] = field(default_factory=list)
    reused: bool = False


class FilterMode(str, Enum):
    MATCHED = "matched"
    UNFILTERED = "unfiltered"
    RECENT_FALLBACK = "recent_fallback"


@dataclass(slots=True)
class FilteredListing:
    """A listing narrowed to the question's keywords."""

    domain: Domain
    items: list[Any]
    mode: FilterMode
    total: int
    keywords: tuple[str, ...] = ()

    @property
    def is_fallback(self) -> bool:
        return self.mode is FilterMode.RECENT_FALLBACK


@dataclass(slots=True)
class RelevantFile:
    path: str
    snippet: str
    relevance: float


@dataclass(slots=True)
class SynthesizedAnswer:
    answer_text: str
    domain: Domain
    relevant_files: list[RelevantFile] = field(default_factory=list)
    followup_questions: list[str] = field(default_factory=list)
    extra_data: dict[str, Any] = field(default_factory=dict)
    fallbacks: list[str] = field(default_factory=list)
    namespace: str | None = None


class NodeKind(str, Enum):
    FILE = "file"
    DIRECTORY = "directory"
    COMPONENT = "component"


class EdgeKind(str, Enum):
    IMPORTS = "imports"
    CONTAINS = "contains"


@dataclass(frozen=True, slots=True)
class GraphNode:
    id: str
    label: str
    kind: NodeKind


@dataclass(frozen=True, slots=True)
class GraphEdge:
    source: str
    target: str
    kind: EdgeKind
