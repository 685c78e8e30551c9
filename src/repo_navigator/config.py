"""Configuration models for the repository navigator."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class ChunkingConfig(BaseModel):
    """Configures line-window chunking of source files."""

    window_lines: int = Field(default=100, ge=1)
    large_file_window_lines: int = Field(default=50, ge=1)
    large_file_threshold: int = Field(default=1000, ge=1)
    overlap_lines: int = Field(default=10, ge=0)
    max_chars: int = Field(default=4000, ge=200)

    @model_validator(mode="after")
    def _check_overlap(self) -> "ChunkingConfig":
        if self.overlap_lines >= min(self.window_lines, self.large_file_window_lines):
            raise ValueError("overlap_lines must be less than the window size")
        return self


class IndexingConfig(BaseModel):
    """Configures repository indexing throughput and limits."""

    embed_concurrency: int = Field(default=8, ge=1, le=32)
    upsert_batch_size: int = Field(default=100, ge=1)
    max_file_bytes: int = Field(default=500_000, ge=1)


class RetrievalConfig(BaseModel):
    """Configures semantic retrieval."""

    default_top_k: int = Field(default=5, ge=1)
    max_top_k: int = Field(default=20, ge=1)
    oversample_factor: int = Field(default=2, ge=1)


class KeywordFilterConfig(BaseModel):
    """Configures keyword filtering of non-code listings."""

    max_unfiltered: int = Field(default=50, ge=1)
    max_matched: int = Field(default=50, ge=1)
    recent_fallback: int = Field(default=20, ge=1)


class SynthesisConfig(BaseModel):
    """Configures prompt budget and follow-up extraction."""

    max_context_chars: int = Field(default=24_000, ge=1000)
    max_followups: int = Field(default=3, ge=0, le=3)
    snippet_chars: int = Field(default=1200, ge=80)


class TimeoutConfig(BaseModel):
    """Deadline budget per operation kind, in seconds."""

    interactive_seconds: float = Field(default=120.0, gt=0.0)
    indexing_seconds: float = Field(default=1800.0, gt=0.0)
    # Upper bound for a single provider HTTP request.
    request_seconds: float = Field(default=60.0, gt=0.0)


class NavigatorConfig(BaseModel):
    """Aggregate configuration handed to `RepositoryNavigator`."""

    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    indexing: IndexingConfig = Field(default_factory=IndexingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    keyword_filter: KeywordFilterConfig = Field(default_factory=KeywordFilterConfig)
    synthesis: SynthesisConfig = Field(default_factory=SynthesisConfig)
    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
