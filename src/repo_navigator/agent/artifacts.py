"""Artifact generators: README, Dockerfile, code comments and refactoring."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict

from repo_navigator.agent.llm import TextGenerator
from repo_navigator.agent.prompts import (
    COMMENTS_PROMPT,
    DOCKERFILE_PROMPT,
    README_PROMPT,
    REFACTOR_PROMPT,
)
from repo_navigator.errors import InputError
from repo_navigator.sources.base import RepositoryMetadata
from repo_navigator.timeouts import Deadline

LOG = logging.getLogger(__name__)

MAX_LISTED_FILES = 200


class ArtifactGenerator:
    """One prompt and one text-generation call per artifact."""

    def __init__(self, generator: TextGenerator) -> None:
        self.generator = generator

    def generate_readme(
        self, metadata: RepositoryMetadata, files: list[str], *, deadline: Deadline
    ) -> str:
        listed = sorted(files)[:MAX_LISTED_FILES]
        prompt = README_PROMPT.format(
            repository=metadata.full_name,
            repository_info=describe_metadata(metadata),
            files="\n".join(f"- {path}" for path in listed) or "(no files listed)",
        )
        return self._run("readme", prompt, deadline)

    def generate_dockerfile(self, metadata: RepositoryMetadata, *, deadline: Deadline) -> str:
        prompt = DOCKERFILE_PROMPT.format(
            repository=metadata.full_name,
            repository_info=describe_metadata(metadata),
            language=primary_language(metadata) or "unknown",
        )
        return self._run("dockerfile", prompt, deadline)

    def comment_code(self, code: str, language: str, *, deadline: Deadline) -> str:
        if not code.strip():
            raise InputError("code must not be empty")
        prompt = COMMENTS_PROMPT.format(language=language or "the given language", code=code)
        return self._run("comments", prompt, deadline)

    def refactor_code(
        self, code: str, language: str, instructions: str, *, deadline: Deadline
    ) -> str:
        if not code.strip():
            raise InputError("code must not be empty")
        if not instructions.strip():
            raise InputError("refactoring instructions must not be empty")
        prompt = REFACTOR_PROMPT.format(
            language=language or "the given language",
            instructions=instructions.strip(),
            code=code,
        )
        return self._run("refactor", prompt, deadline)

    def _run(self, kind: str, prompt: str, deadline: Deadline) -> str:
        deadline.check()
        text = self.generator.generate(prompt, timeout=deadline.remaining())
        deadline.check()
        LOG.info("Generated %s artifact (%d chars)", kind, len(text))
        return text


def primary_language(metadata: RepositoryMetadata) -> str:
    """Language with the most bytes, ties broken by name."""
    if not metadata.languages:
        return ""
    return min(metadata.languages.items(), key=lambda item: (-item[1], item[0]))[0]


def describe_metadata(metadata: RepositoryMetadata) -> str:
    """Metadata as indented JSON for prompts, without the raw payload."""
    info = asdict(metadata)
    info.pop("extra", None)
    return json.dumps(info, indent=2, sort_keys=True)
