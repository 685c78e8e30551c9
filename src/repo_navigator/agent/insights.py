"""Code insights: pull request summaries, walkthroughs and explanations.

Each insight is one prompt and one text-generation call, like the artifacts.
The helpers that pick what goes into a prompt (entry points, the significant
changes of a pull request, the lines of a function) are plain functions so the
navigator can validate user input before any model call is made.
"""

from __future__ import annotations

import logging
import posixpath
import re
from collections import Counter
from dataclasses import dataclass, field

from pydantic import BaseModel, Field, ValidationError

from repo_navigator.agent.artifacts import describe_metadata
from repo_navigator.agent.llm import TextGenerator
from repo_navigator.agent.prompts import (
    ARCHITECTURE_PROMPT,
    FUNCTION_EXPLAINER_PROMPT,
    PULL_REQUEST_SUMMARY_PROMPT,
    WALKTHROUGH_PROMPT,
)
from repo_navigator.agent.router import extract_json_object
from repo_navigator.errors import InputError
from repo_navigator.graph.builder import ArchitectureGraph
from repo_navigator.ingest.languages import detect_language, is_source_file
from repo_navigator.sources.base import FileChange, PullRequestInfo, RepositoryMetadata
from repo_navigator.timeouts import Deadline
from repo_navigator.types import EdgeKind, NodeKind

LOG = logging.getLogger(__name__)

MAX_SIGNIFICANT_CHANGES = 10
MAX_PATCH_CHARS = 1500
MAX_ENTRY_POINTS = 5
MAX_FOCUS_FILES = 3
MAX_EXCERPT_CHARS = 4000
MAX_WALKTHROUGH_CHARS = 16000
MAX_KEY_FILES = 15

_SCRIPT_ENTRY_POINTS = (
    "index.js",
    "app.js",
    "server.js",
    "main.js",
    "index.ts",
    "app.ts",
    "server.ts",
    "main.ts",
)
ENTRY_POINT_NAMES: dict[str, tuple[str, ...]] = {
    "go": ("main.go",),
    "javascript": _SCRIPT_ENTRY_POINTS,
    "typescript": _SCRIPT_ENTRY_POINTS,
    "python": ("__main__.py", "app.py", "main.py", "run.py"),
}

LAYER_BY_DIRECTORY: dict[str, str] = {
    "model": "data",
    "models": "data",
    "controller": "controller",
    "controllers": "controller",
    "handler": "controller",
    "handlers": "controller",
    "view": "view",
    "views": "view",
    "templates": "view",
    "config": "configuration",
    "conf": "configuration",
    "middleware": "middleware",
    "middlewares": "middleware",
    "service": "service",
    "services": "service",
    "util": "utility",
    "utils": "utility",
    "helper": "utility",
    "helpers": "utility",
    "test": "test",
    "tests": "test",
}


@dataclass(slots=True)
class FileGroup:
    name: str
    description: str = ""
    files: list[str] = field(default_factory=list)
    importance: int = 0


@dataclass(slots=True)
class PullRequestSummary:
    repository: str
    number: int
    title: str
    url: str = ""
    author: str = ""
    changed_files: int = 0
    additions: int = 0
    deletions: int = 0
    description: str = ""
    main_points: list[str] = field(default_factory=list)
    key_changes: list[str] = field(default_factory=list)
    file_groups: list[FileGroup] = field(default_factory=list)
    potential_impact: str = ""
    suggested_reviewers: list[str] = field(default_factory=list)
    technical_details: str = ""
    # False when the model reply was not the requested JSON object.
    structured: bool = True


@dataclass(slots=True)
class CodeWalkthrough:
    repository: str
    entry_points: list[str]
    files: list[str]
    walkthrough: str


@dataclass(slots=True)
class FunctionExplanation:
    path: str
    function_name: str
    language: str
    start_line: int
    end_line: int
    code: str
    explanation: str


@dataclass(slots=True)
class ArchitectureOverview:
    namespace: str
    overview: str
    components: dict[str, str] = field(default_factory=dict)
    key_files: list[str] = field(default_factory=list)
    file_count: int = 0
    directory_count: int = 0
    import_count: int = 0
    from_stored_graph: bool = False


class _FileGroupReply(BaseModel):
    name: str
    description: str = ""
    files: list[str] = Field(default_factory=list)
    importance: int = 0


class PullRequestSummaryReply(BaseModel):
    description: str = ""
    main_points: list[str] = Field(default_factory=list)
    key_changes: list[str] = Field(default_factory=list)
    file_groups: list[_FileGroupReply] = Field(default_factory=list)
    potential_impact: str = ""
    suggested_reviewers: list[str] = Field(default_factory=list)
    technical_details: str = ""


class CodeInsightGenerator:
    """Explanations of pull requests, entry points, functions and architecture."""

    def __init__(self, generator: TextGenerator) -> None:
        self.generator = generator

    def summarize_pull_request(
        self, repository: str, pull: PullRequestInfo, *, deadline: Deadline
    ) -> PullRequestSummary:
        paths = [change.filename for change in pull.changes] or list(pull.files)
        prompt = PULL_REQUEST_SUMMARY_PROMPT.format(
            title=pull.title,
            description=pull.description or "(no description)",
            changed_files=len(paths),
            additions=pull.additions,
            deletions=pull.deletions,
            changes=_describe_changes(significant_changes(pull.changes)) or "(no file changes)",
        )
        reply = self._run("pull request summary", prompt, deadline)

        summary = PullRequestSummary(
            repository=repository,
            number=pull.number,
            title=pull.title,
            url=pull.url,
            author=pull.author,
            changed_files=len(paths),
            additions=pull.additions,
            deletions=pull.deletions,
        )
        parsed = _parse_summary(reply)
        if parsed is None:
            LOG.warning("Pull request summary for %s#%d was not JSON", repository, pull.number)
            summary.description = reply.strip()
            summary.structured = False
            summary.file_groups = group_changed_files(paths)
            return summary

        summary.description = parsed.description
        summary.main_points = parsed.main_points
        summary.key_changes = parsed.key_changes
        summary.potential_impact = parsed.potential_impact
        summary.suggested_reviewers = parsed.suggested_reviewers
        summary.technical_details = parsed.technical_details
        known = set(paths)
        groups = [
            FileGroup(
                name=group.name,
                description=group.description,
                files=[path for path in group.files if path in known],
                importance=min(max(group.importance, 0), 10),
            )
            for group in parsed.file_groups
        ]
        if not groups:
            groups = group_changed_files(paths)
        elif not any(group.files for group in groups):
            assign_files_to_groups(groups, paths)
        summary.file_groups = groups
        return summary

    def generate_walkthrough(
        self,
        metadata: RepositoryMetadata,
        entry_points: list[str],
        excerpts: dict[str, str],
        *,
        deadline: Deadline,
    ) -> CodeWalkthrough:
        blocks: list[str] = []
        included: list[str] = []
        used = 0
        for path, text in excerpts.items():
            block = f"File: {path}\n```{detect_language(path)}\n{text[:MAX_EXCERPT_CHARS]}\n```"
            if blocks and used + len(block) > MAX_WALKTHROUGH_CHARS:
                break
            blocks.append(block)
            included.append(path)
            used += len(block)

        prompt = WALKTHROUGH_PROMPT.format(
            repository=metadata.full_name,
            repository_info=describe_metadata(metadata),
            entry_points="\n".join(f"- {path}" for path in entry_points) or "(none detected)",
            code="\n\n".join(blocks) or "(no source excerpts)",
        )
        text = self._run("walkthrough", prompt, deadline)
        return CodeWalkthrough(
            repository=metadata.full_name,
            entry_points=list(entry_points),
            files=included,
            walkthrough=text,
        )

    def explain_function(
        self,
        path: str,
        text: str,
        function_name: str = "",
        *,
        line_start: int | None = None,
        line_end: int | None = None,
        deadline: Deadline,
    ) -> FunctionExplanation:
        lines = text.splitlines()
        if line_start is not None or line_end is not None:
            if line_start is None or line_end is None:
                raise InputError("line_start and line_end must be given together")
            if not 1 <= line_start <= line_end <= len(lines):
                raise InputError(
                    f"line range {line_start}-{line_end} is outside {path} ({len(lines)} lines)"
                )
            start, end = line_start, line_end
        else:
            if not function_name.strip():
                raise InputError("a function name or a line range is required")
            span = locate_function(text, function_name.strip())
            if span is None:
                raise InputError(f"function {function_name} not found in {path}")
            start, end = span

        code = "\n".join(lines[start - 1 : end])
        language = detect_language(path)
        prompt = FUNCTION_EXPLAINER_PROMPT.format(language=language, path=path, code=code)
        explanation = self._run("function explanation", prompt, deadline)
        return FunctionExplanation(
            path=path,
            function_name=function_name.strip(),
            language=language,
            start_line=start,
            end_line=end,
            code=code,
            explanation=explanation,
        )

    def explain_architecture(
        self,
        repository: str,
        graph: ArchitectureGraph,
        *,
        from_stored_graph: bool,
        deadline: Deadline,
    ) -> ArchitectureOverview:
        components = {
            node.id: component_layer(node.id)
            for node in graph.nodes
            if node.kind is NodeKind.COMPONENT
        }
        key_files = most_connected_files(graph)
        file_count = sum(1 for node in graph.nodes if node.kind is NodeKind.FILE)
        directory_count = len(graph.nodes) - file_count
        import_count = sum(1 for edge in graph.edges if edge.kind is EdgeKind.IMPORTS)

        prompt = ARCHITECTURE_PROMPT.format(
            repository=repository,
            components="\n".join(f"- {name} ({layer})" for name, layer in components.items())
            or "(no top-level components)",
            key_files="\n".join(f"- {path}" for path in key_files) or "(no import relationships)",
            file_count=file_count,
            directory_count=directory_count,
            import_count=import_count,
        )
        overview = self._run("architecture overview", prompt, deadline)
        return ArchitectureOverview(
            namespace=graph.namespace,
            overview=overview,
            components=components,
            key_files=key_files,
            file_count=file_count,
            directory_count=directory_count,
            import_count=import_count,
            from_stored_graph=from_stored_graph,
        )

    def _run(self, kind: str, prompt: str, deadline: Deadline) -> str:
        deadline.check()
        text = self.generator.generate(prompt, timeout=deadline.remaining())
        deadline.check()
        LOG.info("Generated %s (%d chars)", kind, len(text))
        return text


def significant_changes(changes: list[FileChange]) -> list[FileChange]:
    """Largest changes first (additions plus deletions), ties by file name."""
    ranked = sorted(
        changes, key=lambda change: (-(change.additions + change.deletions), change.filename)
    )
    return ranked[:MAX_SIGNIFICANT_CHANGES]


def group_changed_files(paths: list[str]) -> list[FileGroup]:
    """Files grouped by top-level directory; top-level files go to `root`."""
    groups: dict[str, list[str]] = {}
    for path in paths:
        head, _, rest = path.partition("/")
        groups.setdefault(head if rest else "root", []).append(path)
    return [
        FileGroup(name=name, description=f"Changes in {name}", files=files)
        for name, files in sorted(groups.items())
    ]


def assign_files_to_groups(groups: list[FileGroup], paths: list[str]) -> None:
    """Give every path to the group whose name it matches best, else the first group."""
    if not groups:
        return
    for path in paths:
        lowered = path.lower()
        parts = [part for part in lowered.split("/") if part]
        best, best_score = groups[0], 0
        for group in groups:
            name = group.name.lower()
            score = 0
            if name and name in lowered:
                score += 3
            for part in parts:
                if name and (part in name or name in part):
                    score += 2
            if score > best_score:
                best, best_score = group, score
        best.files.append(path)


def detect_entry_points(paths: list[str], language: str) -> list[str]:
    """Conventional entry-point files for the language, shallowest first."""
    names = ENTRY_POINT_NAMES.get(language.lower())
    if names is None:
        names = tuple(name for group in ENTRY_POINT_NAMES.values() for name in group)
    found = [path for path in paths if posixpath.basename(path) in names]
    found.sort(key=lambda path: (path.count("/"), path))
    return found[:MAX_ENTRY_POINTS]


def select_focus_files(paths: list[str], focus_path: str) -> list[str]:
    """The focus file itself, or the first source files under a focus directory."""
    focus = focus_path.strip("/")
    if focus in paths:
        return [focus]
    prefix = focus + "/"
    under = sorted(path for path in paths if path.startswith(prefix) and is_source_file(path))
    return under[:MAX_FOCUS_FILES]


def locate_function(text: str, name: str) -> tuple[int, int] | None:
    """1-based first and last line of the first definition of `name`."""
    pattern = _definition_pattern(name)
    lines = text.splitlines()
    for index, line in enumerate(lines):
        if pattern.match(line):
            return index + 1, _definition_end(lines, index) + 1
    return None


def component_layer(component: str) -> str:
    return LAYER_BY_DIRECTORY.get(posixpath.basename(component).lower(), "module")


def most_connected_files(graph: ArchitectureGraph) -> list[str]:
    """Files with the most import edges in either direction."""
    degree: Counter[str] = Counter()
    for edge in graph.edges:
        if edge.kind is EdgeKind.IMPORTS:
            degree[edge.source] += 1
            degree[edge.target] += 1
    files = {node.id for node in graph.nodes if node.kind is NodeKind.FILE}
    ranked = sorted(
        (path for path in degree if path in files), key=lambda path: (-degree[path], path)
    )
    return ranked[:MAX_KEY_FILES]


def _describe_changes(changes: list[FileChange]) -> str:
    blocks = []
    for change in changes:
        block = (
            f"File: {change.filename}\n"
            f"Status: {change.status or 'modified'}\n"
            f"Changes: +{change.additions} -{change.deletions}"
        )
        if change.patch and len(change.patch) < MAX_PATCH_CHARS:
            block += f"\nPatch:\n```\n{change.patch}\n```"
        blocks.append(block)
    return "\n\n".join(blocks)


def _parse_summary(reply: str) -> PullRequestSummaryReply | None:
    payload = extract_json_object(reply)
    if payload is None:
        return None
    try:
        return PullRequestSummaryReply.model_validate(payload)
    except ValidationError:
        return None


def _definition_pattern(name: str) -> re.Pattern[str]:
    n = re.escape(name)
    return re.compile(
        rf"^\s*(?:"
        rf"(?:async\s+)?def\s+{n}\s*\("
        rf"|func\s+(?:\([^)]*\)\s*)?{n}\s*[(\[]"
        rf"|(?:export\s+)?(?:default\s+)?(?:async\s+)?function\s*\*?\s*{n}\s*\("
        rf"|(?:export\s+)?(?:const|let|var)\s+{n}\s*="
        rf"|{n}\s*=\s*function\b"
        rf")"
    )


def _definition_end(lines: list[str], start: int) -> int:
    if re.match(r"^\s*(?:async\s+)?def\s", lines[start]):
        return _indented_block_end(lines, start)
    return _brace_block_end(lines, start)


def _indented_block_end(lines: list[str], start: int) -> int:
    indent = _indent(lines[start])
    # Skip a signature that spans several lines.
    header = start
    depth = lines[start].count("(") - lines[start].count(")")
    while depth > 0 and header + 1 < len(lines):
        header += 1
        depth += lines[header].count("(") - lines[header].count(")")
    end = header
    for index in range(header + 1, len(lines)):
        line = lines[index]
        if not line.strip():
            continue
        if _indent(line) <= indent:
            break
        end = index
    return end


def _brace_block_end(lines: list[str], start: int) -> int:
    depth = 0
    opened = False
    for index in range(start, len(lines)):
        for char in lines[index]:
            if char == "{":
                depth += 1
                opened = True
            elif char == "}":
                depth -= 1
        if opened and depth <= 0:
            return index
    # No body braces: a one-line definition such as an arrow function.
    return len(lines) - 1 if opened else start


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())
