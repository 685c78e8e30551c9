"""Architecture graph: directory/file structure plus resolved import edges."""

from __future__ import annotations

import logging
import posixpath
import re
from dataclasses import dataclass, field

from repo_navigator.errors import UpstreamUnavailable
from repo_navigator.ingest.languages import extension_of
from repo_navigator.sources.base import RepositorySource
from repo_navigator.timeouts import Deadline
from repo_navigator.types import EdgeKind, GraphEdge, GraphNode, NodeKind, RepositoryRef, TreeEntry

LOG = logging.getLogger(__name__)

_PY_FROM = re.compile(r"^\s*from\s+(\.*[\w.]*)\s+import\s+", re.MULTILINE)
_PY_IMPORT = re.compile(r"^\s*import\s+([\w.]+(?:\s*,\s*[\w.]+)*)", re.MULTILINE)
_JS_IMPORT = re.compile(
    r"""(?:import\s+(?:[^'"]*?\s+from\s+)?|require\s*\(\s*|import\s*\(\s*)['"]([^'"]+)['"]"""
)
_GO_BLOCK = re.compile(r"^\s*import\s*\((.*?)\)", re.MULTILINE | re.DOTALL)
_GO_SINGLE = re.compile(r'^\s*import\s+(?:\w+\s+)?"([^"]+)"', re.MULTILINE)
_GO_QUOTED = re.compile(r'"([^"]+)"')
_C_INCLUDE = re.compile(r'^\s*#\s*include\s+"([^"]+)"', re.MULTILINE)

_JS_SUFFIXES = ("", ".js", ".ts", ".jsx", ".tsx", "/index.js", "/index.ts", "/index.jsx", "/index.tsx")

_IMPORT_LANGUAGES = {
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "javascript",
    ".tsx": "javascript",
    ".go": "go",
    ".c": "c",
    ".h": "c",
    ".cpp": "c",
}


@dataclass(slots=True)
class ArchitectureGraph:
    namespace: str = ""
    nodes: list[GraphNode] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)


def extract_imports(path: str, text: str) -> list[str]:
    """Raw import specifiers in source order, by file extension."""

    language = _IMPORT_LANGUAGES.get(extension_of(path))
    specs: list[str] = []
    if language == "python":
        specs.extend(match.group(1) for match in _PY_FROM.finditer(text))
        for match in _PY_IMPORT.finditer(text):
            specs.extend(part.strip() for part in match.group(1).split(","))
    elif language == "javascript":
        specs.extend(match.group(1) for match in _JS_IMPORT.finditer(text))
    elif language == "go":
        for block in _GO_BLOCK.finditer(text):
            specs.extend(match.group(1) for match in _GO_QUOTED.finditer(block.group(1)))
        specs.extend(match.group(1) for match in _GO_SINGLE.finditer(text))
    elif language == "c":
        specs.extend(match.group(1) for match in _C_INCLUDE.finditer(text))
    return list(dict.fromkeys(spec for spec in specs if spec))


class ImportResolver:
    """Maps import specifiers to node ids of files or directories in one tree."""

    def __init__(self, files: set[str], directories: set[str]) -> None:
        self.files = files
        self.directories = directories

    def resolve(self, path: str, spec: str) -> str | None:
        language = _IMPORT_LANGUAGES.get(extension_of(path))
        if language == "python":
            return self._python(path, spec)
        if language == "javascript":
            return self._javascript(path, spec)
        if language == "go":
            return self._go(spec)
        if language == "c":
            return self._include(path, spec)
        return None

    def _python(self, path: str, spec: str) -> str | None:
        level = len(spec) - len(spec.lstrip("."))
        module = spec.lstrip(".").replace(".", "/")
        if level:
            base = posixpath.dirname(path)
            for _ in range(level - 1):
                base = posixpath.dirname(base)
            stem = posixpath.join(base, module) if module else base
            return self._first_file((f"{stem}.py", f"{stem}/__init__.py")) or (
                stem if stem in self.directories else None
            )
        if not module:
            return None
        candidates = (f"{module}.py", f"{module}/__init__.py")
        return self._first_file(candidates) or self._suffix_file(candidates)

    def _javascript(self, path: str, spec: str) -> str | None:
        if not spec.startswith("."):
            return None
        stem = posixpath.normpath(posixpath.join(posixpath.dirname(path), spec))
        return self._first_file(tuple(stem + suffix for suffix in _JS_SUFFIXES))

    def _go(self, spec: str) -> str | None:
        matches = [
            directory
            for directory in self.directories
            if spec == directory or spec.endswith("/" + directory)
        ]
        if not matches:
            return None
        return max(matches, key=lambda directory: (len(directory), directory))

    def _include(self, path: str, spec: str) -> str | None:
        local = posixpath.normpath(posixpath.join(posixpath.dirname(path), spec))
        return self._first_file((local, posixpath.normpath(spec))) or self._suffix_file((spec,))

    def _first_file(self, candidates: tuple[str, ...]) -> str | None:
        for candidate in candidates:
            if candidate in self.files:
                return candidate
        return None

    def _suffix_file(self, candidates: tuple[str, ...]) -> str | None:
        for candidate in candidates:
            found = sorted(item for item in self.files if item.endswith("/" + candidate))
            if found:
                return found[0]
        return None


class ArchitectureGraphBuilder:
    """Builds the structure graph of one repository snapshot.

    Directories and files become nodes linked by `contains` edges; top-level
    directories are tagged as components. Up to `max_import_files` sources in
    languages with import extraction are fetched to add `imports` edges.
    """

    def __init__(self, source: RepositorySource, *, max_import_files: int = 300) -> None:
        self.source = source
        self.max_import_files = max_import_files

    def build(self, repo: RepositoryRef, *, deadline: Deadline) -> ArchitectureGraph:
        deadline.check()
        tree = self.source.fetch_tree(repo, timeout=deadline.remaining())
        deadline.check()
        graph = structure_graph(tree)
        graph.namespace = repo.namespace

        files = {node.id for node in graph.nodes if node.kind is NodeKind.FILE}
        directories = {node.id for node in graph.nodes if node.kind is not NodeKind.FILE}
        resolver = ImportResolver(files, directories)
        candidates = sorted(path for path in files if extension_of(path) in _IMPORT_LANGUAGES)

        imports: dict[tuple[str, str], GraphEdge] = {}
        for path in candidates[: self.max_import_files]:
            deadline.check()
            try:
                text = self.source.fetch_file_content(repo, path, timeout=deadline.remaining())
            except UpstreamUnavailable as exc:
                LOG.warning("Skipping imports of %s: %s", path, exc)
                graph.skipped_files.append(path)
                continue
            for spec in extract_imports(path, text):
                target = resolver.resolve(path, spec)
                if target is None or target == path:
                    continue
                imports[(path, target)] = GraphEdge(source=path, target=target, kind=EdgeKind.IMPORTS)

        graph.edges.extend(imports.values())
        graph.edges.sort(key=_edge_order)
        LOG.info(
            "Built architecture graph for %s: %d nodes, %d edges",
            repo.full_name,
            len(graph.nodes),
            len(graph.edges),
        )
        return graph


def structure_graph(tree: list[TreeEntry]) -> ArchitectureGraph:
    """Directory and file nodes with `contains` edges, no imports."""

    files = sorted(entry.path.strip("/") for entry in tree if entry.kind == "file")
    directories = {entry.path.strip("/") for entry in tree if entry.kind != "file"}
    for path in files:
        parent = posixpath.dirname(path)
        while parent:
            directories.add(parent)
            parent = posixpath.dirname(parent)
    directories.discard("")

    nodes: list[GraphNode] = []
    for directory in sorted(directories):
        kind = NodeKind.COMPONENT if "/" not in directory else NodeKind.DIRECTORY
        nodes.append(GraphNode(id=directory, label=posixpath.basename(directory), kind=kind))
    nodes.extend(
        GraphNode(id=path, label=posixpath.basename(path), kind=NodeKind.FILE) for path in files
    )
    nodes.sort(key=lambda node: node.id)

    edges = [
        GraphEdge(source=posixpath.dirname(node.id), target=node.id, kind=EdgeKind.CONTAINS)
        for node in nodes
        if posixpath.dirname(node.id)
    ]
    edges.sort(key=_edge_order)
    return ArchitectureGraph(nodes=nodes, edges=edges)


def _edge_order(edge: GraphEdge) -> tuple[str, str, str]:
    # Same order graph stores return.
    return (edge.source, edge.target, edge.kind.value)
