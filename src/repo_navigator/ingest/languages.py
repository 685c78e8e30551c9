"""Source-file allow-list and language hints keyed by file extension."""

from __future__ import annotations

from pathlib import PurePosixPath

LANGUAGE_BY_EXTENSION: dict[str, str] = {
    ".go": "go",
    ".py": "python",
    ".js": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".tsx": "typescript",
    ".java": "java",
    ".c": "c",
    ".h": "c",
    ".cpp": "cpp",
    ".cs": "csharp",
    ".rb": "ruby",
    ".php": "php",
    ".swift": "swift",
    ".kt": "kotlin",
    ".rs": "rust",
    ".scala": "scala",
    ".sh": "shell",
    ".html": "html",
    ".css": "css",
    ".md": "markdown",
    ".yml": "yaml",
    ".yaml": "yaml",
    ".json": "json",
    ".xml": "xml",
    ".sql": "sql",
    ".proto": "protobuf",
}

SOURCE_EXTENSIONS = frozenset(LANGUAGE_BY_EXTENSION)


def extension_of(path: str) -> str:
    return PurePosixPath(path).suffix.lower()


def detect_language(path: str) -> str:
    return LANGUAGE_BY_EXTENSION.get(extension_of(path), "text")


def is_source_file(path: str) -> bool:
    return extension_of(path) in SOURCE_EXTENSIONS
