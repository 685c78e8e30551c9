"""Line-window chunking of source files."""

from __future__ import annotations

from repo_navigator.config import ChunkingConfig
from repo_navigator.errors import InputError
from repo_navigator.ingest.languages import detect_language
from repo_navigator.types import Chunk

_Span = tuple[int, int, str]


class LineWindowChunker:
    """Splits a file into contiguous, bounded line windows with overlap.

    Design notes:
    1. Line windows first.
       A window collects up to `window_lines` lines (`large_file_window_lines`
       once a file passes `large_file_threshold` lines), closing early when the
       next line would push the window past `max_chars`. Source code keeps its
       meaning at line granularity, so a window never cuts a line that fits.

    2. Overlap second.
       The next window starts `overlap_lines` before the previous one ended.
       The overlap shrinks when the overlap lines plus the next unseen line
       would not fit in `max_chars`, so every window makes progress.

    3. Oversized lines.
       A single line longer than `max_chars` (minified bundles, generated
       data) is cut into `max_chars` pieces. Each piece is its own chunk whose
       start and end line are that line.

    The output depends only on the path and text, so re-chunking a file always
    yields the same boundaries and ids.
    """

    def __init__(self, config: ChunkingConfig | None = None) -> None:
        self.config = config or ChunkingConfig()

    def chunk_file(self, path: str, text: str | None) -> list[Chunk]:
        """Chunk one file's text.

        Args:
            path: Repository-relative file path.
            text: Full file content. `None` or blank text yields no chunks.

        Returns:
            Ordered chunks covering every non-blank line of the file.
        """

        if not path:
            raise InputError("path must not be empty")
        if text is None or not text.strip():
            return []

        lines = text.splitlines()
        window = (
            self.config.large_file_window_lines
            if len(lines) > self.config.large_file_threshold
            else self.config.window_lines
        )
        language = detect_language(path)
        chunks: list[Chunk] = []
        for start, end, body in self._spans(lines, window):
            if not body.strip():
                continue
            chunks.append(
                Chunk(
                    chunk_id=f"{path}::chunk-{len(chunks):04d}",
                    path=path,
                    start_line=start + 1,
                    end_line=end,
                    text=body,
                    language=language,
                )
            )
        return chunks

    def _spans(self, lines: list[str], window: int) -> list[_Span]:
        spans: list[_Span] = []
        start = 0
        while start < len(lines):
            if len(lines[start]) > self.config.max_chars:
                spans.extend(self._split_long_line(start, lines[start]))
                start += 1
                continue

            end = self._window_end(lines, start, window)
            spans.append((start, end, "\n".join(lines[start:end])))
            if end >= len(lines):
                break
            if len(lines[end]) > self.config.max_chars:
                start = end
                continue
            start = self._next_start(lines, start, end)
        return spans

    def _window_end(self, lines: list[str], start: int, window: int) -> int:
        end = start
        size = 0
        while end < len(lines) and end - start < window:
            line = lines[end]
            if len(line) > self.config.max_chars:
                break
            added = len(line) + (1 if end > start else 0)
            if size + added > self.config.max_chars:
                break
            size += added
            end += 1
        return end

    def _next_start(self, lines: list[str], start: int, end: int) -> int:
        candidate = max(start + 1, end - self.config.overlap_lines)
        while candidate < end and _joined_length(lines[candidate : end + 1]) > self.config.max_chars:
            candidate += 1
        return candidate

    def _split_long_line(self, index: int, line: str) -> list[_Span]:
        size = self.config.max_chars
        return [(index, index + 1, line[i : i + size]) for i in range(0, len(line), size)]


def _joined_length(lines: list[str]) -> int:
    if not lines:
        return 0
    return sum(len(line) for line in lines) + len(lines) - 1
