"""Answer synthesis: bounded prompt assembly, one generation call, follow-up parsing."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import asdict, is_dataclass
from typing import Any

from repo_navigator.agent.llm import TextGenerator
from repo_navigator.agent.prompts import (
    ANSWER_PROMPT,
    DOMAIN_INSTRUCTIONS,
    NO_CONTEXT_NOTE,
    RECENT_FALLBACK_NOTE,
)
from repo_navigator.config import SynthesisConfig
from repo_navigator.timeouts import Deadline
from repo_navigator.types import (
    Domain,
    FilteredListing,
    RelevantFile,
    RetrievalResult,
    RouterDecision,
    ScoredChunk,
    SynthesizedAnswer,
)

LOG = logging.getLogger(__name__)

NO_CONTEXT = "no_context"
RECENT_ITEMS_FALLBACK = "recent_items_fallback"

INTERROGATIVES = frozenset(
    {
        "how", "what", "why", "when", "where", "which", "who",
        "can", "could", "should", "would", "is", "are", "does", "do", "will",
    }
)

_FOLLOWUP_HEADING = re.compile(r"follow[\s-]?up", re.IGNORECASE)
_MARKDOWN_HEADING = re.compile(r"^\s*#{1,6}\s")
_BULLET = re.compile(r"^\s*(?:[-*+]|\d+[.)])\s+(?P<body>.+)$")
_EMPHASIS = re.compile(r"(\*\*|__|\*|`)")


class AnswerSynthesizer:
    """Turns routed context into a `SynthesizedAnswer`.

    Context is rendered most relevant first (chunks) or most recent first
    (listing items) and cut at whole-item granularity once the character budget
    is spent, so the tail is what gets dropped.
    """

    def __init__(self, generator: TextGenerator, config: SynthesisConfig | None = None) -> None:
        self.generator = generator
        self.config = config or SynthesisConfig()

    def synthesize(
        self,
        repository: str,
        question: str,
        decision: RouterDecision,
        *,
        retrieval: RetrievalResult | None = None,
        listing: FilteredListing | None = None,
        extra_data: dict[str, Any] | None = None,
        deadline: Deadline | None = None,
    ) -> SynthesizedAnswer:
        fallbacks: list[str] = []
        notes: list[str] = []
        included: list[ScoredChunk] = []
        extra: dict[str, Any] = dict(extra_data or {})

        if decision.domain is Domain.CODE:
            blocks, included = self._code_context(retrieval)
            if not included:
                fallbacks.append(NO_CONTEXT)
                notes.append(NO_CONTEXT_NOTE)
            if retrieval is not None:
                extra.setdefault("namespace", retrieval.namespace)
            extra["retrieved_chunks"] = len(retrieval) if retrieval is not None else 0
            extra["included_chunks"] = len(included)
        else:
            blocks = self._listing_context(listing)
            if listing is not None:
                extra["item_count"] = len(listing.items)
                extra["filter_mode"] = listing.mode.value
                extra["total_items"] = listing.total
                if listing.is_fallback:
                    fallbacks.append(RECENT_ITEMS_FALLBACK)
                    notes.append(RECENT_FALLBACK_NOTE.format(keywords=", ".join(listing.keywords)))
            extra["included_items"] = len(blocks)

        prompt = ANSWER_PROMPT.format(
            repository=repository,
            question=question,
            instructions=DOMAIN_INSTRUCTIONS[decision.domain],
            context_note="\n".join(notes),
            domain=decision.domain.value,
            context="\n\n".join(blocks) if blocks else "(none)",
        )

        if deadline is not None:
            deadline.check()
        reply = self.generator.generate(
            prompt, timeout=deadline.remaining() if deadline is not None else None
        )
        if deadline is not None:
            deadline.check()

        followups = extract_followup_questions(reply, limit=self.config.max_followups)
        LOG.info(
            "Synthesized %s answer with %d context blocks, %d follow-ups, fallbacks=%s",
            decision.domain.value,
            len(blocks),
            len(followups),
            fallbacks,
        )
        return SynthesizedAnswer(
            answer_text=reply,
            domain=decision.domain,
            relevant_files=[
                RelevantFile(
                    path=hit.chunk.path,
                    snippet=hit.chunk.text[: self.config.snippet_chars],
                    relevance=hit.score,
                )
                for hit in included
            ],
            followup_questions=followups,
            extra_data=extra,
            fallbacks=fallbacks,
            namespace=retrieval.namespace if retrieval is not None else None,
        )

    def _code_context(
        self, retrieval: RetrievalResult | None
    ) -> tuple[list[str], list[ScoredChunk]]:
        if retrieval is None:
            return [], []
        ranked = sorted(retrieval.hits, key=lambda hit: (-hit.score, hit.chunk.chunk_id))
        blocks: list[str] = []
        included: list[ScoredChunk] = []
        used = 0
        for hit in ranked:
            chunk = hit.chunk
            block = (
                f"File: {chunk.path} (lines {chunk.start_line}-{chunk.end_line})\n"
                f"```{chunk.language}\n{chunk.text}\n```"
            )
            if used + len(block) > self.config.max_context_chars:
                break
            blocks.append(block)
            included.append(hit)
            used += len(block) + 2
        return blocks, included

    def _listing_context(self, listing: FilteredListing | None) -> list[str]:
        if listing is None:
            return []
        blocks: list[str] = []
        used = 0
        for item in listing.items:
            line = json.dumps(_plain(item), sort_keys=True, default=str)
            if used + len(line) > self.config.max_context_chars:
                break
            blocks.append(line)
            used += len(line) + 2
        return blocks


def extract_followup_questions(reply: str, *, limit: int = 3) -> list[str]:
    """Collect question-like bullets under a follow-up heading.

    A line mentioning "follow-up"/"follow up" opens the section; the next
    markdown heading closes it. Only bulleted or numbered lines that end with
    '?' or start with an interrogative word are kept.
    """

    questions: list[str] = []
    if limit <= 0:
        return questions
    in_section = False
    for line in (reply or "").splitlines():
        stripped = line.strip()
        if not stripped:
            continue
        if _FOLLOWUP_HEADING.search(stripped) and not _BULLET.match(line):
            in_section = True
            continue
        if not in_section:
            continue
        if _MARKDOWN_HEADING.match(line):
            break
        bullet = _BULLET.match(line)
        if bullet is None:
            continue
        text = _EMPHASIS.sub("", bullet.group("body")).strip()
        if _is_question(text):
            questions.append(text)
            if len(questions) >= limit:
                break
    return questions


def _is_question(text: str) -> bool:
    if not text:
        return False
    if text.endswith("?"):
        return True
    first = text.split(maxsplit=1)[0].lower().strip(",:;")
    return first in INTERROGATIVES


def _plain(item: Any) -> Any:
    if is_dataclass(item) and not isinstance(item, type):
        return asdict(item)
    return item
