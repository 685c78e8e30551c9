"""Question router: classify a question into one data domain plus keywords.

The model's reply goes through an explicit two-stage parser:

1. `parse_structured_reply` expects a JSON object and validates it.
2. `parse_heuristic_reply` scans the raw reply, then the question, against an
   ordered phrase table; with no hit the decision defaults to `Domain.CODE`.

Every returned `RouterDecision` carries the `ParseStage` that produced it.
"""

from __future__ import annotations

import json
import logging
import re

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from repo_navigator.agent.llm import TextGenerator
from repo_navigator.agent.prompts import ROUTER_PROMPT
from repo_navigator.errors import InputError, UpstreamUnavailable
from repo_navigator.timeouts import Deadline
from repo_navigator.types import Domain, ParseStage, RouterDecision

LOG = logging.getLogger(__name__)

MAX_KEYWORDS = 5

_DOMAIN_ALIASES: dict[str, Domain] = {
    "code": Domain.CODE,
    "code_search": Domain.CODE,
    "codebase": Domain.CODE,
    "commit": Domain.COMMITS,
    "commits": Domain.COMMITS,
    "pull": Domain.PULLS,
    "pulls": Domain.PULLS,
    "pull_request": Domain.PULLS,
    "pull_requests": Domain.PULLS,
    "prs": Domain.PULLS,
    "issue": Domain.ISSUES,
    "issues": Domain.ISSUES,
    "release": Domain.RELEASES,
    "releases": Domain.RELEASES,
    "stats": Domain.STATS,
    "statistics": Domain.STATS,
    "user": Domain.USERS,
    "users": Domain.USERS,
    "repo_meta": Domain.REPO_META,
    "repometa": Domain.REPO_META,
    "repos": Domain.REPO_META,
    "repo": Domain.REPO_META,
    "repository": Domain.REPO_META,
}

# Order matters: on equal match position the earlier rule wins.
_DOMAIN_RULES: tuple[tuple[re.Pattern[str], Domain], ...] = tuple(
    (re.compile(pattern, re.IGNORECASE), domain)
    for pattern, domain in (
        (r"\bpull[\s_-]?requests?\b|\bprs?\b|\bpulls\b|\bmerged?\b", Domain.PULLS),
        (r"\bcommit\w*", Domain.COMMITS),
        (r"\bissues?\b|\bbugs?\b", Domain.ISSUES),
        (r"\breleases?\b|\bversions?\b|\bchangelog\b", Domain.RELEASES),
        (r"\bstatistic\w*|\bstats\b|\bcontributors?\b|\bcode frequency\b", Domain.STATS),
        (r"\busers?\b|\bprofiles?\b|\bmaintainers?\b", Domain.USERS),
        (
            r"\brepo_meta\b|\brepository info\w*|\brepo settings?\b|\blicen[cs]e\b|\btopics?\b",
            Domain.REPO_META,
        ),
        (r"\bcode_search\b|\bcode search\b|\bcodebase\b|\bsource code\b|\bimplement\w*", Domain.CODE),
    )
)

STOP_WORDS = frozenset(
    {
        "a", "an", "the", "this", "that", "is", "are", "am", "was", "were",
        "be", "being", "been", "have", "has", "had", "do", "does", "did",
        "in", "on", "at", "by", "to", "for", "with", "about", "from",
        "how", "what", "when", "where", "who", "why", "which",
        "and", "or", "but", "if", "then", "no", "not", "all", "any", "each",
        "you", "your", "can", "could", "would", "should",
    }
)

_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_KEYWORDS_FRAGMENT = re.compile(r'"keywords"\s*:\s*\[(.*?)\]', re.DOTALL | re.IGNORECASE)


class RouterReply(BaseModel):
    """Structured reply expected from the classification prompt."""

    domain: str = Field(validation_alias=AliasChoices("domain", "api_type"))
    explanation: str = ""
    keywords: list[str] = Field(default_factory=list)


class QuestionRouter:
    """Maps a free-text question to exactly one `Domain` and up to five keywords."""

    def __init__(self, generator: TextGenerator) -> None:
        self.generator = generator

    def route(self, question: str, *, deadline: Deadline | None = None) -> RouterDecision:
        text = (question or "").strip()
        if not text:
            raise InputError("question must not be empty")

        prompt = ROUTER_PROMPT.format(question=text)
        try:
            if deadline is not None:
                deadline.check()
            reply = self.generator.generate(
                prompt, timeout=deadline.remaining() if deadline is not None else None
            )
        except UpstreamUnavailable as exc:
            LOG.warning("Classification call failed, routing from question text: %s", exc)
            reply = ""
        if deadline is not None:
            deadline.check()

        decision = parse_structured_reply(reply, text) or parse_heuristic_reply(reply, text)
        LOG.info(
            "Routed question to %s via %s stage (keywords=%s)",
            decision.domain.value,
            decision.stage.value,
            list(decision.keywords),
        )
        return decision


def parse_structured_reply(reply: str, question: str) -> RouterDecision | None:
    """First parser stage: strict JSON decode. Returns None when it does not apply."""

    payload = extract_json_object(reply)
    if payload is None:
        return None
    try:
        parsed = RouterReply.model_validate(payload)
    except ValidationError:
        return None
    domain = normalize_domain(parsed.domain)
    if domain is None:
        return None
    keywords = _clean_keywords(parsed.keywords) or extract_keywords(question)
    return RouterDecision(
        domain=domain,
        keywords=keywords,
        stage=ParseStage.STRUCTURED,
        explanation=parsed.explanation,
    )


def parse_heuristic_reply(reply: str, question: str) -> RouterDecision:
    """Second parser stage: phrase table over the reply, then the question."""

    keywords = _keywords_fragment(reply) or extract_keywords(question)
    for source_name, text in (("reply", reply), ("question", question)):
        match = _match_rule(text)
        if match is not None:
            domain, phrase = match
            return RouterDecision(
                domain=domain,
                keywords=keywords,
                stage=ParseStage.HEURISTIC,
                explanation=f"Detected reference to '{phrase}' in the {source_name}",
            )
    return RouterDecision(
        domain=Domain.CODE,
        keywords=keywords,
        stage=ParseStage.DEFAULT,
        explanation="No domain indicators found; defaulting to code",
    )


def normalize_domain(value: str) -> Domain | None:
    key = re.sub(r"[\s-]+", "_", value.strip().lower())
    return _DOMAIN_ALIASES.get(key)


def extract_keywords(question: str) -> tuple[str, ...]:
    """Up to five non-stop-words longer than two characters, in question order."""

    keywords: list[str] = []
    for raw in question.lower().split():
        word = raw.strip(".,;:!?\"'()[]{}`")
        if len(word) <= 2 or word in STOP_WORDS or word in keywords:
            continue
        keywords.append(word)
        if len(keywords) == MAX_KEYWORDS:
            break
    return tuple(keywords)


def _match_rule(text: str) -> tuple[Domain, str] | None:
    if not text:
        return None
    best: tuple[int, int, Domain, str] | None = None
    for order, (pattern, domain) in enumerate(_DOMAIN_RULES):
        found = pattern.search(text)
        if found is None:
            continue
        candidate = (found.start(), order, domain, found.group(0))
        if best is None or candidate[:2] < best[:2]:
            best = candidate
    if best is None:
        return None
    return best[2], best[3]


def extract_json_object(reply: str) -> dict | None:
    """The outermost JSON object in a model reply, fenced or not."""
    if not reply:
        return None
    fenced = _FENCE.search(reply)
    body = fenced.group(1) if fenced else reply
    start = body.find("{")
    end = body.rfind("}")
    if start == -1 or end <= start:
        return None
    try:
        payload = json.loads(body[start : end + 1])
    except json.JSONDecodeError:
        return None
    return payload if isinstance(payload, dict) else None


def _keywords_fragment(reply: str) -> tuple[str, ...]:
    match = _KEYWORDS_FRAGMENT.search(reply or "")
    if not match:
        return ()
    parts = [part.strip().strip("\"'") for part in match.group(1).split(",")]
    return _clean_keywords(parts)


def _clean_keywords(values: list[str]) -> tuple[str, ...]:
    cleaned: list[str] = []
    seen: set[str] = set()
    for value in values:
        keyword = str(value).strip()
        if not keyword or keyword.lower() in seen:
            continue
        seen.add(keyword.lower())
        cleaned.append(keyword)
    return tuple(cleaned[:MAX_KEYWORDS])
