"""Text-generation capability: single-shot prompt in, text out."""

from __future__ import annotations

from typing import Any, Protocol

from repo_navigator.errors import OperationTimeout, UpstreamUnavailable
from repo_navigator.timeouts import call_with_timeout


class TextGenerator(Protocol):
    def generate(self, prompt: str, *, timeout: float | None = None) -> str:
        """Return the model's reply to one prompt."""


class ChatModelGenerator:
    """Adapts a LangChain chat model (e.g. `ChatOpenAI`) to `TextGenerator`."""

    def __init__(self, llm: Any) -> None:
        self.llm = llm

    def generate(self, prompt: str, *, timeout: float | None = None) -> str:
        if not prompt.strip():
            raise ValueError("prompt must not be empty")
        try:
            response = call_with_timeout(
                lambda: self._invoke(prompt, timeout), timeout, operation="text generation"
            )
        except OperationTimeout:
            raise
        except Exception as exc:
            raise UpstreamUnavailable("text-generation", str(exc)) from exc
        text = _message_text(response)
        if not text.strip():
            raise UpstreamUnavailable("text-generation", "no response generated")
        return text

    def _invoke(self, prompt: str, timeout: float | None) -> Any:
        # Forwarded to the provider client so the request itself is aborted.
        if timeout is None:
            return self.llm.invoke(prompt)
        return self.llm.invoke(prompt, timeout=timeout)


def _message_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict) and "text" in item:
                parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return " ".join(parts).strip()
    return str(content)


class UnconfiguredGenerator:
    """Stands in when no provider is configured; every call is unavailable."""

    def __init__(self, reason: str) -> None:
        self.reason = reason

    def generate(self, prompt: str, *, timeout: float | None = None) -> str:
        raise UpstreamUnavailable("text-generation", self.reason)
