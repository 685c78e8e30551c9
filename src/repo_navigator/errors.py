"""Exception taxonomy shared by every navigator component."""

from __future__ import annotations


class NavigatorError(Exception):
    """Base class for errors surfaced to callers."""


class InputError(NavigatorError, ValueError):
    """Malformed repository reference, empty question or invalid argument."""


class UpstreamUnavailable(NavigatorError):
    """An external capability was unreachable or returned an error."""

    def __init__(self, service: str, message: str) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service


class OperationTimeout(NavigatorError, TimeoutError):
    """The operation's deadline expired before it could finish."""

    def __init__(self, operation: str, budget_seconds: float) -> None:
        super().__init__(
            f"{operation} exceeded its deadline of {budget_seconds:.1f}s"
        )
        self.operation = operation
        self.budget_seconds = budget_seconds
