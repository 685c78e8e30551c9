"""Deadlines and the timeout policy table.

Every operation the navigator exposes runs under exactly one `Deadline`. The
budget comes from `TimeoutPolicy`, keyed by `OperationKind`; callers can pass a
single explicit override. Components check the deadline before and after each
external call and hand the remaining budget to adapters as their own timeout.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from enum import Enum
from typing import TypeVar

from repo_navigator.config import TimeoutConfig
from repo_navigator.errors import InputError, OperationTimeout

T = TypeVar("T")


class OperationKind(str, Enum):
    INTERACTIVE = "interactive"
    INDEXING = "indexing"


class Deadline:
    """Monotonic deadline for one operation."""

    def __init__(self, operation: str, budget_seconds: float) -> None:
        if budget_seconds <= 0:
            raise InputError("timeout must be positive")
        self.operation = operation
        self.budget_seconds = budget_seconds
        self._expires_at = time.monotonic() + budget_seconds

    def remaining(self) -> float:
        return max(0.0, self._expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def check(self) -> None:
        """Raise `OperationTimeout` once the budget is spent."""
        if self.expired:
            raise OperationTimeout(self.operation, self.budget_seconds)

    def timeout_error(self) -> OperationTimeout:
        return OperationTimeout(self.operation, self.budget_seconds)


class TimeoutPolicy:
    """Maps operation kinds to deadline budgets."""

    def __init__(self, config: TimeoutConfig | None = None) -> None:
        self.config = config or TimeoutConfig()

    def budget_for(self, kind: OperationKind) -> float:
        if kind is OperationKind.INDEXING:
            return self.config.indexing_seconds
        return self.config.interactive_seconds

    def deadline(
        self,
        kind: OperationKind,
        operation: str,
        *,
        override: float | None = None,
    ) -> Deadline:
        budget = override if override is not None else self.budget_for(kind)
        return Deadline(operation, budget)


def call_with_timeout(
    func: Callable[[], T], timeout: float | None, *, operation: str
) -> T:
    """Run a blocking call that has no native timeout support.

    Each call gets its own worker so a call that never returns cannot starve
    later ones. On expiry `OperationTimeout` is raised and the worker is
    abandoned; adapters also hand the budget to the provider client as its
    request timeout, which is what actually aborts the in-flight request.
    """

    if timeout is None:
        return func()
    if timeout <= 0:
        raise OperationTimeout(operation, 0.0)
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="external-call")
    future = executor.submit(func)
    try:
        return future.result(timeout=timeout)
    except FutureTimeoutError as exc:
        future.cancel()
        raise OperationTimeout(operation, timeout) from exc
    finally:
        executor.shutdown(wait=False, cancel_futures=True)
