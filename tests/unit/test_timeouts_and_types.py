import threading
import time

import pytest

from repo_navigator.config import TimeoutConfig
from repo_navigator.errors import InputError, OperationTimeout
from repo_navigator.timeouts import Deadline, OperationKind, TimeoutPolicy, call_with_timeout
from repo_navigator.types import RepositoryRef


def test_policy_table_and_single_override() -> None:
    policy = TimeoutPolicy(TimeoutConfig(interactive_seconds=30, indexing_seconds=900))

    assert policy.budget_for(OperationKind.INTERACTIVE) == 30
    assert policy.budget_for(OperationKind.INDEXING) == 900
    assert policy.deadline(OperationKind.INDEXING, "index", override=5).budget_seconds == 5
    with pytest.raises(InputError):
        policy.deadline(OperationKind.INTERACTIVE, "answer", override=0)


def test_expired_deadline_raises_operation_timeout() -> None:
    deadline = Deadline("answer question", 0.01)
    time.sleep(0.02)

    assert deadline.expired
    assert deadline.remaining() == 0.0
    with pytest.raises(OperationTimeout, match="answer question"):
        deadline.check()


def test_call_with_timeout_cancels_slow_calls() -> None:
    assert call_with_timeout(lambda: 42, 1.0, operation="fast") == 42
    assert call_with_timeout(lambda: 7, None, operation="unbounded") == 7
    with pytest.raises(OperationTimeout):
        call_with_timeout(lambda: time.sleep(0.5), 0.05, operation="slow")
    with pytest.raises(OperationTimeout):
        call_with_timeout(lambda: 1, 0, operation="spent")


def test_hung_calls_do_not_starve_later_calls() -> None:
    release = threading.Event()
    try:
        for _ in range(20):
            with pytest.raises(OperationTimeout):
                call_with_timeout(lambda: release.wait(5), 0.01, operation="hung")

        assert call_with_timeout(lambda: "instant", 0.5, operation="fast") == "instant"
    finally:
        release.set()


def test_operation_timeout_is_distinct_from_upstream_errors() -> None:
    error = OperationTimeout("index repository", 1800)

    assert isinstance(error, TimeoutError)
    assert "1800.0s" in str(error)


def test_repository_ref_parsing_and_namespaces() -> None:
    ref = RepositoryRef.parse("https://github.com/octo/demo.git", "main")

    assert ref == RepositoryRef("octo", "demo", "main")
    assert ref.namespace == "octo/demo@main"
    assert RepositoryRef.parse("octo/demo").is_resolved is False
    assert (
        RepositoryRef("octo", "demo", "feature/x").namespace
        != RepositoryRef("octo", "demo", "feature%2Fx").namespace
    )


@pytest.mark.parametrize("value", ["", "octo", "octo/demo/extra", "oc to/demo", "../demo"])
def test_repository_ref_rejects_malformed_references(value: str) -> None:
    with pytest.raises(InputError):
        RepositoryRef.parse(value)


def test_unresolved_ref_has_no_namespace() -> None:
    with pytest.raises(InputError):
        RepositoryRef("octo", "demo").namespace
