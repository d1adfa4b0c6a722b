"""Tests for logging context propagation."""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from jobfeed.logging.context import (
    clear_log_context,
    get_log_context,
    log_context,
    pop_log_context,
    push_log_context,
)


@pytest.fixture(autouse=True)
def clean_context():
    """Clear logging context before and after each test."""
    clear_log_context()
    yield
    clear_log_context()


def test_empty_context():
    assert get_log_context() == {}


def test_push_and_pop():
    token = push_log_context(run_id="abc123", employer_id="acme")
    assert get_log_context() == {"run_id": "abc123", "employer_id": "acme"}

    pop_log_context(token)
    assert get_log_context() == {}


def test_nested_push_restores_outer_fields():
    outer = push_log_context(run_id="abc123")
    inner = push_log_context(employer_id="acme", identity="acme:1")
    assert get_log_context() == {"run_id": "abc123", "employer_id": "acme", "identity": "acme:1"}

    pop_log_context(inner)
    assert get_log_context() == {"run_id": "abc123"}

    pop_log_context(outer)
    assert get_log_context() == {}


def test_inner_scope_overrides_field():
    with log_context(employer_id="acme"):
        with log_context(employer_id="globex"):
            assert get_log_context()["employer_id"] == "globex"
        assert get_log_context()["employer_id"] == "acme"


def test_context_manager_restores_on_exception():
    with pytest.raises(ValueError):
        with log_context(run_id="abc123"):
            assert get_log_context() == {"run_id": "abc123"}
            raise ValueError("normalization failed")

    assert get_log_context() == {}


def test_context_manager_does_not_swallow():
    ctx = log_context(run_id="abc123")

    assert ctx.__enter__() is ctx
    assert ctx.__exit__(ValueError, ValueError("x"), None) is False
    assert ctx.token is None


def test_clear_context():
    push_log_context(run_id="abc123", employer_id="acme")

    clear_log_context()

    assert get_log_context() == {}


def test_returned_copy_is_detached():
    with log_context(run_id="abc123"):
        context = get_log_context()
        context["employer_id"] = "modified"

        assert get_log_context() == {"run_id": "abc123"}


def test_worker_fields_stay_in_worker():
    """Fields pushed inside a pool worker stay in that worker."""
    seen = {}

    def worker(employer_id):
        with log_context(employer_id=employer_id):
            seen[employer_id] = get_log_context()

    with log_context(run_id="abc123"):
        with ThreadPoolExecutor(max_workers=2) as pool:
            list(pool.map(worker, ["acme", "globex"]))

        assert get_log_context() == {"run_id": "abc123"}

    assert seen["acme"]["employer_id"] == "acme"
    assert seen["globex"]["employer_id"] == "globex"


def test_threads_do_not_share_fields():
    barrier = threading.Barrier(2)
    seen = {}

    def worker(name):
        with log_context(employer_id=name):
            barrier.wait(timeout=5)
            seen[name] = get_log_context()["employer_id"]

    threads = [threading.Thread(target=worker, args=(name,)) for name in ("acme", "globex")]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=5)

    assert seen == {"acme": "acme", "globex": "globex"}
