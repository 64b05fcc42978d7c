"""Unit tests for with_retry."""
import pytest

from podbrief.utils import retry as retry_mod
from podbrief.utils.retry import with_retry


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(retry_mod.time, "sleep", sleeps.append)
    return sleeps


def test_returns_first_success(no_sleep):
    assert with_retry(lambda: 7) == 7
    assert no_sleep == []


def test_retries_with_exponential_backoff(no_sleep):
    attempts = {"n": 0}

    def flaky():
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise ConnectionError("reset")
        return "ok"

    assert with_retry(flaky, retries=3, backoff_seconds=0.5) == "ok"
    assert attempts["n"] == 3
    assert no_sleep == [0.5, 1.0]


def test_raises_after_last_attempt(no_sleep):
    def broken():
        raise TimeoutError("slow")

    with pytest.raises(TimeoutError):
        with_retry(broken, retries=2, backoff_seconds=0.1)
    assert len(no_sleep) == 2


def test_non_matching_exception_is_not_retried(no_sleep):
    calls = {"n": 0}

    def bad():
        calls["n"] += 1
        raise KeyError("x")

    with pytest.raises(KeyError):
        with_retry(bad, retry_on=(ConnectionError,))
    assert calls["n"] == 1
