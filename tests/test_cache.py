from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from editloop.cache import CacheRetry, CallCache, cache_key
from editloop.models.llm_client import LLMTransportError


@dataclass(slots=True)
class Answer:
    files: list[str]


def test_cache_key_is_stable_for_equal_arguments() -> None:
    assert cache_key("extractFilenames", {"b": 1, "a": [Path("x")]}) == cache_key(
        "extractFilenames", {"a": ["x"], "b": 1}
    )
    assert cache_key("extractFilenames", ["x"]) != cache_key("selectFilesToEdit", ["x"])


def test_cached_value_is_returned_without_calling_producer(tmp_path: Path) -> None:
    calls: list[int] = []

    def producer() -> Answer:
        calls.append(1)
        return Answer(files=["a.py"])

    with CallCache(tmp_path / "cache.sqlite") as cache:
        retry = CacheRetry(cache, retry_delay=0)
        first = retry.call("extractFilenames", ["log"], producer, result_type=Answer)
        second = retry.call("extractFilenames", ["log"], producer, result_type=Answer)

    assert first == second == Answer(files=["a.py"])
    assert calls == [1]


def test_cache_persists_across_connections(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "cache.sqlite"
    with CallCache(db_path) as cache:
        cache.set(cache_key("op", [1]), "op", {"value": 1})

    with CallCache(db_path) as cache:
        assert cache.get(cache_key("op", [1])) == (True, {"value": 1})
        assert cache.get(cache_key("op", [2])) == (False, None)


def test_transient_failures_are_retried() -> None:
    outcomes: list[object] = [LLMTransportError("timeout"), "ok"]

    def producer() -> str:
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert CacheRetry(retry_delay=0).call("summariseRequirements", ["req"], producer) == "ok"
    assert outcomes == []


def test_last_error_is_raised_after_all_attempts() -> None:
    attempts: list[int] = []

    def producer() -> str:
        attempts.append(1)
        raise LLMTransportError("still down")

    with pytest.raises(LLMTransportError, match="still down"):
        CacheRetry(max_attempts=2, retry_delay=0).call("op", [], producer)
    assert len(attempts) == 2


def test_unrelated_errors_propagate_immediately() -> None:
    attempts: list[int] = []

    def producer() -> str:
        attempts.append(1)
        raise KeyError("bug")

    with pytest.raises(KeyError):
        CacheRetry(retry_delay=0).call("op", [], producer)
    assert attempts == [1]
