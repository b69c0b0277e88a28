"""Memoisation and retry for expensive generative calls.

Results are stored in SQLite keyed by a SHA-256 digest of the operation name
and its arguments. The retry policy here is independent of the workflow's own
bounded-retry loops: it only covers transient generative-service failures.
"""

from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Iterator, Tuple, Type, TypeVar

from pydantic.type_adapter import TypeAdapter

from .models.call_log import json_safe
from .models.llm_client import LLMClientError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def cache_key(operation: str, arguments: Any) -> str:
    """Return a stable digest for ``operation`` applied to ``arguments``."""
    payload = json.dumps([operation, json_safe(arguments)], sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


class CallCache:
    """SQLite-backed store of previously computed call results."""

    def __init__(self, db_path: Path | str) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(self.db_path)
        self._bootstrap()

    def _bootstrap(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS calls (
                    key TEXT PRIMARY KEY,
                    operation TEXT NOT NULL,
                    value TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
                """
            )

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def get(self, key: str) -> Tuple[bool, Any]:
        row = self._conn.execute("SELECT value FROM calls WHERE key = ?", (key,)).fetchone()
        if row is None:
            return False, None
        return True, json.loads(row[0])

    def set(self, key: str, operation: str, value: Any) -> None:
        with self._transaction() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO calls (key, operation, value, created_at) VALUES (?, ?, ?, ?)",
                (key, operation, json.dumps(json_safe(value)), datetime.now(timezone.utc).isoformat()),
            )

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "CallCache":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class CacheRetry:
    """Run a producer at most once per key, retrying transient failures."""

    def __init__(
        self,
        cache: CallCache | None = None,
        *,
        max_attempts: int = 3,
        retry_delay: float = 1.0,
        retry_on: tuple[Type[BaseException], ...] = (LLMClientError,),
    ) -> None:
        self._cache = cache
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._retry_on = retry_on

    def call(
        self,
        operation: str,
        arguments: Any,
        producer: Callable[[], T],
        *,
        result_type: Any = None,
    ) -> T:
        key = cache_key(operation, arguments)
        if self._cache is not None:
            hit, value = self._cache.get(key)
            if hit:
                LOGGER.debug("Cache hit for %s", operation)
                if result_type is not None:
                    return TypeAdapter(result_type).validate_python(value)
                return value

        last_error: BaseException | None = None
        for attempt in range(1, self._max_attempts + 1):
            try:
                result = producer()
            except self._retry_on as error:
                last_error = error
                LOGGER.warning("%s failed (attempt %d/%d): %s", operation, attempt, self._max_attempts, error)
                if attempt < self._max_attempts:
                    time.sleep(self._retry_delay)
                continue
            if self._cache is not None:
                self._cache.set(key, operation, result)
            return result

        assert last_error is not None
        raise last_error


__all__ = ["CacheRetry", "CallCache", "cache_key"]
