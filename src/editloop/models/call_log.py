"""One JSON document per generative call, for replaying what the model saw."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import asdict, is_dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from ..utils.slug import slugify

LOGGER = logging.getLogger(__name__)


class CallLog:
    """Writes ``call__<operation>__<timestamp>__<id>.json`` files under ``root``.

    Logging is best effort: a file system error is reported at DEBUG and the
    call proceeds.
    """

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root)

    def write(
        self,
        operation: str,
        prompt: str,
        attempts: list[dict[str, Any]],
        *,
        result: Any | None = None,
        error: Exception | None = None,
    ) -> Path | None:
        now = datetime.now(timezone.utc)
        record: dict[str, Any] = {
            "timestamp": now.isoformat(),
            "operation": operation,
            "prompt": prompt,
            "attempts": json_safe(attempts),
        }
        if result is not None:
            record["result"] = json_safe(result)
        if error is not None:
            record["error"] = str(error)

        stamp = now.strftime("%Y%m%dT%H%M%S%fZ")
        target = self.root / f"call__{slugify(operation, fallback='operation')}__{stamp}__{uuid.uuid4().hex[:8]}.json"
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            target.write_text(json.dumps(record, indent=2, sort_keys=True, ensure_ascii=False), encoding="utf-8")
        except OSError as exc:
            LOGGER.debug("Unable to write call log %s: %s", target, exc)
            return None
        return target


def json_safe(value: Any) -> Any:
    """Convert dataclasses, pydantic models, paths and containers to JSON values."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Path):
        return value.as_posix()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if is_dataclass(value) and not isinstance(value, type):
        return json_safe(asdict(value))
    if callable(getattr(value, "model_dump", None)):
        return json_safe(value.model_dump(mode="json"))
    if isinstance(value, dict):
        return {str(key): json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [json_safe(item) for item in value]
    return str(value)


__all__ = ["CallLog", "json_safe"]
