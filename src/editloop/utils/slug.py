"""Filesystem-safe names for log files."""

from __future__ import annotations

import hashlib
import re

_UNSAFE = re.compile(r"[^a-z0-9_.]+")


def slugify(value: str | None, *, fallback: str = "item", max_length: int = 80) -> str:
    """Lowercase ``value`` and replace unsafe runs with single hyphens.

    Slugs longer than ``max_length`` keep a prefix and gain an 8 character
    digest of the full slug so distinct inputs stay distinct.
    """
    slug = _UNSAFE.sub("-", (value or "").lower()).strip("-")
    slug = slug or _UNSAFE.sub("-", fallback.lower()).strip("-") or "item"
    if len(slug) <= max_length:
        return slug
    digest = hashlib.sha256(slug.encode("utf-8")).hexdigest()[:8]
    head = slug[: max(max_length - 9, 1)].rstrip("-")
    return f"{head}-{digest}"
