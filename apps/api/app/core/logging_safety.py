"""Utilities for safe structured logging fields."""

from __future__ import annotations

import hashlib
import re
from typing import Any

_FILENAME_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")
_FILENAME_LOG_MAX = 64


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for log correlation fields."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def safe_log_filename(value: Any) -> str:
    """Collapse a client-supplied filename into a single log-safe token."""
    text = _FILENAME_UNSAFE.sub("_", str(value or "").strip())
    if not text:
        return "file-missing"
    return text[:_FILENAME_LOG_MAX]
