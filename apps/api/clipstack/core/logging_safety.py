"""Utilities for safe structured logging fields."""

from __future__ import annotations

import hashlib
import logging
from typing import Any

_ROOT_LOGGER_NAME = "clipstack"


def safe_log_identifier(value: Any, *, prefix: str) -> str:
    """Return a deterministic non-reversible token for values that may carry secrets (URLs, tokens)."""
    text = str(value or "").strip()
    if not text:
        return f"{prefix}-missing"

    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()[:12]
    return f"{prefix}-{digest}"


def configure_package_logging(level: str) -> None:
    """Apply the configured level to every ``clipstack.*`` logger."""
    logging.getLogger(_ROOT_LOGGER_NAME).setLevel(level)
