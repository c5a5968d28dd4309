"""Shared utility functions for parsing, file IO and numeric coercion."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def safe_parse_float(
    val: Any, default: float, min_val: float = -float("inf"), max_val: float = float("inf"), name: str = "value"
) -> float:
    """
    Safe float parsing with range validation.
    """
    try:
        f = float(val)
    except (ValueError, TypeError):
        logger.warning(f"Invalid {name}={val!r}, using default {default}")
        return default

    if f < min_val or f > max_val:
        logger.warning(f"{name}={f} out of range [{min_val}, {max_val}], clamping")
        return max(min_val, min(max_val, f))
    return f


def parse_u256(val: Any, *, default: int = 0, name: str = "value") -> int:
    """
    Parse an on-chain integer that may arrive as an int or a decimal string.

    Move u64/u128/u256 values are serialized as strings by the REST API, so
    Python's arbitrary-precision int is used throughout.
    """
    if val is None:
        return default
    if isinstance(val, bool):
        raise ValueError(f"Invalid {name}: expected an integer, got bool")
    if isinstance(val, int):
        return val
    try:
        return int(str(val).strip())
    except ValueError as e:
        raise ValueError(f"Invalid {name}: expected an integer, got {val!r}") from e


def safe_json_loads(text: str, *, context: str = "", max_snippet_len: int = 100) -> Any:
    """
    Parse JSON with a useful error message (position and snippet) on failure.
    """
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        start = max(0, e.pos - max_snippet_len // 2)
        end = min(len(text), e.pos + max_snippet_len // 2)
        snippet = text[start:end]
        if start > 0:
            snippet = "..." + snippet
        if end < len(text):
            snippet = snippet + "..."
        raise ValueError(
            f"JSON parse error{f' in {context}' if context else ''}: {e.msg}\nPosition {e.pos}, snippet: {snippet!r}"
        ) from e


def safe_read_json(path: Path, context: str = "", raise_on_error: bool = False) -> Any | None:
    """
    Read and parse JSON from a file.

    Args:
        path: Path to the JSON file.
        context: Context for error messages.
        raise_on_error: If True, re-raises errors instead of returning None.

    Returns:
        Parsed JSON data, or None if reading/parsing failed.
    """
    if not path.exists():
        if raise_on_error:
            raise FileNotFoundError(f"File not found: {path} ({context})")
        logger.debug(f"File not found: {path} ({context})")
        return None
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to read {path} ({context}): {e}")
        if raise_on_error:
            raise
        return None
    try:
        return safe_json_loads(text, context=context)
    except ValueError as e:
        logger.error(f"Invalid JSON in {path} ({context}): {e}")
        if raise_on_error:
            raise
        return None


def atomic_write_text(path: Path, content: str) -> None:
    """
    Write text to a file atomically using a temporary file and rename.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + f".tmp.{os.getpid()}")
    try:
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(path)
    except (OSError, UnicodeEncodeError) as e:
        logger.error(f"Atomic write to {path} failed: {e}")
        if tmp.exists():
            try:
                tmp.unlink()
            except OSError:
                pass
        raise


def atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, sort_keys=True) + "\n")
