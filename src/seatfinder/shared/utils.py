"""
Utilities Module - Common helper functions.
==========================================

Provides utility functions for:
- Identifier normalization and numeric suffix handling
- File I/O (JSON, JSONL)
- Directory management
"""

import json
import re
from pathlib import Path
from typing import Any, Optional

from seatfinder.shared.logging import get_logger

logger = get_logger(__name__)

_WHITESPACE = re.compile(r"\s+")
_PREFIXED_NUMBER = re.compile(r"^([A-Z]*)(\d+)$")
_TRAILING_DIGITS = re.compile(r"(\d+)$")


# ─────────────────────────────────────────────────────────────────────────────
# Identifier Helpers
# ─────────────────────────────────────────────────────────────────────────────


def normalize_identifier(identifier: Optional[str]) -> str:
    """
    Normalize a register number.

    Args:
        identifier: Raw identifier as typed by the user

    Returns:
        Uppercase identifier with all whitespace removed ('' for None)

    Example:
        >>> normalize_identifier(" ra 2311 0000 00001 ")
        'RA2311000000001'
    """
    if not identifier:
        return ""
    return _WHITESPACE.sub("", identifier).upper()


def split_identifier(identifier: str) -> Optional[tuple[str, int]]:
    """
    Split an identifier into its letter prefix and numeric suffix.

    The suffix is a Python ``int``, so identifiers longer than any machine
    integer still compare correctly.

    Example:
        >>> split_identifier("RA2311000000025")
        ('RA', 2311000000025)
    """
    match = _PREFIXED_NUMBER.match(normalize_identifier(identifier))
    if not match:
        return None
    return match.group(1), int(match.group(2))


def identifier_tail(identifier: str, digits: int = 6) -> Optional[int]:
    """
    Return the trailing ``digits`` digits of an identifier as an int.

    Returns None when the identifier does not end with at least that many digits.

    Example:
        >>> identifier_tail("RA2311000000123")
        123
    """
    match = _TRAILING_DIGITS.search(normalize_identifier(identifier))
    if not match or len(match.group(1)) < digits:
        return None
    return int(match.group(1)[-digits:])


# ─────────────────────────────────────────────────────────────────────────────
# Directory Management
# ─────────────────────────────────────────────────────────────────────────────


def ensure_parent_directory(file_path: Path) -> Path:
    """
    Ensure the parent directory of a file exists.

    Args:
        file_path: File path

    Returns:
        The file path (for chaining)
    """
    file_path = Path(file_path)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    return file_path


# ─────────────────────────────────────────────────────────────────────────────
# JSON File I/O
# ─────────────────────────────────────────────────────────────────────────────


def load_json(file_path: Path) -> Any:
    """
    Load data from a JSON file.

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    with open(Path(file_path), "r", encoding="utf-8") as f:
        return json.load(f)


def append_jsonl(file_path: Path, item: dict[str, Any]) -> None:
    """
    Append a single item to a JSONL file.

    Args:
        file_path: Path to JSONL file
        item: Dictionary to append
    """
    file_path = ensure_parent_directory(Path(file_path))

    with open(file_path, "a", encoding="utf-8") as f:
        line = json.dumps(item, ensure_ascii=False, default=str)
        f.write(line + "\n")


def truncate_text(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate text to a maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated
    """
    if len(text) <= max_length:
        return text
    return text[: max_length - len(suffix)] + suffix
