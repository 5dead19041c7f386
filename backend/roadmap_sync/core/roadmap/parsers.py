"""
Value parsers for roadmap documents.

Pure helpers turning locale-formatted amounts and bullet text into typed
values. None of them raise on bad input.
"""

import re
from typing import Any, Optional

ELLIPSIS = "..."
BULLET_MARKER = "-"

_NUMBER_CHARS = re.compile(r"[^0-9,.\-]")
_THOUSANDS_GROUPS = re.compile(r"^-?\d{1,3}([,.]\d{3})+$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_TRAILING_PARTIAL_WORD = re.compile(r"\s+\S*$")


def _parse_number(value: Any, symbols: str) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)

    text = str(value)
    for symbol in symbols:
        text = text.replace(symbol, "")
    # Drops whitespace (incl. non-breaking), letters and stray symbols
    cleaned = _NUMBER_CHARS.sub("", text)
    if not cleaned or cleaned in {"-", ",", "."}:
        return None

    has_comma = "," in cleaned
    has_dot = "." in cleaned
    if has_comma and has_dot:
        # The right-most separator is the decimal one
        if cleaned.rfind(",") > cleaned.rfind("."):
            cleaned = cleaned.replace(".", "").replace(",", ".")
        else:
            cleaned = cleaned.replace(",", "")
    elif has_comma or has_dot:
        separator = "," if has_comma else "."
        if cleaned.count(separator) > 1 or (
            separator == "," and _THOUSANDS_GROUPS.match(cleaned)
        ):
            cleaned = cleaned.replace(separator, "")
        else:
            cleaned = cleaned.replace(",", ".")

    try:
        return float(cleaned)
    except ValueError:
        return None


def parse_currency(value: Any) -> Optional[float]:
    """``"1 234,56 €"`` -> ``1234.56``; empty or unparseable -> ``None``."""
    return _parse_number(value, "€$£")


def parse_percentage(value: Any) -> Optional[float]:
    """``"12%"`` -> ``12.0``; empty or unparseable -> ``None``."""
    return _parse_number(value, "%")


def parse_count(value: Any) -> Optional[int]:
    """
    Leading integer of a headcount (``"12 collaborateurs"`` -> ``12``).

    Zero is treated as unknown.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) or None
    match = _LEADING_INT.match(str(value))
    if not match:
        return None
    return int(match.group(1)) or None


def short_title(text: str, max_len: int = 80) -> str:
    """Cap ``text`` at ``max_len`` on a word boundary, marking the cut."""
    text = text.strip()
    if len(text) <= max_len:
        return text
    return _TRAILING_PARTIAL_WORD.sub("", text[:max_len]) + ELLIPSIS


def split_lines(block: Optional[str]) -> list[str]:
    """Non-empty lines of a newline-delimited block."""
    if not block:
        return []
    return [line for line in block.split("\n") if line.strip()]


def bullet_items(block: Optional[str]) -> list[str]:
    """Text of each dash bullet in ``block``, marker stripped."""
    items = []
    for line in split_lines(block):
        stripped = line.strip()
        if not stripped.startswith(BULLET_MARKER):
            continue
        item = stripped[len(BULLET_MARKER):].strip()
        if item:
            items.append(item)
    return items


def slugify_name(name: str) -> str:
    """``"Jean Dupont"`` -> ``"jean.dupont"`` (placeholder email local part)."""
    return re.sub(r"\s+", ".", name.strip().lower())
