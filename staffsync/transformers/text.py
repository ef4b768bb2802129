"""
Text and value grammar shared by the record transformers.

Provider payloads are loosely typed: numbers arrive as strings, booleans as
"yes"/"Y"/1, nested objects may be missing. Every helper here has a defined
fallback instead of raising.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

_WHITESPACE_RE = re.compile(r"\s+")

TRUE_STRINGS = frozenset({"true", "yes", "y", "1"})
FALSE_STRINGS = frozenset({"false", "no", "n", "0"})


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def first_present(*values: Any) -> Any:
    """First value that is neither None nor a blank string."""
    for value in values:
        if not is_blank(value):
            return value
    return None


def nested(record: Mapping[str, Any], *path: str) -> Any:
    """Walk nested dicts, returning None as soon as a level is missing."""
    current: Any = record
    for key in path:
        if not isinstance(current, Mapping):
            return None
        current = current.get(key)
    return current


def as_text(value: Any, default: str = "") -> str:
    if is_blank(value):
        return default
    return str(value).strip()


def optional_text(value: Any) -> str | None:
    text = as_text(value)
    return text or None


def collapse_whitespace(value: str) -> str:
    return _WHITESPACE_RE.sub(" ", value.strip())


def capitalize_word(word: str) -> str:
    return word[:1].upper() + word[1:].lower()


def title_case(value: str) -> str:
    """Upper-case the first letter of each space-separated word, lower-case the rest."""
    return " ".join(capitalize_word(word) for word in value.split(" "))


def _boundary_pattern(term: str) -> re.Pattern[str]:
    # Anchor on word boundaries only where the term itself starts/ends with a
    # word character ("St." and "St " must still match before a space).
    pattern = re.escape(term)
    if re.match(r"\w", term[0]):
        pattern = r"\b" + pattern
    if re.match(r"\w", term[-1]):
        pattern = pattern + r"\b"
    return re.compile(pattern)


def compile_replacements(table: Iterable[tuple[str, str]]) -> list[tuple[re.Pattern[str], str]]:
    return [(_boundary_pattern(term), replacement) for term, replacement in table]


def apply_replacements(value: str, rules: list[tuple[re.Pattern[str], str]]) -> str:
    """Apply rules in table order; later rules see the output of earlier ones."""
    for pattern, replacement in rules:
        value = pattern.sub(replacement, value)
    return value


def map_lookup(value: Any, table: Mapping[str, str], *, default: str) -> str:
    """Closed-vocabulary lookup with a title-cased passthrough on a miss."""
    if is_blank(value):
        return default
    raw = str(value)
    return table.get(raw.lower().strip()) or title_case(raw.strip())


def to_int(value: Any) -> int | None:
    """Leading-integer parse: 36, "36", "36 hrs" and 36.0 all give 36."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    match = re.match(r"\s*([-+]?\d+)", str(value))
    return int(match.group(1)) if match else None


def to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def parse_money(value: Any) -> float | None:
    """Amounts like 2500, "2500", "$2,500/wk". Negative or unparseable gives None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = to_float(value)
    elif isinstance(value, str):
        number = to_float(re.sub(r"[^\d.]", "", value))
    else:
        return None
    if number is None or number < 0:
        return None
    return number


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    return False


def format_money(amount: float) -> str:
    """2500 -> "2,500"; 2500.5 -> "2,500.5"."""
    if float(amount).is_integer():
        return f"{int(amount):,}"
    return f"{amount:,.2f}".rstrip("0").rstrip(".")


def extract_coordinates(candidates: Iterable[Any]) -> dict[str, float] | None:
    """First candidate with both latitude and longitude populated wins.

    A populated pair that does not parse yields None rather than falling
    through to later candidates.
    """
    for candidate in candidates:
        if not isinstance(candidate, Mapping):
            continue
        latitude = candidate.get("latitude")
        longitude = candidate.get("longitude")
        if is_blank(latitude) or is_blank(longitude):
            continue
        lat = to_float(latitude)
        lon = to_float(longitude)
        if lat is None or lon is None:
            return None
        return {"latitude": lat, "longitude": lon}
    return None


def dedupe(values: Iterable[str]) -> list[str]:
    """Drop repeats, keeping first-seen order."""
    seen: set[str] = set()
    result: list[str] = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result
