"""Category name sanitization, comparison keys and batch validation."""

import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Iterable

MIN_NAME_LENGTH = 2
MAX_NAME_LENGTH = 50

_WHITESPACE = re.compile(r"\s+")


def sanitize(name: Any) -> str:
    """Clean a category name for display and storage.

    Trims and collapses whitespace runs. Case, accents and punctuation are
    preserved. Anything that is not a non-empty string sanitizes to "".
    """
    if not name or not isinstance(name, str):
        return ""
    return _WHITESPACE.sub(" ", name.strip())


def comparison_key(name: Any) -> str:
    """Build the equality key for a name: sanitized, lowercased, accent-free.

    Only used for lookups and duplicate detection, never stored or shown.
    """
    lowered = sanitize(name).lower()
    decomposed = unicodedata.normalize("NFD", lowered)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def is_valid_name(sanitized: str) -> bool:
    """Check the length bounds of an already sanitized name."""
    return MIN_NAME_LENGTH <= len(sanitized) <= MAX_NAME_LENGTH


def names_equal(first: Any, second: Any) -> bool:
    """Compare two names by comparison key. Empty names never match."""
    if not first or not second:
        return False
    return comparison_key(first) == comparison_key(second)


def find_name(names: Iterable[str], target: str) -> str | None:
    """Return the first name matching target by comparison key."""
    key = comparison_key(target)
    for name in names:
        if comparison_key(name) == key:
            return name
    return None


def dedupe(names: Iterable[Any]) -> list[str]:
    """Remove duplicates by comparison key, keeping the first occurrence.

    Args:
        names: Raw names, possibly with inconsistent case/spacing/accents

    Returns:
        Sanitized names in order of first appearance
    """
    seen: set[str] = set()
    result = []
    for name in names:
        sanitized = sanitize(name)
        if not sanitized:
            continue
        key = comparison_key(sanitized)
        if key in seen:
            continue
        seen.add(key)
        result.append(sanitized)
    return result


@dataclass
class BatchValidation:
    """Outcome of validating a batch of category names."""

    valid: list[str] = field(default_factory=list)
    invalid: list[Any] = field(default_factory=list)
    duplicates: list[Any] = field(default_factory=list)


def validate_and_sanitize_batch(names: Iterable[Any]) -> BatchValidation:
    """Partition names into valid, invalid and duplicate entries.

    Valid entries are sanitized; invalid and duplicate entries keep the
    caller's original value so they can be reported back verbatim.
    """
    outcome = BatchValidation()
    seen: set[str] = set()

    for name in names:
        sanitized = sanitize(name)
        if not sanitized or not is_valid_name(sanitized):
            outcome.invalid.append(name)
            continue

        key = comparison_key(sanitized)
        if key in seen:
            outcome.duplicates.append(name)
            continue

        seen.add(key)
        outcome.valid.append(sanitized)

    return outcome
