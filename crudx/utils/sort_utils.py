"""
Helpers for SQL-ish sort strings such as ``"name desc, t1.id"``.
"""

from __future__ import annotations

import re
from typing import Dict, List, Sequence

_DIRECTIONS = ("ASC", "DESC")
_DIRECTION_RE = re.compile(r"\b(asc|desc)\b", re.IGNORECASE)


def parse_sort(sort: str) -> List[Dict[str, str]]:
    """
    Split a sort string into ``[{column: direction}, ...]``.

    Directions are upper cased and default to ``ASC``. Empty terms are
    ignored, so ``""`` parses to ``[]``.
    """

    parsed: List[Dict[str, str]] = []
    for term in (sort or "").split(","):
        parts = term.split()
        if not parts:
            continue
        column = parts[0]
        direction = parts[1].upper() if len(parts) > 1 else "ASC"
        if direction not in _DIRECTIONS:
            raise ValueError(f"invalid sort direction {parts[1]!r} for column {column!r}")
        parsed.append({column: direction})
    return parsed


def disambiguate(sort: str, columns: Sequence[str], alias: str = "t1") -> str:
    """Prefix unqualified ``columns`` in ``sort`` with the primary table alias."""

    if not columns:
        return sort
    names = "|".join(re.escape(c) for c in columns)
    pattern = re.compile(rf"(?<![\w.])({names})\b(?!\.)")
    return pattern.sub(rf"{alias}.\1", sort)


def upcase_directions(sort: str) -> str:
    return _DIRECTION_RE.sub(lambda m: m.group(1).upper(), sort)
