from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from werkzeug.datastructures import MultiDict

WILDCARD = "*"
SQL_WILDCARD = "%"
NEGATION = "!"

_SPECIAL_RE = re.compile(r"[%*]|^!")

Clause = Tuple[str, Any]


def _is_blank(value: Any) -> bool:
    return value is None or not str(value).strip()


def param_values(params: Mapping[str, Any], name: str) -> List[str]:
    """All values submitted for ``name``, whether ``params`` is multi-valued or not."""

    if isinstance(params, MultiDict):
        return [str(v) for v in params.getlist(name)]
    value = params.get(name)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def build_filters(
    field_names: Iterable[str],
    params: Mapping[str, Any],
    *,
    case_insensitive: bool = False,
) -> Tuple[List[Clause], Dict[str, List[str]]]:
    """
    Turn request params into manager filter clauses.

    Returns ``(clauses, plain)`` where ``clauses`` is a list of
    ``(field, clause)`` pairs and ``plain`` maps each used field to its raw,
    non-blank values.
    """

    like_op = "ilike" if case_insensitive else "like"
    clauses: List[Clause] = []
    plain: Dict[str, List[str]] = {}

    for field in field_names or ():
        if field not in params:
            continue
        values = [v for v in param_values(params, field) if not _is_blank(v)]
        if not values:
            continue

        plain[field] = values

        if not any(_SPECIAL_RE.search(v) for v in values):
            clauses.append((field, list(values)))
            continue

        negated = [v[len(NEGATION):] for v in values if v.startswith(NEGATION)]
        patterns = [v.replace(WILDCARD, SQL_WILDCARD) for v in values if not v.startswith(NEGATION)]

        if patterns:
            clauses.append((field, {like_op: patterns}))
        if negated:
            clauses.append((field, {"ne": negated}))

    return clauses, plain


def plain_query_str(plain: Mapping[str, Sequence[str]]) -> str:
    """Human readable rendering, e.g. ``"color = red or blue AND name = foo*"``."""

    parts = []
    for field in sorted(plain):
        values = [v for v in plain[field] if not _is_blank(v)]
        if not values:
            continue
        parts.append(f"{field} = " + " or ".join(values))
    return " AND ".join(parts)
