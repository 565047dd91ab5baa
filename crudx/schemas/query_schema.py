from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from marshmallow import EXCLUDE, ValidationError, fields

from crudx.extensions import ma

RESERVED_PARAMS = ("order", "page", "page_size")


class QueryParamsSchema(ma.Schema):
    """Reserved request params understood by ``make_query``."""

    class Meta:
        unknown = EXCLUDE

    order = fields.String(load_default=None)
    page = fields.Integer(load_default=None)
    page_size = fields.Integer(load_default=None)


query_params_schema = QueryParamsSchema()


def load_query_params(params: Mapping[str, Any]) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Coerce the reserved params, keeping whatever is valid.

    Returns ``(data, errors)``; invalid values are left out of ``data`` so the
    caller falls back to its defaults for them.
    """

    raw = {}
    for key in RESERVED_PARAMS:
        value = params.get(key)
        if value is None or not str(value).strip():
            continue
        raw[key] = str(value).strip()
    try:
        return query_params_schema.load(raw), {}
    except ValidationError as err:
        data = {key: None for key in RESERVED_PARAMS}
        data.update(err.valid_data or {})
        return data, err.messages


def resolve_paging(
    page: Optional[int],
    page_size: Optional[int],
    *,
    default_size: int,
    max_size: int,
) -> Tuple[int, int, int]:
    """Return ``(page, page_size, offset)`` with sizes clamped to ``max_size``."""

    if page_size is None or page_size < 1:
        page_size = default_size
    page_size = min(page_size, max_size)
    if page is None or page < 1:
        page = 1
    return page, page_size, (page - 1) * page_size
