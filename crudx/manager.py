"""
Generic bulk-query facade over SQLAlchemy mapped classes.

Models talk to a manager class rather than to the session directly so that a
mapped class can ship its own ``<Class>Manager`` with tailored queries. This
module provides the fallback used when no such class exists.
"""

from __future__ import annotations

from typing import Any, Iterator, List, Mapping, Optional, Sequence, Tuple, Type, Union

from sqlalchemy import inspect as sa_inspect
from sqlalchemy import or_
from sqlalchemy.orm import Query, joinedload

from crudx.extensions import db
from crudx.utils.logging_utils import get_logger, log_context
from crudx.utils.sort_utils import parse_sort

PRIMARY_ALIAS = "t1"

# keys a query descriptor carries for display only
DESCRIPTOR_ONLY_KEYS = ("sort_order", "plain_query", "plain_query_str")

QueryPairs = Union[Sequence[Tuple[str, Any]], Mapping[str, Any]]


def _reject_unknown(method: str, extra: Mapping[str, Any]) -> None:
    unknown = sorted(set(extra) - set(DESCRIPTOR_ONLY_KEYS))
    if unknown:
        raise TypeError(f"{method}() got unexpected arguments: {', '.join(unknown)}")


def resolve_column(object_class: Type[Any], name: str):
    """The mapped attribute for ``col``, ``t1.col`` or ``<table>.col``. Raises ``ValueError``."""

    mapper = sa_inspect(object_class)
    column_name = name
    if "." in name:
        prefix, column_name = name.split(".", 1)
        if prefix not in (PRIMARY_ALIAS, mapper.local_table.name):
            raise ValueError(f"unknown table alias {prefix!r} in {name!r}")
    attr = mapper.column_attrs.get(column_name)
    if attr is None:
        raise ValueError(f"{object_class.__name__} has no column {column_name!r}")
    return getattr(object_class, attr.key)


def _as_list(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def _clause(column, op: str, value: Any):
    values = _as_list(value)
    if op == "eq":
        return column.in_(values) if len(values) > 1 else column == values[0]
    if op == "ne":
        return column.not_in(values) if len(values) > 1 else column != values[0]
    if op == "like":
        return or_(*[column.like(v) for v in values])
    if op == "ilike":
        return or_(*[column.ilike(v) for v in values])
    if op == "lt":
        return column < value
    if op == "le":
        return column <= value
    if op == "gt":
        return column > value
    if op == "ge":
        return column >= value
    raise ValueError(f"unsupported query operator {op!r}")


def build_clauses(object_class: Type[Any], query: Optional[QueryPairs]) -> List[Any]:
    """Translate ``(field, clause)`` pairs into SQLAlchemy filter expressions."""

    if not query:
        return []
    pairs = query.items() if isinstance(query, Mapping) else query
    clauses = []
    for field, spec in pairs:
        column = resolve_column(object_class, field)
        if isinstance(spec, Mapping):
            for op, value in spec.items():
                clauses.append(_clause(column, op, value))
        else:
            clauses.append(_clause(column, "eq", spec))
    return clauses


def build_order_by(object_class: Type[Any], sort_by: Optional[Union[str, Sequence[Any]]]) -> List[Any]:
    if not sort_by:
        return []
    if not isinstance(sort_by, str):
        return list(sort_by)
    order = []
    for term in parse_sort(sort_by):
        for name, direction in term.items():
            column = resolve_column(object_class, name)
            order.append(column.desc() if direction == "DESC" else column.asc())
    return order


def build_load_options(object_class: Type[Any], with_objects: Optional[Sequence[str]]) -> List[Any]:
    """``joinedload`` options for relationship names; dotted names load nested relations."""

    options = []
    for path in with_objects or ():
        current_cls = object_class
        loader = None
        for rel_name in path.split("."):
            relationships = sa_inspect(current_cls).relationships
            if rel_name not in relationships:
                raise ValueError(f"{current_cls.__name__} has no relationship {rel_name!r}")
            attr = getattr(current_cls, rel_name)
            loader = joinedload(attr) if loader is None else loader.joinedload(attr)
            current_cls = relationships[rel_name].mapper.class_
        if loader is not None:
            options.append(loader)
    return options


class Manager:
    """
    Bulk operations for a mapped class. Subclasses may set ``object_class``
    so callers can omit it.
    """

    object_class: Optional[Type[Any]] = None

    @classmethod
    def _object_class(cls, object_class: Optional[Type[Any]]) -> Type[Any]:
        resolved = object_class or cls.object_class
        if resolved is None:
            raise ValueError(f"{cls.__name__} needs an object_class")
        return resolved

    @classmethod
    def _base_query(cls, object_class: Type[Any], query: Optional[QueryPairs]) -> Query:
        q: Query = db.session.query(object_class)
        for clause in build_clauses(object_class, query):
            q = q.filter(clause)
        return q

    @classmethod
    def _build_query(
        cls,
        object_class: Type[Any],
        query: Optional[QueryPairs] = None,
        sort_by: Optional[Union[str, Sequence[Any]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        with_objects: Optional[Sequence[str]] = None,
    ) -> Query:
        q = cls._base_query(object_class, query)

        for option in build_load_options(object_class, with_objects):
            q = q.options(option)

        order_by = build_order_by(object_class, sort_by)
        if order_by:
            q = q.order_by(*order_by)

        if offset is not None:
            q = q.offset(offset)

        if limit is not None:
            q = q.limit(limit)

        return q

    @classmethod
    def get_objects(
        cls,
        object_class: Optional[Type[Any]] = None,
        query: Optional[QueryPairs] = None,
        sort_by: Optional[Union[str, Sequence[Any]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        with_objects: Optional[Sequence[str]] = None,
        multi_many_ok: bool = False,
        **descriptor: Any,
    ) -> List[Any]:
        """
        Matching records as a list. Unknown keyword arguments raise
        ``TypeError`` so a misspelt filter never returns the whole table.
        """

        _reject_unknown("get_objects", descriptor)
        object_class = cls._object_class(object_class)
        logger = get_logger("manager")
        with log_context(manager=cls.__name__, model=object_class.__name__, action="get_objects"):
            logger.debug(
                "get_objects query=%s sort_by=%s limit=%s offset=%s with=%s",
                query,
                sort_by,
                limit,
                offset,
                with_objects,
            )
            if with_objects and len(with_objects) > 1 and not multi_many_ok:
                logger.warning("Eager loading %d relations in one query", len(with_objects))
            q = cls._build_query(object_class, query, sort_by, limit, offset, with_objects)
            results = list(q)
            logger.info("get_objects %s count=%s", object_class.__name__, len(results))
            return results

    @classmethod
    def get_objects_count(
        cls,
        object_class: Optional[Type[Any]] = None,
        query: Optional[QueryPairs] = None,
        sort_by: Optional[Union[str, Sequence[Any]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        with_objects: Optional[Sequence[str]] = None,
        multi_many_ok: bool = False,
        **descriptor: Any,
    ) -> int:
        """Number of matching records. Sorting, paging and eager loading do not apply."""

        _reject_unknown("get_objects_count", descriptor)
        object_class = cls._object_class(object_class)
        logger = get_logger("manager")
        with log_context(manager=cls.__name__, model=object_class.__name__, action="get_objects_count"):
            total = cls._base_query(object_class, query).order_by(None).count()
            logger.info("get_objects_count %s query=%s count=%s", object_class.__name__, query, total)
            return total

    @classmethod
    def get_objects_iterator(
        cls,
        object_class: Optional[Type[Any]] = None,
        query: Optional[QueryPairs] = None,
        sort_by: Optional[Union[str, Sequence[Any]]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        with_objects: Optional[Sequence[str]] = None,
        multi_many_ok: bool = False,
        **descriptor: Any,
    ) -> Iterator[Any]:
        """Matching records, fetched lazily."""

        _reject_unknown("get_objects_iterator", descriptor)
        object_class = cls._object_class(object_class)
        get_logger("manager").debug(
            "get_objects_iterator %s query=%s sort_by=%s limit=%s offset=%s",
            object_class.__name__,
            query,
            sort_by,
            limit,
            offset,
        )
        q = cls._build_query(object_class, query, sort_by, limit, offset, with_objects)
        return iter(q)
