from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type

from flask import has_app_context
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable

from crudx.errors import ErrorKind
from crudx.extensions import db
from crudx.iterator import CRUDIterator
from crudx.manager import DESCRIPTOR_ONLY_KEYS, PRIMARY_ALIAS, resolve_column
from crudx.objects.base import CRUDObject
from crudx.schemas.query_schema import load_query_params, resolve_paging
from crudx.utils.logging_utils import get_logger, log_context
from crudx.utils.query_utils import build_filters, plain_query_str
from crudx.utils.sort_utils import disambiguate, parse_sort, upcase_directions

from .base import CRUDModel, app_setting, load_class

GENERIC_MANAGER = "crudx.manager:Manager"
MANAGER_SUFFIX = "Manager"
DEFAULT_ORDER = "id DESC"
MAX_PAGE_SIZE = 200


def _descriptor_items(args: Sequence[Any]) -> List[Tuple[str, Any]]:
    """Manager arguments from a mapping, a list of pairs, or flat key and value arguments."""

    if not args:
        return []
    if len(args) == 1:
        (descriptor,) = args
        if descriptor is None:
            return []
        if isinstance(descriptor, Mapping):
            return list(descriptor.items())
        return [tuple(pair) for pair in descriptor]
    if len(args) % 2:
        raise TypeError(f"odd number of key and value arguments: {args!r}")
    return list(zip(args[::2], args[1::2]))


class SQLAlchemyModel(CRUDModel):
    """
    CRUD model backed by a SQLAlchemy mapped class.

    Configuration::

        class Widgets(SQLAlchemyModel):
            config = {
                "name": "myapp.models:Widget",
                "manager": "myapp.models:WidgetManager",
                "load_with": ["parts"],
                "page_size": 50,
            }

    ``manager`` is optional. When left out, ``<name>Manager`` from the same
    module is tried, then the generic :class:`crudx.manager.Manager`.
    """

    config: Dict[str, Any] = {
        "object_class": "crudx.objects.sqla:SQLAlchemyObject",
        "ambiguous_columns": ("id", "name"),
        "primary_alias": PRIMARY_ALIAS,
    }

    def setup(self) -> None:
        super().setup()
        self._name: Optional[Type[Any]] = None
        self._manager: Optional[Type[Any]] = None
        self._db_dialect: Optional[str] = None
        self._dialect_failed = False

        logger = get_logger("model")
        target = self.config.get("name")
        if not target:
            return self.throw_error("need to configure an ORM class name", ErrorKind.CONFIG_MISSING)

        try:
            name = load_class(target)
            sa_inspect(name)
        except ImportError as exc:
            return self.throw_error(f"can't load ORM class {target}: {exc}", ErrorKind.MODULE_LOAD, cause=exc)
        except NoInspectionAvailable as exc:
            return self.throw_error(f"{target} is not a mapped class", ErrorKind.MODULE_LOAD, cause=exc)
        self._name = name

        manager_target = self.config.get("manager") or f"{name.__module__}.{name.__name__}{MANAGER_SUFFIX}"
        try:
            self._manager = load_class(manager_target)
        except ImportError:
            logger.info("No manager %s for %s; using %s", manager_target, name.__name__, GENERIC_MANAGER)
            self._manager = load_class(GENERIC_MANAGER)

        if has_app_context():
            self._db_dialect = self._detect_dialect()

        logger.info(
            "Model %s set up name=%s manager=%s dialect=%s",
            type(self).__name__,
            name.__name__,
            self._manager.__name__,
            self._db_dialect,
        )

    def _detect_dialect(self) -> Optional[str]:
        # LIKE syntax varies between databases, make_query needs to know which one
        try:
            bind = db.session.get_bind(mapper=sa_inspect(self._name))
        except Exception as exc:
            # reported once, later make_query calls fall back to LIKE
            self._dialect_failed = True
            return self.throw_error(
                f"can't resolve database for {self._name.__name__}: {exc}",
                ErrorKind.MODULE_LOAD,
                cause=exc,
            )
        return bind.dialect.name

    @property
    def name(self) -> Optional[Type[Any]]:
        """The mapped class this model represents."""
        return self._name

    @property
    def manager(self) -> Optional[Type[Any]]:
        return self._manager

    @property
    def db_dialect(self) -> Optional[str]:
        if self._db_dialect is None and self._name is not None and not self._dialect_failed and has_app_context():
            self._db_dialect = self._detect_dialect()
        return self._db_dialect

    @db_dialect.setter
    def db_dialect(self, value: Optional[str]) -> None:
        self._db_dialect = value

    @property
    def model_name(self) -> str:
        target = self._name if self._name is not None else self.config.get("name")
        return getattr(target, "__name__", str(target))

    @property
    def load_with(self) -> Optional[List[str]]:
        load_with = self.config.get("load_with")
        return list(load_with) if load_with else None

    def new_object(self, **kwargs: Any) -> Optional[CRUDObject]:
        if self._name is None:
            return self.throw_error(f"{type(self).__name__} has no ORM class", ErrorKind.CONFIG_MISSING)
        try:
            record = self._name(**kwargs)
        except Exception as exc:
            return self.throw_error(
                f"can't create new {self.model_name} object: {exc}",
                ErrorKind.CONSTRUCTION,
                cause=exc,
            )
        if record is None:
            return self.throw_error(f"can't create new {self.model_name} object", ErrorKind.CONSTRUCTION)
        return super().new_object(delegate=record)

    def fetch(self, **params: Any) -> Optional[CRUDObject]:
        """
        Build an object from ``params`` and load it from the database.

        Without params this is the same as :meth:`new_object`. On any failure
        the error goes to the error channel and ``None`` is returned, so check
        ``model.errors`` afterwards::

            widget = model.fetch(id=1234)
            if model.errors:
                ...

        When the record may legitimately be missing, prefer ``new_object()``
        followed by ``obj.read()`` and a look at ``obj.not_found``.
        """

        obj = self.new_object(**params)
        if obj is None or not params:
            return obj

        logger = get_logger("model")
        with log_context(model=self.model_name, action="fetch"):
            try:
                found = obj.read(load_with=self.load_with)
            except Exception as exc:
                db.session.rollback()
                return self.throw_error(f"{exc} : no such {self.model_name}", ErrorKind.LOAD, cause=exc)
            if found is None:
                return self.throw_error(f"no such {self.model_name}", ErrorKind.LOAD)

            wanted = params.get("id")
            if wanted is not None:
                # compare as strings: char keys come back padded from some databases
                requested = str(wanted)
                loaded = str(getattr(obj.delegate, "id", "")).rstrip()
                if loaded != requested:
                    return self.throw_error(
                        f"Error fetching correct id: fetched: {requested} {len(requested)} "
                        f"but got: {loaded} {len(loaded)}",
                        ErrorKind.IDENTITY_MISMATCH,
                    )

            logger.info("fetch %s params=%s", self.model_name, sorted(params))
            return obj

    def search(self, *args: Any, **params: Any) -> Optional[List[CRUDObject]]:
        """
        Manager ``get_objects()``, each result wrapped in ``object_class``.

        Accepts a ``make_query()`` descriptor, a list of ``(key, value)``
        pairs, flat key and value arguments, or keywords::

            model.search(model.make_query(["name"]))
            model.search(query=[("color", ["blue"])], sort_by="name")
        """
        records = self._get_objects("get_objects", *args, **params)
        if records is None:
            return None
        wrap = self.object_class
        return [wrap(delegate=record) for record in records]

    def count(self, *args: Any, **params: Any) -> Optional[int]:
        """Manager ``get_objects_count()``. Takes the same arguments as :meth:`search`."""
        total = self._get_objects("get_objects_count", *args, **params)
        return None if total is None else int(total)

    def iterator(self, *args: Any, **params: Any) -> Optional[CRUDIterator]:
        """Manager ``get_objects_iterator()`` wrapped in a :class:`CRUDIterator`."""
        records = self._get_objects("get_objects_iterator", *args, **params)
        if records is None:
            return None
        return CRUDIterator(records, self.object_class)

    def _get_objects(self, method: str, *args: Any, **params: Any) -> Any:
        if self._manager is None:
            return self.throw_error(f"{type(self).__name__} has no manager", ErrorKind.CONFIG_MISSING)

        manager_args: Dict[str, Any] = {"object_class": self._name}
        manager_args.update(_descriptor_items(args))
        manager_args.update(params)
        for key in DESCRIPTOR_ONLY_KEYS:
            manager_args.pop(key, None)

        if self.load_with:
            manager_args.update(with_objects=self.load_with, multi_many_ok=True)

        return getattr(self._manager, method)(**manager_args)

    def _check_sort_columns(self, sort_order: List[Dict[str, str]]) -> None:
        if self._name is None:
            return
        for term in sort_order:
            for column in term:
                resolve_column(self._name, column)

    def make_query(self, field_names: Optional[Sequence[str]], params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        """
        Build a query descriptor from request params for ``search()``,
        ``iterator()`` and ``count()``.

        ``field_names`` are the params allowed as filters. Reserved params:

        ``order``
            Sort string such as ``"name desc, id"``. Defaults to
            ``CRUD_DEFAULT_ORDER``.
        ``page_size``
            Rows per page. Defaults to the model page size and is capped at
            ``CRUD_MAX_PAGE_SIZE`` so a user can't ask for the whole table.
        ``page``
            1-based page number, turned into the row offset.
        """

        params = self.context if params is None else params
        logger = get_logger("query")

        ilike_dialects = self.config.get("ilike_dialects") or app_setting("CRUD_ILIKE_DIALECTS", ("postgresql",))
        if isinstance(ilike_dialects, str):
            ilike_dialects = (ilike_dialects,)
        clauses, plain = build_filters(
            field_names or (),
            params,
            case_insensitive=self.db_dialect in tuple(ilike_dialects),
        )

        data, invalid = load_query_params(params)
        if invalid:
            logger.warning("Ignoring invalid query params for %s: %s", self.model_name, invalid)

        default_order = self.config.get("default_order") or app_setting("CRUD_DEFAULT_ORDER", DEFAULT_ORDER)
        order = data.get("order") or default_order
        try:
            sort_order = parse_sort(order)
            self._check_sort_columns(sort_order)
        except ValueError as exc:
            logger.warning("Bad sort %r for %s (%s); using %r", order, self.model_name, exc, default_order)
            order = default_order
            sort_order = parse_sort(order)

        sort_by = disambiguate(order, self.config.get("ambiguous_columns") or (), self.config.get("primary_alias", PRIMARY_ALIAS))
        sort_by = upcase_directions(sort_by)

        max_size = int(self.config.get("max_page_size") or app_setting("CRUD_MAX_PAGE_SIZE", MAX_PAGE_SIZE))
        page, page_size, offset = resolve_paging(
            data.get("page"),
            data.get("page_size"),
            default_size=self.page_size,
            max_size=max_size,
        )

        query = {
            "query": clauses,
            "sort_by": sort_by,
            "limit": page_size,
            "offset": offset,
            "sort_order": sort_order,
            "plain_query": plain,
            "plain_query_str": plain_query_str(plain),
        }
        logger.debug(
            "make_query %s filters=%s sort_by=%s page=%s page_size=%s",
            self.model_name,
            query["plain_query_str"],
            sort_by,
            page,
            page_size,
        )
        return query
