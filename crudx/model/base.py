from __future__ import annotations

from typing import Any, Dict, List, Mapping, Optional, Type

from flask import current_app, has_app_context, has_request_context, request
from werkzeug.datastructures import MultiDict
from werkzeug.utils import import_string

from crudx.errors import ErrorChannel, ErrorKind, ModelError
from crudx.objects.base import CRUDObject
from crudx.utils.logging_utils import get_logger, log_context

DEFAULT_PAGE_SIZE = 50


def app_setting(key: str, default: Any = None) -> Any:
    """Value of ``key`` from the active Flask app config, else ``default``."""
    if has_app_context():
        value = current_app.config.get(key)
        if value is not None:
            return value
    return default


def load_class(target: Any) -> Any:
    """Accept a class or an import string (``pkg.mod:Cls`` or ``pkg.mod.Cls``)."""
    if isinstance(target, str):
        return import_string(target)
    return target


class CRUDModel:
    """
    Base of the CRUD model contract.

    Subclasses declare a class level ``config`` dict; dicts found along the
    MRO are merged, most derived last, and keyword arguments given to the
    constructor override them. ``setup()`` runs once, at construction.
    """

    config: Dict[str, Any] = {
        "object_class": "crudx.objects.base.CRUDObject",
    }

    def __init__(self, params: Optional[Mapping[str, Any]] = None, **config: Any) -> None:
        merged: Dict[str, Any] = {}
        for klass in reversed(type(self).__mro__):
            merged.update(klass.__dict__.get("config") or {})
        merged.update(config)
        self.config = merged
        self._params = params
        self._channel = ErrorChannel()
        self._object_class: Optional[Type[CRUDObject]] = None
        self._in_setup = True
        self.setup_errors: List[ModelError] = []
        try:
            self.setup()
        finally:
            self._in_setup = False

    def setup(self) -> None:
        """Resolve configuration. Subclasses extend this."""

    @property
    def object_class(self) -> Type[CRUDObject]:
        if self._object_class is None:
            self._object_class = load_class(self.config["object_class"])
        return self._object_class

    @property
    def page_size(self) -> int:
        return int(self.config.get("page_size") or app_setting("CRUD_PAGE_SIZE", DEFAULT_PAGE_SIZE))

    @property
    def raise_errors(self) -> bool:
        if "raise_errors" in self.config:
            return bool(self.config["raise_errors"])
        return bool(app_setting("CRUD_RAISE_ERRORS", False))

    @property
    def context(self) -> Mapping[str, Any]:
        """Request parameters for the current call."""
        if self._params is not None:
            return self._params
        if has_request_context():
            return request.values
        return MultiDict()

    def new_object(self, **kwargs: Any) -> Optional[CRUDObject]:
        return self.object_class(**kwargs)

    def fetch(self, **params: Any) -> Optional[CRUDObject]:
        raise NotImplementedError

    def search(self, query: Any = None, **params: Any) -> Optional[List[CRUDObject]]:
        raise NotImplementedError

    def count(self, query: Any = None, **params: Any) -> Optional[int]:
        raise NotImplementedError

    def iterator(self, query: Any = None, **params: Any):
        raise NotImplementedError

    def make_query(self, field_names, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        raise NotImplementedError

    # error channel

    def throw_error(self, message: str, kind: ErrorKind, *, cause: Optional[BaseException] = None) -> None:
        """
        Put a ``ModelError`` on the error channel and log it. Raises it instead
        when ``raise_errors`` is configured, otherwise returns ``None`` so
        callers can ``return self.throw_error(...)``.
        """

        error = ModelError(message, kind, model=type(self).__name__, cause=cause)
        self._channel.push(error)
        if self._in_setup:
            self.setup_errors.append(error)
        with log_context(model=type(self).__name__, error_kind=kind.value):
            get_logger("error").error("%s", message, exc_info=cause)
        if self.raise_errors:
            raise error from cause
        return None

    @property
    def errors(self) -> List[ModelError]:
        return self._channel.errors

    @property
    def error(self) -> Optional[ModelError]:
        return self._channel.last

    def clear_errors(self) -> None:
        self._channel.clear()
