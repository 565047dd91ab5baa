from __future__ import annotations

import enum
from typing import Any, List, Optional

from flask import g, has_app_context

_CHANNEL_KEY = "crudx_errors"


class ErrorKind(enum.Enum):
    CONFIG_MISSING = "config_missing"
    MODULE_LOAD = "module_load"
    CONSTRUCTION = "construction"
    LOAD = "load"
    IDENTITY_MISMATCH = "identity_mismatch"


class ModelError(Exception):
    """An adapter failure. ``kind`` tells which stage failed."""

    def __init__(self, message: str, kind: ErrorKind, *, model: Optional[str] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.model = model
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.kind.value, "message": self.message, "model": self.model}

    def __repr__(self) -> str:
        return f"ModelError({self.kind.value!r}, {self.message!r})"


class ErrorChannel:
    """
    Where models report failures. Inside an app context the list lives on
    ``flask.g`` so it is shared by every model for the duration of the
    request; outside one it falls back to a list owned by the channel.
    """

    def __init__(self) -> None:
        self._fallback: List[ModelError] = []

    def _store(self) -> List[ModelError]:
        if has_app_context():
            if _CHANNEL_KEY not in g:
                setattr(g, _CHANNEL_KEY, [])
            return getattr(g, _CHANNEL_KEY)
        return self._fallback

    def push(self, error: ModelError) -> None:
        self._store().append(error)

    @property
    def errors(self) -> List[ModelError]:
        return list(self._store())

    @property
    def last(self) -> Optional[ModelError]:
        store = self._store()
        return store[-1] if store else None

    def clear(self) -> None:
        del self._store()[:]
        del self._fallback[:]
