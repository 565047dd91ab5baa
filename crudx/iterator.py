from __future__ import annotations

from typing import Any, Iterator, Optional, Type

from crudx.objects.base import CRUDObject


class CRUDIterator:
    """Wraps each record from ``iterator`` in ``object_class`` as it is consumed."""

    def __init__(self, iterator: Iterator[Any], object_class: Type[CRUDObject]) -> None:
        self._iterator = iter(iterator)
        self.object_class = object_class
        self._finished = False

    def __iter__(self) -> "CRUDIterator":
        return self

    def __next__(self) -> CRUDObject:
        if self._finished:
            raise StopIteration
        try:
            record = next(self._iterator)
        except StopIteration:
            self.finish()
            raise
        return self.object_class(delegate=record)

    def next(self) -> Optional[CRUDObject]:
        """Next wrapped record, or ``None`` once exhausted."""
        return next(self, None)

    def finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        close = getattr(self._iterator, "close", None)
        if close is not None:
            close()
