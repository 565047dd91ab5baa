from __future__ import annotations

from typing import Any, Optional


class CRUDObject:
    """
    Presentation wrapper around a storage record. Attribute reads and writes
    that the wrapper does not define itself go to ``delegate``.
    """

    _own_attrs = ("delegate", "not_found")

    def __init__(self, delegate: Any = None, **kwargs: Any) -> None:
        object.__setattr__(self, "delegate", delegate)
        object.__setattr__(self, "not_found", False)
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __getattr__(self, name: str) -> Any:
        # only called when normal lookup fails
        if name.startswith("__"):
            raise AttributeError(name)
        delegate = self.__dict__.get("delegate")
        if delegate is None:
            raise AttributeError(f"{type(self).__name__} has no delegate; cannot resolve {name!r}")
        return getattr(delegate, name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in self._own_attrs or hasattr(type(self), name) or name.startswith("_"):
            object.__setattr__(self, name, value)
            return
        setattr(self.delegate, name, value)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} delegate={self.delegate!r}>"

    def create(self) -> "CRUDObject":
        raise NotImplementedError

    def read(self, load_with: Optional[Any] = None) -> Optional["CRUDObject"]:
        raise NotImplementedError

    def update(self) -> "CRUDObject":
        raise NotImplementedError

    def delete(self) -> None:
        raise NotImplementedError

    def serialize(self) -> dict:
        raise NotImplementedError
