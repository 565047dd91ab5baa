"""Wrapped record objects handed to the framework."""

from .base import CRUDObject
from .sqla import SQLAlchemyObject

__all__ = ["CRUDObject", "SQLAlchemyObject"]
