from .base import CRUDModel
from .sqla import SQLAlchemyModel

__all__ = ["CRUDModel", "SQLAlchemyModel"]
