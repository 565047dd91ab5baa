from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Type

from sqlalchemy import UniqueConstraint
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import NoInspectionAvailable

from crudx.extensions import db, ma
from crudx.manager import build_load_options
from crudx.utils.logging_utils import get_logger, log_context

from .base import CRUDObject

_schemas: Dict[type, Any] = {}


def _serialize_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def instance_identity(instance: Any) -> Optional[str]:
    try:
        state = sa_inspect(instance)
        if state.identity:
            return ":".join(str(_serialize_value(part)) for part in state.identity)
    except NoInspectionAvailable:
        pass
    for attr in ("id", "uuid", "pk"):
        value = getattr(instance, attr, None)
        if value is not None:
            return str(value)
    return None


def _schema_for(model_cls: type) -> Any:
    schema = _schemas.get(model_cls)
    if schema is None:
        meta = type("Meta", (), {"model": model_cls, "include_fk": True, "load_instance": False})
        schema_cls = type(f"{model_cls.__name__}Schema", (ma.SQLAlchemyAutoSchema,), {"Meta": meta})
        schema = _schemas[model_cls] = schema_cls()
    return schema


def _primary_key_names(model_cls: type) -> List[str]:
    mapper = sa_inspect(model_cls)
    return [mapper.get_property_by_column(column).key for column in mapper.primary_key]


def _unique_key_sets(model_cls: type) -> List[List[str]]:
    """Attribute names of each unique key on the mapped table, single columns first."""

    mapper = sa_inspect(model_cls)
    table = mapper.local_table
    keys: List[List[str]] = []
    for column in table.columns:
        if column.unique:
            keys.append([mapper.get_property_by_column(column).key])
    for constraint in table.constraints:
        if isinstance(constraint, UniqueConstraint):
            keys.append([mapper.get_property_by_column(c).key for c in constraint.columns])
    return keys


class SQLAlchemyObject(CRUDObject):
    """Wraps a mapped instance; persistence goes through the Flask-SQLAlchemy session."""

    @property
    def model_class(self) -> Type[Any]:
        return type(self.delegate)

    def _lookup_values(self) -> Optional[Dict[str, Any]]:
        pk = {name: getattr(self.delegate, name, None) for name in _primary_key_names(self.model_class)}
        if all(v is not None for v in pk.values()):
            return pk
        for key_set in _unique_key_sets(self.model_class):
            values = {name: getattr(self.delegate, name, None) for name in key_set}
            if all(v is not None for v in values.values()):
                return values
        return None

    def create(self) -> "SQLAlchemyObject":
        return self._save("create")

    def update(self) -> "SQLAlchemyObject":
        return self._save("update")

    def _save(self, action: str) -> "SQLAlchemyObject":
        logger = get_logger("object")
        model_name = self.model_class.__name__
        with log_context(model=model_name, action=action):
            try:
                db.session.add(self.delegate)
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("Failed to %s %s target_id=%s", action, model_name, instance_identity(self.delegate))
                raise
            logger.info("%s %s target_id=%s", action, model_name, instance_identity(self.delegate))
            return self

    def read(self, load_with: Optional[Sequence[str]] = None) -> Optional["SQLAlchemyObject"]:
        """
        Load the stored record matching the delegate's primary key, or failing
        that one of its unique keys, and make it the new delegate.

        Returns ``self``, or ``None`` with ``not_found`` set when no row
        matches. Raises ``ValueError`` if no key values are set at all.
        """

        logger = get_logger("object")
        model_cls = self.model_class
        values = self._lookup_values()
        if values is None:
            raise ValueError(f"{model_cls.__name__} has no primary or unique key values to load by")

        options = build_load_options(model_cls, load_with)
        with log_context(model=model_cls.__name__, action="read"):
            pk_names = _primary_key_names(model_cls)
            if list(values) == pk_names:
                ident = tuple(values[name] for name in pk_names)
                record = db.session.get(
                    model_cls,
                    ident[0] if len(ident) == 1 else ident,
                    options=options,
                    populate_existing=True,
                )
            else:
                record = (
                    db.session.query(model_cls)
                    .options(*options)
                    .populate_existing()
                    .filter_by(**values)
                    .one_or_none()
                )

            logger.info("read %s key=%s found=%s", model_cls.__name__, values, record is not None)
            if record is None:
                self.not_found = True
                return None
            self.delegate = record
            self.not_found = False
            return self

    def delete(self) -> None:
        logger = get_logger("object")
        model_name = self.model_class.__name__
        identity = instance_identity(self.delegate)
        with log_context(model=model_name, action="delete"):
            try:
                db.session.delete(self.delegate)
                db.session.commit()
            except Exception:
                db.session.rollback()
                logger.exception("Failed to delete %s target_id=%s", model_name, identity)
                raise
            logger.info("delete %s target_id=%s", model_name, identity)

    def serialize(self) -> dict:
        return _schema_for(self.model_class).dump(self.delegate)
