import pytest
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import IntegrityError

from crudx import CRUDIterator, CRUDObject
from crudx.extensions import db

from sample_models import Widget, Widgets


class TestWrappedObject:
    """SQLAlchemyObject forwards to its record and persists it."""

    def test_attribute_forwarding(self):
        obj = Widgets().new_object(name="omega")
        obj.color = "black"
        assert obj.delegate.color == "black"
        assert obj.not_found is False

    def test_create(self, app_ctx):
        obj = Widgets().new_object(name="omega", sku="Z9")
        assert obj.create() is obj
        assert sa_inspect(obj.delegate).persistent
        assert db.session.query(Widget).filter_by(sku="Z9").one().name == "omega"

    def test_create_failure_rolls_back(self, widgets):
        obj = Widgets().new_object(name="dup", sku="A1")
        with pytest.raises(IntegrityError):
            obj.create()
        assert db.session.query(Widget).count() == 5

    def test_update(self, widgets):
        obj = Widgets().fetch(id=2)
        obj.color = "purple"
        obj.update()
        db.session.expire_all()
        assert db.session.get(Widget, 2).color == "purple"

    def test_delete(self, widgets):
        obj = Widgets().fetch(id=3)
        obj.delete()
        assert db.session.get(Widget, 3) is None

    def test_read_not_found(self, widgets):
        obj = Widgets().new_object(id=42)
        assert obj.read() is None
        assert obj.not_found is True

    def test_read_without_keys(self, app_ctx):
        obj = Widgets().new_object(name="nameless")
        with pytest.raises(ValueError):
            obj.read()

    def test_serialize(self, widgets):
        data = Widgets().fetch(id=2).serialize()
        assert data["id"] == 2
        assert data["name"] == "beta"
        assert data["color"] == "blue"
        assert data["sku"] == "B1"

    def test_base_object_is_abstract(self):
        obj = CRUDObject(delegate=object())
        with pytest.raises(NotImplementedError):
            obj.create()
        with pytest.raises(AttributeError):
            CRUDObject().anything


class TestCRUDIterator:
    """The iterator wraps records from any iterable."""

    def test_wraps_plain_iterable(self):
        it = CRUDIterator(["a", "b"], CRUDObject)
        assert [obj.delegate for obj in it] == ["a", "b"]
        assert it.next() is None
