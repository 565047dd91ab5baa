"""Mapped classes and CRUD models shared by the test suite."""

from crudx.extensions import crud, db
from crudx.manager import Manager
from crudx.model import SQLAlchemyModel


class Widget(db.Model):
    __tablename__ = "widgets"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False)
    color = db.Column(db.String(30))
    sku = db.Column(db.String(30), unique=True)

    parts = db.relationship("Part", back_populates="widget", cascade="all, delete-orphan", lazy=True)


class Part(db.Model):
    __tablename__ = "parts"

    id = db.Column(db.Integer, primary_key=True)
    widget_id = db.Column(db.Integer, db.ForeignKey("widgets.id"), nullable=False)
    label = db.Column(db.String(50), nullable=False)

    widget = db.relationship("Widget", back_populates="parts")


class Gadget(db.Model):
    __tablename__ = "gadgets"

    id = db.Column(db.String(40), primary_key=True)
    name = db.Column(db.String(100))


class GadgetManager(Manager):
    object_class = Gadget
    calls = []

    @classmethod
    def get_objects(cls, **params):
        cls.calls.append(params)
        return super().get_objects(**params)


class NotMapped:
    pass


@crud.register("Widget")
class Widgets(SQLAlchemyModel):
    config = {
        "name": "sample_models:Widget",
        "load_with": ["parts"],
        "page_size": 10,
    }


@crud.register("Gadget")
class Gadgets(SQLAlchemyModel):
    config = {"name": "sample_models.Gadget"}
