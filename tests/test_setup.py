import pytest

from crudx import ErrorKind, Manager, ModelError, SQLAlchemyModel, SQLAlchemyObject, crud
from crudx.extensions import db

from sample_models import Gadget, GadgetManager, Gadgets, Widget, Widgets


class TestModelSetup:
    """Resolution of the ORM class, its manager and the database dialect."""

    def test_name_resolves_to_mapped_class(self):
        """An import string in config becomes the mapped class."""
        model = Widgets()
        assert model.name is Widget
        assert model.model_name == "Widget"
        assert model.errors == []

    def test_manager_defaults_to_class_manager(self):
        """With only a name configured, <Class>Manager is used when it exists."""
        model = Gadgets()
        assert model.manager is GadgetManager

    def test_manager_falls_back_to_generic(self):
        """Without a <Class>Manager the generic manager is used, not an error."""
        model = Widgets()
        assert model.manager is Manager
        assert model.errors == []

    def test_explicit_manager(self):
        model = Widgets(manager="sample_models:GadgetManager")
        assert model.manager is GadgetManager

    def test_unloadable_explicit_manager_falls_back(self):
        model = Widgets(manager="sample_models:NoSuchManager")
        assert model.manager is Manager
        assert model.errors == []

    def test_class_object_accepted(self):
        class Direct(SQLAlchemyModel):
            config = {"name": Gadget}

        model = Direct()
        assert model.name is Gadget
        assert model.manager is GadgetManager

    def test_missing_name(self):
        """No ORM class configured is a configuration error."""
        model = SQLAlchemyModel()
        assert model.name is None
        assert model.manager is None
        assert model.error.kind is ErrorKind.CONFIG_MISSING
        assert model.setup_errors == model.errors

    def test_unimportable_name(self):
        model = SQLAlchemyModel(name="sample_models:Missing")
        assert model.name is None
        assert model.error.kind is ErrorKind.MODULE_LOAD

    def test_unmapped_name(self):
        model = SQLAlchemyModel(name="sample_models:NotMapped")
        assert model.name is None
        assert model.error.kind is ErrorKind.MODULE_LOAD
        assert "not a mapped class" in model.error.message

    def test_raise_errors(self):
        """With raise_errors on, setup failures propagate as ModelError."""
        with pytest.raises(ModelError) as exc_info:
            SQLAlchemyModel(raise_errors=True)
        assert exc_info.value.kind is ErrorKind.CONFIG_MISSING

    def test_unconfigured_model_operations_report_errors(self):
        model = SQLAlchemyModel()
        model.clear_errors()
        assert model.new_object(name="x") is None
        assert model.search() is None
        assert model.count() is None
        assert [e.kind for e in model.errors] == [ErrorKind.CONFIG_MISSING] * 3

    def test_dialect_detected(self):
        assert Widgets().db_dialect == "sqlite"

    def test_dialect_resolved_lazily(self):
        """An unknown dialect is looked up again on first use."""
        model = Widgets()
        model.db_dialect = None
        assert model.db_dialect == "sqlite"

    def test_dialect_failure_reported_once(self, app, monkeypatch):
        model = Widgets()
        model.db_dialect = None

        def no_bind(*args, **kwargs):
            raise RuntimeError("no engine")

        monkeypatch.setattr(db.session, "get_bind", no_bind)
        assert model.db_dialect is None
        with app.test_request_context("/widgets?name=al*"):
            q = model.make_query(["name"])
        assert q["query"] == [("name", {"like": ["al%"]})]
        assert [e.kind for e in model.errors] == [ErrorKind.MODULE_LOAD]


class TestModelConfig:
    """Class level config merging and defaults."""

    def test_config_merges_along_mro(self):
        model = Widgets()
        assert model.config["name"] == "sample_models:Widget"
        assert model.config["object_class"] == "crudx.objects.sqla:SQLAlchemyObject"
        assert model.object_class is SQLAlchemyObject

    def test_constructor_overrides(self):
        model = Widgets(page_size=25)
        assert model.page_size == 25
        assert Widgets.config["page_size"] == 10

    def test_page_size_from_app_config(self, app):
        model = Gadgets()
        assert model.page_size == app.config["CRUD_PAGE_SIZE"] == 50

    def test_load_with(self):
        assert Widgets().load_with == ["parts"]
        assert Gadgets().load_with is None


class TestRegistry:
    """Models registered with the crud extension are built once per app."""

    def test_model_lookup(self):
        first = crud.model("Widget")
        assert isinstance(first, Widgets)
        assert crud.model("Widget") is first

    def test_registered_names(self):
        assert {"Widget", "Gadget"} <= set(crud.names)

    def test_unknown_model(self):
        with pytest.raises(KeyError):
            crud.model("Nope")
