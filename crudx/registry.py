from __future__ import annotations

from typing import Any, Callable, Dict, Optional, Tuple, Type

from flask import Flask, current_app

from crudx.utils.logging_utils import get_logger

EXTENSION_KEY = "crudx"


class ModelRegistry:
    """
    Flask extension holding the app's CRUD models.

    Models are registered by name, instantiated (and so set up) once per app
    in :meth:`init_app`, and looked up per request with :meth:`model`::

        crud = ModelRegistry()

        @crud.register("Widget")
        class Widgets(SQLAlchemyModel):
            config = {"name": "myapp.models:Widget"}

        widgets = crud.model("Widget")
    """

    def __init__(self, app: Optional[Flask] = None) -> None:
        self._registered: Dict[str, Tuple[Type[Any], Dict[str, Any]]] = {}
        if app is not None:
            self.init_app(app)

    def register(self, name: Optional[str] = None, **config: Any) -> Callable[[Type[Any]], Type[Any]]:
        def decorator(model_cls: Type[Any]) -> Type[Any]:
            self.register_model(name or model_cls.__name__, model_cls, **config)
            return model_cls

        return decorator

    def register_model(self, name: str, model_cls: Type[Any], **config: Any) -> None:
        self._registered[name] = (model_cls, config)

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(sorted(self._registered))

    def _build(self, name: str) -> Any:
        logger = get_logger("model")
        model_cls, config = self._registered[name]
        model = model_cls(**config)
        for error in model.setup_errors:
            logger.error("Model %s failed setup: %s", name, error.message)
        return model

    def init_app(self, app: Flask) -> None:
        models: Dict[str, Any] = {}
        app.extensions[EXTENSION_KEY] = models
        with app.app_context():
            for name in self._registered:
                models[name] = self._build(name)
            get_logger("model").info("CRUD models ready: %s", ", ".join(sorted(models)) or "none")

    def model(self, name: str) -> Any:
        """The set-up model registered as ``name``. Raises ``KeyError`` if unknown."""

        models = current_app.extensions.setdefault(EXTENSION_KEY, {})
        if name not in models:
            if name not in self._registered:
                raise KeyError(f"no CRUD model registered as {name!r}")
            models[name] = self._build(name)
        return models[name]
