import logging
import os
from logging.handlers import RotatingFileHandler

from dotenv import load_dotenv
from flask import Flask, jsonify

# Load environment variables from .env file
load_dotenv()

# Import configuration after loading .env
from .config import config, Config
from .extensions import crud, db, ma
from .errors import ErrorKind, ModelError
from .utils.logging_utils import get_logger, init_logger
from .manager import Manager
from .iterator import CRUDIterator
from .objects import CRUDObject, SQLAlchemyObject
from .model import CRUDModel, SQLAlchemyModel

__version__ = "0.3.0"

__all__ = [
    "CRUDIterator",
    "CRUDModel",
    "CRUDObject",
    "ErrorKind",
    "Manager",
    "ModelError",
    "SQLAlchemyModel",
    "SQLAlchemyObject",
    "create_app",
    "crud",
    "db",
    "ma",
]

_ERROR_STATUS = {
    ErrorKind.LOAD: 404,
    ErrorKind.IDENTITY_MISMATCH: 404,
    ErrorKind.CONSTRUCTION: 400,
}


def configure_logging(app):
    log_file = app.config.get('LOG_FILE', '/tmp/crudx_app.log')
    log_dir = os.path.dirname(log_file)
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)

    log_level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO'), logging.INFO)
    if not any(isinstance(h, RotatingFileHandler) for h in app.logger.handlers):
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=app.config.get('LOG_MAX_BYTES', 10485760),  # 10MB default
            backupCount=app.config.get('LOG_BACKUP_COUNT', 5)
        )
        file_handler.setFormatter(logging.Formatter(
            "[%(asctime)s] %(levelname)s in %(module)s: %(message)s"
        ))
        file_handler.setLevel(log_level)
        app.logger.addHandler(file_handler)

    app.logger.setLevel(log_level)
    app.logger.info("Logging configured with level: %s", app.config.get('LOG_LEVEL', 'INFO'))

    # Categorized loggers share the application config.
    init_logger(app)


def create_app(config_name=None, **overrides):
    # Determine configuration based on environment variable or parameter
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'default')

    config_class = config.get(config_name, Config)

    app = Flask(__name__)
    app.config.from_object(config_class)
    app.config.update(overrides)

    config_class.init_app(app)

    configure_logging(app)
    app.logger.info("Using config: %s", config_class.__name__)

    db.init_app(app)
    ma.init_app(app)
    crud.init_app(app)

    @app.errorhandler(ModelError)
    def _model_error(e):
        # only reached when CRUD_RAISE_ERRORS is on
        status = _ERROR_STATUS.get(e.kind, 500)
        if status >= 500:
            app.logger.error("CRUD model error: %s", e.message)
        return jsonify(e.to_dict()), status

    get_logger("app").info("%s %s started with config %s", app.config.get("APP_NAME"), __version__, config_class.__name__)
    return app
