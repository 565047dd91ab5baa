from flask_marshmallow import Marshmallow
from flask_sqlalchemy import SQLAlchemy

from .registry import ModelRegistry

db = SQLAlchemy()
ma = Marshmallow()
crud = ModelRegistry()
