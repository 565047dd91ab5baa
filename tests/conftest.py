import os

import pytest

os.environ['FLASK_ENV'] = 'testing'

from crudx import create_app
from crudx.extensions import db
from crudx.utils.logging_utils import shutdown_logger

from sample_models import Gadget, Part, Widget


@pytest.fixture(scope='session')
def app(tmp_path_factory):
    """Create application for testing."""
    log_dir = tmp_path_factory.mktemp("logs")
    app = create_app(
        'testing',
        LOGGING_BASE_DIR=str(log_dir),
        LOG_FILE=str(log_dir / "app.log"),
    )
    yield app
    shutdown_logger()


@pytest.fixture(autouse=True)
def app_ctx(app):
    """Fresh schema and a fresh ``g`` (error channel) for every test."""
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def widgets(app_ctx):
    """A handful of stored widgets; ``alpha`` has two parts."""
    rows = [
        Widget(id=1, name="alpha", color="red", sku="A1", parts=[Part(label="bolt"), Part(label="nut")]),
        Widget(id=2, name="beta", color="blue", sku="B1"),
        Widget(id=3, name="Alphabet", color="green", sku="C1"),
        Widget(id=4, name="gamma", color="red", sku="D1"),
        Widget(id=5, name="delta", color=None, sku="E1"),
    ]
    db.session.add_all(rows)
    db.session.commit()
    return rows


@pytest.fixture
def gadgets(app_ctx):
    rows = [Gadget(id="g-1", name="sprocket"), Gadget(id="g-2", name="flange")]
    db.session.add_all(rows)
    db.session.commit()
    return rows
