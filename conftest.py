# conftest.py

import os

import pytest

# Set testing environment BEFORE importing app so app.py picks TestingConfig
os.environ["FLASK_ENV"] = "testing"

from app import app as flask_app  # noqa: E402
from wall_app.reconcile import init_reconcile, set_store  # noqa: E402
from wall_app.reconcile.state import ensure_extension_state  # noqa: E402
from wall_app.reconcile.store import InMemoryStore  # noqa: E402
from wall_app.utils.logging_config import setup_logging  # noqa: E402


@pytest.fixture(scope="function")
def app(tmp_path):
    """Flask application wired to a fresh in-memory store and a temporary artifact directory"""
    original_config = dict(flask_app.config)
    flask_app.config.update(
        {
            "TESTING": True,
            "RECONCILE_ENABLED": True,
            "RECONCILE_STORE": "memory",
            "RECONCILE_COLLECTION": "wall_items",
            "RECONCILE_PARENT_ID": "wall-test",
            "RECONCILE_OBJECT_TYPE": None,
            "RECONCILE_ARTIFACT_DIR": str(tmp_path / "artifacts"),
            "RECONCILE_BATCH_SIZE": 500,
            "RECONCILE_NORMALIZATION_PROFILE_PATH": None,
            "ENABLE_FILE_LOGGING": False,
            "ENABLE_CONSOLE_LOGGING": False,
            "LOG_LEVEL": "DEBUG",
        }
    )
    setup_logging(flask_app)

    state = ensure_extension_state(flask_app)
    state["profile"] = None
    set_store(flask_app, InMemoryStore())
    init_reconcile(flask_app)

    with flask_app.app_context():
        yield flask_app

    set_store(flask_app, None)
    state["profile"] = None
    flask_app.config.clear()
    flask_app.config.update(original_config)
    init_reconcile(flask_app)


@pytest.fixture
def runner(app):
    """A test runner for the app's Click commands"""
    return app.test_cli_runner()


@pytest.fixture
def store(app):
    """The in-memory document store injected into the app"""
    return ensure_extension_state(app)["store"]
