import json
import logging

import pytest

from config.validation import validate_and_exit, validate_environment
from wall_app.utils.logging_config import build_formatter


@pytest.fixture
def production_env(monkeypatch, tmp_path):
    credentials = tmp_path / "service-account.json"
    credentials.write_text("{}", encoding="utf-8")
    monkeypatch.setenv("RECONCILE_COLLECTION", "wall_items")
    monkeypatch.setenv("RECONCILE_STORE", "firestore")
    monkeypatch.setenv("FIREBASE_CREDENTIALS_PATH", str(credentials))
    monkeypatch.delenv("RECONCILE_BATCH_SIZE", raising=False)
    return monkeypatch


def test_validation_only_runs_in_production(monkeypatch):
    monkeypatch.setenv("RECONCILE_STORE", "cassandra")

    assert validate_environment("development") == (True, [])


def test_production_environment_passes(production_env):
    assert validate_environment("production") == (True, [])


def test_missing_credentials_are_reported(production_env):
    production_env.delenv("FIREBASE_CREDENTIALS_PATH")

    is_valid, errors = validate_environment("production")

    assert not is_valid
    assert any("FIREBASE_CREDENTIALS_PATH" in error for error in errors)


def test_unknown_store_and_bad_batch_size_are_reported(production_env):
    production_env.setenv("RECONCILE_STORE", "cassandra")
    production_env.setenv("RECONCILE_BATCH_SIZE", "lots")

    is_valid, errors = validate_environment("production")

    assert not is_valid
    assert len(errors) == 2


def test_validate_and_exit_exits_on_errors(production_env, capsys):
    production_env.setenv("RECONCILE_COLLECTION", " ")

    with pytest.raises(SystemExit):
        validate_and_exit("production")

    assert "RECONCILE_COLLECTION" in capsys.readouterr().err


def test_json_log_lines_include_reconcile_context():
    record = logging.LogRecord("wall_app.reconcile", logging.INFO, __file__, 1, "Applied %s", ("batch",), None)
    record.reconcile_collection = "wall_items"
    record.reconcile_batch_index = 3

    payload = json.loads(build_formatter("json", "Wall Reconcile").format(record))

    assert payload["event"] == "Applied batch"
    assert payload["level"] == "info"
    assert payload["logger"] == "wall_app.reconcile"
    assert payload["reconcile_collection"] == "wall_items"
    assert payload["reconcile_batch_index"] == 3
    assert payload["app"] == "Wall Reconcile"


def test_text_log_lines_are_not_json():
    record = logging.LogRecord("wall_app.reconcile", logging.WARNING, __file__, 1, "Backup written", (), None)

    line = build_formatter("text", "Wall Reconcile").format(record)

    assert "Backup written" in line
    assert not line.startswith("{")
