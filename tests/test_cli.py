"""Tests for statecanvas.cli commands."""

import json
import logging
import shutil
from io import StringIO
from pathlib import Path

import pytest
from click.testing import CliRunner

from statecanvas.cli import _load_settings, main


def _invoke(args):
    """Invoke CLI and capture both Click output and Rich stdout."""
    runner = CliRunner()
    buf = StringIO()
    from statecanvas.cli_ui import console

    old_file = console.file
    console.file = buf
    try:
        result = runner.invoke(main, args)
    finally:
        console.file = old_file
    combined = result.output + buf.getvalue()
    return result, combined


@pytest.fixture(autouse=True)
def isolated(tmp_path, monkeypatch):
    """Run every command in an empty directory with no config file."""
    monkeypatch.chdir(tmp_path)
    for var in ("STATECANVAS_CONFIG", "STATECANVAS_LOG_LEVEL", "STATECANVAS_DEBUG"):
        monkeypatch.delenv(var, raising=False)


class TestVersionCommand:
    def test_version_output(self):
        result, output = _invoke(["version"])
        assert result.exit_code == 0
        assert "StateCanvas" in output

    def test_version_flag(self):
        runner = CliRunner()
        result = runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "statecanvas" in result.output


class TestValidateCommand:
    def test_validate_missing_file(self):
        result, _ = _invoke(["validate", "nonexistent.json"])
        assert result.exit_code != 0

    def test_validate_configuration(self, registration_config_path):
        result, output = _invoke(["validate", str(registration_config_path)])

        assert result.exit_code == 0
        assert "Valid Workflow" in output
        assert "User Registration" in output

    def test_validate_legacy_document(self, legacy_document_path):
        result, output = _invoke(["validate", str(legacy_document_path)])

        assert result.exit_code == 0
        assert "order-fulfillment-order-v2" in output

    def test_validate_dangling_reference(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(
            json.dumps(
                {
                    "version": "1.0",
                    "name": "bad",
                    "initialState": "a",
                    "states": {"a": {"transitions": [{"next": "ghost"}]}},
                }
            )
        )

        result, output = _invoke(["validate", str(path)])

        assert result.exit_code == 1
        assert "ghost" in output


class TestInfoCommand:
    def test_info_shows_canonical_ids(self, registration_config_path):
        result, output = _invoke(["info", str(registration_config_path), "--verbose"])

        assert result.exit_code == 0
        assert "email-sent-0" in output
        assert "initial" in output
        assert "terminal" in output


class TestImportCommand:
    def test_import(self, registration_config_path, tmp_path):
        out = tmp_path / "doc.json"

        result, output = _invoke(
            ["import", str(registration_config_path), "--model", "user", "-o", str(out)]
        )

        assert result.exit_code == 0, output
        data = json.loads(out.read_text())
        assert data["id"] == "user-registration-user-v1"
        assert len(data["layout"]["states"]) == 4

    def test_import_default_filename(self, registration_config_path, tmp_path):
        result, _ = _invoke(
            ["import", str(registration_config_path), "--model", "user", "--model-version", "3"]
        )

        assert result.exit_code == 0
        assert (tmp_path / "user-registration-user-v3.json").is_file()

    def test_import_refuses_overwrite(self, registration_config_path, tmp_path):
        out = tmp_path / "doc.json"
        out.write_text("keep me")

        result, output = _invoke(
            ["import", str(registration_config_path), "--model", "user", "-o", str(out)]
        )

        assert result.exit_code == 1
        assert "--force" in output
        assert out.read_text() == "keep me"

    def test_import_requires_model(self, registration_config_path):
        result, _ = _invoke(["import", str(registration_config_path)])
        assert result.exit_code != 0

    def test_import_save_to_store(self, registration_config_path, tmp_path):
        (tmp_path / "statecanvas.yaml").write_text("persistence:\n  store_root: store\n")

        result, output = _invoke(
            ["import", str(registration_config_path), "--model", "user", "--save"]
        )

        assert result.exit_code == 0, output
        stored = tmp_path / "store" / "user"
        assert (stored / "user-registration-user-v1.configuration.json").is_file()
        assert (stored / "user-registration-user-v1.layout.json").is_file()


class TestListCommand:
    def test_empty_store(self):
        result, output = _invoke(["list"])

        assert result.exit_code == 0
        assert "No entity models stored yet" in output

    def test_lists_saved_workflows(self, registration_config_path, tmp_path):
        (tmp_path / "statecanvas.yaml").write_text("persistence:\n  store_root: store\n")
        _invoke(["import", str(registration_config_path), "--model", "user", "--save"])

        result, output = _invoke(["list"])
        assert result.exit_code == 0
        assert "user" in output

        result, output = _invoke(["list", "--model", "user"])
        assert result.exit_code == 0
        assert "user-registration-user-v1" in output
        assert "User Registration" in output

    def test_unknown_model(self):
        result, output = _invoke(["list", "--model", "order"])

        assert result.exit_code == 0
        assert "No workflows stored for 'order'" in output


class TestLoggingSettings:
    """Logging follows the debug and log_level settings."""

    @pytest.fixture
    def basic_config(self, monkeypatch):
        calls = []
        monkeypatch.setattr(logging, "basicConfig", lambda **kw: calls.append(kw))
        return calls

    def test_default_level(self, basic_config):
        settings = _load_settings(None)

        assert not settings.debug
        assert basic_config[-1]["level"] == logging.WARNING

    def test_level_from_yaml(self, tmp_path, basic_config):
        (tmp_path / "statecanvas.yaml").write_text("log_level: INFO\n")

        _load_settings(None)

        assert basic_config[-1]["level"] == logging.INFO

    def test_debug_from_yaml_is_kept(self, tmp_path, basic_config):
        (tmp_path / "statecanvas.yaml").write_text("debug: true\nlog_level: ERROR\n")

        settings = _load_settings(None)

        assert settings.debug
        assert basic_config[-1]["level"] == logging.DEBUG

    def test_debug_flag(self, basic_config):
        assert _load_settings(None, debug=True).debug
        assert basic_config[-1]["level"] == logging.DEBUG


class TestLayoutCommand:
    def test_layout_direction(self, legacy_document_path, tmp_path):
        out = tmp_path / "laid-out.json"

        result, output = _invoke(
            ["layout", str(legacy_document_path), "--direction", "LR", "-o", str(out)]
        )

        assert result.exit_code == 0, output
        states = {s["id"]: s["position"] for s in json.loads(out.read_text())["layout"]["states"]}
        assert states["placed"]["x"] < states["paid"]["x"] < states["shipped"]["x"]

    def test_layout_in_place_needs_force(self, legacy_document_path, tmp_path):
        doc = tmp_path / "doc.json"
        shutil.copy(legacy_document_path, doc)

        result, _ = _invoke(["layout", str(doc)])
        assert result.exit_code == 1

        result, _ = _invoke(["layout", str(doc), "--force"])
        assert result.exit_code == 0


class TestMigrateIdsCommand:
    def test_migrate(self, legacy_document_path, tmp_path):
        out = tmp_path / "migrated.json"

        result, output = _invoke(["migrate-ids", str(legacy_document_path), "-o", str(out)])

        assert result.exit_code == 0, output
        assert "Migrated 2" in output
        ids = [r["id"] for r in json.loads(out.read_text())["layout"]["transitions"]]
        assert ids == ["placed-0", "placed-1", "paid-0"]

    def test_nothing_to_migrate(self, tmp_path, legacy_document_path):
        out = tmp_path / "migrated.json"
        _invoke(["migrate-ids", str(legacy_document_path), "-o", str(out)])

        result, output = _invoke(["migrate-ids", str(out)])

        assert result.exit_code == 0
        assert "No legacy transition ids" in output
