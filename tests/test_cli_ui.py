"""Tests for statecanvas.cli_ui rendering helpers."""

from io import StringIO

import pytest

from statecanvas import cli_ui
from statecanvas.engine import consistency


@pytest.fixture
def captured():
    buf = StringIO()
    old_file = cli_ui.console.file
    cli_ui.console.file = buf
    yield buf
    cli_ui.console.file = old_file


class TestWorkflowRendering:
    def test_workflow_panel_for_document(self, captured, registration_document):
        cli_ui.workflow_panel("Summary", registration_document.configuration, registration_document)

        out = captured.getvalue()
        assert "Workflow Id: user-registration-user-v1" in out
        assert "Entity: user v1" in out
        assert "Active: yes" in out

    def test_states_table_roles(self, captured, registration_config):
        cli_ui.states_table(registration_config)

        out = captured.getvalue()
        assert "initial" in out
        assert "terminal" in out

    def test_transitions_table_details(self, captured, registration_config):
        cli_ui.transitions_table(registration_config, verbose=True)

        out = captured.getvalue()
        assert "email-sent-2" in out
        assert "group criterion" in out
        assert "1 processor(s)" in out

    def test_layout_preview_is_cut(self, captured, registration_document):
        doc = registration_document
        for i in range(10):
            doc = consistency.add_state(doc, f"extra-{i}")

        cli_ui.layout_preview(doc)

        assert "6 more state(s)" in captured.getvalue()


class TestStatusLines:
    def test_fail_with_hint(self, captured):
        cli_ui.fail("out.json already exists", hint="Pass --force to overwrite")

        out = captured.getvalue()
        assert "✗ out.json already exists" in out
        assert "Pass --force to overwrite" in out
