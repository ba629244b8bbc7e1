"""Pytest fixtures for StateCanvas tests."""

import pytest
from pathlib import Path


@pytest.fixture
def examples_dir() -> Path:
    """Get path to examples directory."""
    return Path(__file__).parent.parent / "examples" / "workflows"


@pytest.fixture
def registration_config_path(examples_dir: Path) -> Path:
    """Path to the user registration configuration."""
    return examples_dir / "user-registration.json"


@pytest.fixture
def legacy_document_path(examples_dir: Path) -> Path:
    """Path to a document whose layout still uses '-to-' transition ids."""
    return examples_dir / "order-fulfillment.legacy.json"


@pytest.fixture
def registration_config(registration_config_path: Path):
    from statecanvas.workflow.parser import WorkflowParser

    return WorkflowParser.parse_configuration_file(registration_config_path)


@pytest.fixture
def entity_model():
    from statecanvas.workflow.schema import EntityModel

    return EntityModel(model_name="user", model_version=1)


@pytest.fixture
def registration_document(registration_config, entity_model):
    """User registration workflow imported with auto-layout."""
    from statecanvas.workflow.parser import import_configuration

    return import_configuration(registration_config, entity_model)


@pytest.fixture
def simple_config_dict():
    """Minimal three-state workflow configuration as dict."""
    return {
        "version": "1.0",
        "name": "simple",
        "initialState": "start",
        "states": {
            "start": {"transitions": [{"name": "go", "next": "middle"}]},
            "middle": {"transitions": [{"name": "finish", "next": "end"}]},
            "end": {"transitions": []},
        },
    }


@pytest.fixture
def simple_document(simple_config_dict, entity_model):
    """Simple workflow with states on a diagonal and a record for every transition."""
    from statecanvas.workflow.schema import WorkflowDocument

    return WorkflowDocument.model_validate(
        {
            "id": "simple-user-v1",
            "entityModel": entity_model,
            "configuration": simple_config_dict,
            "layout": {
                "workflowId": "simple-user-v1",
                "states": [
                    {"id": "start", "position": {"x": 0, "y": 0}},
                    {"id": "middle", "position": {"x": 100, "y": 100}},
                    {"id": "end", "position": {"x": 200, "y": 200}},
                ],
                "transitions": [
                    {"id": "start-0", "labelPosition": {"x": 0, "y": 0}},
                    {"id": "middle-0", "labelPosition": {"x": 0, "y": 0}},
                ],
            },
        }
    )


@pytest.fixture
def pending_sent_document(entity_model):
    """
    Two states with transitions both ways:

        pending: [-> sent, -> pending]
        sent:    [-> pending]
    """
    from statecanvas.workflow.schema import WorkflowDocument

    return WorkflowDocument.model_validate(
        {
            "id": "pending-sent",
            "entityModel": entity_model,
            "configuration": {
                "version": "1.0",
                "name": "pending-sent",
                "initialState": "pending",
                "states": {
                    "pending": {
                        "transitions": [
                            {"name": "send", "next": "sent"},
                            {"name": "wait", "next": "pending"},
                        ]
                    },
                    "sent": {"transitions": [{"name": "reset", "next": "pending"}]},
                },
            },
            "layout": {
                "states": [
                    {"id": "pending", "position": {"x": 0, "y": 0}},
                    {"id": "sent", "position": {"x": 0, "y": 200}},
                ],
                "transitions": [
                    {"id": "pending-0", "labelPosition": {"x": 1, "y": 1}},
                    {"id": "pending-1", "labelPosition": {"x": 30, "y": -30}},
                    {"id": "sent-0", "labelPosition": {"x": 2, "y": 2}},
                ],
            },
        }
    )
