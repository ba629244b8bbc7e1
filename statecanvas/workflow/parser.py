"""
Workflow configuration and document parser.

Loads and validates workflow configurations and full documents
(configuration + layout) from YAML or JSON, builds documents for imported
configurations, and writes documents back in the exported JSON format.

Invalid input is rejected with InvalidConfigurationError and never repaired.
The one exception is transition layout ids in the legacy
'<source>-to-<target>' form, which are migrated to canonical ids on load.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import ValidationError

from statecanvas.workflow import identity
from statecanvas.workflow.errors import InvalidConfigurationError
from statecanvas.workflow.schema import (
    CanvasLayout,
    EntityModel,
    StateLayout,
    TransitionLayout,
    WorkflowConfiguration,
    WorkflowDocument,
    generate_workflow_id,
    utcnow,
)

logger = logging.getLogger(__name__)

# Accepted spellings of each required configuration field
REQUIRED_CONFIGURATION_FIELDS = (
    ("version",),
    ("name",),
    ("initialState", "initial_state"),
    ("states",),
)


def _errors(e: ValidationError) -> list[str]:
    result = []
    for err in e.errors():
        location = ".".join(str(part) for part in err["loc"])
        result.append(f"{location}: {err['msg']}" if location else err["msg"])
    return result


def is_document_data(data: Dict[str, Any]) -> bool:
    """True for a full document, False for a bare configuration."""
    return "configuration" in data and "layout" in data


class WorkflowParser:
    """
    Parse and validate workflow configurations and documents.

    Supports:
    - YAML files (.yaml, .yml)
    - JSON files (.json)
    - Direct string and dict parsing

    Example:
        ```python
        # Configuration exported by the workflow runtime
        config = WorkflowParser.parse_configuration_file("registration.json")

        # Full document exported by the editor
        document = WorkflowParser.parse_document_file("registration.document.json")
        ```
    """

    @staticmethod
    def load_data(path: Union[str, Path]) -> Dict[str, Any]:
        """
        Read a YAML or JSON file into a dict.

        Raises:
            FileNotFoundError: If file doesn't exist
            ValueError: If the format is unsupported or the file is empty
        """
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Workflow file not found: {path}")

        content = path.read_text(encoding="utf-8")

        if path.suffix in (".yaml", ".yml"):
            return WorkflowParser.load_string(content, format="yaml")
        elif path.suffix == ".json":
            return WorkflowParser.load_string(content, format="json")
        else:
            raise ValueError(f"Unsupported file format: {path.suffix}")

    @staticmethod
    def load_string(content: str, format: str = "json") -> Dict[str, Any]:
        if format == "yaml":
            data = yaml.safe_load(content)
        elif format == "json":
            data = json.loads(content)
        else:
            raise ValueError(f"Unsupported format: {format}")

        if data is None:
            raise ValueError("Empty workflow definition")
        if not isinstance(data, dict):
            raise ValueError("Workflow definition must be a mapping")

        return data

    # -- configurations ----------------------------------------------------

    @staticmethod
    def parse_configuration_dict(data: Dict[str, Any]) -> WorkflowConfiguration:
        """
        Validate a configuration dict.

        Raises:
            InvalidConfigurationError: On missing fields, malformed values or
                dangling state references
        """
        missing = [
            names[0]
            for names in REQUIRED_CONFIGURATION_FIELDS
            if not any(n in data for n in names)
        ]
        if missing:
            raise InvalidConfigurationError(
                "Invalid WorkflowConfiguration",
                [f"missing required field: {f}" for f in missing],
            )

        try:
            return WorkflowConfiguration.model_validate(data)
        except ValidationError as e:
            raise InvalidConfigurationError("Invalid WorkflowConfiguration", _errors(e)) from e

    @staticmethod
    def parse_configuration_string(content: str, format: str = "json") -> WorkflowConfiguration:
        return WorkflowParser.parse_configuration_dict(
            WorkflowParser.load_string(content, format=format)
        )

    @staticmethod
    def parse_configuration_file(path: Union[str, Path]) -> WorkflowConfiguration:
        return WorkflowParser.parse_configuration_dict(WorkflowParser.load_data(path))

    # -- documents ---------------------------------------------------------

    @staticmethod
    def parse_layout_dict(data: Dict[str, Any]) -> CanvasLayout:
        try:
            return CanvasLayout.model_validate(data)
        except ValidationError as e:
            raise InvalidConfigurationError("Invalid CanvasLayout", _errors(e)) from e

    @staticmethod
    def combine(
        workflow_id: str,
        entity_model: EntityModel,
        configuration: WorkflowConfiguration,
        layout: CanvasLayout,
        created_at: Any = None,
        updated_at: Any = None,
    ) -> WorkflowDocument:
        """
        Join a configuration and its layout into a document.

        Legacy transition ids in the layout are migrated first. Anything that
        still does not match the configuration is rejected.

        Raises:
            InvalidConfigurationError: If the layout does not match the configuration
        """
        layout, unresolved = identity.migrate_layout_ids(layout, configuration.states)
        if unresolved:
            logger.warning(
                f"Workflow '{workflow_id}' has {len(unresolved)} transition layout "
                f"record(s) that match no transition"
            )

        data: Dict[str, Any] = {
            "id": workflow_id,
            "entity_model": entity_model,
            "configuration": configuration,
            "layout": layout,
        }
        if created_at is not None:
            data["created_at"] = created_at
        data["updated_at"] = updated_at if updated_at is not None else layout.updated_at

        try:
            return WorkflowDocument.model_validate(data)
        except ValidationError as e:
            raise InvalidConfigurationError(
                f"Layout does not match configuration of workflow '{workflow_id}'",
                _errors(e),
            ) from e

    @staticmethod
    def parse_document_dict(data: Dict[str, Any]) -> WorkflowDocument:
        """
        Validate an exported document dict.

        Raises:
            InvalidConfigurationError: If any part is malformed or inconsistent
        """
        missing = [f for f in ("id", "entityModel", "configuration", "layout") if f not in data]
        if missing:
            raise InvalidConfigurationError(
                "Invalid WorkflowDocument",
                [f"missing required field: {f}" for f in missing],
            )

        configuration = WorkflowParser.parse_configuration_dict(data["configuration"])
        layout = WorkflowParser.parse_layout_dict(data["layout"])
        try:
            entity_model = EntityModel.model_validate(data["entityModel"])
        except ValidationError as e:
            raise InvalidConfigurationError("Invalid entityModel", _errors(e)) from e

        return WorkflowParser.combine(
            data["id"],
            entity_model,
            configuration,
            layout,
            created_at=data.get("createdAt"),
            updated_at=data.get("updatedAt"),
        )

    @staticmethod
    def parse_document_string(content: str, format: str = "json") -> WorkflowDocument:
        return WorkflowParser.parse_document_dict(
            WorkflowParser.load_string(content, format=format)
        )

    @staticmethod
    def parse_document_file(path: Union[str, Path]) -> WorkflowDocument:
        return WorkflowParser.parse_document_dict(WorkflowParser.load_data(path))

    @staticmethod
    def parse_file(path: Union[str, Path]) -> Union[WorkflowConfiguration, WorkflowDocument]:
        """Parse either a document or a bare configuration, whichever the file holds."""
        data = WorkflowParser.load_data(path)
        if is_document_data(data):
            return WorkflowParser.parse_document_dict(data)
        return WorkflowParser.parse_configuration_dict(data)

    @staticmethod
    def validate_file(path: Union[str, Path]) -> tuple[bool, str]:
        """
        Validate a configuration or document file.

        Returns:
            Tuple of (is_valid, message)
        """
        try:
            parsed = WorkflowParser.parse_file(path)
            config = parsed.configuration if isinstance(parsed, WorkflowDocument) else parsed
            return True, f"Valid workflow: {config.name} v{config.version}"
        except FileNotFoundError as e:
            return False, f"File not found: {e}"
        except InvalidConfigurationError as e:
            return False, f"Validation error: {e}"
        except ValueError as e:
            return False, f"Invalid format: {e}"


# ---------------------------------------------------------------------------
# Import / export
# ---------------------------------------------------------------------------


def initial_layout(workflow_id: str, configuration: WorkflowConfiguration) -> CanvasLayout:
    """Layout with every state at the origin and a record for every transition."""
    from statecanvas.engine.consistency import default_label_offset

    return CanvasLayout(
        workflow_id=workflow_id,
        version=1,
        updated_at=utcnow(),
        states=[StateLayout(id=state_id) for state_id in configuration.states],
        transitions=[
            TransitionLayout(
                id=transition_id,
                label_position=default_label_offset(source, transition),
            )
            for transition_id, source, transition in configuration.iter_transitions()
        ],
    )


def import_configuration(
    configuration: WorkflowConfiguration,
    entity_model: EntityModel,
    workflow_id: Optional[str] = None,
    layout_options: Any = None,
) -> WorkflowDocument:
    """
    Build a new document for an imported configuration.

    The workflow id defaults to one derived from the configuration name and
    entity model; states are positioned by the auto-layout engine.
    """
    from statecanvas.engine.layout import AutoLayoutEngine

    workflow_id = workflow_id or generate_workflow_id(configuration.name, entity_model)
    now = utcnow()
    document = WorkflowDocument(
        id=workflow_id,
        entity_model=entity_model,
        configuration=configuration,
        layout=initial_layout(workflow_id, configuration),
        created_at=now,
        updated_at=now,
    )
    document = AutoLayoutEngine(layout_options).auto_layout(document)
    logger.info(
        f"Imported workflow '{workflow_id}' with {len(configuration.states)} states"
    )
    return document


def document_to_dict(document: WorkflowDocument) -> Dict[str, Any]:
    return document.to_json_dict()


def document_to_json(document: WorkflowDocument, indent: int = 2) -> str:
    """Serialize a document in the exported file format."""
    return json.dumps(document_to_dict(document), indent=indent)


def configuration_to_json(configuration: WorkflowConfiguration, indent: int = 2) -> str:
    return json.dumps(configuration.to_json_dict(), indent=indent)


def export_filename(document: WorkflowDocument) -> str:
    """File name such as 'user-registration-user-v1.json'."""
    return f"{generate_workflow_id(document.configuration.name or 'workflow', document.entity_model)}.json"


def write_document(document: WorkflowDocument, path: Union[str, Path]) -> Path:
    path = Path(path)
    path.write_text(document_to_json(document) + "\n", encoding="utf-8")
    logger.debug(f"Wrote workflow '{document.id}' to {path}")
    return path
