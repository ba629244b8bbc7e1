"""
Persistence contract for workflow documents.

Configurations and layouts are stored separately, keyed by entity model name
and workflow id. The engine only ever talks to this interface, so any
backend (HTTP API, database, files) can be plugged in.
"""

from abc import ABC, abstractmethod
from typing import List

from statecanvas.workflow.schema import CanvasLayout, WorkflowConfiguration, WorkflowSummary


class WorkflowStore(ABC):
    """
    Base class for workflow persistence backends.

    Loads raise NotFoundError when nothing is stored under the key. Saves
    either complete or raise; callers treat them as fire-and-forget.
    """

    @abstractmethod
    async def load_configuration(
        self, model_name: str, workflow_id: str
    ) -> WorkflowConfiguration:
        """
        Load the functional configuration of a workflow.

        Raises:
            NotFoundError: If no configuration is stored
            InvalidConfigurationError: If the stored configuration is invalid
        """
        ...

    @abstractmethod
    async def load_layout(self, model_name: str, workflow_id: str) -> CanvasLayout:
        """
        Load the canvas layout of a workflow.

        Raises:
            NotFoundError: If no layout is stored
            InvalidConfigurationError: If the stored layout is malformed
        """
        ...

    @abstractmethod
    async def save_configuration(
        self, model_name: str, workflow_id: str, configuration: WorkflowConfiguration
    ) -> None:
        ...

    @abstractmethod
    async def save_layout(
        self, model_name: str, workflow_id: str, layout: CanvasLayout
    ) -> None:
        ...

    @abstractmethod
    async def list_workflows(self, model_name: str) -> List[WorkflowSummary]:
        """Summaries of the workflows stored for an entity model."""
        ...

    async def list_entities(self) -> List[str]:
        """Entity model names that have at least one stored workflow."""
        return []
