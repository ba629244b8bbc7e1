"""In-memory workflow store, used for tests and as a local stand-in for the backend API."""

import asyncio
import copy
import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from statecanvas.store.protocols import WorkflowStore
from statecanvas.workflow.errors import NotFoundError
from statecanvas.workflow.parser import WorkflowParser
from statecanvas.workflow.schema import (
    CamelModel,
    CanvasLayout,
    WorkflowConfiguration,
    WorkflowSummary,
)

logger = logging.getLogger(__name__)

_Key = Tuple[str, str]


def _as_json(value: Union[CamelModel, Dict[str, Any]]) -> Dict[str, Any]:
    if isinstance(value, CamelModel):
        return value.to_json_dict()
    return copy.deepcopy(value)


class InMemoryWorkflowStore(WorkflowStore):
    """
    Dict-backed store holding JSON-shaped copies of what was saved.

    Args:
        latency: Seconds every call waits, to mimic a remote backend
        save_error: When set, every save raises this exception
    """

    def __init__(self, latency: float = 0.0, save_error: Optional[Exception] = None):
        self.latency = latency
        self.save_error = save_error
        self._configurations: Dict[_Key, Dict[str, Any]] = {}
        self._layouts: Dict[_Key, Dict[str, Any]] = {}
        self.save_calls = 0

    async def _delay(self) -> None:
        if self.latency:
            await asyncio.sleep(self.latency)

    def seed(
        self,
        model_name: str,
        workflow_id: str,
        configuration: Union[WorkflowConfiguration, Dict[str, Any]],
        layout: Union[CanvasLayout, Dict[str, Any], None] = None,
    ) -> None:
        """
        Store a workflow synchronously, for test setup.

        Plain dicts are stored as given, without validation.
        """
        key = (model_name, workflow_id)
        self._configurations[key] = _as_json(configuration)
        if layout is not None:
            self._layouts[key] = _as_json(layout)

    async def load_configuration(
        self, model_name: str, workflow_id: str
    ) -> WorkflowConfiguration:
        await self._delay()
        data = self._configurations.get((model_name, workflow_id))
        if data is None:
            raise NotFoundError(model_name, workflow_id, kind="configuration")
        return WorkflowParser.parse_configuration_dict(data)

    async def load_layout(self, model_name: str, workflow_id: str) -> CanvasLayout:
        await self._delay()
        data = self._layouts.get((model_name, workflow_id))
        if data is None:
            raise NotFoundError(model_name, workflow_id, kind="layout")
        return WorkflowParser.parse_layout_dict(data)

    async def save_configuration(
        self, model_name: str, workflow_id: str, configuration: WorkflowConfiguration
    ) -> None:
        await self._delay()
        self.save_calls += 1
        if self.save_error is not None:
            raise self.save_error
        self._configurations[(model_name, workflow_id)] = configuration.to_json_dict()

    async def save_layout(
        self, model_name: str, workflow_id: str, layout: CanvasLayout
    ) -> None:
        await self._delay()
        self.save_calls += 1
        if self.save_error is not None:
            raise self.save_error
        self._layouts[(model_name, workflow_id)] = layout.to_json_dict()

    async def list_workflows(self, model_name: str) -> List[WorkflowSummary]:
        await self._delay()
        summaries = []
        for (model, workflow_id), data in self._configurations.items():
            if model != model_name:
                continue
            config = WorkflowParser.parse_configuration_dict(data)
            layout = self._layouts.get((model, workflow_id), {})
            summaries.append(
                WorkflowSummary(
                    id=workflow_id,
                    name=config.name,
                    description=config.desc,
                    state_count=len(config.states),
                    transition_count=config.transition_count,
                    updated_at=layout.get("updatedAt"),
                )
            )
        return summaries

    async def list_entities(self) -> List[str]:
        return sorted({model for model, _ in self._configurations})
