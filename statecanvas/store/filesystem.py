"""
JSON directory store.

Layout on disk:

    <root>/<modelName>/<workflowId>.configuration.json
    <root>/<modelName>/<workflowId>.layout.json

File access runs in a worker thread so the event loop is never blocked.
"""

import asyncio
import json
import logging
import tempfile
from pathlib import Path
from typing import List, Union

from statecanvas.store.protocols import WorkflowStore
from statecanvas.workflow.errors import InvalidConfigurationError, NotFoundError
from statecanvas.workflow.parser import WorkflowParser
from statecanvas.workflow.schema import CanvasLayout, WorkflowConfiguration, WorkflowSummary

logger = logging.getLogger(__name__)

CONFIGURATION_SUFFIX = ".configuration.json"
LAYOUT_SUFFIX = ".layout.json"


class JsonDirectoryStore(WorkflowStore):
    """Stores each configuration and layout as a JSON file under ``root``."""

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def _path(self, model_name: str, workflow_id: str, suffix: str) -> Path:
        return self.root / model_name / f"{workflow_id}{suffix}"

    def _read(self, path: Path) -> dict:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InvalidConfigurationError(f"Corrupt workflow file {path}", [str(e)]) from e

    def _write(self, path: Path, data: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        # Each write gets its own temp file; concurrent writers of one path
        # only race on the final replace.
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            json.dump(data, f, indent=2)
            f.write("\n")
        tmp = Path(f.name)
        try:
            tmp.replace(path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise
        logger.debug(f"Wrote {path}")

    async def load_configuration(
        self, model_name: str, workflow_id: str
    ) -> WorkflowConfiguration:
        path = self._path(model_name, workflow_id, CONFIGURATION_SUFFIX)
        if not path.is_file():
            raise NotFoundError(model_name, workflow_id, kind="configuration")
        data = await asyncio.to_thread(self._read, path)
        return WorkflowParser.parse_configuration_dict(data)

    async def load_layout(self, model_name: str, workflow_id: str) -> CanvasLayout:
        path = self._path(model_name, workflow_id, LAYOUT_SUFFIX)
        if not path.is_file():
            raise NotFoundError(model_name, workflow_id, kind="layout")
        data = await asyncio.to_thread(self._read, path)
        return WorkflowParser.parse_layout_dict(data)

    async def save_configuration(
        self, model_name: str, workflow_id: str, configuration: WorkflowConfiguration
    ) -> None:
        path = self._path(model_name, workflow_id, CONFIGURATION_SUFFIX)
        await asyncio.to_thread(self._write, path, configuration.to_json_dict())

    async def save_layout(
        self, model_name: str, workflow_id: str, layout: CanvasLayout
    ) -> None:
        path = self._path(model_name, workflow_id, LAYOUT_SUFFIX)
        await asyncio.to_thread(self._write, path, layout.to_json_dict())

    async def list_workflows(self, model_name: str) -> List[WorkflowSummary]:
        directory = self.root / model_name
        if not directory.is_dir():
            return []

        summaries = []
        for path in sorted(directory.glob(f"*{CONFIGURATION_SUFFIX}")):
            workflow_id = path.name[: -len(CONFIGURATION_SUFFIX)]
            config = await self.load_configuration(model_name, workflow_id)
            summaries.append(
                WorkflowSummary(
                    id=workflow_id,
                    name=config.name,
                    description=config.desc,
                    state_count=len(config.states),
                    transition_count=config.transition_count,
                )
            )
        return summaries

    async def list_entities(self) -> List[str]:
        if not self.root.is_dir():
            return []
        return sorted(p.name for p in self.root.iterdir() if p.is_dir())
