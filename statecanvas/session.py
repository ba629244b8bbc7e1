"""
Editor session.

Owns the single resident workflow document and wires the pure engine
operations to undo/redo history and background persistence:

- every accepted edit records the previous document in history, replaces
  the resident document and schedules a save
- saves are optimistic: a failed save is logged and reported, the resident
  document stays as edited
- selecting another workflow discards the previous workflow's history
"""

import asyncio
import logging
from typing import Any, Mapping, Optional, Union

from statecanvas.config.settings import StateCanvasSettings
from statecanvas.engine import consistency
from statecanvas.engine.consistency import PositionLike
from statecanvas.engine.history import HistoryStore
from statecanvas.engine.layout import AutoLayoutEngine, LayoutOptions
from statecanvas.store.dispatcher import FailureCallback, PersistenceDispatcher, PersistRequest
from statecanvas.store.protocols import WorkflowStore
from statecanvas.workflow.errors import NoResidentWorkflowError, NotFoundError
from statecanvas.workflow.parser import WorkflowParser, import_configuration, initial_layout
from statecanvas.workflow.schema import (
    EntityModel,
    StateDefinition,
    TransitionDefinition,
    WorkflowConfiguration,
    WorkflowDocument,
)

logger = logging.getLogger(__name__)


class EditorSession:
    """
    Editing session over one resident workflow at a time.

    Example:
        ```python
        store = JsonDirectoryStore("./workflows")
        session = EditorSession(store)

        await session.select_workflow("user", "user-registration-user-v1")
        await session.add_state("archived", position=(400, 300))
        await session.undo()

        await session.close()
        ```
    """

    def __init__(
        self,
        store: WorkflowStore,
        settings: Optional[StateCanvasSettings] = None,
        history: Optional[HistoryStore] = None,
        on_persist_failure: Optional[FailureCallback] = None,
    ):
        self.settings = settings or StateCanvasSettings()
        self.store = store
        self.history = history or HistoryStore(self.settings.history.max_depth)
        self.layout_engine = AutoLayoutEngine(LayoutOptions.from_config(self.settings.layout))
        self.dispatcher = PersistenceDispatcher(
            store,
            timeout=self.settings.persistence.save_timeout_seconds,
            on_failure=on_persist_failure,
        )
        self._document: Optional[WorkflowDocument] = None
        self._lock = asyncio.Lock()

    @property
    def document(self) -> Optional[WorkflowDocument]:
        return self._document

    @property
    def workflow_id(self) -> Optional[str]:
        return self._document.id if self._document else None

    def _require_document(self) -> WorkflowDocument:
        if self._document is None:
            raise NoResidentWorkflowError()
        return self._document

    # -- selection ---------------------------------------------------------

    def deselect(self) -> None:
        """Drop the resident workflow and its history."""
        if self._document is not None:
            self.history.discard(self._document.id)
            logger.debug(f"Deselected workflow '{self._document.id}'")
        self._document = None

    async def select_workflow(self, model_name: str, workflow_id: str) -> WorkflowDocument:
        """
        Load a workflow from the store and make it resident.

        A workflow stored without a layout gets an auto-computed one.

        Raises:
            NotFoundError: If the store has no configuration for the workflow
            InvalidConfigurationError: If the stored configuration or layout is
                invalid, or the layout does not match the configuration
        """
        async with self._lock:
            self.deselect()

            configuration, layout = await asyncio.gather(
                self.store.load_configuration(model_name, workflow_id),
                self.store.load_layout(model_name, workflow_id),
                return_exceptions=True,
            )
            if isinstance(configuration, BaseException):
                raise configuration

            entity_model = EntityModel(model_name=model_name)
            generated = False
            if isinstance(layout, NotFoundError):
                logger.info(f"Workflow '{workflow_id}' has no stored layout; computing one")
                layout = initial_layout(workflow_id, configuration)
                generated = True
            elif isinstance(layout, BaseException):
                raise layout

            document = WorkflowParser.combine(workflow_id, entity_model, configuration, layout)
            if generated:
                document = self.layout_engine.auto_layout(document)

            self._document = document
            logger.info(
                f"Selected workflow '{workflow_id}' ({len(document.states)} states, "
                f"{document.transition_count} transitions)"
            )
            return document

    async def import_workflow(
        self,
        configuration: Union[WorkflowConfiguration, Mapping[str, Any]],
        entity_model: EntityModel,
        workflow_id: Optional[str] = None,
    ) -> WorkflowDocument:
        """
        Import a configuration as a new resident workflow, auto-laid out and saved.

        Raises:
            InvalidConfigurationError: If the configuration is malformed
        """
        if not isinstance(configuration, WorkflowConfiguration):
            configuration = WorkflowParser.parse_configuration_dict(dict(configuration))

        async with self._lock:
            self.deselect()
            document = import_configuration(
                configuration,
                entity_model,
                workflow_id=workflow_id,
                layout_options=self.layout_engine.options,
            )
            self._document = document
            self.dispatcher.submit(PersistRequest(document, "Imported workflow"))
            return document

    # -- edits -------------------------------------------------------------

    async def apply(
        self, document: WorkflowDocument, description: str, track_history: bool = True
    ) -> WorkflowDocument:
        """
        Adopt an edited document.

        Records the current document in history (unless ``track_history`` is
        False), replaces it and schedules a save.
        """
        current = self._require_document()
        if track_history:
            self.history.add_entry(current.id, current, description)
        self._document = document
        self.dispatcher.submit(PersistRequest(document, description))
        return document

    async def _edit(self, operation, description: str, *args: Any, **kwargs: Any) -> WorkflowDocument:
        async with self._lock:
            document = operation(self._require_document(), *args, **kwargs)
            return await self.apply(document, description)

    async def add_state(
        self,
        state_id: str,
        definition: Optional[StateDefinition] = None,
        position: Optional[PositionLike] = None,
    ) -> WorkflowDocument:
        return await self._edit(
            consistency.add_state, f"Added state: {state_id}", state_id, definition, position
        )

    async def update_state(self, state_id: str, definition: StateDefinition) -> WorkflowDocument:
        return await self._edit(
            consistency.update_state, f"Updated state: {state_id}", state_id, definition
        )

    async def delete_state(self, state_id: str) -> WorkflowDocument:
        return await self._edit(consistency.delete_state, f"Deleted state: {state_id}", state_id)

    async def move_state(self, state_id: str, position: PositionLike) -> WorkflowDocument:
        return await self._edit(
            consistency.move_state, f"Moved state: {state_id}", state_id, position
        )

    async def add_transition(
        self, source_state_id: str, definition: TransitionDefinition, **layout: Any
    ) -> WorkflowDocument:
        return await self._edit(
            consistency.add_transition,
            f"Added transition: {source_state_id} -> {definition.next}",
            source_state_id,
            definition,
            **layout,
        )

    async def update_transition(
        self,
        transition_id: str,
        definition: Union[TransitionDefinition, Mapping[str, Any]],
    ) -> WorkflowDocument:
        return await self._edit(
            consistency.update_transition,
            f"Updated transition: {transition_id}",
            transition_id,
            definition,
        )

    async def delete_transition(self, transition_id: str) -> WorkflowDocument:
        return await self._edit(
            consistency.delete_transition, f"Deleted transition: {transition_id}", transition_id
        )

    async def update_transition_layout(self, transition_id: str, **changes: Any) -> WorkflowDocument:
        return await self._edit(
            consistency.update_transition_layout,
            f"Moved transition label: {transition_id}",
            transition_id,
            **changes,
        )

    async def auto_layout(self, options: Optional[LayoutOptions] = None) -> WorkflowDocument:
        """Lay out the resident workflow. A workflow without states is left untouched."""
        engine = AutoLayoutEngine(options) if options else self.layout_engine
        async with self._lock:
            current = self._require_document()
            result = engine.run(current)
            if result.is_empty:
                return current
            return await self.apply(
                engine.apply_layout(current, result), "Auto-arranged workflow layout"
            )

    # -- history -----------------------------------------------------------

    async def undo(self) -> Optional[WorkflowDocument]:
        """Restore the document before the last edit. Returns None when there is nothing to undo."""
        async with self._lock:
            current = self._require_document()
            previous = self.history.undo(current.id, current)
            if previous is None:
                return None
            return await self.apply(previous, "Undo", track_history=False)

    async def redo(self) -> Optional[WorkflowDocument]:
        async with self._lock:
            current = self._require_document()
            following = self.history.redo(current.id, current)
            if following is None:
                return None
            return await self.apply(following, "Redo", track_history=False)

    @property
    def can_undo(self) -> bool:
        return self._document is not None and self.history.can_undo(self._document.id)

    @property
    def can_redo(self) -> bool:
        return self._document is not None and self.history.can_redo(self._document.id)

    @property
    def undo_count(self) -> int:
        return self.history.undo_count(self._document.id) if self._document else 0

    @property
    def redo_count(self) -> int:
        return self.history.redo_count(self._document.id) if self._document else 0

    async def close(self) -> None:
        """Wait for pending saves."""
        await self.dispatcher.drain()
