"""Tests for background persistence."""

import asyncio

import pytest

from statecanvas.engine import consistency
from statecanvas.store.dispatcher import (
    MAX_RECORDED_FAILURES,
    PersistenceDispatcher,
    PersistRequest,
)
from statecanvas.store.memory import InMemoryWorkflowStore
from statecanvas.workflow.errors import PersistenceError
from statecanvas.workflow.parser import import_configuration
from statecanvas.workflow.schema import EntityModel


class SlowFirstSaveStore(InMemoryWorkflowStore):
    """Store whose first layout save is slow and later ones are instant."""

    def __init__(self, delay: float = 0.05):
        super().__init__()
        self.delay = delay
        self._layout_saves = 0

    async def save_layout(self, model_name, workflow_id, layout):
        self._layout_saves += 1
        if self._layout_saves == 1:
            await asyncio.sleep(self.delay)
        await super().save_layout(model_name, workflow_id, layout)


class TestPersistenceDispatcher:
    """Tests for PersistenceDispatcher."""

    @pytest.mark.asyncio
    async def test_saves_configuration_and_layout(self, registration_document):
        store = InMemoryWorkflowStore()
        dispatcher = PersistenceDispatcher(store)

        dispatcher.submit(PersistRequest(registration_document, "Imported workflow"))
        await dispatcher.drain()

        doc = registration_document
        assert await store.load_configuration("user", doc.id) == doc.configuration
        assert await store.load_layout("user", doc.id) == doc.layout
        assert dispatcher.stats.submitted == 1
        assert dispatcher.stats.saved == 1
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_failure_reported(self, registration_document):
        store = InMemoryWorkflowStore(save_error=ConnectionError("backend down"))
        reported = []
        dispatcher = PersistenceDispatcher(store, on_failure=reported.append)

        dispatcher.submit(PersistRequest(registration_document, "edit"))
        await dispatcher.drain()

        assert len(reported) == 1
        assert isinstance(reported[0], PersistenceError)
        assert isinstance(reported[0].cause, ConnectionError)
        assert reported[0].workflow_id == registration_document.id
        assert list(dispatcher.stats.failures) == reported
        assert dispatcher.stats.saved == 0

    @pytest.mark.asyncio
    async def test_timeout_reported(self, registration_document):
        store = InMemoryWorkflowStore(latency=0.5)
        dispatcher = PersistenceDispatcher(store, timeout=0.01)

        dispatcher.submit(PersistRequest(registration_document))
        await dispatcher.drain()

        assert len(dispatcher.stats.failures) == 1
        assert "Failed to persist" in str(dispatcher.stats.failures[0])

    @pytest.mark.asyncio
    async def test_pending_until_drained(self, registration_document):
        store = InMemoryWorkflowStore(latency=0.01)
        dispatcher = PersistenceDispatcher(store)

        dispatcher.submit(PersistRequest(registration_document))
        dispatcher.submit(PersistRequest(registration_document))

        assert dispatcher.pending == 2
        await dispatcher.drain()
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_queued_save_superseded_by_newer_request(self, registration_document):
        store = InMemoryWorkflowStore()
        dispatcher = PersistenceDispatcher(store)
        newer = consistency.add_state(registration_document, "archived")

        dispatcher.submit(PersistRequest(registration_document, "import"))
        dispatcher.submit(PersistRequest(newer, "Added state: archived"))
        await dispatcher.drain()

        assert dispatcher.stats.superseded == 1
        assert dispatcher.stats.saved == 1
        stored = await store.load_configuration("user", newer.id)
        assert "archived" in stored.states

    @pytest.mark.asyncio
    async def test_slow_earlier_save_does_not_overwrite_newer(self, registration_document):
        store = SlowFirstSaveStore()
        dispatcher = PersistenceDispatcher(store)
        newer = consistency.add_state(registration_document, "archived")

        dispatcher.submit(PersistRequest(registration_document, "import"))
        # Let the first save start before the newer one is queued
        await asyncio.sleep(0)
        dispatcher.submit(PersistRequest(newer, "Added state: archived"))
        await dispatcher.drain()

        assert dispatcher.stats.saved == 2
        layout = await store.load_layout("user", newer.id)
        assert layout == newer.layout
        assert "archived" in layout.state_positions()

    @pytest.mark.asyncio
    async def test_different_workflows_saved_independently(
        self, registration_config, registration_document
    ):
        store = InMemoryWorkflowStore()
        dispatcher = PersistenceDispatcher(store)
        other = import_configuration(
            registration_config, EntityModel(model_name="user", model_version=2)
        )

        dispatcher.submit(PersistRequest(registration_document))
        dispatcher.submit(PersistRequest(other))
        await dispatcher.drain()

        assert dispatcher.stats.saved == 2
        assert dispatcher.stats.superseded == 0
        assert sorted(s.id for s in await store.list_workflows("user")) == sorted(
            [registration_document.id, other.id]
        )

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_escape(self, registration_document):
        def explode(error):
            raise RuntimeError("callback broke")

        store = InMemoryWorkflowStore(save_error=ConnectionError("backend down"))
        dispatcher = PersistenceDispatcher(store, on_failure=explode)

        dispatcher.submit(PersistRequest(registration_document))
        await dispatcher.drain()

        assert len(dispatcher.stats.failures) == 1

    @pytest.mark.asyncio
    async def test_recorded_failures_are_bounded(self, registration_document):
        store = InMemoryWorkflowStore(save_error=ConnectionError("backend down"))
        dispatcher = PersistenceDispatcher(store)

        for _ in range(MAX_RECORDED_FAILURES + 5):
            dispatcher.submit(PersistRequest(registration_document))
            await dispatcher.drain()

        assert len(dispatcher.stats.failures) == MAX_RECORDED_FAILURES
        assert dispatcher.stats.submitted == MAX_RECORDED_FAILURES + 5
