"""Tests for the bundled workflow stores."""

import asyncio
import json

import pytest

from statecanvas.store.filesystem import JsonDirectoryStore
from statecanvas.store.memory import InMemoryWorkflowStore
from statecanvas.engine import consistency
from statecanvas.workflow.errors import InvalidConfigurationError, NotFoundError


@pytest.fixture(params=["memory", "directory"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryWorkflowStore()
    return JsonDirectoryStore(tmp_path / "workflows")


class TestWorkflowStores:
    """Behaviour shared by every store."""

    @pytest.mark.asyncio
    async def test_missing_configuration(self, store):
        with pytest.raises(NotFoundError) as exc:
            await store.load_configuration("user", "nope")

        assert exc.value.workflow_id == "nope"

    @pytest.mark.asyncio
    async def test_missing_layout(self, store):
        with pytest.raises(NotFoundError):
            await store.load_layout("user", "nope")

    @pytest.mark.asyncio
    async def test_save_and_load(self, store, registration_document):
        doc = registration_document

        await store.save_configuration("user", doc.id, doc.configuration)
        await store.save_layout("user", doc.id, doc.layout)

        assert await store.load_configuration("user", doc.id) == doc.configuration
        assert await store.load_layout("user", doc.id) == doc.layout

    @pytest.mark.asyncio
    async def test_list_workflows(self, store, registration_document):
        doc = registration_document
        await store.save_configuration("user", doc.id, doc.configuration)

        summaries = await store.list_workflows("user")

        assert [s.id for s in summaries] == [doc.id]
        assert summaries[0].name == "User Registration"
        assert summaries[0].state_count == 4
        assert summaries[0].transition_count == 6
        assert await store.list_workflows("order") == []
        assert await store.list_entities() == ["user"]


class TestInMemoryWorkflowStore:
    @pytest.mark.asyncio
    async def test_injected_failure(self, registration_document):
        store = InMemoryWorkflowStore(save_error=ConnectionError("backend down"))

        with pytest.raises(ConnectionError):
            await store.save_layout("user", "wf", registration_document.layout)

        assert store.save_calls == 1

    @pytest.mark.asyncio
    async def test_seed(self, registration_document):
        store = InMemoryWorkflowStore()
        store.seed("user", "wf", registration_document.configuration)

        assert await store.load_configuration("user", "wf") == registration_document.configuration
        with pytest.raises(NotFoundError):
            await store.load_layout("user", "wf")

    @pytest.mark.asyncio
    async def test_dangling_reference_rejected_on_load(self):
        store = InMemoryWorkflowStore()
        store.seed(
            "user",
            "wf",
            {
                "version": "1.0",
                "name": "broken",
                "initialState": "a",
                "states": {"a": {"transitions": [{"next": "ghost"}]}},
            },
        )

        with pytest.raises(InvalidConfigurationError) as exc:
            await store.load_configuration("user", "wf")

        assert any("ghost" in v for v in exc.value.violations)

    @pytest.mark.asyncio
    async def test_malformed_layout_rejected_on_load(self, registration_document):
        store = InMemoryWorkflowStore()
        store.seed(
            "user",
            "wf",
            registration_document.configuration,
            {"workflowId": "wf", "states": [{"position": {"x": "left", "y": 0}}]},
        )

        with pytest.raises(InvalidConfigurationError):
            await store.load_layout("user", "wf")


class TestJsonDirectoryStore:
    @pytest.mark.asyncio
    async def test_file_layout(self, tmp_path, registration_document):
        store = JsonDirectoryStore(tmp_path)
        doc = registration_document

        await store.save_configuration("user", doc.id, doc.configuration)
        await store.save_layout("user", doc.id, doc.layout)

        config_file = tmp_path / "user" / f"{doc.id}.configuration.json"
        layout_file = tmp_path / "user" / f"{doc.id}.layout.json"
        assert json.loads(config_file.read_text())["initialState"] == "pending"
        assert len(json.loads(layout_file.read_text())["states"]) == 4
        assert not list((tmp_path / "user").glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_corrupt_file_rejected(self, tmp_path):
        store = JsonDirectoryStore(tmp_path)
        (tmp_path / "user").mkdir()
        (tmp_path / "user" / "wf.configuration.json").write_text("{not json")

        with pytest.raises(InvalidConfigurationError):
            await store.load_configuration("user", "wf")

    @pytest.mark.asyncio
    async def test_dangling_reference_rejected_on_load(self, tmp_path):
        store = JsonDirectoryStore(tmp_path)
        (tmp_path / "user").mkdir()
        (tmp_path / "user" / "wf.configuration.json").write_text(
            json.dumps(
                {
                    "version": "1.0",
                    "name": "broken",
                    "initialState": "a",
                    "states": {"a": {"transitions": [{"next": "ghost"}]}},
                }
            )
        )

        with pytest.raises(InvalidConfigurationError):
            await store.load_configuration("user", "wf")

    @pytest.mark.asyncio
    async def test_concurrent_writes_of_one_file(self, tmp_path, registration_document):
        store = JsonDirectoryStore(tmp_path)
        doc = registration_document
        layouts = [doc.layout]
        for i in range(7):
            doc = consistency.add_state(doc, f"extra-{i}")
            layouts.append(doc.layout)

        await asyncio.gather(*(store.save_layout("user", doc.id, layout) for layout in layouts))

        assert await store.load_layout("user", doc.id) in layouts
        assert not list((tmp_path / "user").glob("*.tmp"))
