"""
Fire-and-forget persistence of edited documents.

Every accepted edit produces a PersistRequest. The dispatcher saves the
configuration and the layout concurrently in a background task, bounded by
a timeout. Saves of one workflow run one at a time in submission order,
and a queued save is skipped once a newer request for the same workflow
exists, so the store never ends up behind the resident document.

Failures are logged and reported through an optional callback; they never
reach the editing path and the resident document is not rolled back.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, Optional, Set

from statecanvas.store.protocols import WorkflowStore
from statecanvas.workflow.errors import PersistenceError
from statecanvas.workflow.schema import WorkflowDocument

logger = logging.getLogger(__name__)

FailureCallback = Callable[[PersistenceError], None]

MAX_RECORDED_FAILURES = 100


@dataclass
class PersistRequest:
    """Snapshot of a document to be written to the store."""

    document: WorkflowDocument
    description: str = ""

    @property
    def workflow_id(self) -> str:
        return self.document.id

    @property
    def model_name(self) -> str:
        return self.document.entity_model.model_name


@dataclass
class DispatchStats:
    submitted: int = 0
    saved: int = 0
    # Requests dropped because a newer one for the same workflow was queued
    superseded: int = 0
    failures: Deque[PersistenceError] = field(
        default_factory=lambda: deque(maxlen=MAX_RECORDED_FAILURES)
    )


class PersistenceDispatcher:
    """
    Schedules saves on the running event loop.

    Args:
        store: Backend receiving the saves
        timeout: Seconds allowed for one configuration + layout save
        on_failure: Called with a PersistenceError when a save fails
    """

    def __init__(
        self,
        store: WorkflowStore,
        timeout: float = 10.0,
        on_failure: Optional[FailureCallback] = None,
    ):
        self.store = store
        self.timeout = timeout
        self.on_failure = on_failure
        self.stats = DispatchStats()
        self._tasks: Set[asyncio.Task] = set()
        self._locks: Dict[str, asyncio.Lock] = {}
        self._latest: Dict[str, int] = {}
        self._sequence = 0

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def submit(self, request: PersistRequest) -> asyncio.Task:
        """Queue a document save in the background. Must be called from a running loop."""
        self._sequence += 1
        self._latest[request.workflow_id] = self._sequence
        task = asyncio.get_running_loop().create_task(self._save(request, self._sequence))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self.stats.submitted += 1
        return task

    async def _save(self, request: PersistRequest, sequence: int) -> None:
        lock = self._locks.setdefault(request.workflow_id, asyncio.Lock())
        async with lock:
            if sequence != self._latest.get(request.workflow_id):
                self.stats.superseded += 1
                logger.debug(
                    f"Skipping superseded save of workflow '{request.workflow_id}' "
                    f"({request.description})"
                )
                return
            await self._write(request)

    async def _write(self, request: PersistRequest) -> None:
        document = request.document
        try:
            await asyncio.wait_for(
                asyncio.gather(
                    self.store.save_configuration(
                        request.model_name, request.workflow_id, document.configuration
                    ),
                    self.store.save_layout(
                        request.model_name, request.workflow_id, document.layout
                    ),
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            self._report(PersistenceError(request.workflow_id, e), "timed out")
            return
        except Exception as e:
            self._report(PersistenceError(request.workflow_id, e), "failed")
            return

        self.stats.saved += 1
        logger.debug(f"Saved workflow '{request.workflow_id}' ({request.description})")

    def _report(self, error: PersistenceError, what: str) -> None:
        logger.warning(f"Save of workflow '{error.workflow_id}' {what}: {error.cause}")
        self.stats.failures.append(error)
        if self.on_failure is None:
            return
        try:
            self.on_failure(error)
        except Exception:
            logger.exception(f"Persistence failure callback raised for '{error.workflow_id}'")

    async def drain(self) -> None:
        """Wait for every save scheduled so far."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))
