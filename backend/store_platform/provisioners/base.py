import abc
import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

from store_platform.core.errors import ConflictError
from store_platform.models.enums import EventStatus, StorePlan
from store_platform.models.store import Store
from store_platform.services.events import EventLog

logger = logging.getLogger(__name__)


class ProvisioningPipeline(abc.ABC):
    """One engine's way of turning a ``Provisioning`` store into a ``Ready`` one.

    ``provision`` raises on the first unrecoverable error; success is visible only through
    the store's final status.
    """

    plan: StorePlan
    engine_name: str

    @abc.abstractmethod
    async def provision(self, store: Store) -> None:
        ...


class Step:
    def __init__(self, name: str, message: str):
        self.name = name
        self.message = message
        self.skipped: list[str] = []

    async def create(self, call, *args) -> None:
        """Run a create call, treating an existing object as success."""
        try:
            await call(*args)
        except ConflictError as exc:
            logger.info("%s: %s, skipping", self.name, exc)
            self.skipped.append(exc.resource)

    def completion_message(self) -> str:
        if not self.skipped:
            return self.message
        return f"{self.message} (idempotent skip: {', '.join(self.skipped)})"


class StepRecorder:
    """Brackets pipeline steps with started / completed / failed events."""

    def __init__(self, events: EventLog, store_id: uuid.UUID):
        self.events = events
        self.store_id = store_id

    @asynccontextmanager
    async def step(self, name: str, started: str, completed: str):
        logger.info("store %s: %s", self.store_id, started)
        await asyncio.to_thread(self.events.log, self.store_id, name, EventStatus.STARTED, started)
        current = Step(name, completed)
        try:
            yield current
        except Exception as exc:
            await asyncio.to_thread(self.events.log, self.store_id, name, EventStatus.FAILED, str(exc))
            raise
        await asyncio.to_thread(
            self.events.log, self.store_id, name, EventStatus.COMPLETED, current.completion_message()
        )
