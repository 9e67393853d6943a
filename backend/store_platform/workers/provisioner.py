import asyncio
import logging
from collections import deque

from prometheus_client import Counter, Gauge
from sqlalchemy.exc import SQLAlchemyError

from store_platform.core.errors import StorePlatformError
from store_platform.models.enums import EventStatus, StoreStatus
from store_platform.models.store import Store
from store_platform.provisioners import PipelineRegistry, ProvisioningPipeline
from store_platform.services.events import EventLog
from store_platform.services.store_repository import StoreRepository

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "Provisioning interrupted by shutdown"

provisioning_runs_total = Counter(
    "provisioning_runs_total", "Provisioning runs by plan and outcome", ["plan", "outcome"]
)
provisioning_backlog = Gauge("provisioning_backlog", "Stores waiting for or undergoing provisioning")


class ProvisioningQueue:
    """FIFO admission of provisioning runs with at most ``concurrency`` running at once.

    A run that raises leaves the store ``Failed`` with a ``provisioning`` event; nothing is
    retried and no error reaches the submitter. Runs dropped or cancelled by ``stop`` are
    recorded the same way.
    """

    def __init__(
        self,
        registry: PipelineRegistry,
        stores: StoreRepository,
        events: EventLog,
        concurrency: int = 3,
    ):
        self.registry = registry
        self.stores = stores
        self.events = events
        self.concurrency = max(1, concurrency)
        self._pending: deque[tuple[Store, ProvisioningPipeline]] = deque()
        self._tasks: dict[asyncio.Task, Store] = {}
        self._stopped = False

    def submit(self, store: Store) -> None:
        if self._stopped:
            raise RuntimeError("Provisioning queue is stopped")
        pipeline = self.registry.resolve(store.plan)
        self._pending.append((store, pipeline))
        logger.info("queued store %s (%s), backlog %d", store.id, pipeline.engine_name, self.backlog_size())
        self._tick()

    def backlog_size(self) -> int:
        return len(self._pending) + len(self._tasks)

    async def join(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def stop(self) -> None:
        self._stopped = True
        dropped = [store for store, _ in self._pending]
        self._pending.clear()
        running = dict(self._tasks)
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)
        interrupted = dropped + [store for task, store in running.items() if task.cancelled()]
        for store in interrupted:
            logger.warning("store %s interrupted before provisioning finished", store.id)
            await self._record_failure(store, INTERRUPTED_MESSAGE)
        provisioning_backlog.set(self.backlog_size())

    def _tick(self) -> None:
        while self._pending and len(self._tasks) < self.concurrency:
            store, pipeline = self._pending.popleft()
            task = asyncio.create_task(self._run(store, pipeline), name=f"provision-{store.slug}")
            self._tasks[task] = store
            task.add_done_callback(self._on_done)
        provisioning_backlog.set(self.backlog_size())

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.pop(task, None)
        if not self._stopped:
            self._tick()

    async def _run(self, store: Store, pipeline: ProvisioningPipeline) -> None:
        plan = pipeline.plan.value
        try:
            await pipeline.provision(store)
        except Exception as exc:
            provisioning_runs_total.labels(plan=plan, outcome="failed").inc()
            logger.error("provisioning failed for store %s: %s", store.id, exc)
            await self._record_failure(store, str(exc) or exc.__class__.__name__)
        else:
            provisioning_runs_total.labels(plan=plan, outcome="ready").inc()

    async def _record_failure(self, store: Store, message: str) -> None:
        await asyncio.to_thread(self._record_failure_sync, store, message)

    def _record_failure_sync(self, store: Store, message: str) -> None:
        try:
            current = self.stores.get(store.id)
            # A pipeline that already failed the store has written its own event.
            if current is None or current.status == StoreStatus.FAILED:
                return
            self.stores.update_status(store.id, StoreStatus.FAILED, message)
            self.events.log(store.id, "provisioning", EventStatus.FAILED, message)
        except (StorePlatformError, SQLAlchemyError):
            logger.exception("could not record provisioning failure for store %s", store.id)
