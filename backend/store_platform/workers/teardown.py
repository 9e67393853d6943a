import asyncio
import logging
import uuid

from store_platform.core.config import Settings
from store_platform.core.errors import NotFoundError, StoreNotFoundError
from store_platform.models.enums import EventStatus, StoreStatus
from store_platform.services.events import EventLog
from store_platform.services.kube import ClusterGateway
from store_platform.services.readiness import PollPolicy, Poller, namespace_gone_probe
from store_platform.services.store_repository import StoreRepository

logger = logging.getLogger(__name__)


class TeardownPipeline:
    """Deletes a store's namespace, waits for it to disappear, then purges the record.

    Deleting the namespace is authoritative: every per-store object lives inside it.
    """

    def __init__(
        self,
        gateway: ClusterGateway,
        stores: StoreRepository,
        events: EventLog,
        settings: Settings,
        poller: Poller | None = None,
    ):
        self.gateway = gateway
        self.stores = stores
        self.events = events
        self.settings = settings
        self.poller = poller or Poller()

    async def cleanup(self, store_id: uuid.UUID) -> None:
        store = await asyncio.to_thread(self.stores.get, store_id)
        if store is None:
            raise StoreNotFoundError(store_id)

        namespace = store.namespace
        await asyncio.to_thread(self.stores.update_status, store_id, StoreStatus.DELETING)
        try:
            await asyncio.to_thread(
                self.events.log, store_id, "cleanup", EventStatus.STARTED, f"Deleting namespace {namespace}"
            )
            completed = f"Namespace {namespace} deleted"
            try:
                await self.gateway.delete_namespace(namespace)
            except NotFoundError:
                logger.info("namespace %s already deleted", namespace)
                completed = f"Namespace {namespace} already deleted"
            else:
                await self.poller.wait(
                    namespace_gone_probe(self.gateway, namespace),
                    PollPolicy(
                        self.settings.namespace_delete_poll_seconds,
                        self.settings.namespace_delete_timeout_seconds,
                    ),
                    f"Namespace {namespace} deletion",
                )
            await asyncio.to_thread(self._purge, store_id, completed)
        except Exception as exc:
            await asyncio.to_thread(self._record_failure, store_id, exc)
            raise
        logger.info("store %s (%s) deleted", store_id, store.slug)

    def _purge(self, store_id: uuid.UUID, completed: str) -> None:
        self.events.log(store_id, "cleanup", EventStatus.COMPLETED, completed)
        self.events.delete_for_store(store_id)
        self.stores.delete(store_id)

    def _record_failure(self, store_id: uuid.UUID, exc: Exception) -> None:
        self.events.log(store_id, "cleanup", EventStatus.FAILED, str(exc))
        self.stores.update_status(store_id, StoreStatus.FAILED, f"Cleanup failed: {exc}")
