import asyncio
import logging
import re
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import Session, sessionmaker

from store_platform.core.config import Settings
from store_platform.core.errors import (
    InvalidStoreNameError,
    InvalidTransitionError,
    PodNotFoundError,
    SlugConflictError,
    StoreLimitError,
    StoreNotFoundError,
    StoreNotReadyError,
)
from store_platform.models.audit_entry import AuditEntry
from store_platform.models.enums import EventStatus, StorePlan, StoreStatus
from store_platform.models.provisioning_event import ProvisioningEvent
from store_platform.models.store import Store
from store_platform.provisioners import PipelineRegistry
from store_platform.provisioners.medusa import MedusaPipeline
from store_platform.provisioners.woocommerce import WooCommercePipeline
from store_platform.services import manifests
from store_platform.services.audit import AuditLog
from store_platform.services.credentials import generate_password
from store_platform.services.events import EventLog
from store_platform.services.kube import ClusterGateway
from store_platform.services.naming import namespace_for, slugify
from store_platform.services.readiness import Poller
from store_platform.services.store_repository import StoreRepository
from store_platform.workers.provisioner import INTERRUPTED_MESSAGE, ProvisioningQueue
from store_platform.workers.teardown import TeardownPipeline

logger = logging.getLogger(__name__)

NAME_PATTERN = re.compile(r"^[A-Za-z0-9 -]{2,50}$")
RESTART_TARGETS = {
    "all": (manifests.WORDPRESS_APP, manifests.MYSQL_APP),
    "wordpress": (manifests.WORDPRESS_APP,),
    "mysql": (manifests.MYSQL_APP,),
}
HEALTH_APPS = (manifests.WORDPRESS_APP, manifests.MYSQL_APP)
WP_CLI = "php wp-cli.phar --allow-root --path=/var/www/html"


class StorePlatform:
    """Everything the HTTP layer is allowed to do to stores."""

    def __init__(
        self,
        settings: Settings,
        stores: StoreRepository,
        events: EventLog,
        audit: AuditLog,
        registry: PipelineRegistry,
        queue: ProvisioningQueue,
        teardown: TeardownPipeline,
        gateway: ClusterGateway,
    ):
        self.settings = settings
        self.stores = stores
        self.events = events
        self.audit = audit
        self.registry = registry
        self.queue = queue
        self.teardown = teardown
        self.gateway = gateway
        self._teardowns: set[asyncio.Task] = set()

    # Lifecycle

    async def create_store(
        self, name: str, admin_email: str, plan: StorePlan | str, ip_address: str | None = None
    ) -> Store:
        name = (name or "").strip()
        if not NAME_PATTERN.match(name):
            raise InvalidStoreNameError(
                "Store name must be 2-50 characters of letters, digits, spaces or hyphens"
            )
        slug = slugify(name)
        if not slug:
            raise InvalidStoreNameError("Store name must contain at least one letter or digit")

        store = await asyncio.to_thread(self._admit, name, slug, admin_email, plan, ip_address)
        self.queue.submit(store)
        return store

    def _admit(
        self, name: str, slug: str, admin_email: str, plan: StorePlan | str, ip_address: str | None
    ) -> Store:
        if self.stores.count_active() >= self.settings.max_stores:
            raise StoreLimitError(self.settings.max_stores)
        pipeline = self.registry.resolve(plan)
        if self.stores.get_by_slug(slug) is not None:
            raise SlugConflictError(slug)

        store = self.stores.create(
            name=name,
            slug=slug,
            namespace=namespace_for(slug),
            admin_email=admin_email,
            plan=pipeline.plan,
        )
        self.audit.record(
            "create",
            "store",
            str(store.id),
            store.name,
            f"plan={pipeline.plan.value}, email={admin_email}",
            ip_address,
        )
        return store

    async def request_deletion(self, store_id: uuid.UUID, ip_address: str | None = None) -> None:
        store = await asyncio.to_thread(self._mark_deleting, store_id, ip_address)

        task = asyncio.create_task(self.teardown.cleanup(store_id), name=f"teardown-{store.slug}")
        self._teardowns.add(task)
        task.add_done_callback(self._on_teardown_done)

    def _mark_deleting(self, store_id: uuid.UUID, ip_address: str | None) -> Store:
        store = self._require(store_id)
        if store.status not in (StoreStatus.READY, StoreStatus.FAILED):
            raise InvalidTransitionError(store_id, store.status.value, StoreStatus.DELETING.value)

        self.stores.update_status(store_id, StoreStatus.DELETING)
        self.audit.record("delete", "store", str(store.id), store.name, None, ip_address)
        return store

    def recover_interrupted(self) -> list[uuid.UUID]:
        """Fail stores left ``Provisioning`` by a previous process; nothing is resumed."""
        store_ids = self.stores.fail_interrupted(INTERRUPTED_MESSAGE)
        for store_id in store_ids:
            self.events.log(store_id, "provisioning", EventStatus.FAILED, INTERRUPTED_MESSAGE)
        if store_ids:
            logger.warning("marked %d interrupted store(s) as failed", len(store_ids))
        return store_ids

    def queue_backlog_size(self) -> int:
        return self.queue.backlog_size()

    async def drain(self) -> None:
        await self.queue.join()
        while self._teardowns:
            await asyncio.gather(*list(self._teardowns), return_exceptions=True)

    async def shutdown(self) -> None:
        await self.queue.stop()
        for task in list(self._teardowns):
            task.cancel()
        await asyncio.gather(*self._teardowns, return_exceptions=True)

    def _on_teardown_done(self, task: asyncio.Task) -> None:
        self._teardowns.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("teardown failed: %s", exc)

    # Reads

    def get_store(self, store_id: uuid.UUID) -> Store | None:
        return self.stores.get(store_id)

    def list_stores(self) -> list[Store]:
        return self.stores.list_active()

    def list_events(self, store_id: uuid.UUID) -> list[ProvisioningEvent]:
        self._require(store_id)
        return self.events.list_for_store(store_id)

    def list_audit(self, limit: int = 50) -> list[AuditEntry]:
        return self.audit.list_recent(limit)

    # Operations on running stores

    async def restart_store(self, store_id: uuid.UUID, target: str = "all", ip_address: str | None = None) -> list[str]:
        store = await asyncio.to_thread(self._require_ready, store_id)
        apps = RESTART_TARGETS.get(target)
        if apps is None:
            raise ValueError(f"Unknown restart target: {target}")

        patch = manifests.build_restart_patch(datetime.now(timezone.utc).isoformat())
        for app in apps:
            await self.gateway.patch_namespaced_deployment(app, store.namespace, patch)
        await asyncio.to_thread(
            self.audit.record, "restart", "store", str(store.id), store.name, f"target={target}", ip_address
        )
        return list(apps)

    async def fetch_logs(self, store_id: uuid.UUID, app: str, tail_lines: int = 100) -> tuple[str, str]:
        store = await asyncio.to_thread(self._require, store_id)
        pod_name = await self._first_pod(store.namespace, app)
        logs = await self.gateway.read_namespaced_pod_log(pod_name, store.namespace, container=app, tail_lines=tail_lines)
        return pod_name, logs or ""

    async def store_health(self, store_id: uuid.UUID) -> dict:
        store = await asyncio.to_thread(self._require, store_id)
        now = datetime.now(timezone.utc)
        pods = []
        for app in HEALTH_APPS:
            pod_list = await self.gateway.list_namespaced_pod(store.namespace, label_selector=f"app={app}")
            pods.extend(_pod_health(pod, app, now) for pod in pod_list.items or [])

        pvc_list = await self.gateway.list_namespaced_persistent_volume_claim(store.namespace)
        pvcs = [_pvc_info(pvc) for pvc in pvc_list.items or []]

        quota = None
        quota_list = await self.gateway.list_namespaced_resource_quota(store.namespace)
        if quota_list.items:
            status = quota_list.items[0].status
            quota = {"hard": dict(status.hard or {}), "used": dict(status.used or {})} if status else None

        return {"namespace": store.namespace, "pods": pods, "pvcs": pvcs, "quota": quota}

    async def reset_admin_password(self, store_id: uuid.UUID, ip_address: str | None = None) -> str:
        store = await asyncio.to_thread(self._require_ready, store_id)
        pod_name = await self._first_pod(store.namespace, manifests.WORDPRESS_APP)
        new_password = generate_password(16)
        command = [
            "/bin/bash",
            "-c",
            "curl -sO https://raw.githubusercontent.com/wp-cli/builds/gh-pages/phar/wp-cli.phar && "
            f'{WP_CLI} user update admin --user_pass="{new_password}"',
        ]
        await self.gateway.exec_in_pod(store.namespace, pod_name, manifests.WORDPRESS_APP, command)
        await asyncio.to_thread(self.stores.update_admin_password, store_id, new_password)
        await asyncio.to_thread(
            self.audit.record, "reset-password", "store", str(store.id), store.name, None, ip_address
        )
        return new_password

    def _require(self, store_id: uuid.UUID) -> Store:
        store = self.stores.get(store_id)
        if store is None:
            raise StoreNotFoundError(store_id)
        return store

    def _require_ready(self, store_id: uuid.UUID) -> Store:
        store = self._require(store_id)
        if store.status != StoreStatus.READY:
            raise StoreNotReadyError(store_id, store.status.value)
        return store

    async def _first_pod(self, namespace: str, app: str) -> str:
        pod_list = await self.gateway.list_namespaced_pod(namespace, label_selector=f"app={app}")
        if not pod_list.items:
            raise PodNotFoundError(app)
        return pod_list.items[0].metadata.name


def _pod_health(pod, app: str, now: datetime) -> dict:
    status = pod.status
    statuses = (status.container_statuses if status else None) or []
    first_status = statuses[0] if statuses else None
    containers = (pod.spec.containers if pod.spec else None) or []
    container = containers[0] if containers else None
    resources = container.resources if container and container.resources else None
    requests = (resources.requests if resources else None) or {}
    limits = (resources.limits if resources else None) or {}

    started_at = status.start_time if status else None
    uptime = 0
    if started_at is not None:
        if started_at.tzinfo is None:
            started_at = started_at.replace(tzinfo=timezone.utc)
        uptime = max(0, int((now - started_at).total_seconds()))

    return {
        "name": pod.metadata.name,
        "app": app,
        "phase": status.phase if status else None,
        "ready": bool(first_status and first_status.ready),
        "restart_count": (first_status.restart_count if first_status else 0) or 0,
        "start_time": started_at,
        "uptime_seconds": uptime,
        "resources": {
            "cpu_request": requests.get("cpu", "N/A"),
            "cpu_limit": limits.get("cpu", "N/A"),
            "memory_request": requests.get("memory", "N/A"),
            "memory_limit": limits.get("memory", "N/A"),
        },
        "image": (first_status.image if first_status else None) or (container.image if container else "unknown"),
    }


def _pvc_info(pvc) -> dict:
    capacity = (pvc.status.capacity if pvc.status else None) or {}
    requested = {}
    if pvc.spec and pvc.spec.resources:
        requested = pvc.spec.resources.requests or {}
    return {
        "name": pvc.metadata.name,
        "status": pvc.status.phase if pvc.status else None,
        "capacity": capacity.get("storage") or requested.get("storage") or "N/A",
        "storage_class": (pvc.spec.storage_class_name if pvc.spec else None) or "default",
    }


def build_platform(
    settings: Settings,
    session_factory: sessionmaker[Session],
    gateway: ClusterGateway,
    poller: Poller | None = None,
) -> StorePlatform:
    stores = StoreRepository(session_factory)
    events = EventLog(session_factory)
    audit = AuditLog(session_factory)
    registry = PipelineRegistry(
        [
            WooCommercePipeline(gateway, stores, events, settings, poller),
            MedusaPipeline(stores, events),
        ]
    )
    queue = ProvisioningQueue(registry, stores, events, settings.provisioning_concurrency)
    teardown = TeardownPipeline(gateway, stores, events, settings, poller)
    return StorePlatform(settings, stores, events, audit, registry, queue, teardown, gateway)
