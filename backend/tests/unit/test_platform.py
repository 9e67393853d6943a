import asyncio
import uuid
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from store_platform.core.errors import (
    InvalidStoreNameError,
    InvalidTransitionError,
    PodNotFoundError,
    SlugConflictError,
    StoreLimitError,
    StoreNotFoundError,
    StoreNotReadyError,
    UnknownPlanError,
)
from store_platform.models.enums import EventStatus, StorePlan, StoreStatus
from store_platform.provisioners.medusa import UNAVAILABLE_MESSAGE
from store_platform.services.platform import build_platform
from store_platform.workers.provisioner import INTERRUPTED_MESSAGE


@pytest.fixture
def platform(settings, session_factory, gateway, poller):
    return build_platform(settings, session_factory, gateway, poller)


def _ready_store(platform, slug="ready-shop"):
    store = platform.stores.create(slug.title(), slug, f"store-{slug}", "owner@shop.io", StorePlan.WOOCOMMERCE)
    platform.stores.mark_ready(store.id, f"http://{slug}.test", f"http://{slug}.test/wp-admin", "pw")
    return store


@pytest.mark.asyncio
async def test_create_store_provisions_to_ready_and_audits(platform):
    store = await platform.create_store("My Cool Store", "owner@shop.io", "woocommerce", "203.0.113.7")

    assert store.slug == "my-cool-store"
    assert store.namespace == "store-my-cool-store"
    assert store.status == StoreStatus.PROVISIONING

    await platform.drain()

    assert platform.get_store(store.id).status == StoreStatus.READY
    entry = platform.list_audit()[0]
    assert entry.action == "create"
    assert entry.details == "plan=woocommerce, email=owner@shop.io"
    assert entry.ip_address == "203.0.113.7"


@pytest.mark.asyncio
async def test_store_limit_is_checked_before_any_cluster_call(platform, settings, gateway):
    settings.max_stores = 1
    await platform.create_store("First Shop", "owner@shop.io", StorePlan.WOOCOMMERCE)
    await platform.drain()
    calls_before = len(gateway.calls)

    with pytest.raises(StoreLimitError):
        await platform.create_store("Second Shop", "owner@shop.io", StorePlan.WOOCOMMERCE)

    assert len(gateway.calls) == calls_before
    assert len(platform.list_stores()) == 1


@pytest.mark.asyncio
async def test_duplicate_slug_is_rejected(platform):
    await platform.create_store("My Shop", "owner@shop.io", StorePlan.WOOCOMMERCE)

    with pytest.raises(SlugConflictError):
        await platform.create_store("my  shop", "other@shop.io", StorePlan.WOOCOMMERCE)

    await platform.drain()


def test_unique_index_catches_slug_race(stores):
    stores.create("Race", "race", "store-race", "a@shop.io", StorePlan.WOOCOMMERCE)

    with pytest.raises(SlugConflictError):
        stores.create("Race", "race", "store-race", "b@shop.io", StorePlan.WOOCOMMERCE)


@pytest.mark.asyncio
async def test_unknown_plan_persists_nothing(platform):
    with pytest.raises(UnknownPlanError):
        await platform.create_store("Shopify Clone", "owner@shop.io", "shopify")

    assert platform.list_stores() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("name", ["--", "x", "bad_name!"])
async def test_invalid_names_are_rejected(platform, name):
    with pytest.raises(InvalidStoreNameError):
        await platform.create_store(name, "owner@shop.io", StorePlan.WOOCOMMERCE)


@pytest.mark.asyncio
async def test_medusa_store_ends_failed_with_explanation(platform):
    store = await platform.create_store("Headless", "owner@shop.io", StorePlan.MEDUSA)
    await platform.drain()

    saved = platform.get_store(store.id)
    assert saved.status == StoreStatus.FAILED
    assert saved.error_message == UNAVAILABLE_MESSAGE


@pytest.mark.asyncio
async def test_request_deletion_flips_to_deleting_then_purges(platform, gateway):
    store = _ready_store(platform)
    gateway.namespaces.add(store.namespace)

    await platform.request_deletion(store.id, "10.0.0.1")

    assert platform.get_store(store.id).status == StoreStatus.DELETING
    assert platform.list_stores() == []

    await platform.drain()

    assert platform.get_store(store.id) is None
    assert [e.action for e in platform.list_audit()] == ["delete"]


@pytest.mark.asyncio
async def test_deleting_a_provisioning_store_is_rejected(platform):
    store = platform.stores.create("Busy", "busy", "store-busy", "owner@shop.io", StorePlan.WOOCOMMERCE)

    with pytest.raises(InvalidTransitionError):
        await platform.request_deletion(store.id)

    assert platform.get_store(store.id).status == StoreStatus.PROVISIONING


@pytest.mark.asyncio
async def test_deleting_a_missing_store_raises_not_found(platform, gateway):
    with pytest.raises(StoreNotFoundError):
        await platform.request_deletion(uuid.uuid4())

    assert gateway.calls == []


@pytest.mark.asyncio
async def test_restart_patches_selected_deployments(platform, gateway):
    store = _ready_store(platform)

    restarted = await platform.restart_store(store.id, "all", "10.0.0.1")

    assert restarted == ["wordpress", "mysql"]
    patches = gateway.called("patch_namespaced_deployment")
    assert [p[1] for p in patches] == ["wordpress", "mysql"]
    assert "store-platform/restartedAt" in patches[0][3]["spec"]["template"]["metadata"]["annotations"]
    assert platform.list_audit()[0].details == "target=all"


@pytest.mark.asyncio
async def test_actions_require_ready_store(platform):
    store = platform.stores.create("Busy", "busy", "store-busy", "owner@shop.io", StorePlan.WOOCOMMERCE)

    with pytest.raises(StoreNotReadyError):
        await platform.restart_store(store.id, "mysql")
    with pytest.raises(StoreNotReadyError):
        await platform.reset_admin_password(store.id)


@pytest.mark.asyncio
async def test_reset_password_runs_wp_cli_and_stores_result(platform, gateway):
    store = _ready_store(platform)
    gateway.add_pod("wordpress", "wordpress-abc")

    new_password = await platform.reset_admin_password(store.id, "10.0.0.1")

    _, namespace, pod, container, command = gateway.called("exec_in_pod")[0]
    assert (namespace, pod, container) == ("store-ready-shop", "wordpress-abc", "wordpress")
    assert f'--user_pass="{new_password}"' in command[-1]
    assert platform.get_store(store.id).admin_password == new_password
    assert platform.list_audit()[0].action == "reset-password"


@pytest.mark.asyncio
async def test_reset_password_without_pod_raises(platform):
    store = _ready_store(platform)

    with pytest.raises(PodNotFoundError):
        await platform.reset_admin_password(store.id)


@pytest.mark.asyncio
async def test_fetch_logs_reads_first_matching_pod(platform, gateway):
    store = _ready_store(platform)
    gateway.add_pod("mysql", "mysql-0")

    pod, logs = await platform.fetch_logs(store.id, "mysql", tail_lines=20)

    assert pod == "mysql-0"
    assert logs == gateway.logs
    assert gateway.called("read_namespaced_pod_log")[0][1:] == ("mysql-0", "store-ready-shop", "mysql", 20)


@pytest.mark.asyncio
async def test_store_health_summarises_pods_volumes_and_quota(platform, gateway):
    store = _ready_store(platform)
    started = datetime.now(timezone.utc) - timedelta(minutes=5)
    gateway.add_pod("wordpress", "wordpress-abc", start_time=started, restart_count=2)
    gateway.pvcs.append(
        SimpleNamespace(
            metadata=SimpleNamespace(name="mysql-data"),
            status=SimpleNamespace(phase="Bound", capacity={"storage": "1Gi"}),
            spec=SimpleNamespace(storage_class_name=None, resources=None),
        )
    )
    gateway.quotas.append(SimpleNamespace(status=SimpleNamespace(hard={"pods": "10"}, used={"pods": "3"})))

    health = await platform.store_health(store.id)

    pod = health["pods"][0]
    assert pod["name"] == "wordpress-abc"
    assert pod["restart_count"] == 2
    assert pod["uptime_seconds"] >= 299
    assert pod["resources"]["memory_limit"] == "512Mi"
    assert health["pvcs"] == [{"name": "mysql-data", "status": "Bound", "capacity": "1Gi", "storage_class": "default"}]
    assert health["quota"] == {"hard": {"pods": "10"}, "used": {"pods": "3"}}


@pytest.mark.asyncio
async def test_list_events_of_missing_store_raises(platform):
    with pytest.raises(StoreNotFoundError):
        platform.list_events(uuid.uuid4())


@pytest.mark.asyncio
async def test_backlog_counts_queued_and_running(platform, gateway):
    gateway.hold = asyncio.Event()
    await platform.create_store("Shop One", "owner@shop.io", StorePlan.WOOCOMMERCE)
    await platform.create_store("Shop Two", "owner@shop.io", StorePlan.WOOCOMMERCE)

    assert platform.queue_backlog_size() == 2

    gateway.hold.set()
    await platform.drain()

    assert platform.queue_backlog_size() == 0


@pytest.mark.asyncio
async def test_store_interrupted_by_shutdown_can_be_deleted(settings, session_factory, gateway, poller):
    gateway.hold = asyncio.Event()
    first = build_platform(settings, session_factory, gateway, poller)
    store = await first.create_store("Halted Shop", "owner@shop.io", StorePlan.WOOCOMMERCE)
    await asyncio.sleep(0)

    await first.shutdown()

    saved = first.get_store(store.id)
    assert saved.status == StoreStatus.FAILED
    assert saved.error_message == INTERRUPTED_MESSAGE

    gateway.hold = None
    second = build_platform(settings, session_factory, gateway, poller)
    await second.request_deletion(store.id)
    assert second.stores.count_active() == 0
    await second.drain()
    assert second.get_store(store.id) is None


@pytest.mark.asyncio
async def test_recover_interrupted_fails_orphaned_provisioning_rows(platform):
    orphan = platform.stores.create("Orphan", "orphan", "store-orphan", "owner@shop.io", StorePlan.WOOCOMMERCE)
    ready = _ready_store(platform)

    assert platform.recover_interrupted() == [orphan.id]

    saved = platform.get_store(orphan.id)
    assert saved.status == StoreStatus.FAILED
    assert saved.error_message == INTERRUPTED_MESSAGE
    assert [(e.step, e.status) for e in platform.list_events(orphan.id)] == [("provisioning", EventStatus.FAILED)]
    assert platform.get_store(ready.id).status == StoreStatus.READY
    assert platform.recover_interrupted() == []


@pytest.mark.asyncio
async def test_concurrent_creates_with_same_slug_admit_one(platform, monkeypatch):
    monkeypatch.setattr(platform.stores, "get_by_slug", lambda slug: None)

    results = await asyncio.gather(
        platform.create_store("Race Shop", "a@shop.io", StorePlan.WOOCOMMERCE),
        platform.create_store("race shop", "b@shop.io", StorePlan.WOOCOMMERCE),
        return_exceptions=True,
    )

    created = [r for r in results if not isinstance(r, Exception)]
    conflicts = [r for r in results if isinstance(r, SlugConflictError)]
    assert len(created) == 1
    assert len(conflicts) == 1
    assert len(platform.list_stores()) == 1
    await platform.drain()
