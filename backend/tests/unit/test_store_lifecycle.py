import uuid

import pytest

from store_platform.core.errors import InvalidTransitionError, StoreNotFoundError
from store_platform.models.enums import StorePlan, StoreStatus, can_transition, transition_sources


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (StoreStatus.PROVISIONING, StoreStatus.READY, True),
        (StoreStatus.PROVISIONING, StoreStatus.FAILED, True),
        (StoreStatus.PROVISIONING, StoreStatus.DELETING, False),
        (StoreStatus.READY, StoreStatus.DELETING, True),
        (StoreStatus.READY, StoreStatus.FAILED, False),
        (StoreStatus.FAILED, StoreStatus.FAILED, True),
        (StoreStatus.DELETING, StoreStatus.FAILED, True),
        (StoreStatus.DELETING, StoreStatus.READY, False),
    ],
)
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_nothing_reenters_provisioning():
    assert transition_sources(StoreStatus.PROVISIONING) == []


def test_new_store_starts_provisioning(stores):
    store = stores.create("Fresh", "fresh", "store-fresh", "owner@shop.io", StorePlan.WOOCOMMERCE)

    assert store.status == StoreStatus.PROVISIONING
    assert store.created_at is not None
    assert store.provisioned_at is None


def test_ready_cannot_move_back_to_failed(stores):
    store = stores.create("Fresh", "fresh", "store-fresh", "owner@shop.io", StorePlan.WOOCOMMERCE)
    stores.mark_ready(store.id, "http://fresh.test", "http://fresh.test/wp-admin", "pw")

    with pytest.raises(InvalidTransitionError) as exc_info:
        stores.update_status(store.id, StoreStatus.FAILED, "late failure")

    assert exc_info.value.current == "Ready"
    saved = stores.get(store.id)
    assert saved.status == StoreStatus.READY
    assert saved.error_message is None


def test_failed_store_keeps_latest_message(stores):
    store = stores.create("Fresh", "fresh", "store-fresh", "owner@shop.io", StorePlan.WOOCOMMERCE)
    stores.update_status(store.id, StoreStatus.FAILED, "first")
    stores.update_status(store.id, StoreStatus.FAILED, "second")

    assert stores.get(store.id).error_message == "second"


def test_status_write_on_missing_store(stores):
    with pytest.raises(StoreNotFoundError):
        stores.update_status(uuid.uuid4(), StoreStatus.FAILED, "gone")


def test_deleting_stores_are_hidden_from_listing(stores):
    kept = stores.create("Kept", "kept", "store-kept", "owner@shop.io", StorePlan.WOOCOMMERCE)
    gone = stores.create("Gone", "gone", "store-gone", "owner@shop.io", StorePlan.WOOCOMMERCE)
    stores.update_status(gone.id, StoreStatus.FAILED, "boom")
    stores.update_status(gone.id, StoreStatus.DELETING)

    assert [s.id for s in stores.list_active()] == [kept.id]
    assert stores.count_active() == 1
