import enum


class StorePlan(str, enum.Enum):
    WOOCOMMERCE = "woocommerce"
    MEDUSA = "medusa"


class StoreStatus(str, enum.Enum):
    PROVISIONING = "Provisioning"
    READY = "Ready"
    FAILED = "Failed"
    DELETING = "Deleting"


class EventStatus(str, enum.Enum):
    STARTED = "started"
    COMPLETED = "completed"
    FAILED = "failed"


# Deleting never has a stored successor: teardown ends by removing the row.
# Self-edges re-record a failure or let teardown enter a store its request already flagged.
ALLOWED_TRANSITIONS: dict[StoreStatus, frozenset[StoreStatus]] = {
    StoreStatus.PROVISIONING: frozenset({StoreStatus.READY, StoreStatus.FAILED}),
    StoreStatus.READY: frozenset({StoreStatus.DELETING}),
    StoreStatus.FAILED: frozenset({StoreStatus.FAILED, StoreStatus.DELETING}),
    StoreStatus.DELETING: frozenset({StoreStatus.DELETING, StoreStatus.FAILED}),
}


def can_transition(current: StoreStatus, target: StoreStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def transition_sources(target: StoreStatus) -> list[StoreStatus]:
    return [status for status, targets in ALLOWED_TRANSITIONS.items() if target in targets]
