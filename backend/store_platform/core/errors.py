"""Error taxonomy shared by the pipelines, the queue and the HTTP layer."""


class StorePlatformError(Exception):
    pass


class ClusterError(StorePlatformError):
    """Any failure reported by the cluster API."""


class ConflictError(ClusterError):
    """A create call hit an object that already exists."""

    def __init__(self, resource: str):
        super().__init__(f"{resource} already exists")
        self.resource = resource


class NotFoundError(ClusterError):
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found")
        self.resource = resource


class WaitTimeoutError(StorePlatformError, TimeoutError):
    def __init__(self, resource: str, elapsed_seconds: float):
        super().__init__(f"{resource} not ready after {elapsed_seconds:.0f}s")
        self.resource = resource
        self.elapsed_seconds = elapsed_seconds


class JobFailedError(StorePlatformError):
    pass


class UnknownPlanError(StorePlatformError):
    def __init__(self, plan: str, available: list[str]):
        super().__init__(f"Unknown store plan: {plan}. Available: {', '.join(available)}")
        self.plan = plan


class EngineUnavailableError(StorePlatformError):
    pass


class StoreNotFoundError(StorePlatformError):
    def __init__(self, store_id):
        super().__init__(f"Store {store_id} not found")
        self.store_id = store_id


class SlugConflictError(StorePlatformError):
    def __init__(self, slug: str):
        super().__init__(f'A store with slug "{slug}" already exists.')
        self.slug = slug


class StoreLimitError(StorePlatformError):
    def __init__(self, max_stores: int):
        super().__init__(f"Maximum number of stores ({max_stores}) reached. Delete a store first.")
        self.max_stores = max_stores


class InvalidStoreNameError(StorePlatformError):
    pass


class InvalidTransitionError(StorePlatformError):
    def __init__(self, store_id, current, target):
        super().__init__(f"Store {store_id} cannot move from {current} to {target}")
        self.current = current
        self.target = target


class StoreNotReadyError(StorePlatformError):
    def __init__(self, store_id, status):
        super().__init__(f"Store {store_id} is {status}; this action needs a Ready store")
        self.status = status


class PodNotFoundError(StorePlatformError):
    def __init__(self, app: str):
        super().__init__(f"No {app} pod found")
        self.app = app
