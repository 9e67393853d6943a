import asyncio

from store_platform.core.errors import EngineUnavailableError
from store_platform.models.enums import EventStatus, StorePlan, StoreStatus
from store_platform.models.store import Store
from store_platform.provisioners.base import ProvisioningPipeline
from store_platform.services.events import EventLog
from store_platform.services.store_repository import StoreRepository

UNAVAILABLE_MESSAGE = "MedusaJS engine coming soon. Select WooCommerce for a fully functional store."


class MedusaPipeline(ProvisioningPipeline):
    """Placeholder engine.

    A Medusa store needs PostgreSQL, Redis, the Medusa backend and a storefront, each with its
    own service and ingress. Until those manifests exist the run fails before touching the
    cluster.
    """

    plan = StorePlan.MEDUSA
    engine_name = "MedusaJS"

    def __init__(self, stores: StoreRepository, events: EventLog):
        self.stores = stores
        self.events = events

    async def provision(self, store: Store) -> None:
        await asyncio.to_thread(
            self.events.log,
            store.id,
            "provisioning",
            EventStatus.FAILED,
            "MedusaJS provisioning is not yet implemented. Requires PostgreSQL, Redis, "
            "MedusaJS backend and storefront resource builders.",
        )
        await asyncio.to_thread(self.stores.update_status, store.id, StoreStatus.FAILED, UNAVAILABLE_MESSAGE)
        raise EngineUnavailableError(UNAVAILABLE_MESSAGE)
