import asyncio
import logging

from store_platform.core.config import Settings
from store_platform.core.errors import ConflictError
from store_platform.models.enums import EventStatus, StorePlan
from store_platform.models.store import Store
from store_platform.provisioners.base import ProvisioningPipeline, StepRecorder
from store_platform.services import manifests
from store_platform.services.credentials import (
    build_mysql_secret,
    build_wordpress_secret,
    generate_store_secrets,
)
from store_platform.services.events import EventLog
from store_platform.services.kube import ClusterGateway
from store_platform.services.readiness import (
    PollPolicy,
    Poller,
    deployment_ready_probe,
    job_complete_probe,
)
from store_platform.services.store_repository import StoreRepository

logger = logging.getLogger(__name__)


def store_url_for(slug: str, settings: Settings) -> str:
    port_suffix = f":{settings.external_port}" if settings.external_port else ""
    return f"http://{slug}.{settings.store_domain}{port_suffix}"


class WooCommercePipeline(ProvisioningPipeline):
    plan = StorePlan.WOOCOMMERCE
    engine_name = "WooCommerce"

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

    async def provision(self, store: Store) -> None:
        settings = self.settings
        namespace = store.namespace
        store_url = store_url_for(store.slug, settings)
        admin_url = f"{store_url}/wp-admin"
        rc = manifests.StoreResourceConfig(
            namespace=namespace,
            slug=store.slug,
            store_name=store.name,
            admin_email=store.admin_email,
            store_url=store_url,
        )
        recorder = StepRecorder(self.events, store.id)
        gw = self.gateway

        async with recorder.step(
            "create_namespace", f"Creating namespace {namespace}", f"Namespace {namespace} created"
        ) as step:
            await step.create(gw.create_namespace, manifests.build_namespace(namespace, str(store.id)))

        async with recorder.step("create_secrets", "Generating and creating secrets", "Secrets created") as step:
            secrets = generate_store_secrets()
            await step.create(gw.create_namespaced_secret, namespace, build_mysql_secret(namespace, secrets))
            admin_password = await self._create_wordpress_secret(namespace, secrets, step)

        async with recorder.step(
            "create_quota",
            "Creating resource quota and limit range",
            "Resource quota and limit range created",
        ) as step:
            await step.create(gw.create_namespaced_resource_quota, namespace, manifests.build_resource_quota(namespace))
            await step.create(gw.create_namespaced_limit_range, namespace, manifests.build_limit_range(namespace))

        async with recorder.step("deploy_mysql", "Deploying MySQL", "MySQL resources created") as step:
            await step.create(
                gw.create_namespaced_persistent_volume_claim, namespace, manifests.build_mysql_pvc(namespace, settings)
            )
            await step.create(
                gw.create_namespaced_deployment, namespace, manifests.build_mysql_deployment(namespace, settings)
            )
            await step.create(gw.create_namespaced_service, namespace, manifests.build_mysql_service(namespace))

        async with recorder.step("wait_mysql", "Waiting for MySQL to be ready", "MySQL is ready"):
            await self.poller.wait(
                deployment_ready_probe(gw, manifests.MYSQL_APP, namespace),
                PollPolicy(settings.deployment_poll_seconds, settings.mysql_ready_timeout_seconds),
                f"Deployment {manifests.MYSQL_APP} in {namespace}",
            )

        async with recorder.step(
            "deploy_wordpress", "Deploying WordPress + WooCommerce", "WordPress resources created"
        ) as step:
            await step.create(
                gw.create_namespaced_persistent_volume_claim,
                namespace,
                manifests.build_wordpress_pvc(namespace, settings),
            )
            await step.create(
                gw.create_namespaced_deployment, namespace, manifests.build_wordpress_deployment(rc, settings)
            )
            await step.create(gw.create_namespaced_service, namespace, manifests.build_wordpress_service(namespace))

        async with recorder.step("wait_wordpress", "Waiting for WordPress to be ready", "WordPress is ready"):
            await self.poller.wait(
                deployment_ready_probe(gw, manifests.WORDPRESS_APP, namespace),
                PollPolicy(settings.deployment_poll_seconds, settings.woocommerce_init_timeout_seconds),
                f"Deployment {manifests.WORDPRESS_APP} in {namespace}",
            )

        async with recorder.step(
            "setup_woocommerce",
            "Installing WooCommerce and creating sample data",
            "WooCommerce installed and configured",
        ) as step:
            await step.create(gw.create_namespaced_job, namespace, manifests.build_setup_job(rc, settings))
            await self.poller.wait(
                job_complete_probe(gw, manifests.SETUP_JOB_NAME, namespace, settings.setup_job_max_failures),
                PollPolicy(settings.job_poll_seconds, settings.woocommerce_init_timeout_seconds),
                f"Job {manifests.SETUP_JOB_NAME} in {namespace}",
            )

        host = f"{store.slug}.{settings.store_domain}"
        async with recorder.step("create_ingress", "Creating store ingress", f"Ingress created: {host}") as step:
            await step.create(
                gw.create_namespaced_ingress, namespace, manifests.build_store_ingress(namespace, host, settings)
            )

        async with recorder.step(
            "create_networkpolicy", "Creating network policy", "Network policy created"
        ) as step:
            await step.create(
                gw.create_namespaced_network_policy, namespace, manifests.build_network_policy(namespace, settings)
            )

        await asyncio.to_thread(self.stores.mark_ready, store.id, store_url, admin_url, admin_password)
        await asyncio.to_thread(
            self.events.log, store.id, "ready", EventStatus.COMPLETED, f"Store ready at {store_url}"
        )
        logger.info("store %s ready at %s", store.id, store_url)

    async def _create_wordpress_secret(self, namespace: str, secrets, step) -> str:
        try:
            await self.gateway.create_namespaced_secret(namespace, build_wordpress_secret(namespace, secrets))
        except ConflictError as exc:
            # A previous run already owns the credentials the deployment reads.
            step.skipped.append(exc.resource)
            return await self.gateway.read_secret_value(
                namespace, manifests.WORDPRESS_SECRET_NAME, manifests.ADMIN_PASSWORD_KEY
            )
        return secrets.admin_password
