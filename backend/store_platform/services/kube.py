import asyncio
import base64
import logging

from kubernetes import client, config
from kubernetes.client import ApiException
from kubernetes.stream import stream

from store_platform.core.config import Settings
from store_platform.core.errors import ClusterError, ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def _name_of(body: dict) -> str:
    return body.get("metadata", {}).get("name", "<unnamed>")


class ClusterGateway:
    """The only component that talks to the Kubernetes API.

    The official client is blocking, so every call runs in a worker thread and each method
    is awaitable. ``ApiException`` is translated: 409 becomes ``ConflictError``, 404 becomes
    ``NotFoundError``, everything else ``ClusterError``.
    """

    def __init__(self, api_client: client.ApiClient | None = None):
        self.core = client.CoreV1Api(api_client)
        self.apps = client.AppsV1Api(api_client)
        self.batch = client.BatchV1Api(api_client)
        self.networking = client.NetworkingV1Api(api_client)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ClusterGateway":
        if settings.kube_in_cluster:
            config.load_incluster_config()
        else:
            config.load_kube_config(config_file=settings.kubeconfig)
        return cls()

    async def _call(self, resource: str, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except ApiException as exc:
            if exc.status == 409:
                raise ConflictError(resource) from exc
            if exc.status == 404:
                raise NotFoundError(resource) from exc
            raise ClusterError(f"Kubernetes API error on {resource}: {exc.status} {exc.reason}") from exc

    # Namespaces

    async def create_namespace(self, body: dict):
        return await self._call(f"Namespace {_name_of(body)}", self.core.create_namespace, body)

    async def read_namespace(self, name: str):
        return await self._call(f"Namespace {name}", self.core.read_namespace, name)

    async def delete_namespace(self, name: str):
        return await self._call(f"Namespace {name}", self.core.delete_namespace, name)

    # Namespaced creates

    async def create_namespaced_secret(self, namespace: str, body: dict):
        return await self._call(
            f"Secret {namespace}/{_name_of(body)}", self.core.create_namespaced_secret, namespace, body
        )

    async def create_namespaced_resource_quota(self, namespace: str, body: dict):
        return await self._call(
            f"ResourceQuota {namespace}/{_name_of(body)}", self.core.create_namespaced_resource_quota, namespace, body
        )

    async def create_namespaced_limit_range(self, namespace: str, body: dict):
        return await self._call(
            f"LimitRange {namespace}/{_name_of(body)}", self.core.create_namespaced_limit_range, namespace, body
        )

    async def create_namespaced_persistent_volume_claim(self, namespace: str, body: dict):
        return await self._call(
            f"PersistentVolumeClaim {namespace}/{_name_of(body)}",
            self.core.create_namespaced_persistent_volume_claim,
            namespace,
            body,
        )

    async def create_namespaced_service(self, namespace: str, body: dict):
        return await self._call(
            f"Service {namespace}/{_name_of(body)}", self.core.create_namespaced_service, namespace, body
        )

    async def create_namespaced_deployment(self, namespace: str, body: dict):
        return await self._call(
            f"Deployment {namespace}/{_name_of(body)}", self.apps.create_namespaced_deployment, namespace, body
        )

    async def create_namespaced_job(self, namespace: str, body: dict):
        return await self._call(f"Job {namespace}/{_name_of(body)}", self.batch.create_namespaced_job, namespace, body)

    async def create_namespaced_ingress(self, namespace: str, body: dict):
        return await self._call(
            f"Ingress {namespace}/{_name_of(body)}", self.networking.create_namespaced_ingress, namespace, body
        )

    async def create_namespaced_network_policy(self, namespace: str, body: dict):
        return await self._call(
            f"NetworkPolicy {namespace}/{_name_of(body)}",
            self.networking.create_namespaced_network_policy,
            namespace,
            body,
        )

    # Reads and patches

    async def read_namespaced_deployment(self, name: str, namespace: str):
        return await self._call(
            f"Deployment {namespace}/{name}", self.apps.read_namespaced_deployment, name, namespace
        )

    async def patch_namespaced_deployment(self, name: str, namespace: str, body: dict):
        return await self._call(
            f"Deployment {namespace}/{name}", self.apps.patch_namespaced_deployment, name, namespace, body
        )

    async def read_namespaced_job(self, name: str, namespace: str):
        return await self._call(f"Job {namespace}/{name}", self.batch.read_namespaced_job, name, namespace)

    async def list_namespaced_pod(self, namespace: str, label_selector: str | None = None):
        return await self._call(
            f"Pods in {namespace}", self.core.list_namespaced_pod, namespace, label_selector=label_selector
        )

    async def read_namespaced_pod_log(self, name: str, namespace: str, container: str | None = None, tail_lines: int = 100) -> str:
        return await self._call(
            f"Pod {namespace}/{name}",
            self.core.read_namespaced_pod_log,
            name,
            namespace,
            container=container,
            tail_lines=tail_lines,
        )

    async def list_namespaced_persistent_volume_claim(self, namespace: str):
        return await self._call(
            f"PersistentVolumeClaims in {namespace}", self.core.list_namespaced_persistent_volume_claim, namespace
        )

    async def list_namespaced_resource_quota(self, namespace: str):
        return await self._call(f"ResourceQuotas in {namespace}", self.core.list_namespaced_resource_quota, namespace)

    async def read_secret_value(self, namespace: str, secret_name: str, key: str) -> str:
        secret = await self._call(
            f"Secret {namespace}/{secret_name}", self.core.read_namespaced_secret, secret_name, namespace
        )
        encoded_value = (secret.data or {}).get(key)
        if not encoded_value:
            raise ClusterError(f"Secret key '{key}' not found in '{secret_name}'")

        try:
            return base64.b64decode(encoded_value).decode("utf-8")
        except ValueError as exc:
            raise ClusterError(f"Failed to decode secret '{secret_name}' key '{key}'") from exc

    async def exec_in_pod(self, namespace: str, pod: str, container: str, command: list[str], timeout_seconds: int = 120) -> str:
        return await self._call(
            f"Pod {namespace}/{pod}", self._exec_blocking, namespace, pod, container, command, timeout_seconds
        )

    def _exec_blocking(self, namespace: str, pod: str, container: str, command: list[str], timeout_seconds: int) -> str:
        resp = stream(
            self.core.connect_get_namespaced_pod_exec,
            pod,
            namespace,
            container=container,
            command=command,
            stderr=True,
            stdin=False,
            stdout=True,
            tty=False,
            _preload_content=False,
        )
        resp.run_forever(timeout=timeout_seconds)
        stdout = resp.read_stdout() or ""
        stderr = resp.read_stderr() or ""
        resp.close()
        if resp.returncode != 0:
            raise ClusterError(f"Command failed in {namespace}/{pod}: {stderr.strip() or 'exec failed'}")
        return stdout
