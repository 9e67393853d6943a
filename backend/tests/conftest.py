import asyncio
import os
from types import SimpleNamespace

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import store_platform.models  # noqa: F401
from store_platform.core.config import Settings
from store_platform.core.errors import ConflictError, NotFoundError
from store_platform.models.base import Base
from store_platform.services.audit import AuditLog
from store_platform.services.events import EventLog
from store_platform.services.readiness import Poller
from store_platform.services.store_repository import StoreRepository


class FakeClock:
    """Virtual monotonic clock; ``sleep`` advances time instead of waiting."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def _creator(method: str, kind: str):
    async def create(self, namespace: str, body: dict):
        self._create(method, f"{kind} {namespace}/{body['metadata']['name']}")

    return create


class FakeClusterGateway:
    """In-memory stand-in for ``ClusterGateway`` returning client-shaped objects."""

    def __init__(self):
        self.calls: list[tuple] = []
        self.conflict_all = False
        self.errors: dict[str, Exception] = {}
        self.namespaces: set[str] = set()
        self.namespace_lingers = False
        self.deployment_ready: dict[str, bool] = {}
        self.job_status = SimpleNamespace(succeeded=1, failed=0)
        self.secret_values: dict[tuple[str, str, str], str] = {}
        self.pods: dict[str, list] = {}
        self.pvcs: list = []
        self.quotas: list = []
        self.logs = "GET /wp-login.php 200"
        self.hold: asyncio.Event | None = None

    def _record(self, method: str, *args) -> None:
        self.calls.append((method, *args))
        if method in self.errors:
            raise self.errors[method]

    def _create(self, method: str, resource: str) -> None:
        self._record(method, resource)
        if self.conflict_all:
            raise ConflictError(resource)

    def called(self, method: str) -> list[tuple]:
        return [call for call in self.calls if call[0] == method]

    def add_pod(self, app: str, name: str, **status) -> None:
        pod = SimpleNamespace(
            metadata=SimpleNamespace(name=name),
            status=SimpleNamespace(
                phase=status.get("phase", "Running"),
                start_time=status.get("start_time"),
                container_statuses=[
                    SimpleNamespace(
                        ready=status.get("ready", True),
                        restart_count=status.get("restart_count", 0),
                        image=f"{app}:test",
                    )
                ],
            ),
            spec=SimpleNamespace(
                containers=[
                    SimpleNamespace(
                        image=f"{app}:test",
                        resources=SimpleNamespace(
                            requests={"cpu": "100m", "memory": "256Mi"},
                            limits={"cpu": "500m", "memory": "512Mi"},
                        ),
                    )
                ]
            ),
        )
        self.pods.setdefault(app, []).append(pod)

    async def create_namespace(self, body: dict):
        name = body["metadata"]["name"]
        if self.hold is not None:
            await self.hold.wait()
        self._create("create_namespace", f"Namespace {name}")
        self.namespaces.add(name)

    create_namespaced_secret = _creator("create_namespaced_secret", "Secret")
    create_namespaced_resource_quota = _creator("create_namespaced_resource_quota", "ResourceQuota")
    create_namespaced_limit_range = _creator("create_namespaced_limit_range", "LimitRange")
    create_namespaced_persistent_volume_claim = _creator(
        "create_namespaced_persistent_volume_claim", "PersistentVolumeClaim"
    )
    create_namespaced_service = _creator("create_namespaced_service", "Service")
    create_namespaced_deployment = _creator("create_namespaced_deployment", "Deployment")
    create_namespaced_job = _creator("create_namespaced_job", "Job")
    create_namespaced_ingress = _creator("create_namespaced_ingress", "Ingress")
    create_namespaced_network_policy = _creator("create_namespaced_network_policy", "NetworkPolicy")

    async def read_namespace(self, name: str):
        self._record("read_namespace", name)
        if name not in self.namespaces:
            raise NotFoundError(f"Namespace {name}")
        return SimpleNamespace(metadata=SimpleNamespace(name=name))

    async def delete_namespace(self, name: str):
        self._record("delete_namespace", name)
        if name not in self.namespaces:
            raise NotFoundError(f"Namespace {name}")
        if not self.namespace_lingers:
            self.namespaces.discard(name)

    async def read_namespaced_deployment(self, name: str, namespace: str):
        self._record("read_namespaced_deployment", name, namespace)
        ready = self.deployment_ready.get(name, True)
        return SimpleNamespace(
            status=SimpleNamespace(ready_replicas=1 if ready else 0),
            spec=SimpleNamespace(replicas=1),
        )

    async def patch_namespaced_deployment(self, name: str, namespace: str, body: dict):
        self._record("patch_namespaced_deployment", name, namespace, body)

    async def read_namespaced_job(self, name: str, namespace: str):
        self._record("read_namespaced_job", name, namespace)
        return SimpleNamespace(status=self.job_status)

    async def list_namespaced_pod(self, namespace: str, label_selector: str | None = None):
        self._record("list_namespaced_pod", namespace, label_selector)
        app = (label_selector or "").partition("=")[2]
        return SimpleNamespace(items=list(self.pods.get(app, [])))

    async def read_namespaced_pod_log(self, name, namespace, container=None, tail_lines=100):
        self._record("read_namespaced_pod_log", name, namespace, container, tail_lines)
        return self.logs

    async def list_namespaced_persistent_volume_claim(self, namespace: str):
        self._record("list_namespaced_persistent_volume_claim", namespace)
        return SimpleNamespace(items=list(self.pvcs))

    async def list_namespaced_resource_quota(self, namespace: str):
        self._record("list_namespaced_resource_quota", namespace)
        return SimpleNamespace(items=list(self.quotas))

    async def read_secret_value(self, namespace: str, secret_name: str, key: str) -> str:
        self._record("read_secret_value", namespace, secret_name, key)
        return self.secret_values.get((namespace, secret_name, key), "existing-password")

    async def exec_in_pod(self, namespace, pod, container, command, timeout_seconds=120):
        self._record("exec_in_pod", namespace, pod, container, command)
        return ""


@pytest.fixture
def settings():
    return Settings(database_url="sqlite+pysqlite:///:memory:", kubeconfig=None)


@pytest.fixture
def engine(tmp_path):
    # File-backed so sessions opened from worker threads share one database.
    eng = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'store.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def stores(session_factory):
    return StoreRepository(session_factory)


@pytest.fixture
def events(session_factory):
    return EventLog(session_factory)


@pytest.fixture
def audit(session_factory):
    return AuditLog(session_factory)


@pytest.fixture
def gateway():
    return FakeClusterGateway()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def poller(clock):
    return Poller(clock=clock, sleep=clock.sleep)
