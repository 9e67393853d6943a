import asyncio
import enum
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from store_platform.core.errors import JobFailedError, NotFoundError, WaitTimeoutError

logger = logging.getLogger(__name__)


class WaitState(str, enum.Enum):
    PENDING = "pending"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True)
class PollPolicy:
    interval_seconds: float
    timeout_seconds: float


Probe = Callable[[], Awaitable[WaitState]]


class Poller:
    """Drives a probe until it reports ready, failed, or the deadline passes.

    ``clock`` and ``sleep`` are injectable so waits can run on virtual time. A timeout is
    raised no later than one interval after the deadline.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.clock = clock
        self.sleep = sleep

    async def wait(self, probe: Probe, policy: PollPolicy, resource: str) -> None:
        started = self.clock()
        while True:
            state = await probe()
            if state == WaitState.READY:
                return
            if state == WaitState.FAILED:
                raise JobFailedError(f"{resource} failed")
            elapsed = self.clock() - started
            if elapsed >= policy.timeout_seconds:
                raise WaitTimeoutError(resource, elapsed)
            logger.debug("%s still pending after %.0fs", resource, elapsed)
            await self.sleep(policy.interval_seconds)


def deployment_ready_probe(gateway, name: str, namespace: str) -> Probe:
    async def probe() -> WaitState:
        try:
            deployment = await gateway.read_namespaced_deployment(name, namespace)
        except NotFoundError:
            return WaitState.PENDING
        ready = (deployment.status and deployment.status.ready_replicas) or 0
        desired = (deployment.spec and deployment.spec.replicas) or 1
        return WaitState.READY if ready >= desired else WaitState.PENDING

    return probe


def job_complete_probe(gateway, name: str, namespace: str, max_failures: int) -> Probe:
    async def probe() -> WaitState:
        try:
            job = await gateway.read_namespaced_job(name, namespace)
        except NotFoundError:
            return WaitState.PENDING
        status = job.status
        if status and (status.succeeded or 0) >= 1:
            return WaitState.READY
        if status and (status.failed or 0) >= max_failures:
            return WaitState.FAILED
        return WaitState.PENDING

    return probe


def namespace_gone_probe(gateway, namespace: str) -> Probe:
    async def probe() -> WaitState:
        try:
            await gateway.read_namespace(namespace)
        except NotFoundError:
            return WaitState.READY
        return WaitState.PENDING

    return probe
