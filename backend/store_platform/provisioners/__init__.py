from collections.abc import Iterable

from store_platform.core.errors import UnknownPlanError
from store_platform.provisioners.base import ProvisioningPipeline


class PipelineRegistry:
    """Explicit plan -> pipeline mapping, built once at startup and injected."""

    def __init__(self, pipelines: Iterable[ProvisioningPipeline]):
        self._pipelines: dict[str, ProvisioningPipeline] = {}
        for pipeline in pipelines:
            self._pipelines[pipeline.plan.value] = pipeline

    def resolve(self, plan) -> ProvisioningPipeline:
        key = getattr(plan, "value", plan)
        pipeline = self._pipelines.get(key)
        if pipeline is None:
            raise UnknownPlanError(str(key), self.plans())
        return pipeline

    def plans(self) -> list[str]:
        return sorted(self._pipelines)


__all__ = ["PipelineRegistry", "ProvisioningPipeline"]
