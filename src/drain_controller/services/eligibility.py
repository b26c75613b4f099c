"""Decides which pods need a scale-up before they may leave a node."""

import logging
from typing import Optional

from ..models.kube import Pod, PodDisruptionBudget
from .kube_client import KubeClient
from .tick_cache import TickCache

logger = logging.getLogger(__name__)


class DisruptionEligibilityFilter:
    """
    A pod is eligible when the first disruption budget selecting it demands
    ``minAvailable == 1``. Without a matching budget plain cordoning is enough.
    """

    def __init__(self, kube_client: KubeClient):
        self.kube = kube_client

    async def _budgets(self, namespace: str, cache: TickCache) -> list[PodDisruptionBudget]:
        return await cache.get_or_fetch(
            ("poddisruptionbudgets", namespace),
            lambda: self.kube.get_pod_disruption_budgets(namespace),
        )

    async def find_disruption_budget(
        self,
        pod: Pod,
        cache: TickCache,
    ) -> Optional[PodDisruptionBudget]:
        """Return the first budget in the pod's namespace whose selector matches the pod."""
        if not pod.metadata.labels or not pod.metadata.namespace:
            return None
        for budget in await self._budgets(pod.metadata.namespace, cache):
            if budget.selects(pod.metadata.labels):
                return budget
        return None

    async def is_eligible(self, pod: Pod, cache: TickCache) -> bool:
        budget = await self.find_disruption_budget(pod, cache)
        if budget is None:
            return False
        eligible = budget.spec.min_available == 1
        logger.debug(
            "Pod %s/%s matches budget %s (minAvailable=%s), eligible=%s",
            pod.metadata.namespace,
            pod.metadata.name,
            budget.metadata.name,
            budget.spec.min_available,
            eligible,
        )
        return eligible
