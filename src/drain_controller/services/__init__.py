"""Drain controller services."""

from .annotation_store import DrainStateStore
from .eligibility import DisruptionEligibilityFilter
from .kube_client import KubeClient
from .node_drain_service import NodeDrainService
from .owner_resolver import OwnerResolver
from .reconciliation_loop import ReconciliationLoop
from .tick_cache import TickCache

__all__ = [
    "DrainStateStore",
    "DisruptionEligibilityFilter",
    "KubeClient",
    "NodeDrainService",
    "OwnerResolver",
    "ReconciliationLoop",
    "TickCache",
]
