"""
Node drain reconciliation.

For every cordoned node, controllers whose disruption budget forbids going to
zero available replicas are scaled up by one, the old pods are given time to
leave once the replacement is ready (and deleted after a grace period), and
the controller is then scaled back to its original size. All progress is kept
in an annotation on the node, so every pass starts from the cluster state.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Iterable, Optional

from ..config import Settings
from ..models.annotation import (
    ControllerAnnotation,
    ControllerIdentity,
    DrainPhase,
    NodeAnnotation,
)
from ..models.kube import Node, Pod
from ..telemetry.metrics import POD_DELETIONS, SCALE_REQUESTS, TRACKED_CONTROLLERS
from ..telemetry.tracing import traced
from .annotation_store import DrainStateStore
from .eligibility import DisruptionEligibilityFilter
from .kube_client import REQUEST_ERRORS, KubeClient
from .owner_resolver import OwnerResolver, ResolvedOwner
from .tick_cache import TickCache

logger = logging.getLogger(__name__)


def _node_attributes(_service, node: Node, *_args, **_kwargs) -> dict:
    return {"k8s.node.name": node.name}


def _controller_attributes(_service, node: Node, _annotation, controller: ControllerAnnotation) -> dict:
    return {
        "k8s.node.name": node.name,
        "k8s.namespace.name": controller.namespace,
        "drain.controller.kind": controller.kind,
        "drain.controller.name": controller.name,
    }


def now_millis() -> int:
    return int(time.time() * 1000)


async def join_all(aws: Iterable[Awaitable[Any]]) -> list[Any]:
    """Run awaitables concurrently, wait for all of them, then raise the first error."""
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results


class NodeDrainService:
    """Service responsible for draining a node."""

    def __init__(
        self,
        settings: Settings,
        kube_client: KubeClient,
        store: Optional[DrainStateStore] = None,
        eligibility: Optional[DisruptionEligibilityFilter] = None,
        owner_resolver: Optional[OwnerResolver] = None,
        clock: Callable[[], int] = now_millis,
    ):
        drain = settings.drain
        self.kube = kube_client
        self.grace_period_ms = int(drain.grace_period_seconds * 1000)
        self.scale_attempts = drain.scale_attempts
        self.store = store or DrainStateStore(kube_client, drain.save_attempts)
        self.eligibility = eligibility or DisruptionEligibilityFilter(kube_client)
        self.owners = owner_resolver or OwnerResolver(kube_client)
        self.clock = clock

    @traced("process_node", attributes=_node_attributes)
    async def process_node(self, node: Node, cache: Optional[TickCache] = None) -> None:
        """Run one reconciliation pass for a node."""
        if node.spec.unschedulable:
            await self.drain_node(node, cache or TickCache())
        else:
            await self.restore_node(node)

    async def restore_node(self, node: Node) -> None:
        """
        Cancel an unfinished drain on a node that became schedulable again.

        Every tracked controller goes straight back to its original replicas,
        whatever step its drain had reached.
        """
        annotation = self.store.load(node)
        if not annotation.controllers:
            return

        logger.info(
            "Node %s is schedulable again, restoring %d controllers",
            node.name,
            len(annotation.controllers),
        )
        await join_all(
            self._scale(controller, controller.original)
            for controller in annotation.controllers
        )
        annotation.controllers = []
        await self.store.save(node, annotation)
        TRACKED_CONTROLLERS.labels(node=node.name).set(0)

    async def drain_node(self, node: Node, cache: TickCache) -> None:
        annotation = self.store.load(node)
        pods = await self.kube.get_pods_on_node(node.name)

        owners = await join_all(self._find_drainable_owner(pod, cache) for pod in pods)
        # Upserts run on this task only, so two pods of the same new
        # controller can never create two entries.
        for pod, owner in zip(pods, owners):
            if owner is not None:
                self._track(node, annotation, pod, owner)
        await self.store.save(node, annotation)

        controllers = list(annotation.controllers)
        phases = await join_all(
            self._drive_controller(node, annotation, controller)
            for controller in controllers
        )

        finished = [
            controller
            for controller, phase in zip(controllers, phases)
            if phase is DrainPhase.REMOVED
        ]
        if finished:
            annotation.remove(finished)
            await self.store.save(node, annotation)
            if annotation.controllers:
                logger.info(
                    "Node %s: %d controllers remaining...",
                    node.name,
                    len(annotation.controllers),
                )
            else:
                logger.info("Node %s is drained!", node.name)
        TRACKED_CONTROLLERS.labels(node=node.name).set(len(annotation.controllers))

    async def _find_drainable_owner(self, pod: Pod, cache: TickCache) -> Optional[ResolvedOwner]:
        if not await self.eligibility.is_eligible(pod, cache):
            return None
        owner = await self.owners.resolve(pod, cache)
        if owner is None:
            logger.debug(
                "Pod %s/%s has no supported controller",
                pod.metadata.namespace,
                pod.metadata.name,
            )
        return owner

    def _track(
        self,
        node: Node,
        annotation: NodeAnnotation,
        pod: Pod,
        owner: ResolvedOwner,
    ) -> None:
        """Find or create the entry of the pod's controller and register the pod."""
        controller = owner.controller
        identity = ControllerIdentity(
            controller.metadata.namespace or "",
            controller.metadata.name,
            controller.api_version,
            controller.kind,
        )
        entry = annotation.find(identity)
        if entry is None:
            # Only single-replica controllers start a drain; others are only
            # followed up when already tracked.
            if controller.replicas != 1:
                return
            entry = ControllerAnnotation.from_controller(controller, owner.resource_name)
            annotation.controllers.append(entry)
            logger.info("Node %s: start draining %s", node.name, entry)

        entry.add_pod(pod.metadata.name)
        if not entry.refresh(controller):
            logger.warning(
                "%s was scaled to %d outside of the drain, driving it back to %d",
                entry,
                controller.replicas,
                entry.scaled_replicas,
            )

    @traced("drive_controller", attributes=_controller_attributes)
    async def _drive_controller(
        self,
        node: Node,
        annotation: NodeAnnotation,
        controller: ControllerAnnotation,
    ) -> DrainPhase:
        """Advance one controller by at most one step and return where it ended up."""
        controller.remove_pods(await self._deleted_pods(controller))

        phase = controller.phase
        if phase is DrainPhase.SCALING_DOWN:
            await self._scale(controller, controller.original)
            return DrainPhase.REMOVED

        if phase is DrainPhase.DISCOVERED:
            await self._scale(controller, controller.scaled_replicas)
            await self.store.save(node, annotation)
            return DrainPhase.SCALING_UP

        if phase is DrainPhase.AWAITING_READY:
            logger.debug(
                "%s not ready yet (%d/%d)",
                controller,
                controller.current,
                controller.desired,
            )
            return DrainPhase.AWAITING_READY

        if controller.mark_ready(self.clock()):
            logger.info("%s is ready, waiting for old pods to be removed", controller)
            await self.store.save(node, annotation)

        controller.remove_pods(await self._deleted_pods(controller))
        if not controller.pods:
            await self._scale(controller, controller.original)
            return DrainPhase.REMOVED

        if controller.grace_period_passed(self.clock(), self.grace_period_ms):
            await self._delete_pods(controller)
            return DrainPhase.FORCE_DELETE

        return DrainPhase.AWAITING_OLD_PODS_GONE

    async def _deleted_pods(self, controller: ControllerAnnotation) -> list[str]:
        deleted = await join_all(
            self.is_pod_deleted(controller.namespace, pod_name)
            for pod_name in controller.pods
        )
        return [pod_name for pod_name, gone in zip(controller.pods, deleted) if gone]

    async def is_pod_deleted(self, namespace: str, pod_name: str) -> bool:
        """A pod counts as deleted once it is gone or no longer running."""
        try:
            pod = await self.kube.get_pod(namespace, pod_name)
        except REQUEST_ERRORS as e:
            if getattr(e, "status", None) == 404:
                return True
            logger.warning("Could not check pod %s/%s: %s", namespace, pod_name, e)
            return False
        return not pod.is_running

    async def _delete_pods(self, controller: ControllerAnnotation) -> None:
        await asyncio.gather(
            *(self._delete_pod(controller.namespace, pod_name) for pod_name in controller.pods)
        )

    async def _delete_pod(self, namespace: str, pod_name: str) -> None:
        logger.info("Delete pod %s/%s", namespace, pod_name)
        try:
            await self.kube.delete_pod(namespace, pod_name)
        except REQUEST_ERRORS as e:
            if getattr(e, "status", None) == 404:
                return
            # Retried on the next pass
            logger.error("Failed to delete pod %s/%s: %s", namespace, pod_name, e)
            return
        POD_DELETIONS.inc()

    async def _scale(self, controller: ControllerAnnotation, replicas: int) -> None:
        """Drive the controller to ``replicas``, raising once all attempts failed."""
        direction = "up" if replicas > controller.original else "down"
        controller.desired = replicas
        logger.info("Scale %s %s to %d", direction, controller, replicas)

        for attempt in range(1, self.scale_attempts + 1):
            try:
                await self.kube.scale_controller(
                    controller.api_version,
                    controller.resource_name,
                    controller.namespace,
                    controller.name,
                    replicas,
                )
                SCALE_REQUESTS.labels(direction=direction).inc()
                return
            except REQUEST_ERRORS as e:
                logger.warning(
                    "Failed to scale %s to %d (attempt %d/%d): %s",
                    controller,
                    replicas,
                    attempt,
                    self.scale_attempts,
                    e,
                )
                if attempt == self.scale_attempts:
                    raise
