"""
Drain state persisted on the node.

The whole state of a node's drain lives in a single JSON annotation so that
the controller can be restarted at any point and resume from the cluster.
"""

from enum import Enum
from typing import NamedTuple, Optional

from pydantic import Field, model_validator

from .kube import Controller, KubeModel

ANNOTATION_KEY = "node-drain-controller/state-v1"


class DrainPhase(str, Enum):
    """Lifecycle of one controller being drained off a node."""

    DISCOVERED = "Discovered"
    SCALING_UP = "ScalingUp"
    AWAITING_READY = "AwaitingReady"
    AWAITING_OLD_PODS_GONE = "AwaitingOldPodsGone"
    FORCE_DELETE = "ForceDelete"
    SCALING_DOWN = "ScalingDown"
    REMOVED = "Removed"


class ControllerIdentity(NamedTuple):
    namespace: str
    name: str
    api_version: str
    kind: str


class ControllerAnnotation(KubeModel):
    """Drain progress of a single controller on a node."""

    api_version: str = Field(description="API group/version of the controller")
    kind: str = Field(description="Controller kind")
    resource_name: str = Field(description="Plural REST path segment of the kind")
    namespace: str = Field(description="Controller namespace")
    name: str = Field(description="Controller name")
    original: int = Field(description="Replica count before the drain started")
    desired: Optional[int] = Field(
        default=None,
        description="Replica count currently driven towards",
    )
    current: int = Field(default=0, description="Last observed ready replicas")
    ready_time: Optional[int] = Field(
        default=None,
        description="Epoch millis at which current == desired was first seen after scale-up",
    )
    pods: list[str] = Field(
        default_factory=list,
        description="Pods of this controller still believed to run on the node",
    )

    @model_validator(mode="after")
    def _default_desired(self) -> "ControllerAnnotation":
        if self.desired is None:
            self.desired = self.original
        return self

    @classmethod
    def from_controller(cls, controller: Controller, resource_name: str) -> "ControllerAnnotation":
        replicas = controller.replicas
        return cls(
            api_version=controller.api_version,
            kind=controller.kind,
            resource_name=resource_name,
            namespace=controller.metadata.namespace or "",
            name=controller.metadata.name,
            original=replicas,
            desired=replicas,
            current=controller.ready_replicas,
        )

    @property
    def identity(self) -> ControllerIdentity:
        return ControllerIdentity(self.namespace, self.name, self.api_version, self.kind)

    @property
    def scaled_replicas(self) -> int:
        return self.original + 1

    @property
    def is_scaled(self) -> bool:
        return self.desired == self.scaled_replicas

    @property
    def is_ready(self) -> bool:
        return self.current == self.desired

    @property
    def phase(self) -> DrainPhase:
        """Phase derived from the persisted fields."""
        if not self.pods:
            return DrainPhase.SCALING_DOWN
        if not self.is_scaled:
            return DrainPhase.DISCOVERED
        if not self.is_ready:
            return DrainPhase.AWAITING_READY
        return DrainPhase.AWAITING_OLD_PODS_GONE

    def refresh(self, controller: Controller) -> bool:
        """
        Take over the live replica counts of the controller.

        Returns False when the live replicas are neither the original nor the
        scaled-up count; ``desired`` then falls back to ``original`` so the
        scale-up is issued again.
        """
        self.current = controller.ready_replicas
        if controller.replicas in (self.original, self.scaled_replicas):
            self.desired = controller.replicas
            return True
        self.desired = self.original
        return False

    def add_pod(self, pod_name: str) -> None:
        if pod_name not in self.pods:
            self.pods.append(pod_name)

    def remove_pods(self, pod_names: list[str]) -> None:
        self.pods = [name for name in self.pods if name not in pod_names]

    def mark_ready(self, now: int) -> bool:
        """Set the ready time once. Returns True if it was set by this call."""
        if self.ready_time is not None:
            return False
        self.ready_time = now
        return True

    def grace_period_passed(self, now: int, grace_period_ms: int) -> bool:
        if self.ready_time is None:
            return False
        return now - grace_period_ms > self.ready_time

    def __str__(self) -> str:
        return f"{self.kind} {self.namespace}/{self.name}"


class NodeAnnotation(KubeModel):
    """Entire drain state of one node."""

    controllers: list[ControllerAnnotation] = Field(default_factory=list)

    @model_validator(mode="after")
    def _merge_duplicates(self) -> "NodeAnnotation":
        merged: dict[ControllerIdentity, ControllerAnnotation] = {}
        for controller in self.controllers:
            existing = merged.get(controller.identity)
            if existing is None:
                merged[controller.identity] = controller
            else:
                for pod_name in controller.pods:
                    existing.add_pod(pod_name)
        self.controllers = list(merged.values())
        return self

    def find(self, identity: ControllerIdentity) -> Optional[ControllerAnnotation]:
        for controller in self.controllers:
            if controller.identity == identity:
                return controller
        return None

    def remove(self, controllers: list[ControllerAnnotation]) -> None:
        identities = {controller.identity for controller in controllers}
        self.controllers = [c for c in self.controllers if c.identity not in identities]

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
