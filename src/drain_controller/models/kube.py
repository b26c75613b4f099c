"""Typed views over the Kubernetes API objects read by the drain controller."""

from enum import Enum
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class KubeModel(BaseModel):
    """Base model mapping snake_case fields to the API's camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PodPhase(str, Enum):
    """Pod phase enumeration."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    COMPLETE = "Complete"
    UNKNOWN = "Unknown"


class OwnerReference(KubeModel):
    """Back-link from a resource to the resource managing it."""

    api_version: str = Field(description="API group/version of the owner")
    kind: str = Field(description="Kind of the owner")
    name: str = Field(description="Name of the owner")
    uid: Optional[str] = Field(default=None, description="UID of the owner")
    controller: bool = Field(default=False, description="Owner is the managing controller")


class ObjectMeta(KubeModel):
    """Subset of object metadata used by the controller."""

    name: str = Field(description="Object name")
    namespace: Optional[str] = Field(default=None, description="Object namespace")
    resource_version: Optional[str] = Field(default=None, description="Resource version")
    labels: dict[str, str] = Field(default_factory=dict, description="Object labels")
    annotations: dict[str, str] = Field(default_factory=dict, description="Object annotations")
    owner_references: list[OwnerReference] = Field(
        default_factory=list,
        description="Ownership references",
    )

    def controller_reference(self) -> Optional[OwnerReference]:
        """Return the owner reference flagged as controller, if any."""
        for ref in self.owner_references:
            if ref.controller:
                return ref
        return None


class NodeSpec(KubeModel):
    unschedulable: bool = Field(default=False, description="Node is cordoned")


class Node(KubeModel):
    """Cluster compute host."""

    api_version: str = Field(default="v1")
    kind: str = Field(default="Node")
    metadata: ObjectMeta
    spec: NodeSpec = Field(default_factory=NodeSpec)

    @property
    def name(self) -> str:
        return self.metadata.name


class PodSpec(KubeModel):
    node_name: Optional[str] = Field(default=None, description="Node the pod is bound to")


class PodStatus(KubeModel):
    phase: Optional[str] = Field(default=None, description="Pod phase")


class Pod(KubeModel):
    """Scheduled workload unit."""

    api_version: str = Field(default="v1")
    kind: str = Field(default="Pod")
    metadata: ObjectMeta
    spec: PodSpec = Field(default_factory=PodSpec)
    status: PodStatus = Field(default_factory=PodStatus)

    @property
    def is_running(self) -> bool:
        return self.status.phase == PodPhase.RUNNING.value


class LabelSelector(KubeModel):
    match_labels: Optional[dict[str, str]] = Field(default=None, description="Equality selector")


class PodDisruptionBudgetSpec(KubeModel):
    min_available: Optional[Union[int, str]] = Field(
        default=None,
        description="Minimum available pods, absolute or percentage",
    )
    selector: Optional[LabelSelector] = Field(default=None, description="Pod selector")


class PodDisruptionBudget(KubeModel):
    """Namespace-scoped disruption policy."""

    metadata: ObjectMeta
    spec: PodDisruptionBudgetSpec = Field(default_factory=PodDisruptionBudgetSpec)

    def selects(self, labels: dict[str, str]) -> bool:
        """True when every matchLabels entry is present on the given labels."""
        selector = self.spec.selector
        if selector is None or selector.match_labels is None:
            return False
        return all(labels.get(key) == value for key, value in selector.match_labels.items())


class ControllerSpec(KubeModel):
    replicas: Optional[int] = Field(default=None, description="Desired replicas")


class ControllerStatus(KubeModel):
    replicas: Optional[int] = Field(default=None, description="Observed replicas")
    ready_replicas: Optional[int] = Field(default=None, description="Ready replicas")


class Controller(KubeModel):
    """Any scalable owning resource (Deployment, DeploymentConfig, ...)."""

    api_version: str = Field(description="API group/version")
    kind: str = Field(description="Resource kind")
    metadata: ObjectMeta
    spec: ControllerSpec = Field(default_factory=ControllerSpec)
    status: ControllerStatus = Field(default_factory=ControllerStatus)

    @property
    def replicas(self) -> int:
        return self.spec.replicas or 0

    @property
    def ready_replicas(self) -> int:
        return self.status.ready_replicas or 0


class ApiResource(KubeModel):
    """Entry of an API group's discovery document."""

    name: str = Field(description="Plural REST path segment")
    kind: str = Field(description="Resource kind")
    namespaced: bool = Field(default=False)
    verbs: list[str] = Field(default_factory=list)


class ApiResourceList(KubeModel):
    group_version: Optional[str] = Field(default=None)
    resources: list[ApiResource] = Field(default_factory=list)

    def resource_name_for(self, kind: str) -> Optional[str]:
        """Return the REST resource name serving ``kind``, skipping subresources."""
        for resource in self.resources:
            if resource.kind == kind and "/" not in resource.name:
                return resource.name
        return None
