"""
Owner resolution.

Walks ``ownerReferences`` from a pod up to the outermost controller, e.g.
pod -> ReplicaSet -> Deployment or pod -> ReplicationController ->
DeploymentConfig. REST resource names are looked up in the API group's
discovery document instead of being hard-coded per kind. An owner that
exists but cannot be read makes the whole walk resolve to nothing for the
pass.
"""

import logging
from enum import Enum
from typing import NamedTuple, Optional, Protocol

from ..models.kube import Controller, ObjectMeta
from .kube_client import REQUEST_ERRORS, KubeClient
from .tick_cache import TickCache

logger = logging.getLogger(__name__)

MAX_OWNER_DEPTH = 8


class ControllerKind(str, Enum):
    """Controller kinds the owner walk follows. Any other kind ends the walk."""

    REPLICATION_CONTROLLER = "ReplicationController"
    REPLICA_SET = "ReplicaSet"
    DEPLOYMENT = "Deployment"
    DEPLOYMENT_CONFIG = "DeploymentConfig"
    STATEFUL_SET = "StatefulSet"

    @classmethod
    def of(cls, kind: str) -> Optional["ControllerKind"]:
        try:
            return cls(kind)
        except ValueError:
            return None


class HasMetadata(Protocol):
    metadata: ObjectMeta


class ResolvedOwner(NamedTuple):
    controller: Controller
    resource_name: str

    @property
    def kind(self) -> Optional[ControllerKind]:
        return ControllerKind.of(self.controller.kind)


class OwnerUnavailable(Exception):
    """An owner in the chain exists but could not be read."""


class OwnerResolver:
    """Finds the top-level controller of a resource."""

    def __init__(self, kube_client: KubeClient):
        self.kube = kube_client

    async def resource_name_for_kind(
        self,
        api_version: str,
        kind: str,
        cache: TickCache,
    ) -> Optional[str]:
        """
        Resolve the plural REST name of ``kind`` via API discovery.

        Raises:
            OwnerUnavailable: when the discovery document cannot be fetched
        """
        try:
            resources = await cache.get_or_fetch(
                ("apiresources", api_version),
                lambda: self.kube.get_api_resources(api_version),
            )
        except REQUEST_ERRORS as e:
            raise OwnerUnavailable(f"discovery of {api_version} failed: {e}") from e
        return resources.resource_name_for(kind)

    async def resolve(self, resource: HasMetadata, cache: TickCache) -> Optional[ResolvedOwner]:
        """
        Return the outermost resolvable controller owning ``resource``.

        Returns None when the resource has no supported controlling owner, or
        when an owner in the chain could not be read. In the latter case the
        lower levels are not returned either: they may be managed by the owner
        that could not be read, and scaling them would be reverted. Never
        raises for API errors.
        """
        try:
            return await self._resolve(resource, cache, 0)
        except OwnerUnavailable as e:
            logger.warning(
                "Skipping %s/%s for this pass: %s",
                resource.metadata.namespace,
                resource.metadata.name,
                e,
            )
            return None

    async def _resolve(
        self,
        resource: HasMetadata,
        cache: TickCache,
        depth: int,
    ) -> Optional[ResolvedOwner]:
        ref = resource.metadata.controller_reference()
        if ref is None:
            return None

        if ControllerKind.of(ref.kind) is None:
            logger.debug(
                "%s %s/%s is managed by unsupported kind %s",
                getattr(resource, "kind", "Resource"),
                resource.metadata.namespace,
                resource.metadata.name,
                ref.kind,
            )
            return None

        if depth >= MAX_OWNER_DEPTH:
            logger.warning(
                "Owner chain of %s/%s is deeper than %d levels",
                resource.metadata.namespace,
                resource.metadata.name,
                MAX_OWNER_DEPTH,
            )
            return None

        resource_name = await self.resource_name_for_kind(ref.api_version, ref.kind, cache)
        if not resource_name:
            logger.warning("Could not find resourceName of %s %s", ref.api_version, ref.kind)
            return None

        namespace = resource.metadata.namespace
        try:
            raw = await self.kube.get_resource(ref.api_version, resource_name, namespace, ref.name)
        except REQUEST_ERRORS as e:
            raise OwnerUnavailable(f"fetching {ref.kind} {namespace}/{ref.name} failed: {e}") from e

        raw.setdefault("apiVersion", ref.api_version)
        raw.setdefault("kind", ref.kind)
        owner = ResolvedOwner(Controller.model_validate(raw), resource_name)
        if owner.controller.metadata.namespace is None:
            owner.controller.metadata.namespace = namespace

        # The owner may itself be owned, e.g. ReplicaSet -> Deployment
        super_owner = await self._resolve(owner.controller, cache, depth + 1)
        return super_owner or owner
