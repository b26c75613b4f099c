"""
Kubernetes resource client.

Typed ``CoreV1Api``/``PolicyV1Api`` calls for nodes, pods and disruption
budgets, raw REST over the ``ApiClient`` for everything addressed by an
arbitrary group/version and kind. Blocking calls are moved off the event loop
so that every API request only suspends the calling task. Results are handed
out as plain JSON data for the pydantic models.
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from urllib3.exceptions import HTTPError

from ..config import Settings
from ..models.kube import ApiResourceList, Node, Pod, PodDisruptionBudget

logger = logging.getLogger(__name__)

JSON = "application/json"
MERGE_PATCH = "application/merge-patch+json"

# Errors raised by a failed API request, either an HTTP error status or a
# connection level failure.
REQUEST_ERRORS = (ApiException, HTTPError)


def api_prefix(api_version: str) -> str:
    """REST prefix of an API group/version (core group lives under /api)."""
    return "/api/v1" if api_version == "v1" else f"/apis/{api_version}"


def resource_path(api_version: str, resource_name: str, namespace: Optional[str], name: str) -> str:
    prefix = api_prefix(api_version)
    if namespace:
        return f"{prefix}/namespaces/{namespace}/{resource_name}/{name}"
    return f"{prefix}/{resource_name}/{name}"


class KubeClient:
    """Async client for the Kubernetes REST API."""

    def __init__(self, settings: Settings):
        """Initialize the client; the connection is set up lazily."""
        self.settings = settings
        self._api_client: Optional[client.ApiClient] = None
        self._core_api: Optional[client.CoreV1Api] = None
        self._policy_api: Optional[client.PolicyV1Api] = None

    def _initialize(self) -> client.ApiClient:
        """Load cluster credentials, trying explicit, in-cluster and default kubeconfig."""
        k8s = self.settings.kubernetes
        errors: list[str] = []

        def try_load(
            desc: str,
            loader: Callable[[client.Configuration], None],
        ) -> Optional[client.ApiClient]:
            configuration = client.Configuration()
            try:
                loader(configuration)
            except Exception as e:  # noqa: BLE001
                msg = f"{desc}: {e}"
                logger.debug("Kube init attempt failed: %s", msg, exc_info=True)
                errors.append(msg)
                return None
            logger.info("Kubernetes client initialized via %s", desc)
            return client.ApiClient(configuration)

        attempts: list[tuple[str, Callable[[client.Configuration], None]]] = []
        if k8s.kubeconfig_path and k8s.in_cluster is not True:
            attempts.append((
                f"kubeconfig={k8s.kubeconfig_path}, context={k8s.context or 'default'}",
                lambda c: config.load_kube_config(
                    config_file=k8s.kubeconfig_path,
                    context=k8s.context,
                    client_configuration=c,
                ),
            ))
        if k8s.in_cluster is not False:
            attempts.append((
                "in-cluster",
                lambda c: config.load_incluster_config(client_configuration=c),
            ))
        if k8s.in_cluster is not True:
            attempts.append((
                f"default kubeconfig, context={k8s.context or 'default'}",
                lambda c: config.load_kube_config(context=k8s.context, client_configuration=c),
            ))

        for desc, loader in attempts:
            api_client = try_load(desc, loader)
            if api_client is not None:
                return api_client

        reason = "; ".join(errors) if errors else "no credential source enabled"
        logger.error("Failed to initialize Kubernetes client. Attempts: %s", reason)
        raise RuntimeError(f"Kubernetes client initialization failed: {reason}")

    @property
    def api_client(self) -> client.ApiClient:
        if self._api_client is None:
            self._api_client = self._initialize()
        return self._api_client

    @property
    def core_api(self) -> client.CoreV1Api:
        """Get CoreV1Api instance."""
        if self._core_api is None:
            self._core_api = client.CoreV1Api(self.api_client)
        return self._core_api

    @property
    def policy_api(self) -> client.PolicyV1Api:
        """Get PolicyV1Api instance."""
        if self._policy_api is None:
            self._policy_api = client.PolicyV1Api(self.api_client)
        return self._policy_api

    async def call(self, operation: Callable[..., Any], **kwargs: Any) -> Any:
        """
        Run a typed API operation and return its result as JSON data.

        Raises:
            kubernetes.client.exceptions.ApiException: on any HTTP error status
        """
        kwargs.setdefault("_request_timeout", self.settings.kubernetes.request_timeout_seconds)
        logger.debug("%s %s", operation.__name__, kwargs)
        result = await asyncio.to_thread(operation, **kwargs)
        return self.api_client.sanitize_for_serialization(result)

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        query: Optional[dict[str, str]] = None,
        content_type: str = JSON,
    ) -> Any:
        """
        Issue a raw request and return the decoded JSON body.

        Raises:
            kubernetes.client.exceptions.ApiException: on any HTTP error status
        """
        api_client = self.api_client
        logger.debug("%s %s", method, path)
        return await asyncio.to_thread(
            api_client.call_api,
            path,
            method,
            query_params=list((query or {}).items()),
            header_params={"Accept": JSON, "Content-Type": content_type},
            body=body,
            auth_settings=["BearerToken"],
            response_type="object",
            _return_http_data_only=True,
            _request_timeout=self.settings.kubernetes.request_timeout_seconds,
        )

    async def get(self, path: str) -> Any:
        return await self.request("GET", path)

    async def put(self, path: str, body: Any) -> Any:
        return await self.request("PUT", path, body=body)

    async def patch(self, path: str, body: Any) -> Any:
        return await self.request("PATCH", path, body=body, content_type=MERGE_PATCH)

    # Nodes

    async def get_nodes(self) -> list[Node]:
        """List all cluster nodes."""
        node_list = await self.call(self.core_api.list_node)
        return [Node.model_validate(item) for item in node_list.get("items") or []]

    async def patch_node(self, name: str, patch: dict) -> Any:
        """Apply a JSON merge-patch to a node."""
        return await self.patch(f"/api/v1/nodes/{name}", patch)

    # Pods

    async def get_pods_on_node(self, node_name: str) -> list[Pod]:
        """List pods bound to a node, across all namespaces."""
        pod_list = await self.call(
            self.core_api.list_pod_for_all_namespaces,
            field_selector=f"spec.nodeName={node_name}",
        )
        return [Pod.model_validate(item) for item in pod_list.get("items") or []]

    async def get_pod(self, namespace: str, name: str) -> Pod:
        return Pod.model_validate(
            await self.call(self.core_api.read_namespaced_pod, name=name, namespace=namespace)
        )

    async def delete_pod(self, namespace: str, name: str) -> Any:
        return await self.call(self.core_api.delete_namespaced_pod, name=name, namespace=namespace)

    # Policy

    async def get_pod_disruption_budgets(self, namespace: str) -> list[PodDisruptionBudget]:
        pdb_list = await self.call(
            self.policy_api.list_namespaced_pod_disruption_budget,
            namespace=namespace,
        )
        return [PodDisruptionBudget.model_validate(item) for item in pdb_list.get("items") or []]

    # Generic resources

    async def get_api_resources(self, api_version: str) -> ApiResourceList:
        """Fetch the discovery document of an API group/version."""
        return ApiResourceList.model_validate(await self.get(api_prefix(api_version)))

    async def get_resource(
        self,
        api_version: str,
        resource_name: str,
        namespace: Optional[str],
        name: str,
    ) -> dict:
        return await self.get(resource_path(api_version, resource_name, namespace, name))

    async def scale_controller(
        self,
        api_version: str,
        resource_name: str,
        namespace: str,
        name: str,
        replicas: int,
    ) -> Any:
        """Set the replicas of any resource exposing a scale subresource."""
        path = resource_path(api_version, resource_name, namespace, name) + "/scale"
        scale = await self.get(path)
        scale.setdefault("spec", {})["replicas"] = replicas
        return await self.put(path, scale)

    def close(self) -> None:
        if self._api_client is not None:
            self._api_client.close()
            self._api_client = None
            self._core_api = None
            self._policy_api = None
