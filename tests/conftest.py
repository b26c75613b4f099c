"""Shared fixtures: an in-memory Kubernetes API and a controllable clock."""

import asyncio
import copy
import json
from typing import Any, NamedTuple, Optional

import pytest
from kubernetes.client.exceptions import ApiException

from drain_controller.config import DrainSettings, KubernetesSettings, Settings
from drain_controller.models import ANNOTATION_KEY
from drain_controller.services import KubeClient, NodeDrainService
from drain_controller.services.kube_client import JSON

GRACE_PERIOD_SECONDS = 300


def api_error(status: int, reason: str = "") -> ApiException:
    return ApiException(status=status, reason=reason or f"HTTP {status}")


def not_found() -> ApiException:
    return api_error(404, "Not Found")


class RecordedRequest(NamedTuple):
    method: str
    path: str
    body: Any
    query: Optional[dict]
    content_type: str


class FakeCoreV1Api:
    """CoreV1Api stand-in routing each typed call to its REST path."""

    def __init__(self, kube: "MockKubeClient"):
        self.kube = kube

    def list_node(self, **kwargs):
        return self.kube.handle("GET", "/api/v1/nodes")

    def list_pod_for_all_namespaces(self, field_selector=None, **kwargs):
        return self.kube.handle("GET", "/api/v1/pods", query={"fieldSelector": field_selector})

    def read_namespaced_pod(self, name, namespace, **kwargs):
        return self.kube.handle("GET", f"/api/v1/namespaces/{namespace}/pods/{name}")

    def delete_namespaced_pod(self, name, namespace, **kwargs):
        return self.kube.handle("DELETE", f"/api/v1/namespaces/{namespace}/pods/{name}")


class FakePolicyV1Api:
    """PolicyV1Api stand-in routing each typed call to its REST path."""

    def __init__(self, kube: "MockKubeClient"):
        self.kube = kube

    def list_namespaced_pod_disruption_budget(self, namespace, **kwargs):
        return self.kube.handle(
            "GET", f"/apis/policy/v1/namespaces/{namespace}/poddisruptionbudgets"
        )


class MockKubeClient(KubeClient):
    """
    KubeClient answering from registered responses instead of an API server.

    Typed and raw calls share one route table keyed by method and path.
    Registering several responses for one route hands them out in order, the
    last one is repeated. An exception instance as response is raised.
    Unregistered routes fail the test. ``latency`` delays every call so that
    overlapping requests can be observed through ``max_in_flight``.
    """

    def __init__(self, settings: Settings):
        super().__init__(settings)
        self._core_api = FakeCoreV1Api(self)
        self._policy_api = FakePolicyV1Api(self)
        self._routes: dict[tuple[str, str], list[Any]] = {}
        self.requests: list[RecordedRequest] = []
        self.latency = 0.0
        self.in_flight = 0
        self.max_in_flight = 0

    def respond(self, method: str, path: str, *responses: Any) -> None:
        self._routes[(method, path)] = list(responses)

    def handle(
        self,
        method: str,
        path: str,
        body: Any = None,
        query: Optional[dict[str, str]] = None,
        content_type: str = JSON,
    ) -> Any:
        self.requests.append(
            RecordedRequest(method, path, copy.deepcopy(body), query, content_type)
        )
        queue = self._routes.get((method, path))
        if not queue:
            raise AssertionError(f"Unexpected request {method} {path}")
        response = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(response, Exception):
            raise response
        return copy.deepcopy(response)

    async def _send(self, send):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.latency:
                await asyncio.sleep(self.latency)
            return send()
        finally:
            self.in_flight -= 1

    async def call(self, operation, **kwargs):
        return await self._send(lambda: operation(**kwargs))

    async def request(
        self,
        method: str,
        path: str,
        body: Any = None,
        query: Optional[dict[str, str]] = None,
        content_type: str = JSON,
    ) -> Any:
        return await self._send(lambda: self.handle(method, path, body, query, content_type))

    def calls(self, method: str, path: Optional[str] = None) -> list[RecordedRequest]:
        return [
            r for r in self.requests
            if r.method == method and (path is None or r.path == path)
        ]

    def bodies(self, method: str, path: str) -> list[Any]:
        return [r.body for r in self.calls(method, path)]

    def annotations(self, node_name: str) -> list[dict]:
        """Every drain state patched onto the node, oldest first."""
        return [
            json.loads(body["metadata"]["annotations"][ANNOTATION_KEY])
            for body in self.bodies("PATCH", f"/api/v1/nodes/{node_name}")
        ]

    def last_annotation(self, node_name: str) -> dict:
        states = self.annotations(node_name)
        assert states, f"node {node_name} was never patched"
        return states[-1]

    def scaled_replicas(self, scale_path: str) -> list[int]:
        return [body["spec"]["replicas"] for body in self.bodies("PUT", scale_path)]

    def reset_requests(self) -> None:
        self.requests = []


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_700_000_000_000):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


@pytest.fixture
def settings() -> Settings:
    return Settings(
        kubernetes=KubernetesSettings(kubeconfig_path=None, in_cluster=False),
        drain=DrainSettings(
            grace_period_seconds=GRACE_PERIOD_SECONDS,
            poll_period_seconds=0.01,
            scale_attempts=3,
            save_attempts=10,
        ),
    )


@pytest.fixture
def kube(settings: Settings) -> MockKubeClient:
    return MockKubeClient(settings)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def drain_service(settings: Settings, kube: MockKubeClient, clock: FakeClock) -> NodeDrainService:
    return NodeDrainService(settings, kube, clock=clock)
