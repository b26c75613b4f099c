"""Tests for the Kubernetes client wrapper."""

import pytest
from kubernetes import client
from kubernetes.config.config_exception import ConfigException

from drain_controller.config import KubernetesSettings, Settings
from drain_controller.services import KubeClient
from drain_controller.services import kube_client as kube_client_module
from drain_controller.services.kube_client import api_prefix, resource_path


def test_core_group_lives_under_api():
    assert api_prefix("v1") == "/api/v1"
    assert api_prefix("apps/v1") == "/apis/apps/v1"


def test_resource_path():
    assert (
        resource_path("apps.openshift.io/v1", "deploymentconfigs", "my-project", "customer-service")
        == "/apis/apps.openshift.io/v1/namespaces/my-project/deploymentconfigs/customer-service"
    )
    assert resource_path("v1", "nodes", None, "slave01") == "/api/v1/nodes/slave01"


def test_missing_credentials_raise(monkeypatch):
    def fail(*args, **kwargs):
        raise ConfigException("no credentials")

    monkeypatch.setattr(kube_client_module.config, "load_kube_config", fail)
    monkeypatch.setattr(kube_client_module.config, "load_incluster_config", fail)
    kube = KubeClient(Settings(kubernetes=KubernetesSettings(kubeconfig_path="/nonexistent")))

    with pytest.raises(RuntimeError, match="no credentials"):
        kube.api_client


def test_credentials_are_loaded_once(monkeypatch):
    loaded = []

    def load_incluster_config(client_configuration):
        loaded.append(client_configuration)
        client_configuration.host = "https://10.0.0.1:443"

    monkeypatch.setattr(kube_client_module.config, "load_incluster_config", load_incluster_config)
    kube = KubeClient(Settings(kubernetes=KubernetesSettings(in_cluster=True)))

    api_client = kube.api_client

    assert kube.api_client is api_client
    assert kube.core_api.api_client is api_client
    assert api_client.configuration.host == "https://10.0.0.1:443"
    assert len(loaded) == 1
    kube.close()


@pytest.mark.asyncio
async def test_typed_results_are_returned_as_json_data(settings):
    kube = KubeClient(settings)
    kube._api_client = client.ApiClient()
    seen = {}

    def read_namespaced_pod(name, namespace, **kwargs):
        seen.update(kwargs)
        return client.V1Pod(
            metadata=client.V1ObjectMeta(name=name, namespace=namespace, labels={"app": "cs"}),
            spec=client.V1PodSpec(node_name="slave01", containers=[]),
            status=client.V1PodStatus(phase="Running"),
        )

    kube._core_api = type("CoreApi", (), {"read_namespaced_pod": staticmethod(read_namespaced_pod)})()

    pod = await kube.get_pod("my-project", "customer-service-12-abcd")

    assert pod.metadata.name == "customer-service-12-abcd"
    assert pod.metadata.labels == {"app": "cs"}
    assert pod.spec.node_name == "slave01"
    assert pod.is_running
    assert seen["_request_timeout"] == settings.kubernetes.request_timeout_seconds
    kube.close()
