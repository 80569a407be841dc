import copy
from pathlib import Path
from unittest import mock

import pytest
import yaml
from httpx import AsyncClient
from square.dtypes import K8sConfig

import kubeconverge.converge
import kubeconverge.logstreams
from kubeconverge.models import (
    ContainerConfig,
    ContainerPortConfig,
    ControllerConfig,
    DeploymentConfig,
    DeploymentSpecConfig,
    MetadataConfig,
    PodSpecConfig,
    PodTemplateConfig,
    PolicyRuleConfig,
    RoleConfig,
    Timeouts,
)

# Base URL of the fake K8s API server.
BASE_URL = "https://k8s.example.com"

SUPPORT = Path(__file__).parent / "support"


def pytest_configure(*args, **kwargs):
    """Pytest calls this hook on startup."""
    # Set log level to DEBUG for all unit tests.
    kubeconverge.logstreams.setup("DEBUG")


def get_controller_config() -> ControllerConfig:
    return ControllerConfig(
        kubeconfig=Path("/tmp/kind-kubeconf.yaml"),
        kubecontext="kind-kind",
        loglevel="info",
        default_namespace="default",
        poll_interval=1,
        max_poll_interval=4,
        timeouts=Timeouts(create=60, update=60, delete=60),
    )


def load_manifest(name: str) -> dict:
    """Return a fresh copy of the manifest in `tests/support/{name}.yaml`."""
    return copy.deepcopy(yaml.safe_load((SUPPORT / f"{name}.yaml").read_text()))


def make_deployment_config(
    name: str = "demo", namespace: str = "default", replicas: int = 3
) -> DeploymentConfig:
    """Return the configuration a user would write for `support/deployment.yaml`."""
    container = ContainerConfig(
        name="nginx",
        image="nginx:1.27",
        port=[ContainerPortConfig(container_port=80)],
    )
    template = PodTemplateConfig(
        metadata=[MetadataConfig(labels={"app": "demo"})],
        spec=[PodSpecConfig(container=[container])],
    )
    return DeploymentConfig(
        metadata=[MetadataConfig(name=name, namespace=namespace, labels={"app": "demo"})],
        spec=[DeploymentSpecConfig(replicas=replicas, template=[template])],
    )


def make_role_config(name: str = "pod-reader") -> RoleConfig:
    rule = PolicyRuleConfig(
        api_groups=[""], resources=["pods"], verbs=["get", "list", "watch"]
    )
    return RoleConfig(
        metadata=[MetadataConfig(name=name, namespace="default", labels={"team": "platform"})],
        policy_rule=[rule],
    )


def deployment_manifest(replicas: int = 3, observed: int = 3) -> dict:
    """Return the Deployment manifest with `replicas` desired and `observed` replicas."""
    manifest = load_manifest("deployment")
    manifest["spec"]["replicas"] = replicas
    manifest["status"]["replicas"] = observed
    return manifest


@pytest.fixture
def nosleep():
    """Do not actually sleep between convergence polls."""
    with mock.patch.object(
        kubeconverge.converge, "_mysleep", new_callable=mock.AsyncMock
    ) as m_sleep:
        yield m_sleep


@pytest.fixture
async def k8scfg(respx_mock):
    """Return a K8s config whose client talks to the mocked `BASE_URL`."""
    async with AsyncClient(base_url=BASE_URL) as client:
        yield K8sConfig(client=client)
