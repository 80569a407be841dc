from enum import Enum
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

# ----------------------------------------------------------------------
# Kubernetes
# ----------------------------------------------------------------------


class K8sMetadata(BaseModel):
    name: str = ""
    namespace: str = ""
    generateName: str | None = None
    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}

    # Assigned by the server.
    uid: str | None = None
    resourceVersion: str | None = None
    generation: int | None = None
    selfLink: str | None = None
    creationTimestamp: Any = None


class K8sEnvVar(BaseModel):
    name: str
    value: str = ""
    valueFrom: Any = None


class K8sContainerPort(BaseModel):
    containerPort: int
    name: str | None = None
    protocol: str | None = None


class K8sResourceRequirements(BaseModel):
    limits: Dict[str, str] = {}
    requests: Dict[str, str] = {}


class K8sContainer(BaseModel):
    name: str = ""
    image: str = ""
    command: List[str] = []
    args: List[str] = []
    workingDir: str | None = None
    env: List[K8sEnvVar] = []
    ports: List[K8sContainerPort] = []
    resources: K8sResourceRequirements = K8sResourceRequirements()
    imagePullPolicy: str | None = None
    terminationMessagePath: Any = None
    terminationMessagePolicy: Any = None


class K8sPodSpec(BaseModel):
    containers: List[K8sContainer] = []
    restartPolicy: str | None = None
    serviceAccountName: str | None = None
    nodeSelector: Dict[str, str] = {}
    dnsPolicy: str | None = None
    hostNetwork: bool | None = None
    terminationGracePeriodSeconds: int | None = None
    schedulerName: Any = None
    securityContext: Any = None


class K8sPodTemplate(BaseModel):
    metadata: K8sMetadata = K8sMetadata()
    spec: K8sPodSpec = K8sPodSpec()


class K8sLabelSelector(BaseModel):
    matchLabels: Dict[str, str] = {}


class K8sRollingUpdate(BaseModel):
    # K8s reports either absolute numbers or percentages, eg `1` or "25%".
    maxSurge: int | str | None = None
    maxUnavailable: int | str | None = None


class K8sDeploymentStrategy(BaseModel):
    type: str | None = None
    rollingUpdate: K8sRollingUpdate | None = None


class K8sDeploymentSpec(BaseModel):
    replicas: int | None = None
    selector: K8sLabelSelector = K8sLabelSelector()
    template: K8sPodTemplate = K8sPodTemplate()
    minReadySeconds: int | None = None
    paused: bool | None = None
    progressDeadlineSeconds: int | None = None
    revisionHistoryLimit: int | None = None
    strategy: K8sDeploymentStrategy | None = None


class K8sDeploymentStatus(BaseModel):
    replicas: int = 0
    readyReplicas: int = 0
    updatedReplicas: int = 0
    availableReplicas: int = 0
    observedGeneration: int = 0


class K8sDeployment(BaseModel):
    apiVersion: str = "apps/v1"
    kind: str = "Deployment"
    metadata: K8sMetadata = K8sMetadata()
    spec: K8sDeploymentSpec = K8sDeploymentSpec()
    status: K8sDeploymentStatus = K8sDeploymentStatus()


class K8sPolicyRule(BaseModel):
    apiGroups: List[str] = []
    nonResourceURLs: List[str] = []
    resourceNames: List[str] = []
    resources: List[str] = []
    verbs: List[str] = []


class K8sRole(BaseModel):
    apiVersion: str = "rbac.authorization.k8s.io/v1"
    kind: str = "Role"
    metadata: K8sMetadata = K8sMetadata()
    rules: List[K8sPolicyRule] = []


# ----------------------------------------------------------------------
# Desired Configuration Trees.
# ----------------------------------------------------------------------


class MetadataConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = ""
    namespace: str = ""
    generate_name: str = ""
    labels: Dict[str, str] = {}
    annotations: Dict[str, str] = {}

    # Computed: always populated from the observed object.
    generation: int = 0
    resource_version: str = ""
    self_link: str = ""
    uid: str = ""

    # Computed: the K8s owned keys we do not report in `labels` and `annotations`.
    internal_labels: Dict[str, str] = {}
    internal_annotations: Dict[str, str] = {}


class EnvVarConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    value: str = ""


class ContainerPortConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    container_port: int
    name: str = ""
    protocol: str = "TCP"


class ResourcesConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    limits: Dict[str, str] = {}
    requests: Dict[str, str] = {}


class ContainerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    image: str = ""
    command: List[str] = []
    args: List[str] = []
    working_dir: str = ""
    env: List[EnvVarConfig] = []
    port: List[ContainerPortConfig] = []
    resources: List[ResourcesConfig] = Field(default=[], max_length=1)
    image_pull_policy: str = ""


class PodSpecConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    container: List[ContainerConfig] = []
    restart_policy: str = ""
    service_account_name: str = ""
    node_selector: Dict[str, str] = {}
    dns_policy: str = ""
    host_network: bool = False
    # Negative means "not set", ie use the server default.
    termination_grace_period_seconds: int = -1


class PodTemplateConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    metadata: List[MetadataConfig] = Field(default=[], max_length=1)
    spec: List[PodSpecConfig] = Field(default=[], max_length=1)


class RollingUpdateConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    max_surge: str = "1"
    max_unavailable: str = "1"


class StrategyConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: str = ""
    rolling_update: List[RollingUpdateConfig] = Field(default=[], max_length=1)


class DeploymentSpecConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    min_ready_seconds: int = 0
    paused: bool = False
    progress_deadline_seconds: int = 600
    replicas: int = 1
    revision_history_limit: int = 10
    selector: Dict[str, str] = {}
    strategy: List[StrategyConfig] = Field(default=[], max_length=1)
    template: List[PodTemplateConfig] = Field(default=[], max_length=1)


class DeploymentConfig(BaseModel):
    """Desired state of a Deployment."""

    model_config = ConfigDict(extra="forbid")

    metadata: List[MetadataConfig] = Field(default=[], max_length=1)
    spec: List[DeploymentSpecConfig] = Field(default=[], max_length=1)


class PolicyRuleConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    api_groups: List[str] = []
    non_resource_urls: List[str] = []
    resource_names: List[str] = []
    resources: List[str] = []
    verbs: List[str] = []


class RoleConfig(BaseModel):
    """Desired state of an RBAC Role."""

    model_config = ConfigDict(extra="forbid")

    metadata: List[MetadataConfig] = Field(default=[], max_length=1)
    policy_rule: List[PolicyRuleConfig] = []


# ----------------------------------------------------------------------
# JSON Patch operations.
# ----------------------------------------------------------------------


class AddOperation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    op: Literal["add"] = "add"
    path: str
    value: Any


class ReplaceOperation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    op: Literal["replace"] = "replace"
    path: str
    value: Any


class RemoveOperation(BaseModel):
    model_config = ConfigDict(extra="forbid")

    op: Literal["remove"] = "remove"
    path: str


PatchOperation = Annotated[
    Union[AddOperation, ReplaceOperation, RemoveOperation],
    Field(discriminator="op"),
]


# ----------------------------------------------------------------------
# Internal Models.
# ----------------------------------------------------------------------


class Identity(BaseModel):
    """Address of a resource in the cluster."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    namespace: str
    name: str


class Presence(str, Enum):
    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"


class VersionedRecord(BaseModel):
    """Flat attribute map as persisted by the orchestration layer."""

    model_config = ConfigDict(extra="forbid")

    version: int = 0
    attributes: Dict[str, str] = {}


class Timeouts(BaseModel):
    model_config = ConfigDict(extra="forbid")

    # Seconds.
    create: float = 600
    update: float = 600
    delete: float = 600


class ControllerConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kubeconfig: Path
    kubecontext: str
    loglevel: str = "info"

    # Place resources without an explicit namespace here.
    default_namespace: str = "default"

    # Convergence polling starts at `poll_interval` and backs off towards
    # `max_poll_interval` (both in seconds).
    poll_interval: float = 2
    max_poll_interval: float = 20
    timeouts: Timeouts = Timeouts()
