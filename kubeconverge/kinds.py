"""Everything the lifecycle controller needs to know about a resource kind."""

import abc
from typing import Any, Callable, Dict, List, Tuple, Type

from pydantic import BaseModel

import kubeconverge.migrate
import kubeconverge.translate as translate
from kubeconverge.models import (
    DeploymentConfig,
    K8sDeployment,
    K8sRole,
    PatchOperation,
    ReplaceOperation,
    RoleConfig,
)

MigrationStep = Callable[[Dict[str, str]], Dict[str, str]]


class ResourceKind(abc.ABC):
    """Capabilities of one K8s resource kind.

    The `LifecycleController` is generic over this interface.

    """

    kind: str
    api_prefix: str  # eg "/apis/apps/v1"
    plural: str  # eg "deployments"
    config_model: Type[BaseModel]

    # JSON pointer of the part we replace wholesale on updates.
    spec_path: str

    # Current schema version of persisted records and the migration steps to
    # get there, ie `migrations[v]` upgrades a record from `v` to `v + 1`.
    schema_version: int = 0
    migrations: Dict[int, MigrationStep] = {}

    # `propagationPolicy` of the DeleteOptions, empty for the K8s default.
    propagation_policy: str = ""

    @abc.abstractmethod
    def expand(self, cfg: Any) -> Any:
        """Return the typed K8s object for the configuration `cfg`."""

    @abc.abstractmethod
    def flatten(self, obj: Any, prior: Any) -> Any:
        """Return the configuration tree for the K8s object `obj`."""

    @abc.abstractmethod
    def parse(self, manifest: dict) -> Any:
        """Return the typed K8s object for a raw `manifest` from K8s."""

    @abc.abstractmethod
    def mutable_spec(self, cfg: Any) -> Any:
        """Return the part of `cfg` that triggers a spec replacement if it changes."""

    @abc.abstractmethod
    def spec_payload(self, cfg: Any) -> Any:
        """Return the value we submit at `spec_path`."""

    def dump(self, obj: BaseModel) -> dict:
        """Return the request body for `obj`."""
        return obj.model_dump(exclude_none=True, exclude={"status"})

    def empty_config(self) -> Any:
        return self.config_model()

    def resolve_computed(self, old: Any, new: Any) -> Any:
        """Fill the computed fields `new` left empty with those from `old`."""
        return new

    def is_converged(self, obj: Any) -> bool:
        return True

    def progress(self, obj: Any) -> Tuple[Any, Any] | None:
        """Return the current and desired value the convergence wait tracks."""
        return None

    def drain_patch(self) -> List[PatchOperation]:
        """Return the operations that must converge before a delete."""
        return []


class DeploymentKind(ResourceKind):
    kind = "Deployment"
    api_prefix = "/apis/apps/v1"
    plural = "deployments"
    config_model = DeploymentConfig
    spec_path = "/spec"
    propagation_policy = "Foreground"
    schema_version = kubeconverge.migrate.DEPLOYMENT_SCHEMA_VERSION
    migrations = kubeconverge.migrate.DEPLOYMENT_MIGRATIONS

    def expand(self, cfg: DeploymentConfig) -> K8sDeployment:
        return translate.expand_deployment(cfg)

    def flatten(self, obj: K8sDeployment, prior: DeploymentConfig) -> DeploymentConfig:
        return translate.flatten_deployment(obj, prior)

    def parse(self, manifest: dict) -> K8sDeployment:
        return K8sDeployment.model_validate(manifest)

    def mutable_spec(self, cfg: DeploymentConfig) -> Any:
        # The selector of a Deployment is immutable and the internal template
        # keys are not ours to manage.
        if len(cfg.spec) == 0:
            return None
        internal = {"internal_labels", "internal_annotations"}
        return cfg.spec[0].model_dump(
            exclude={
                "selector": True,
                "template": {"__all__": {"metadata": {"__all__": internal}}},
            }
        )

    def spec_payload(self, cfg: DeploymentConfig) -> dict:
        spec = translate.expand_deployment_spec(cfg.spec[0])
        return spec.model_dump(exclude_none=True)

    def resolve_computed(self, old: DeploymentConfig, new: DeploymentConfig) -> DeploymentConfig:
        if len(old.spec) == 0 or len(new.spec) == 0:
            return new

        new = new.model_copy(deep=True)
        old_spec, new_spec = old.spec[0], new.spec[0]

        if len(new_spec.selector) == 0:
            new_spec.selector = dict(old_spec.selector)
        if len(new_spec.strategy) == 0:
            new_spec.strategy = [_.model_copy(deep=True) for _ in old_spec.strategy]

        # Pod spec defaults.
        try:
            old_pod = old_spec.template[0].spec[0]
            new_pod = new_spec.template[0].spec[0]
        except IndexError:
            return new

        new_pod.restart_policy = new_pod.restart_policy or old_pod.restart_policy
        new_pod.dns_policy = new_pod.dns_policy or old_pod.dns_policy
        if new_pod.termination_grace_period_seconds < 0:
            new_pod.termination_grace_period_seconds = old_pod.termination_grace_period_seconds

        old_containers = {_.name: _ for _ in old_pod.container}
        for cont in new_pod.container:
            if cont.image_pull_policy == "" and cont.name in old_containers:
                cont.image_pull_policy = old_containers[cont.name].image_pull_policy
        return new

    def is_converged(self, obj: K8sDeployment) -> bool:
        current, desired = self.progress(obj)
        return current == desired

    def progress(self, obj: K8sDeployment) -> Tuple[int, int]:
        # K8s defaults the replica count to 1.
        desired = obj.spec.replicas if obj.spec.replicas is not None else 1
        return obj.status.replicas, desired

    def drain_patch(self) -> List[PatchOperation]:
        return [ReplaceOperation(path="/spec/replicas", value=0)]


class RoleKind(ResourceKind):
    kind = "Role"
    api_prefix = "/apis/rbac.authorization.k8s.io/v1"
    plural = "roles"
    config_model = RoleConfig
    spec_path = "/rules"

    def expand(self, cfg: RoleConfig) -> K8sRole:
        return translate.expand_role(cfg)

    def flatten(self, obj: K8sRole, prior: RoleConfig) -> RoleConfig:
        return translate.flatten_role(obj, prior)

    def parse(self, manifest: dict) -> K8sRole:
        # K8s reports `rules: null` for Roles without any rules.
        if manifest.get("rules", None) is None:
            manifest = manifest | {"rules": []}
        return K8sRole.model_validate(manifest)

    def mutable_spec(self, cfg: RoleConfig) -> Any:
        return [_.model_dump() for _ in cfg.policy_rule]

    def spec_payload(self, cfg: RoleConfig) -> list:
        rules = translate.expand_policy_rules(cfg.policy_rule)
        return [_.model_dump(exclude_none=True) for _ in rules]
