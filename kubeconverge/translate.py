"""Convert desired configuration trees into K8s objects and back.

`expand_*` functions turn a configuration tree into the typed K8s object and
validate the cross field constraints that the shape validation cannot catch.
`flatten_*` functions do the reverse and never fail: whatever K8s returns is
taken at face value.

"""

from typing import Dict, List

from kubeconverge.errors import InvalidShape
from kubeconverge.models import (
    ContainerConfig,
    ContainerPortConfig,
    DeploymentConfig,
    DeploymentSpecConfig,
    EnvVarConfig,
    K8sContainer,
    K8sContainerPort,
    K8sDeployment,
    K8sDeploymentSpec,
    K8sDeploymentStrategy,
    K8sEnvVar,
    K8sLabelSelector,
    K8sMetadata,
    K8sPodSpec,
    K8sPodTemplate,
    K8sPolicyRule,
    K8sResourceRequirements,
    K8sRole,
    K8sRollingUpdate,
    MetadataConfig,
    PodSpecConfig,
    PodTemplateConfig,
    PolicyRuleConfig,
    ResourcesConfig,
    RoleConfig,
    RollingUpdateConfig,
    StrategyConfig,
)


def is_internal_key(key: str) -> bool:
    """Return `True` if K8s owns the label or annotation `key`.

    These are the keys with a prefix in the `kubernetes.io` domain, eg
    `deployment.kubernetes.io/revision`.

    """
    if "/" not in key:
        return False
    return key.split("/", 1)[0].endswith("kubernetes.io")


def remove_internal_keys(observed: Dict[str, str], declared: Dict[str, str]) -> Dict[str, str]:
    """Return `observed` without the internal keys the user did not declare."""
    return {k: v for k, v in observed.items() if k in declared or not is_internal_key(k)}


def reconcile_labels(observed: Dict[str, str], declared: Dict[str, str]) -> Dict[str, str]:
    """Return the union of `declared` and `observed` labels.

    The `observed` labels win on key collisions. This ensures that a read
    never erases the labels the user declared but still surfaces the ones K8s
    (or someone else) added.

    """
    return declared | observed


def _first(blocks: list, path: str):
    """Return the only element of a singular block or raise `InvalidShape`."""
    if len(blocks) == 0:
        raise InvalidShape(path)
    return blocks[0]


# ----------------------------------------------------------------------
# Metadata.
# ----------------------------------------------------------------------
def expand_metadata(blocks: List[MetadataConfig]) -> K8sMetadata:
    # Metadata is optional in Pod templates.
    if len(blocks) == 0:
        return K8sMetadata()
    meta = blocks[0]
    return K8sMetadata(
        name=meta.name,
        namespace=meta.namespace,
        generateName=meta.generate_name or None,
        labels=dict(meta.labels),
        annotations=dict(meta.annotations),
    )


def flatten_metadata(meta: K8sMetadata, prior: List[MetadataConfig]) -> List[MetadataConfig]:
    """Return the metadata block for `meta`.

    Labels are reconciled against the `prior` block of the same level only,
    ie top level labels never leak into the Pod template or vice versa. This
    is what makes a read return the labels the user declared at each level.

    The internal keys K8s added are not part of `labels` and `annotations`
    but we keep them in the computed `internal_*` fields since the patch
    builder must know whether K8s already has a map there.

    """
    declared = prior[0] if len(prior) > 0 else MetadataConfig()
    labels = remove_internal_keys(meta.labels, declared.labels)
    annotations = remove_internal_keys(meta.annotations, declared.annotations)

    out = MetadataConfig(
        name=meta.name,
        namespace=meta.namespace,
        generate_name=meta.generateName or "",
        labels=reconcile_labels(labels, declared.labels),
        annotations=annotations,
        generation=meta.generation or 0,
        resource_version=meta.resourceVersion or "",
        self_link=meta.selfLink or "",
        uid=meta.uid or "",
        internal_labels={k: v for k, v in meta.labels.items() if k not in labels},
        internal_annotations={
            k: v for k, v in meta.annotations.items() if k not in annotations
        },
    )
    return [out]


# ----------------------------------------------------------------------
# Pod.
# ----------------------------------------------------------------------
def expand_container(cont: ContainerConfig) -> K8sContainer:
    resources = K8sResourceRequirements()
    if len(cont.resources) > 0:
        resources = K8sResourceRequirements(
            limits=dict(cont.resources[0].limits),
            requests=dict(cont.resources[0].requests),
        )

    return K8sContainer(
        name=cont.name,
        image=cont.image,
        command=list(cont.command),
        args=list(cont.args),
        workingDir=cont.working_dir or None,
        env=[K8sEnvVar(name=_.name, value=_.value) for _ in cont.env],
        ports=[
            K8sContainerPort(
                containerPort=_.container_port,
                name=_.name or None,
                protocol=_.protocol or None,
            )
            for _ in cont.port
        ],
        resources=resources,
        imagePullPolicy=cont.image_pull_policy or None,
    )


def flatten_container(cont: K8sContainer) -> ContainerConfig:
    resources = []
    if cont.resources.limits or cont.resources.requests:
        resources = [
            ResourcesConfig(
                limits=dict(cont.resources.limits),
                requests=dict(cont.resources.requests),
            )
        ]

    return ContainerConfig(
        name=cont.name,
        image=cont.image,
        command=list(cont.command),
        args=list(cont.args),
        working_dir=cont.workingDir or "",
        env=[EnvVarConfig(name=_.name, value=_.value) for _ in cont.env],
        port=[
            ContainerPortConfig(
                container_port=_.containerPort,
                name=_.name or "",
                protocol=_.protocol or "TCP",
            )
            for _ in cont.ports
        ],
        resources=resources,
        image_pull_policy=cont.imagePullPolicy or "",
    )


def expand_pod_spec(spec: PodSpecConfig, path: str) -> K8sPodSpec:
    if len(spec.container) == 0:
        raise InvalidShape(f"{path}.container", "at least one container is required")

    grace = spec.termination_grace_period_seconds
    return K8sPodSpec(
        containers=[expand_container(_) for _ in spec.container],
        restartPolicy=spec.restart_policy or None,
        serviceAccountName=spec.service_account_name or None,
        nodeSelector=dict(spec.node_selector),
        dnsPolicy=spec.dns_policy or None,
        hostNetwork=spec.host_network or None,
        terminationGracePeriodSeconds=grace if grace >= 0 else None,
    )


def flatten_pod_spec(spec: K8sPodSpec) -> PodSpecConfig:
    grace = spec.terminationGracePeriodSeconds
    return PodSpecConfig(
        container=[flatten_container(_) for _ in spec.containers],
        restart_policy=spec.restartPolicy or "",
        service_account_name=spec.serviceAccountName or "",
        node_selector=dict(spec.nodeSelector),
        dns_policy=spec.dnsPolicy or "",
        host_network=bool(spec.hostNetwork),
        termination_grace_period_seconds=grace if grace is not None else -1,
    )


def expand_pod_template(tpl: PodTemplateConfig, path: str) -> K8sPodTemplate:
    pod_spec = _first(tpl.spec, f"{path}.spec")
    return K8sPodTemplate(
        metadata=expand_metadata(tpl.metadata),
        spec=expand_pod_spec(pod_spec, f"{path}.spec.0"),
    )


def flatten_pod_template(tpl: K8sPodTemplate, prior: List[PodTemplateConfig]) -> PodTemplateConfig:
    prior_meta = prior[0].metadata if len(prior) > 0 else []
    metadata = flatten_metadata(tpl.metadata, prior_meta)

    # Templates declared without metadata come back with an empty block.
    meta = metadata[0]
    if len(prior_meta) == 0 and len(meta.labels) == 0 and len(meta.annotations) == 0:
        metadata = []

    return PodTemplateConfig(
        metadata=metadata,
        spec=[flatten_pod_spec(tpl.spec)],
    )


# ----------------------------------------------------------------------
# Deployment.
# ----------------------------------------------------------------------
def int_or_string(value: str) -> int | str | None:
    """Return `value` as K8s expects an IntOrString field, eg 2 or "25%"."""
    if value == "":
        return None
    return int(value) if value.isdigit() else value


def expand_strategy(blocks: List[StrategyConfig]) -> K8sDeploymentStrategy | None:
    if len(blocks) == 0:
        return None

    strategy = blocks[0]
    rolling = None
    if len(strategy.rolling_update) > 0:
        rolling = K8sRollingUpdate(
            maxSurge=int_or_string(strategy.rolling_update[0].max_surge),
            maxUnavailable=int_or_string(strategy.rolling_update[0].max_unavailable),
        )
    return K8sDeploymentStrategy(type=strategy.type or None, rollingUpdate=rolling)


def flatten_strategy(strategy: K8sDeploymentStrategy | None) -> List[StrategyConfig]:
    if strategy is None:
        return []

    rolling = []
    if strategy.rollingUpdate is not None:
        ru = strategy.rollingUpdate
        rolling = [
            RollingUpdateConfig(
                max_surge="" if ru.maxSurge is None else str(ru.maxSurge),
                max_unavailable="" if ru.maxUnavailable is None else str(ru.maxUnavailable),
            )
        ]
    return [StrategyConfig(type=strategy.type or "", rolling_update=rolling)]


def expand_deployment_spec(spec: DeploymentSpecConfig) -> K8sDeploymentSpec:
    template = expand_pod_template(_first(spec.template, "spec.0.template"), "spec.0.template.0")

    # Default the selector to the labels of the Pod template like K8s does.
    selector = dict(spec.selector) or dict(template.metadata.labels)
    if len(selector) == 0:
        raise InvalidShape(
            "spec.0.selector", "need either a selector or Pod template labels"
        )

    return K8sDeploymentSpec(
        replicas=spec.replicas,
        selector=K8sLabelSelector(matchLabels=selector),
        template=template,
        minReadySeconds=spec.min_ready_seconds,
        paused=spec.paused,
        progressDeadlineSeconds=spec.progress_deadline_seconds,
        revisionHistoryLimit=spec.revision_history_limit,
        strategy=expand_strategy(spec.strategy),
    )


def expand_deployment(cfg: DeploymentConfig) -> K8sDeployment:
    """Return the K8s Deployment for the desired configuration `cfg`."""
    meta = _first(cfg.metadata, "metadata")
    spec = _first(cfg.spec, "spec")
    if meta.name == "" and meta.generate_name == "":
        raise InvalidShape("metadata.0.name", "need either a name or a generate_name")

    return K8sDeployment(
        metadata=expand_metadata(cfg.metadata),
        spec=expand_deployment_spec(spec),
    )


def flatten_deployment(obj: K8sDeployment, prior: DeploymentConfig) -> DeploymentConfig:
    """Return the configuration tree that describes the observed `obj`.

    The `prior` configuration only contributes the labels the user declared
    (see `reconcile_labels`). All other values, including the computed ones,
    come from `obj`.

    """
    prior_template = prior.spec[0].template if len(prior.spec) > 0 else []

    # Only take values K8s actually reported and let the model supply the
    # defaults for everything else.
    values = dict(
        min_ready_seconds=obj.spec.minReadySeconds,
        paused=obj.spec.paused,
        progress_deadline_seconds=obj.spec.progressDeadlineSeconds,
        replicas=obj.spec.replicas,
        revision_history_limit=obj.spec.revisionHistoryLimit,
    )
    values = {k: v for k, v in values.items() if v is not None}

    spec = DeploymentSpecConfig(
        **values,
        selector=dict(obj.spec.selector.matchLabels),
        strategy=flatten_strategy(obj.spec.strategy),
        template=[flatten_pod_template(obj.spec.template, prior_template)],
    )
    return DeploymentConfig(
        metadata=flatten_metadata(obj.metadata, prior.metadata),
        spec=[spec],
    )


# ----------------------------------------------------------------------
# Role.
# ----------------------------------------------------------------------
def expand_policy_rules(rules: List[PolicyRuleConfig]) -> List[K8sPolicyRule]:
    return [
        K8sPolicyRule(
            apiGroups=list(_.api_groups),
            nonResourceURLs=list(_.non_resource_urls),
            resourceNames=list(_.resource_names),
            resources=list(_.resources),
            verbs=list(_.verbs),
        )
        for _ in rules
    ]


def expand_role(cfg: RoleConfig) -> K8sRole:
    """Return the K8s Role for the desired configuration `cfg`."""
    meta = _first(cfg.metadata, "metadata")
    if meta.name == "" and meta.generate_name == "":
        raise InvalidShape("metadata.0.name", "need either a name or a generate_name")

    return K8sRole(
        metadata=expand_metadata(cfg.metadata),
        rules=expand_policy_rules(cfg.policy_rule),
    )


def flatten_role(obj: K8sRole, prior: RoleConfig) -> RoleConfig:
    rules = [
        PolicyRuleConfig(
            api_groups=list(_.apiGroups),
            non_resource_urls=list(_.nonResourceURLs),
            resource_names=list(_.resourceNames),
            resources=list(_.resources),
            verbs=list(_.verbs),
        )
        for _ in obj.rules
    ]
    return RoleConfig(
        metadata=flatten_metadata(obj.metadata, prior.metadata),
        policy_rule=rules,
    )
