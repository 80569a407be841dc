import logging
import os
from pathlib import Path
from typing import Tuple

from kubeconverge.k8s import ResourceApi, create_cluster_config
from kubeconverge.kinds import ResourceKind
from kubeconverge.lifecycle import LifecycleController
from kubeconverge.models import ControllerConfig, Timeouts

# Convenience.
logit = logging.getLogger("kubeconverge")


def compile_config() -> Tuple[ControllerConfig, bool]:
    """Return the controller configuration from the environment variables."""
    get = os.getenv
    try:
        cfg = ControllerConfig(
            kubeconfig=Path(get("KUBECONFIG", "")),
            kubecontext=get("KUBECONTEXT", ""),
            loglevel=get("KUBECONVERGE_LOGLEVEL", "info"),
            default_namespace=get("KUBECONVERGE_NAMESPACE", "default"),
            poll_interval=float(get("KUBECONVERGE_POLL_INTERVAL", "2")),
            max_poll_interval=float(get("KUBECONVERGE_MAX_POLL_INTERVAL", "20")),
            timeouts=Timeouts(
                create=float(get("KUBECONVERGE_CREATE_TIMEOUT", "600")),
                update=float(get("KUBECONVERGE_UPDATE_TIMEOUT", "600")),
                delete=float(get("KUBECONVERGE_DELETE_TIMEOUT", "600")),
            ),
        )
    except ValueError as e:
        logit.error("invalid environment variables", {"reason": str(e)})
        return ControllerConfig(kubeconfig=Path(""), kubecontext=""), True

    if cfg.poll_interval <= 0 or cfg.max_poll_interval < cfg.poll_interval:
        logit.error(
            "invalid poll intervals",
            {"poll": cfg.poll_interval, "max": cfg.max_poll_interval},
        )
        return cfg, True
    return cfg, False


def make_controller(
    cfg: ControllerConfig, kind: ResourceKind
) -> Tuple[LifecycleController, bool]:
    """Return a `LifecycleController` for `kind` connected to the cluster in `cfg`."""
    k8scfg, err = create_cluster_config(cfg.kubeconfig, cfg.kubecontext)
    if err:
        logit.error(
            "cannot load cluster config",
            {"kubeconfig": str(cfg.kubeconfig), "context": cfg.kubecontext},
        )
        return LifecycleController(ResourceApi(k8scfg, "", ""), kind, cfg), True

    api = ResourceApi(k8scfg, kind.api_prefix, kind.plural)
    return LifecycleController(api, kind, cfg), False
