"""Create, read, update and delete one K8s resource and wait for convergence.

Every operation receives the resource key (see `kubeconverge.identity`) and
the configuration tree and returns the updated tree. Errors propagate
unmodified, except that `exists` maps "not found" to `False`.

"""

import logging
from typing import Any, Tuple

from kubeconverge.converge import wait_for_convergence
from kubeconverge.errors import KubeConvergeError, NotFound
from kubeconverge.identity import build_id, parse_id
from kubeconverge.k8s import ResourceApi
from kubeconverge.kinds import ResourceKind
from kubeconverge.models import ControllerConfig, Identity, Presence
from kubeconverge.patch import build_patch, serialize

# Convenience.
logit = logging.getLogger("kubeconverge")


class LifecycleController:
    """Orchestrate the lifecycle of resources of one `kind`.

    Usage:

    api = ResourceApi(k8scfg, kind.api_prefix, kind.plural)
    ctrl = LifecycleController(api, DeploymentKind(), cfg)
    resource_id, observed = await ctrl.create(desired)
    observed = await ctrl.update(resource_id, observed, desired)
    resource_id = await ctrl.delete(resource_id)

    """

    def __init__(self, api: ResourceApi, kind: ResourceKind, cfg: ControllerConfig):
        self.api = api
        self.kind = kind
        self.cfg = cfg

    def get_logging_metadata(self, resource_id: str) -> dict:
        return {"component": "lifecycle", "kind": self.kind.kind, "id": resource_id}

    async def wait_for_convergence(self, ident: Identity, timeout: float) -> Any:
        async def get_status():
            manifest = await self.api.get(ident.namespace, ident.name)
            return self.kind.parse(manifest)

        return await wait_for_convergence(
            get_status,
            self.kind.is_converged,
            timeout,
            progress=self.kind.progress,
            interval=self.cfg.poll_interval,
            max_interval=self.cfg.max_poll_interval,
        )

    async def create(self, cfg: Any) -> Tuple[str, Any]:
        """Create the resource and return its key and the observed configuration.

        If the resource was created but did not converge then the raised
        error carries the resource key in its `identity` attribute. The caller
        must treat the resource as existing and refresh it with `read`.

        """
        obj = self.kind.expand(cfg)
        if obj.metadata.namespace == "":
            obj.metadata.namespace = self.cfg.default_namespace

        meta_log = {"component": "lifecycle", "kind": self.kind.kind}
        ident_log = {"id": build_id(obj.metadata.namespace, obj.metadata.name)}
        logit.info("creating", meta_log | ident_log)
        manifest = await self.api.create(obj.metadata.namespace, self.kind.dump(obj))

        # Use the namespace and name from K8s since it may have generated the name.
        out = self.kind.parse(manifest)
        resource_id = build_id(out.metadata.namespace, out.metadata.name)
        ident = parse_id(resource_id)

        try:
            await self.wait_for_convergence(ident, self.cfg.timeouts.create)
            observed = await self.read(resource_id, cfg)
        except KubeConvergeError as err:
            err.identity = resource_id
            raise
        logit.info("created", self.get_logging_metadata(resource_id))
        return resource_id, observed

    async def read(self, resource_id: str, prior: Any) -> Any:
        """Return the observed configuration of the resource.

        Raises `NotFound` if the resource does not exist anymore. It is up to
        the caller to drop its local record in that case.

        """
        ident = parse_id(resource_id)
        logit.debug("reading", self.get_logging_metadata(resource_id))
        manifest = await self.api.get(ident.namespace, ident.name)
        return self.kind.flatten(self.kind.parse(manifest), prior)

    async def import_resource(self, resource_id: str) -> Any:
        """Return the configuration of an existing resource we have no record of."""
        return await self.read(resource_id, self.kind.empty_config())

    async def update(self, resource_id: str, old: Any, new: Any) -> Any:
        """Patch the resource from the `old` to the `new` configuration."""
        ident = parse_id(resource_id)
        meta_log = self.get_logging_metadata(resource_id)

        ops = build_patch(self.kind, old, new)
        if len(ops) == 0:
            logit.info("nothing to update", meta_log)
        else:
            body = serialize(ops)
            logit.info("updating", meta_log | {"patch": body})
            await self.api.patch(ident.namespace, ident.name, body)
            await self.wait_for_convergence(ident, self.cfg.timeouts.update)

        return await self.read(resource_id, self.kind.resolve_computed(old, new))

    async def delete(self, resource_id: str) -> str:
        """Drain and delete the resource and return the cleared resource key."""
        ident = parse_id(resource_id)
        meta_log = self.get_logging_metadata(resource_id)

        # Scale down to zero and wait until that happened, eg all Pods of a
        # Deployment are gone.
        drain = self.kind.drain_patch()
        if len(drain) > 0:
            logit.info("draining", meta_log)
            await self.api.patch(ident.namespace, ident.name, serialize(drain))
            await self.wait_for_convergence(ident, self.cfg.timeouts.delete)

        await self.api.delete(ident.namespace, ident.name, self.kind.propagation_policy)
        logit.info("deleted", meta_log)
        return ""

    async def presence(self, resource_id: str) -> Presence:
        """Return whether the resource exists, or `UNKNOWN` if K8s did not say."""
        ident = parse_id(resource_id)
        try:
            await self.api.get(ident.namespace, ident.name)
        except NotFound:
            return Presence.ABSENT
        except KubeConvergeError as err:
            meta_log = self.get_logging_metadata(resource_id)
            logit.warning("cannot determine presence", meta_log | {"reason": str(err)})
            return Presence.UNKNOWN
        return Presence.PRESENT

    async def exists(self, resource_id: str) -> Tuple[bool, KubeConvergeError | None]:
        """Return `(False, None)` if K8s reports the resource as missing.

        Any other error yields `(True, err)`: the resource is assumed to
        exist so that an unreachable cluster does not make the caller forget
        about real resources.

        """
        ident = parse_id(resource_id)
        try:
            await self.api.get(ident.namespace, ident.name)
        except NotFound:
            return False, None
        except KubeConvergeError as err:
            logit.debug(
                "received error", self.get_logging_metadata(resource_id) | {"reason": str(err)}
            )
            return True, err
        return True, None
