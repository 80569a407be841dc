"""Upgrade persisted attribute records to the current schema.

A record is a flat `{path: value}` map, eg `{"spec.0.replicas": "3"}`, plus
the schema version it was written with. Each migration step upgrades a record
by exactly one version and `migrate` chains them until the record is current.

"""

import logging
from typing import Callable, Dict

from kubeconverge.errors import UnknownVersion

logit = logging.getLogger("kubeconverge")

Attributes = Dict[str, str]


def rename(attrs: Attributes, src: str, dst: str) -> None:
    """Move the value at `src` to `dst` in place.

    Existing values at `dst` always win. In that case the value at `src` is
    dropped to ensure it does not linger in two places.

    NOTE: this function will modify `attrs` in-place.

    """
    value = attrs.pop(src)
    if attrs.get(dst, "") != "":
        logit.debug(f"dropped attribute {src}: {dst} already exists")
        return
    attrs[dst] = value
    logit.debug(f"moved attribute {src} -> {dst}")


def deployment_v0_to_v1(attrs: Attributes) -> Attributes:
    """Relocate the Pod spec from `spec.template` to `spec.template.spec`.

    This also moves the top level `name` into the metadata block.

    """
    out = dict(attrs)
    template = "spec.0.template.0."
    for key in sorted(attrs):
        if key == "name":
            rename(out, key, "metadata.0.name")
        elif not key.startswith(template):
            continue
        elif key.startswith(template + "spec") or key.startswith(template + "metadata"):
            continue
        else:
            rename(out, key, template + "spec.0." + key.removeprefix(template))
    return out


def deployment_v1_to_v2(attrs: Attributes) -> Attributes:
    """Add the `paused` and `progress_deadline_seconds` fields."""
    defaults = {
        "spec.0.paused": "false",
        "spec.0.progress_deadline_seconds": "600",
    }
    return defaults | attrs


DEPLOYMENT_MIGRATIONS: Dict[int, Callable[[Attributes], Attributes]] = {
    0: deployment_v0_to_v1,
    1: deployment_v1_to_v2,
}
DEPLOYMENT_SCHEMA_VERSION = len(DEPLOYMENT_MIGRATIONS)


def migrate(
    attrs: Attributes,
    version: int,
    migrations: Dict[int, Callable[[Attributes], Attributes]],
) -> Attributes:
    """Return `attrs` upgraded from `version` to the latest schema version.

    The latest version is the number of registered `migrations`. Raise
    `UnknownVersion` if `version` lies outside of that range since we cannot
    downgrade records.

    """
    # Records of resources that were never created have no attributes.
    if len(attrs) == 0:
        logit.debug("empty record: nothing to migrate")
        return attrs

    latest = len(migrations)
    if not (0 <= version <= latest):
        raise UnknownVersion(version, latest)

    out = dict(attrs)
    for ver in range(version, latest):
        logit.info(f"migrating record from v{ver} to v{ver + 1}")
        out = migrations[ver](out)
    return out
