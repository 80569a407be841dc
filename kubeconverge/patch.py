"""Compile JSON Patch operations from two configuration trees.

Metadata labels and annotations are patched key by key. The mutable part of
the resource spec is replaced wholesale whenever any of its fields changed.

"""

import json
import logging
from typing import Dict, List

from pydantic import BaseModel

from kubeconverge.errors import UnmarshalableValue
from kubeconverge.kinds import ResourceKind
from kubeconverge.models import (
    AddOperation,
    MetadataConfig,
    PatchOperation,
    RemoveOperation,
    ReplaceOperation,
)

logit = logging.getLogger("kubeconverge")


def escape_json_pointer(key: str) -> str:
    """Escape `key` for use as a single JSON pointer segment (RFC 6901)."""
    return key.replace("~", "~0").replace("/", "~1")


def diff_string_map(
    path: str, old: Dict[str, str], new: Dict[str, str], exists: bool = False
) -> List[PatchOperation]:
    """Return the operations that turn the `old` map at `path` into `new`.

    Set `exists` if K8s has a map at `path` even though `old` is empty, eg
    because it only contains internal keys. Those keys must survive the patch.

    """
    path = path.rstrip("/")

    # K8s omits empty maps, which means there is nothing we could add
    # individual keys to. Add the entire map instead.
    if len(old) == 0 and not exists:
        return [AddOperation(path=path, value=dict(new))] if len(new) > 0 else []

    ops: List[PatchOperation] = []
    for key in sorted(old.keys() - new.keys()):
        ops.append(RemoveOperation(path=f"{path}/{escape_json_pointer(key)}"))

    for key in sorted(new):
        value = new[key]
        if key not in old:
            ops.append(AddOperation(path=f"{path}/{escape_json_pointer(key)}", value=value))
        elif old[key] != value:
            ops.append(ReplaceOperation(path=f"{path}/{escape_json_pointer(key)}", value=value))
    return ops


def patch_metadata(
    path: str, old: List[MetadataConfig], new: List[MetadataConfig]
) -> List[PatchOperation]:
    """Return the label and annotation operations for the metadata at `path`.

    Name and namespace are immutable and the remaining fields are computed,
    which is why they never appear in a patch.

    """
    old_meta = old[0] if len(old) > 0 else MetadataConfig()
    new_meta = new[0] if len(new) > 0 else MetadataConfig()

    ops = diff_string_map(
        f"{path}/annotations",
        old_meta.annotations,
        new_meta.annotations,
        exists=len(old_meta.internal_annotations) > 0,
    )
    ops += diff_string_map(
        f"{path}/labels",
        old_meta.labels,
        new_meta.labels,
        exists=len(old_meta.internal_labels) > 0,
    )
    return ops


def serialize(ops: List[PatchOperation]) -> str:
    """Return the JSON Patch wire format for `ops`."""
    try:
        return json.dumps([_.model_dump(mode="python") for _ in ops])
    except (TypeError, ValueError) as err:
        logit.error("cannot encode patch", {"reason": str(err)})
        raise UnmarshalableValue(f"cannot encode patch: {err}") from err


def build_patch(kind: ResourceKind, old: BaseModel, new: BaseModel) -> List[PatchOperation]:
    """Return the operations that turn the `old` configuration into `new`.

    Produces at most one operation per path: key level operations for the
    metadata maps and a single replacement of `kind.spec_path`.

    """
    new = kind.resolve_computed(old, new)

    ops = patch_metadata("/metadata", old.metadata, new.metadata)  # type: ignore
    if kind.mutable_spec(old) != kind.mutable_spec(new):
        ops.append(ReplaceOperation(path=kind.spec_path, value=kind.spec_payload(new)))
    return ops
