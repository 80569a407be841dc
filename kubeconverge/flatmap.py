"""Convert configuration trees to flat string maps and back.

The flat map mirrors the tree with dotted paths:

    spec.0.replicas = "3"
    spec.0.template.0.spec.0.container.# = "1"
    metadata.0.labels.% = "2"
    metadata.0.labels.app.kubernetes.io/name = "demo"

List lengths are stored under `<path>.#`, map sizes under `<path>.%`. Map
keys may contain dots, which is why `from_flatmap` needs the model to decide
how to interpret a path.

"""

import typing
from typing import Any, Dict, Type, TypeVar

from pydantic import BaseModel

M = TypeVar("M", bound=BaseModel)


def _join(prefix: str, key: str | int) -> str:
    return f"{prefix}.{key}" if prefix else str(key)


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def to_flatmap(model: BaseModel, prefix: str = "") -> Dict[str, str]:
    """Return the flat attribute map for `model`."""
    out: Dict[str, str] = {}
    for name in type(model).model_fields:
        value = getattr(model, name)
        path = _join(prefix, name)

        if isinstance(value, list):
            out[f"{path}.#"] = str(len(value))
            for idx, item in enumerate(value):
                if isinstance(item, BaseModel):
                    out.update(to_flatmap(item, _join(path, idx)))
                else:
                    out[_join(path, idx)] = _scalar(item)
        elif isinstance(value, dict):
            out[f"{path}.%"] = str(len(value))
            for key, item in value.items():
                out[_join(path, key)] = _scalar(item)
        elif isinstance(value, BaseModel):
            out.update(to_flatmap(value, path))
        else:
            out[path] = _scalar(value)
    return out


def _list_length(attrs: Dict[str, str], path: str) -> int:
    """Return the number of list elements stored under `path`.

    Use the `<path>.#` entry if it exists and otherwise infer the length
    from the largest index, eg after a migration relocated a list.

    """
    if f"{path}.#" in attrs:
        return int(attrs[f"{path}.#"])

    indices = set()
    for key in attrs:
        if not key.startswith(path + "."):
            continue
        idx = key[len(path) + 1 :].split(".", 1)[0]
        if idx.isdigit():
            indices.add(int(idx))
    return max(indices) + 1 if indices else 0


def _unflatten(attrs: Dict[str, str], model: Type[BaseModel], prefix: str) -> dict:
    out: Dict[str, Any] = {}
    for name, field in model.model_fields.items():
        path = _join(prefix, name)
        origin = typing.get_origin(field.annotation)
        args = typing.get_args(field.annotation)

        if origin is list:
            (elem,) = args
            num = _list_length(attrs, path)
            if isinstance(elem, type) and issubclass(elem, BaseModel):
                out[name] = [
                    _unflatten(attrs, elem, _join(path, idx)) for idx in range(num)
                ]
            else:
                out[name] = [
                    attrs[_join(path, idx)]
                    for idx in range(num)
                    if _join(path, idx) in attrs
                ]
        elif origin is dict:
            # Every key below `path` except the size marker is a map key.
            start = path + "."
            out[name] = {
                key[len(start) :]: value
                for key, value in attrs.items()
                if key.startswith(start) and key != f"{path}.%"
            }
        elif isinstance(field.annotation, type) and issubclass(field.annotation, BaseModel):
            out[name] = _unflatten(attrs, field.annotation, path)
        elif path in attrs:
            # Pydantic converts the strings into ints and bools for us.
            out[name] = attrs[path]
    return out


def from_flatmap(attrs: Dict[str, str], model: Type[M]) -> M:
    """Return the `model` instance described by the flat map `attrs`."""
    return model.model_validate(_unflatten(attrs, model, ""))
