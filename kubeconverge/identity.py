from kubeconverge.errors import InvalidIdentity
from kubeconverge.models import Identity

# Separates namespace and name in the resource key, eg "default/nginx".
SEPARATOR = "/"


def build_id(namespace: str, name: str) -> str:
    """Return the resource key for `namespace` and `name`."""
    return f"{namespace}{SEPARATOR}{name}"


def parse_id(resource_id: str) -> Identity:
    """Split the resource key produced by `build_id` into its parts.

    An empty key means the resource was never created (or has been deleted)
    and is rejected like any other malformed key.

    """
    if resource_id == "":
        raise InvalidIdentity("resource has no identity yet")

    parts = resource_id.split(SEPARATOR)
    if len(parts) != 2 or "" in parts:
        raise InvalidIdentity(
            f"unexpected resource key <{resource_id}>, expected namespace/name"
        )
    return Identity(namespace=parts[0], name=parts[1])
