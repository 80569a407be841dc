"""Errors raised by the reconciliation core.

The transport helpers in `kubeconverge.k8s` report problems with an error
flag. Everything above them raises one of the exceptions below and never
retries, except for the convergence poll loop.

"""

from typing import Any


class KubeConvergeError(Exception):
    """Base class for all errors of this package."""

    def __init__(self, message: str):
        super().__init__(message)

        # Resource key that was known when the error happened. The lifecycle
        # controller sets it if a remote object exists but the operation failed
        # afterwards, eg the convergence wait after a successful create.
        self.identity: str = ""


class InvalidShape(KubeConvergeError):
    """The desired configuration lacks a required block or is inconsistent."""

    def __init__(self, path: str, reason: str = "required block is missing"):
        super().__init__(f"invalid configuration at <{path}>: {reason}")
        self.path = path
        self.reason = reason


class InvalidIdentity(KubeConvergeError):
    """Resource key cannot be split into namespace and name."""


class NotFound(KubeConvergeError):
    """K8s responded with 404."""

    def __init__(self, url: str):
        super().__init__(f"not found: {url}")
        self.url = url


class ExternalCallFailed(KubeConvergeError):
    """Any K8s API failure other than 404, including network errors."""

    def __init__(self, method: str, url: str, code: int, response: Any = None):
        super().__init__(f"{method} {url} failed with status {code}")
        self.method = method
        self.url = url
        self.code = code
        self.response = response


class ConvergenceTimeout(KubeConvergeError):
    """Observed state did not match the desired state in time."""

    def __init__(self, timeout: float, current: Any = None, desired: Any = None):
        super().__init__(
            f"no convergence after {timeout}s (current={current}, desired={desired})"
        )
        self.timeout = timeout
        self.current = current
        self.desired = desired


class UnknownVersion(KubeConvergeError):
    """Persisted record is newer than any migration step we know of."""

    def __init__(self, version: int, latest: int):
        super().__init__(f"unexpected schema version {version} (latest is {latest})")
        self.version = version
        self.latest = latest


class UnmarshalableValue(KubeConvergeError):
    """Patch operations could not be JSON encoded."""
