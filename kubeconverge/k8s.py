import asyncio
import json
import logging
import ssl
from pathlib import Path
from typing import Any, Dict, Tuple

import httpx
import square.k8s
from square.dtypes import ConnectionParameters, K8sConfig

from kubeconverge.errors import ExternalCallFailed, NotFound

# Exceptions that mean we never got a (complete) response from K8s.
WEB_EXCEPTIONS = (httpx.RequestError, ssl.SSLError, asyncio.TimeoutError)

# Convenience: global logger instance to avoid repetitive code.
logit = logging.getLogger("kubeconverge")


async def request(
    k8sconfig: K8sConfig,
    method: str,
    url: str,
    payload: dict | list | None = None,
    headers: dict | None = None,
    content: str | None = None,
) -> Tuple[dict, int, bool]:
    """Return response of web request made with `k8sconfig.client`.

    Inputs:
        k8sconfig: K8sConfig
            Contains the HttpX client with correct K8s certificates.
        url: str
            Eg `https://1.2.3.4/apis/apps/v1/namespaces/default/deployments`
        payload: dict | list
            Anything that can be JSON encoded, usually a K8s manifest.
        headers: dict
            Request headers. These will *not* replace the existing request
            headers dictionary (eg the access tokens), but augment them.
        content: str
            Pre-encoded request body. Mutually exclusive with `payload`.

    Returns:
        (dict, int, bool): the JSON response, the HTTP status code and an
        error flag. The status code is -1 if K8s was unreachable.

    """
    # Make the HTTP request. There is no retry here: callers decide what to do.
    try:
        if content is None:
            ret = await k8sconfig.client.request(
                method, url, json=payload, headers=headers
            )
        else:
            ret = await k8sconfig.client.request(
                method, url, content=content, headers=headers
            )
    except WEB_EXCEPTIONS as err:
        logit.error(f"Giving up - {k8sconfig.name} - {err} - {method} {url}")
        return ({}, -1, True)

    # Decode the JSON response and abort if that is impossible.
    try:
        response = json.loads(ret.text)
    except json.decoder.JSONDecodeError as err:
        msg = (
            f"JSON error - {k8sconfig.name} - "
            f"{err.msg} in line {err.lineno} column {err.colno}",
            "-" * 80 + "\n" + err.doc + "\n" + "-" * 80,
        )
        logit.error(str.join("\n", msg))
        return ({}, ret.status_code, True)

    # Log the entire request in debug mode.
    logit.debug(
        f"{method} {ret.status_code} {ret.url}\n"
        f"Headers: {headers}\n"
        f"Payload: {payload or content}\n"
        f"Response: {response}\n"
    )
    return (response, ret.status_code, False)


async def delete(k8sconfig: K8sConfig, url: str, payload: dict) -> Tuple[dict, int, bool]:
    """Make DELETE requests to K8s (see `request`)."""
    resp, code, err = await request(k8sconfig, "DELETE", url, payload, headers=None)
    if err or code not in (200, 202):
        logit.error(f"{code} - DELETE - {url} - {resp}")
        return (resp, code, True)
    return (resp, code, False)


async def get(k8sconfig: K8sConfig, url: str) -> Tuple[dict, int, bool]:
    """Make GET requests to K8s (see `request`)."""
    resp, code, err = await request(k8sconfig, "GET", url, payload=None, headers=None)
    if err or code != 200:
        logit.error(f"{code} - GET - {url} - {resp}")
        return (resp, code, True)
    return (resp, code, False)


async def patch(k8sconfig: K8sConfig, url: str, body: str) -> Tuple[dict, int, bool]:
    """Make JSON Patch requests to K8s (see `request`).

    The `body` must already be encoded, eg with `kubeconverge.patch.serialize`.

    """
    headers = {"Content-Type": "application/json-patch+json"}
    resp, code, err = await request(k8sconfig, "PATCH", url, headers=headers, content=body)
    if err or code != 200:
        logit.error(f"{code} - PATCH - {url} - {resp}")
        return (resp, code, True)
    return (resp, code, False)


async def post(k8sconfig: K8sConfig, url: str, payload: dict) -> Tuple[dict, int, bool]:
    """Make POST requests to K8s (see `request`)."""
    resp, code, err = await request(k8sconfig, "POST", url, payload, headers=None)
    err = (code not in (200, 201, 202)) or err
    if err:
        logit.error(f"{code} - POST - {url} - {resp}")
        return (resp, code, True)
    return (resp, code, False)


def create_cluster_config(kubeconf: Path, context: str) -> Tuple[K8sConfig, bool]:
    # Parse Kubeconfig file.
    cfg, err = square.k8s.load_auto_config(kubeconf, context)
    if err:
        return K8sConfig(), True

    # Create HTTPX client.
    params = ConnectionParameters(read=60, write=60, pool=60)
    cfg, err = square.k8s.create_httpx_client(cfg, params)
    if err:
        return K8sConfig(), True

    # Set the base URL to the K8s API server for convenience.
    cfg.client.base_url = cfg.url

    return cfg, False


class ResourceApi:
    """Typed create/get/patch/delete calls for one namespaced resource kind.

    Usage:

    api = ResourceApi(k8scfg, "/apis/apps/v1", "deployments")
    manifest = await api.get("default", "nginx")

    """

    def __init__(self, k8scfg: K8sConfig, api_prefix: str, plural: str):
        self.k8scfg = k8scfg
        self.api_prefix = api_prefix.rstrip("/")
        self.plural = plural

    def url(self, namespace: str, name: str = "") -> str:
        url = f"{self.api_prefix}/namespaces/{namespace}/{self.plural}"
        return f"{url}/{name}" if name else url

    def _raise(self, method: str, url: str, code: int, resp: Any):
        if code == 404:
            raise NotFound(url)
        raise ExternalCallFailed(method, url, code, resp)

    async def create(self, namespace: str, manifest: dict) -> dict:
        url = self.url(namespace)
        resp, code, err = await post(self.k8scfg, url, manifest)
        if err:
            self._raise("POST", url, code, resp)
        return resp

    async def get(self, namespace: str, name: str) -> dict:
        url = self.url(namespace, name)
        resp, code, err = await get(self.k8scfg, url)
        if err:
            self._raise("GET", url, code, resp)
        return resp

    async def patch(self, namespace: str, name: str, body: str) -> dict:
        url = self.url(namespace, name)
        resp, code, err = await patch(self.k8scfg, url, body)
        if err:
            self._raise("PATCH", url, code, resp)
        return resp

    async def delete(self, namespace: str, name: str, propagation_policy: str = "") -> dict:
        url = self.url(namespace, name)
        payload: Dict[str, Any] = {"apiVersion": "v1", "kind": "DeleteOptions"}
        if propagation_policy != "":
            payload["propagationPolicy"] = propagation_policy
        resp, code, err = await delete(self.k8scfg, url, payload)
        if err:
            self._raise("DELETE", url, code, resp)
        return resp
