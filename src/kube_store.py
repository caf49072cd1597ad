"""Kubernetes API wrapper used as the store of child resources.

All calls are single attempts: there is no retry here. Errors are
translated into the operator's error taxonomy so the reconciler can
decide between recreate, report and "treat as absent".
"""

import logging
from typing import Any, Protocol

import urllib3
from kubernetes import client as k8s_client
from kubernetes.client import ApiException

from models import (
    ConflictError,
    Identity,
    Kind,
    NotFoundError,
    StoreError,
    StructuralConflictError,
    TransientStoreError,
)
from ratelimit import RateLimiter
from utils import selector_string

logger = logging.getLogger(__name__)


class Store(Protocol):
    """CRUD and list primitives over child resources, as plain dicts."""

    def list(
        self, kind: Kind, namespace: str, selector: dict[str, str]
    ) -> list[dict[str, Any]]: ...

    def get(self, kind: Kind, identity: Identity) -> dict[str, Any]: ...

    def create(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]: ...

    def update(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]: ...

    def delete(self, kind: Kind, identity: Identity) -> None: ...


# Kubernetes client method suffixes per kind, and the API group holding them
_API_METHODS: dict[Kind, tuple[str, str]] = {
    Kind.STATEFUL_SET: ("apps", "stateful_set"),
    Kind.CONFIG_MAP: ("core", "config_map"),
    Kind.SERVICE: ("core", "service"),
    Kind.SECRET: ("core", "secret"),
    Kind.PVC: ("core", "persistent_volume_claim"),
    Kind.PDB: ("policy", "pod_disruption_budget"),
}


def translate_api_exception(e: ApiException, what: str) -> StoreError:
    """Map an ApiException to the operator error taxonomy.

    404 -> NotFoundError
    409 -> ConflictError (resourceVersion mismatch, already exists)
    422 -> StructuralConflictError (invalid, e.g. immutable field changed)
    429, 5xx -> TransientStoreError
    other -> StoreError
    """
    status = e.status
    message = f"{what}: {status} {e.reason}"
    if status == 404:
        return NotFoundError(message, status)
    if status == 409:
        return ConflictError(message, status)
    if status == 422:
        return StructuralConflictError(message, status)
    if status == 429 or (status is not None and status >= 500):
        return TransientStoreError(message, status)
    return StoreError(message, status)


class KubeStore:
    """Store implementation on top of the kubernetes Python client."""

    def __init__(
        self,
        api_client: k8s_client.ApiClient,
        rate_limiter: RateLimiter | None = None,
    ) -> None:
        self._api_client = api_client
        self._apis = {
            "core": k8s_client.CoreV1Api(api_client),
            "apps": k8s_client.AppsV1Api(api_client),
            "policy": k8s_client.PolicyV1Api(api_client),
        }
        self._rate_limiter = rate_limiter or RateLimiter()

    def _method(self, kind: Kind, verb: str):
        group, suffix = _API_METHODS[kind]
        return getattr(self._apis[group], f"{verb}_namespaced_{suffix}")

    def _to_dict(self, obj: Any) -> dict[str, Any]:
        return self._api_client.sanitize_for_serialization(obj)

    def _call(self, what: str, func, *args, **kwargs) -> Any:
        with self._rate_limiter.acquire():
            try:
                return func(*args, **kwargs)
            except ApiException as e:
                raise translate_api_exception(e, what) from e
            except urllib3.exceptions.HTTPError as e:
                raise TransientStoreError(f"{what}: {e}") from e

    def list(
        self, kind: Kind, namespace: str, selector: dict[str, str]
    ) -> list[dict[str, Any]]:
        """List objects of a kind in a namespace matching a label selector."""
        result = self._call(
            f"list {kind.value} in {namespace}",
            self._method(kind, "list"),
            namespace,
            label_selector=selector_string(selector),
        )
        if result is None:
            return []
        return [self._to_dict(item) for item in (result.items or [])]

    def get(self, kind: Kind, identity: Identity) -> dict[str, Any]:
        """Get one object, raising NotFoundError if it doesn't exist."""
        obj = self._call(
            f"get {kind.value} {identity}",
            self._method(kind, "read"),
            identity.name,
            identity.namespace,
        )
        return self._to_dict(obj)

    def create(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        identity = Identity.from_object(obj)
        created = self._call(
            f"create {kind.value} {identity}",
            self._method(kind, "create"),
            identity.namespace,
            obj,
        )
        return self._to_dict(created)

    def update(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        """Replace an object. The payload must carry metadata.resourceVersion."""
        identity = Identity.from_object(obj)
        updated = self._call(
            f"update {kind.value} {identity}",
            self._method(kind, "replace"),
            identity.name,
            identity.namespace,
            obj,
        )
        return self._to_dict(updated)

    def delete(self, kind: Kind, identity: Identity) -> None:
        """Delete an object; dependents are garbage collected in the background."""
        self._call(
            f"delete {kind.value} {identity}",
            self._method(kind, "delete"),
            identity.name,
            identity.namespace,
            body=k8s_client.V1DeleteOptions(propagation_policy="Background"),
        )
