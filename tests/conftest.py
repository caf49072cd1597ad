"""Shared fixtures: an in-memory store and a private metrics registry."""

import base64
import copy
import itertools
from typing import Any

import pytest
from prometheus_client import CollectorRegistry

from metrics import PrometheusRecorder
from models import ConflictError, Identity, Kind, NotFoundError, Owner
from resources.reconciler import Reconciler
from utils import labels_match


class FakeStore:
    """In-memory store mimicking the API server behaviour the reconciler relies on.

    - resourceVersion is bumped on every write and checked on update
    - Services get a clusterIP and NodePort/LoadBalancer ports a nodePort
    - Secret stringData is folded into base64 data
    - `errors[(verb, kind)]` raises the given exception for that call
    - `validators[kind]` may raise on update (e.g. StructuralConflictError)
    """

    def __init__(self) -> None:
        self.objects: dict[tuple[Kind, Identity], dict[str, Any]] = {}
        self.calls: list[tuple[str, Kind, Identity]] = []
        self.errors: dict[tuple[str, Kind], Exception] = {}
        self.validators: dict[Kind, Any] = {}
        self._versions = itertools.count(1)
        self._node_ports = itertools.count(30000)
        self._cluster_ips = itertools.count(10)

    def _record(self, verb: str, kind: Kind, identity: Identity) -> None:
        self.calls.append((verb, kind, identity))
        error = self.errors.get((verb, kind))
        if error is not None:
            raise error

    def verbs(self) -> list[str]:
        return [verb for verb, _, _ in self.calls]

    def _allocate(self, kind: Kind, obj: dict[str, Any]) -> None:
        if kind == Kind.SECRET:
            data = obj.setdefault("data", {})
            for key, value in obj.pop("stringData", {}).items():
                data[key] = base64.b64encode(value.encode()).decode()
            return
        if kind != Kind.SERVICE:
            return
        spec = obj.setdefault("spec", {})
        spec.setdefault("type", "ClusterIP")
        spec.setdefault("clusterIP", f"10.0.0.{next(self._cluster_ips)}")
        if spec["type"] in ("NodePort", "LoadBalancer"):
            for port in spec.get("ports", []):
                port.setdefault("nodePort", next(self._node_ports))

    def seed(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        """Put an object in the store without recording a call."""
        obj = copy.deepcopy(obj)
        obj.setdefault("metadata", {})["resourceVersion"] = str(next(self._versions))
        self.objects[(kind, Identity.from_object(obj))] = obj
        return copy.deepcopy(obj)

    def list(self, kind: Kind, namespace: str, selector: dict[str, str]) -> list[dict[str, Any]]:
        self._record("list", kind, Identity(namespace, ""))
        return [
            copy.deepcopy(obj)
            for (k, identity), obj in sorted(self.objects.items(), key=lambda i: i[0][1])
            if k == kind
            and identity.namespace == namespace
            and labels_match(obj["metadata"].get("labels"), selector)
        ]

    def get(self, kind: Kind, identity: Identity) -> dict[str, Any]:
        self._record("get", kind, identity)
        try:
            return copy.deepcopy(self.objects[(kind, identity)])
        except KeyError:
            raise NotFoundError(f"{kind.value} {identity} not found", 404) from None

    def create(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        identity = Identity.from_object(obj)
        self._record("create", kind, identity)
        if (kind, identity) in self.objects:
            raise ConflictError(f"{kind.value} {identity} already exists", 409)
        obj = copy.deepcopy(obj)
        self._allocate(kind, obj)
        obj["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[(kind, identity)] = obj
        return copy.deepcopy(obj)

    def update(self, kind: Kind, obj: dict[str, Any]) -> dict[str, Any]:
        identity = Identity.from_object(obj)
        self._record("update", kind, identity)
        current = self.objects.get((kind, identity))
        if current is None:
            raise NotFoundError(f"{kind.value} {identity} not found", 404)
        if obj["metadata"].get("resourceVersion") != current["metadata"]["resourceVersion"]:
            raise ConflictError(f"{kind.value} {identity} was modified", 409)
        validator = self.validators.get(kind)
        if validator is not None:
            validator(current, obj)
        obj = copy.deepcopy(obj)
        self._allocate(kind, obj)
        obj["metadata"]["resourceVersion"] = str(next(self._versions))
        self.objects[(kind, identity)] = obj
        return copy.deepcopy(obj)

    def delete(self, kind: Kind, identity: Identity) -> None:
        self._record("delete", kind, identity)
        if self.objects.pop((kind, identity), None) is None:
            raise NotFoundError(f"{kind.value} {identity} not found", 404)


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def metrics_registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def recorder(metrics_registry: CollectorRegistry) -> PrometheusRecorder:
    return PrometheusRecorder(metrics_registry)


@pytest.fixture
def reconciler(store: FakeStore, recorder: PrometheusRecorder) -> Reconciler:
    return Reconciler(store, recorder, delete_timeout=1.0, poll_interval=0.01)


@pytest.fixture
def owner() -> Owner:
    return Owner(name="demo", namespace="db", uid="uid-1", labels={"team": "data"})


def service(name: str = "svc", namespace: str = "db", **spec: Any) -> dict[str, Any]:
    """Minimal Service manifest."""
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": name, "namespace": namespace},
        "spec": spec,
    }


def pvc(name: str = "data", namespace: str = "db", storage: str = "10Gi", **spec: Any) -> dict[str, Any]:
    """Minimal PersistentVolumeClaim manifest."""
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "resources": {"requests": {"storage": storage}},
            **spec,
        },
    }


def config_map(name: str = "cfg", namespace: str = "db", **data: str) -> dict[str, Any]:
    """Minimal ConfigMap manifest."""
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {"name": name, "namespace": namespace},
        "data": data,
    }
