"""Shared operator state - thread-safe container for Kubernetes clients and reconciler."""

import os
import threading
from dataclasses import dataclass, field

from kubernetes import client as k8s_client
from kubernetes import config as k8s_config

from kube_store import KubeStore
from labeler import LabelerConfig
from metrics import PrometheusRecorder
from ratelimit import RateLimiter
from resources.reconciler import Reconciler


@dataclass(frozen=True)
class Settings:
    """Operator settings loaded from the environment at startup."""

    watch_namespace: str = ""
    metrics_port: int = 9090
    discovery_workers: int = 1
    reconcile_workers: int = 1
    resync_interval: float = 300.0
    cleanup_orphans: bool = True
    labeler: LabelerConfig = field(default_factory=LabelerConfig)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            watch_namespace=os.environ.get("WATCH_NAMESPACE", ""),
            metrics_port=int(os.environ.get("METRICS_PORT", "9090")),
            discovery_workers=int(os.environ.get("DISCOVERY_WORKERS", "1")),
            reconcile_workers=int(os.environ.get("RECONCILE_WORKERS", "1")),
            resync_interval=float(os.environ.get("RESYNC_INTERVAL", "300")),
            cleanup_orphans=os.environ.get("CLEANUP_ORPHANS", "true").lower() == "true",
            labeler=LabelerConfig.from_env(),
        )


@dataclass
class OperatorState:
    """Thread-safe operator state container.

    This class provides thread-safe access to shared operator resources:
    - Kubernetes API client and the store built on it
    - The metrics recorder, installed once at startup
    - The reconciler

    All handlers should use the global `state` instance rather than
    creating their own clients.
    """

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _settings: Settings | None = field(default=None, repr=False)
    _recorder: PrometheusRecorder | None = field(default=None, repr=False)
    _api_client: k8s_client.ApiClient | None = field(default=None, repr=False)
    _store: KubeStore | None = field(default=None, repr=False)
    _reconciler: Reconciler | None = field(default=None, repr=False)
    _k8s_configured: bool = field(default=False, repr=False)

    def _ensure_k8s_config(self) -> None:
        """Ensure Kubernetes configuration is loaded (must hold lock)."""
        if not self._k8s_configured:
            try:
                k8s_config.load_incluster_config()
            except k8s_config.ConfigException:
                k8s_config.load_kube_config()
            self._k8s_configured = True

    def start(self, settings: Settings, recorder: PrometheusRecorder) -> None:
        """Install settings and the metrics recorder. Called once at startup."""
        with self._lock:
            self._settings = settings
            self._recorder = recorder
            self._reconciler = None

    def get_settings(self) -> Settings:
        with self._lock:
            if self._settings is None:
                raise RuntimeError("Operator state used before startup")
            return self._settings

    def get_recorder(self) -> PrometheusRecorder:
        with self._lock:
            if self._recorder is None:
                raise RuntimeError("Operator state used before startup")
            return self._recorder

    def _get_store(self) -> KubeStore:
        """Get or create the Kubernetes store (must hold lock)."""
        if self._store is None:
            self._ensure_k8s_config()
            self._api_client = k8s_client.ApiClient()
            on_wait = self._recorder.observe_rate_limit_wait if self._recorder else None
            self._store = KubeStore(self._api_client, RateLimiter.from_env(on_wait))
        return self._store

    def get_store(self) -> KubeStore:
        """Get or create the Kubernetes store (thread-safe)."""
        with self._lock:
            return self._get_store()

    def get_reconciler(self) -> Reconciler:
        """Get or create the reconciler (thread-safe)."""
        with self._lock:
            if self._recorder is None:
                raise RuntimeError("Operator state used before startup")
            if self._reconciler is None:
                self._reconciler = Reconciler(self._get_store(), self._recorder)
            return self._reconciler

    def close(self) -> None:
        """Close all connections."""
        with self._lock:
            if self._api_client is not None:
                self._api_client.close()
                self._api_client = None
            self._store = None
            self._reconciler = None


# Global operator state singleton
state = OperatorState()
