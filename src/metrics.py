"""Prometheus metrics for the cluster operator.

Metrics are owned by an explicitly constructed `PrometheusRecorder`,
created once at operator startup and passed to the reconciler. Nothing
in the reconciliation path creates metrics lazily.
"""

import logging
from collections.abc import Callable
from functools import wraps
from typing import Protocol

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, Info

from models import Kind, Outcome, PassOutcome

logger = logging.getLogger(__name__)

OWNER_LABELS = ["namespace", "name"]


class Recorder(Protocol):
    """Outcome reporting consumed by the reconciler.

    Implementations must never raise into, or block, the calling
    reconciliation step.
    """

    def record_started(self, owner: dict[str, str]) -> None: ...

    def record_completed(self, owner: dict[str, str]) -> None: ...

    def record_aborted(self, owner: dict[str, str]) -> None: ...

    def record_timing(self, owner: dict[str, str], seconds: float) -> None: ...

    def record_error(self, owner: dict[str, str]) -> None: ...

    def record_child(self, owner: dict[str, str], kind: Kind, outcome: Outcome) -> None: ...

    def record_pass(
        self, owner: dict[str, str], outcome: PassOutcome, seconds: float
    ) -> None: ...


def _guarded(func: Callable[..., None]) -> Callable[..., None]:
    """Log and drop recorder failures so metrics never fail a reconcile."""

    @wraps(func)
    def wrapper(*args, **kwargs) -> None:
        try:
            func(*args, **kwargs)
        except Exception as e:
            logger.warning("Failed to record metric %s: %s", func.__name__, e)

    return wrapper


class PrometheusRecorder:
    """Recorder backed by prometheus_client metrics."""

    def __init__(self, registry: CollectorRegistry = REGISTRY) -> None:
        self.registry = registry

        # Converge metrics, one converge per desired child resource
        self.converges_started = Counter(
            "cluster_operator_converges_started_total",
            "Number of child resource converges started",
            OWNER_LABELS,
            registry=registry,
        )
        self.converges_completed = Counter(
            "cluster_operator_converges_completed_total",
            "Number of child resource converges completed successfully",
            OWNER_LABELS,
            registry=registry,
        )
        self.converges_aborted = Counter(
            "cluster_operator_converges_aborted_total",
            "Number of child resource converges aborted by cancellation",
            OWNER_LABELS,
            registry=registry,
        )
        self.converges_errors = Counter(
            "cluster_operator_converges_errors_total",
            "Number of failed child resource converges",
            OWNER_LABELS,
            registry=registry,
        )
        self.converge_duration = Histogram(
            "cluster_operator_converge_duration_seconds",
            "Time spent in successfully completed converges",
            OWNER_LABELS,
            buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
            registry=registry,
        )
        self.children = Counter(
            "cluster_operator_child_converges_total",
            "Child resource converges by kind and outcome",
            OWNER_LABELS + ["kind", "outcome"],
            registry=registry,
        )

        # Reconciliation pass metrics, one pass per ClusterInstallation event
        self.passes = Counter(
            "cluster_operator_reconcile_passes_total",
            "Reconciliation passes by outcome",
            OWNER_LABELS + ["outcome"],
            registry=registry,
        )
        self.pass_duration = Histogram(
            "cluster_operator_reconcile_pass_duration_seconds",
            "Time spent in reconciliation passes",
            OWNER_LABELS,
            buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
            registry=registry,
        )
        self.in_progress = Gauge(
            "cluster_operator_reconcile_in_progress",
            "Number of reconciliation passes currently in progress",
            registry=registry,
        )

        self.rate_limit_wait = Histogram(
            "cluster_operator_rate_limit_wait_seconds",
            "Time spent waiting for a Kubernetes API rate limit slot",
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
            registry=registry,
        )

        self.info = Info(
            "cluster_operator",
            "Information about the cluster operator",
            registry=registry,
        )

    def set_operator_info(self, version: str) -> None:
        """Set operator info labels."""
        self.info.info({"version": version})

    @_guarded
    def init_owner(self, owner: dict[str, str]) -> None:
        """Initialize all per-owner counters with zero values.

        Prometheus metrics with labels don't appear until used, and `rate`
        expects every series to exist from the start.
        """
        self.converges_started.labels(**owner)
        self.converges_completed.labels(**owner)
        self.converges_aborted.labels(**owner)
        self.converges_errors.labels(**owner)
        for outcome in PassOutcome:
            self.passes.labels(outcome=outcome.value, **owner)

    @_guarded
    def record_started(self, owner: dict[str, str]) -> None:
        self.converges_started.labels(**owner).inc()

    @_guarded
    def record_completed(self, owner: dict[str, str]) -> None:
        self.converges_completed.labels(**owner).inc()

    @_guarded
    def record_aborted(self, owner: dict[str, str]) -> None:
        self.converges_aborted.labels(**owner).inc()

    @_guarded
    def record_timing(self, owner: dict[str, str], seconds: float) -> None:
        self.converge_duration.labels(**owner).observe(seconds)

    @_guarded
    def record_error(self, owner: dict[str, str]) -> None:
        self.converges_errors.labels(**owner).inc()

    @_guarded
    def record_child(self, owner: dict[str, str], kind: Kind, outcome: Outcome) -> None:
        self.children.labels(kind=kind.value, outcome=outcome.value, **owner).inc()

    @_guarded
    def record_pass(
        self, owner: dict[str, str], outcome: PassOutcome, seconds: float
    ) -> None:
        self.passes.labels(outcome=outcome.value, **owner).inc()
        if outcome != PassOutcome.ABORTED:
            self.pass_duration.labels(**owner).observe(seconds)

    @_guarded
    def observe_rate_limit_wait(self, seconds: float) -> None:
        self.rate_limit_wait.observe(seconds)
