"""Domain models for the cluster operator.

This module defines typed data structures for all operator concepts,
making illegal states unrepresentable at the type level.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, NotRequired, TypedDict


# =============================================================================
# Enums for constrained values
# =============================================================================


class Phase(Enum):
    """ClusterInstallation lifecycle phase."""

    PENDING = "Pending"
    PROVISIONING = "Provisioning"
    READY = "Ready"
    DEGRADED = "Degraded"
    ERROR = "Error"


class ConditionStatus(Enum):
    """Kubernetes condition status."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class Kind(Enum):
    """Managed child resource kinds, in discovery order."""

    STATEFUL_SET = "StatefulSet"
    CONFIG_MAP = "ConfigMap"
    SERVICE = "Service"
    SECRET = "Secret"
    PVC = "PersistentVolumeClaim"
    PDB = "PodDisruptionBudget"

    @classmethod
    def from_manifest(cls, manifest: dict[str, Any]) -> "Kind":
        """Resolve the kind of a manifest, raising for unmanaged kinds."""
        value = manifest.get("kind", "")
        try:
            return cls(value)
        except ValueError:
            raise ConfigurationError(f"Unsupported resource kind: {value!r}") from None


class Outcome(Enum):
    """Result of a single converge attempt."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    RECREATED = "recreated"
    FAILED = "failed"
    # Not attempted because the pass was cancelled; caller must re-drive
    CANCELLED = "cancelled"

    @property
    def succeeded(self) -> bool:
        return self in (
            Outcome.CREATED,
            Outcome.UPDATED,
            Outcome.UNCHANGED,
            Outcome.RECREATED,
        )


class PassOutcome(Enum):
    """Result of a whole reconciliation pass for one ClusterInstallation."""

    COMPLETED = "completed"
    PARTIAL = "partial"
    ABORTED = "aborted"


# =============================================================================
# TypedDicts for CRD spec (external data from Kubernetes)
# =============================================================================


class ScopeSpec(TypedDict, total=False):
    """Ownership sub-scope of a child resource from CRD."""

    cluster: str
    shard: str
    host: str
    template: str


class ChildResourceSpec(TypedDict):
    """One desired child resource from CRD."""

    manifest: dict[str, Any]
    scope: NotRequired[ScopeSpec]


class ClusterInstallationSpec(TypedDict, total=False):
    """Full ClusterInstallation CRD spec."""

    resources: list[ChildResourceSpec]


# =============================================================================
# Dataclasses for identities, scopes and results
# =============================================================================


@dataclass(frozen=True, order=True)
class Identity:
    """Stable identity of a child resource: namespace + name."""

    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def from_object(cls, obj: dict[str, Any]) -> "Identity":
        """Create from a Kubernetes object dict."""
        meta = obj.get("metadata") or {}
        return cls(namespace=meta.get("namespace") or "", name=meta.get("name") or "")


@dataclass(frozen=True)
class Owner:
    """The owning ClusterInstallation of a set of child resources."""

    name: str
    namespace: str
    uid: str = ""
    generation: int = 0
    labels: dict[str, str] = field(default_factory=dict, compare=False)
    annotations: dict[str, str] = field(default_factory=dict, compare=False)

    @classmethod
    def from_meta(cls, meta: dict[str, Any]) -> "Owner":
        """Create from the metadata of a ClusterInstallation body."""
        return cls(
            name=meta.get("name", ""),
            namespace=meta.get("namespace", ""),
            uid=meta.get("uid", ""),
            generation=meta.get("generation", 0) or 0,
            labels=dict(meta.get("labels") or {}),
            annotations=dict(meta.get("annotations") or {}),
        )

    def attributes(self) -> dict[str, str]:
        """Attributes used to scope metrics and log lines to this owner."""
        return {"namespace": self.namespace, "name": self.name}

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class ClusterRef:
    name: str


@dataclass(frozen=True)
class ShardRef:
    cluster: str
    name: str


@dataclass(frozen=True)
class HostRef:
    cluster: str
    shard: str
    name: str


@dataclass(frozen=True)
class TemplateRef:
    name: str


@dataclass(frozen=True)
class OwnerScope:
    """The whole ClusterInstallation."""


@dataclass(frozen=True)
class ClusterScope:
    cluster: ClusterRef


@dataclass(frozen=True)
class ShardScope:
    shard: ShardRef


@dataclass(frozen=True)
class HostScope:
    host: HostRef


@dataclass(frozen=True)
class TemplateScope:
    template: TemplateRef


Scope = OwnerScope | ClusterScope | ShardScope | HostScope | TemplateScope


@dataclass(frozen=True)
class ConvergeResult:
    """Result of converging one desired child resource."""

    kind: Kind
    identity: Identity
    outcome: Outcome
    duration: float = 0.0
    error: str | None = None
    # Rejected configuration: retrying without a spec change cannot help
    permanent: bool = False

    def to_dict(self) -> dict[str, str]:
        """Convert to dict for Kubernetes status."""
        result = {
            "kind": self.kind.value,
            "name": self.identity.name,
            "outcome": self.outcome.value,
        }
        if self.error:
            result["error"] = self.error
        return result


@dataclass
class PassResult:
    """Result of one reconciliation pass for an owner."""

    outcome: PassOutcome = PassOutcome.COMPLETED
    results: list[ConvergeResult] = field(default_factory=list)
    deleted: list[Identity] = field(default_factory=list)
    skipped_kinds: list[Kind] = field(default_factory=list)
    undeleted: list[Identity] = field(default_factory=list)
    duration: float = 0.0

    @property
    def failed(self) -> list[ConvergeResult]:
        return [r for r in self.results if r.outcome == Outcome.FAILED]

    @property
    def permanent(self) -> bool:
        """True if the pass only failed on rejected configuration."""
        return (
            bool(self.failed)
            and all(r.permanent for r in self.failed)
            and not self.skipped_kinds
            and not self.undeleted
        )

    def counts(self) -> dict[str, int]:
        """Count converge results per outcome, for Kubernetes status."""
        counts: dict[str, int] = {}
        for result in self.results:
            counts[result.outcome.value] = counts.get(result.outcome.value, 0) + 1
        if self.deleted:
            counts["deleted"] = len(self.deleted)
        return counts


# =============================================================================
# Exceptions
# =============================================================================


class OperatorError(Exception):
    """Base exception for operator errors."""

    pass


class StoreError(OperatorError):
    """The Kubernetes API rejected a request."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class NotFoundError(StoreError):
    """The requested object does not exist."""

    pass


class ConflictError(StoreError):
    """Concurrency token mismatch or object already exists."""

    pass


class StructuralConflictError(ConflictError):
    """An update would change a field that is immutable."""

    pass


class TransientStoreError(StoreError):
    """Network or server-side failure talking to the Kubernetes API."""

    pass


class RecreateRequired(OperatorError):
    """The change cannot be expressed as an in-place update."""

    pass


class ConfigurationError(OperatorError):
    """Invalid desired configuration, rejected before contacting the API."""

    pass


class InvalidArgumentError(OperatorError):
    """Programming error in scope or labeling inputs."""

    pass
