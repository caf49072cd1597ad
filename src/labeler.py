"""Ownership labels and selectors for child resources.

Every child resource of a ClusterInstallation carries a set of reserved
labels identifying its owner and, optionally, the cluster/shard/host or
template it belongs to. The same labels are used to build the selectors
discovery lists with, so an object stamped by `Labeler.label` is always
matched by `Labeler.selector` for the same scope.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any

from constants import (
    LABEL_APP,
    LABEL_APP_VALUE,
    LABEL_CLUSTER,
    LABEL_HOST,
    LABEL_INSTALLATION,
    LABEL_NAMESPACE,
    LABEL_SHARD,
    LABEL_TEMPLATE,
    RESERVED_LABELS,
)
from models import (
    ClusterRef,
    ClusterScope,
    HostRef,
    HostScope,
    InvalidArgumentError,
    Owner,
    OwnerScope,
    Scope,
    ScopeSpec,
    ShardRef,
    ShardScope,
    TemplateRef,
    TemplateScope,
)
from utils import merge_string_maps_overwrite

logger = logging.getLogger(__name__)


def _split_env_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class LabelerConfig:
    """Which owner labels are copied onto child resources.

    An empty include list means all owner labels are candidates.
    Exclusions always win over inclusions.
    """

    include: tuple[str, ...] = ()
    exclude: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_env(cls) -> "LabelerConfig":
        """Load from LABEL_INCLUDE / LABEL_EXCLUDE environment variables."""
        return cls(
            include=tuple(_split_env_list(os.environ.get("LABEL_INCLUDE", ""))),
            exclude=tuple(_split_env_list(os.environ.get("LABEL_EXCLUDE", ""))),
        )


def _require(value: str, what: str) -> str:
    if not value:
        raise InvalidArgumentError(f"{what} name is required for this scope")
    return value


def scope_from_spec(spec: ScopeSpec | None) -> Scope:
    """Build a scope from the `scope` block of a child resource spec.

    Examples:
        None                                  -> OwnerScope()
        {'cluster': 'c'}                      -> ClusterScope(ClusterRef('c'))
        {'cluster': 'c', 'shard': 's'}        -> ShardScope(ShardRef('c', 's'))
        {'cluster': 'c', 'shard': 's', 'host': 'h'} -> HostScope(...)
        {'template': 't'}                     -> TemplateScope(TemplateRef('t'))
    """
    if not spec:
        return OwnerScope()

    template = spec.get("template")
    cluster = spec.get("cluster", "")
    shard = spec.get("shard", "")
    host = spec.get("host", "")

    if template:
        if cluster or shard or host:
            raise InvalidArgumentError(
                "template scope cannot be combined with cluster/shard/host"
            )
        return TemplateScope(TemplateRef(template))
    if host:
        return HostScope(
            HostRef(_require(cluster, "cluster"), _require(shard, "shard"), host)
        )
    if shard:
        return ShardScope(ShardRef(_require(cluster, "cluster"), shard))
    if cluster:
        return ClusterScope(ClusterRef(cluster))
    raise InvalidArgumentError(f"Malformed scope: {spec!r}")


class Labeler:
    """Produces ownership labels and selectors for one ClusterInstallation."""

    def __init__(self, owner: Owner, config: LabelerConfig | None = None) -> None:
        self.owner = owner
        self.config = config or LabelerConfig()

    def _owner_scope(self) -> dict[str, str]:
        return {
            LABEL_APP: LABEL_APP_VALUE,
            LABEL_NAMESPACE: self.owner.namespace,
            LABEL_INSTALLATION: self.owner.name,
        }

    def scope_labels(self, scope: Scope) -> dict[str, str]:
        """Reserved labels for a scope. Only these participate in selectors."""
        labels = self._owner_scope()
        if isinstance(scope, OwnerScope):
            pass
        elif isinstance(scope, ClusterScope):
            labels[LABEL_CLUSTER] = _require(scope.cluster.name, "cluster")
        elif isinstance(scope, ShardScope):
            labels[LABEL_CLUSTER] = _require(scope.shard.cluster, "cluster")
            labels[LABEL_SHARD] = _require(scope.shard.name, "shard")
        elif isinstance(scope, HostScope):
            labels[LABEL_CLUSTER] = _require(scope.host.cluster, "cluster")
            labels[LABEL_SHARD] = _require(scope.host.shard, "shard")
            labels[LABEL_HOST] = _require(scope.host.name, "host")
        elif isinstance(scope, TemplateScope):
            labels[LABEL_TEMPLATE] = _require(scope.template.name, "template")
        else:
            raise InvalidArgumentError(f"Unknown scope type: {type(scope).__name__}")
        return labels

    def _inherited_labels(self) -> dict[str, str]:
        """Owner labels allowed onto children by include/exclude config."""
        result = {}
        for key, value in self.owner.labels.items():
            if key in RESERVED_LABELS:
                continue
            if self.config.include and key not in self.config.include:
                continue
            if key in self.config.exclude:
                continue
            result[key] = value
        return result

    def label(self, scope: Scope) -> dict[str, str]:
        """Full label set to stamp on a child resource of this scope."""
        return merge_string_maps_overwrite(
            self._inherited_labels(), self.scope_labels(scope)
        )

    def selector(self, scope: Scope | None = None) -> dict[str, str]:
        """matchLabels selector for children stamped with `scope`."""
        return self.scope_labels(scope if scope is not None else OwnerScope())

    def stamp(self, manifest: dict[str, Any], scope: Scope) -> dict[str, Any]:
        """Apply scope labels to a manifest in place; reserved keys always win."""
        meta = manifest.setdefault("metadata", {})
        labels = merge_string_maps_overwrite(self._inherited_labels(), meta.get("labels"))
        meta["labels"] = merge_string_maps_overwrite(labels, self.scope_labels(scope))
        return manifest
