"""Base class for per-kind update policies.

An update policy turns a (current, desired) pair into the payload of an
in-place update. It raises RecreateRequired or StructuralConflictError
when the change cannot be applied in place, and ConfigurationError when
the desired object is rejected outright.
"""

import copy
import hashlib
import json
from typing import Any

from constants import ANNOTATION_APPLIED_HASH
from models import Kind, StructuralConflictError
from utils import merge_string_lists, merge_string_maps_preserve


def is_subset(desired: Any, current: Any) -> bool:
    """Check that everything set in `desired` has the same value in `current`.

    Fields only present in `current` (server-side defaults, status) are
    ignored, so a live object compares equal to the manifest it came from.
    Lists must have the same length and match element-wise.
    """
    if isinstance(desired, dict):
        if not isinstance(current, dict):
            return False
        return all(
            key in current and is_subset(value, current[key])
            for key, value in desired.items()
        )
    if isinstance(desired, list):
        if not isinstance(current, list) or len(desired) != len(current):
            return False
        return all(is_subset(d, c) for d, c in zip(desired, current))
    return desired == current


def desired_hash(desired: dict[str, Any]) -> str:
    """SHA-256 of a desired manifest, ignoring a previously stamped hash."""
    manifest = copy.deepcopy(desired)
    annotations = (manifest.get("metadata") or {}).get("annotations") or {}
    annotations.pop(ANNOTATION_APPLIED_HASH, None)
    encoded = json.dumps(manifest, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(encoded.encode()).hexdigest()


def stamp_hash(desired: dict[str, Any]) -> dict[str, Any]:
    """Copy of `desired` annotated with its own hash.

    The annotation travels into every create and update payload, so a
    live object only compares as up to date with `is_subset` when it was
    last written from exactly this manifest. Keys removed from the
    manifest change the hash and force an update.
    """
    stamped = copy.deepcopy(desired)
    meta = stamped.setdefault("metadata", {})
    annotations = dict(meta.get("annotations") or {})
    annotations[ANNOTATION_APPLIED_HASH] = desired_hash(desired)
    meta["annotations"] = annotations
    return stamped


def merge_metadata(payload: dict[str, Any], current: dict[str, Any]) -> dict[str, Any]:
    """Carry labels, annotations, finalizers and resourceVersion from current.

    Labels and annotations are unioned with desired values winning on
    collision; finalizers keep desired order followed by current-only
    entries. Nothing set externally on the live object is dropped.
    """
    meta = payload.setdefault("metadata", {})
    cur_meta = current.get("metadata") or {}

    labels = merge_string_maps_preserve(meta.get("labels"), cur_meta.get("labels"))
    annotations = merge_string_maps_preserve(
        meta.get("annotations"), cur_meta.get("annotations")
    )
    finalizers = merge_string_lists(meta.get("finalizers"), cur_meta.get("finalizers"))

    if labels:
        meta["labels"] = labels
    if annotations:
        meta["annotations"] = annotations
    if finalizers:
        meta["finalizers"] = finalizers

    # resourceVersion is required in order to update an object
    meta["resourceVersion"] = cur_meta.get("resourceVersion")
    return payload


class UpdatePolicy:
    """Default policy: desired object replaces current, metadata merged."""

    kind: Kind

    # spec fields which cannot change once the object exists
    immutable_fields: tuple[str, ...] = ()

    def prepare_update(
        self, current: dict[str, Any], desired: dict[str, Any]
    ) -> dict[str, Any]:
        """Build the update payload for `current` from `desired`."""
        payload = copy.deepcopy(desired)
        payload.pop("status", None)
        self.check_immutable(current, payload)
        self.migrate(current, payload)
        return merge_metadata(payload, current)

    def check_immutable(self, current: dict[str, Any], payload: dict[str, Any]) -> None:
        """Reject changes to immutable spec fields, carry them over otherwise.

        Only fields set in the desired object are compared. When they match,
        the live value is used so server-side defaults survive the update.
        """
        spec = payload.get("spec")
        cur_spec = current.get("spec") or {}
        if spec is None:
            return
        for name in self.immutable_fields:
            if name not in spec:
                continue
            if not is_subset(spec[name], cur_spec.get(name)):
                raise StructuralConflictError(
                    f"{self.kind.value} spec.{name} is immutable and differs"
                )
            spec[name] = copy.deepcopy(cur_spec[name])

    def migrate(self, current: dict[str, Any], payload: dict[str, Any]) -> None:
        """Hook for kind-specific field migration from current to payload."""
        pass
