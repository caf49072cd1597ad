"""Update policy for PersistentVolumeClaims.

Almost the whole spec of a bound claim is immutable. The only change
applied in place is the storage request, and it may only grow: volume
shrinking is not supported by any storage backend, so a decrease is a
configuration error and never reaches the API server.
"""

import copy
import logging
from typing import Any

from models import ConfigurationError, Identity, Kind, StructuralConflictError
from resources.policy import UpdatePolicy, merge_metadata
from utils import parse_size, storage_request

logger = logging.getLogger(__name__)


def _current_capacity(pvc: dict[str, Any]):
    requested = storage_request(pvc)
    if requested is not None:
        return requested
    capacity = ((pvc.get("status") or {}).get("capacity") or {}).get("storage")
    if capacity is None:
        return None
    return parse_size(capacity)


class PersistentVolumeClaimPolicy(UpdatePolicy):
    kind = Kind.PVC
    immutable_fields = ("storageClassName", "accessModes", "volumeMode")

    def check_capacity(self, current: dict[str, Any], desired: dict[str, Any]) -> None:
        wanted = storage_request(desired)
        have = _current_capacity(current)
        if wanted is None or have is None:
            return
        if wanted < have:
            identity = Identity.from_object(current)
            raise ConfigurationError(
                f"PersistentVolumeClaim {identity} storage cannot shrink: "
                f"requested {wanted} bytes, current {have} bytes"
            )

    def check_immutable(self, current: dict[str, Any], payload: dict[str, Any]) -> None:
        spec = payload.get("spec") or {}
        cur_spec = current.get("spec") or {}
        for name in self.immutable_fields:
            if name not in spec or name not in cur_spec:
                continue
            wanted, have = spec[name], cur_spec[name]
            if name == "accessModes":
                wanted, have = sorted(wanted or []), sorted(have or [])
            if wanted != have:
                raise StructuralConflictError(
                    f"PersistentVolumeClaim spec.{name} is immutable: "
                    f"'{cur_spec[name]}' => '{spec[name]}'"
                )

    def prepare_update(
        self, current: dict[str, Any], desired: dict[str, Any]
    ) -> dict[str, Any]:
        self.check_capacity(current, desired)
        self.check_immutable(current, desired)

        # Start from the live claim so volumeName and all bound fields are kept
        payload = copy.deepcopy(current)
        payload.pop("status", None)
        resources = (desired.get("spec") or {}).get("resources")
        if resources is not None:
            payload.setdefault("spec", {})["resources"] = copy.deepcopy(resources)

        desired_meta = desired.get("metadata") or {}
        meta = payload.setdefault("metadata", {})
        for field in ("labels", "annotations", "finalizers", "ownerReferences"):
            if field in desired_meta:
                meta[field] = copy.deepcopy(desired_meta[field])
        return merge_metadata(payload, current)
