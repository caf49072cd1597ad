"""One reconciliation pass for a ClusterInstallation.

A pass prepares the desired child resources listed by a ClusterInstallation,
discovers what currently exists, converges every desired object and finally
removes children that are no longer desired.
"""

import copy
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any

from cancellation import CancellationToken
from constants import CRD_GROUP, CRD_KIND, CRD_VERSION
from kube_store import Store
from labeler import Labeler, scope_from_spec
from metrics import Recorder
from models import (
    ChildResourceSpec,
    ConfigurationError,
    Identity,
    Kind,
    NotFoundError,
    OperatorError,
    Outcome,
    Owner,
    PassOutcome,
    PassResult,
)
from resources.discovery import discover
from resources.reconciler import Reconciler
from utils import storage_request

logger = logging.getLogger(__name__)


def owner_reference(owner: Owner) -> dict[str, Any]:
    """ownerReference making the ClusterInstallation the controller of a child."""
    return {
        "apiVersion": f"{CRD_GROUP}/{CRD_VERSION}",
        "kind": CRD_KIND,
        "name": owner.name,
        "uid": owner.uid,
        "controller": True,
        "blockOwnerDeletion": True,
    }


def build_desired(
    owner: Owner,
    resources: list[ChildResourceSpec],
    labeler: Labeler,
) -> list[dict[str, Any]]:
    """Validate and stamp the desired child resources of an installation.

    Each manifest is defaulted into the owner's namespace, labeled for its
    scope and given an ownerReference to the owner.

    Raises:
        ConfigurationError: unsupported kind, missing name, foreign
            namespace, duplicate identity or malformed storage size
        InvalidArgumentError: malformed scope
    """
    desired: list[dict[str, Any]] = []
    seen: set[tuple[Kind, Identity]] = set()

    for index, entry in enumerate(resources or []):
        manifest = copy.deepcopy(entry.get("manifest") or {})
        kind = Kind.from_manifest(manifest)
        meta = manifest.setdefault("metadata", {})

        if not meta.get("name"):
            raise ConfigurationError(f"spec.resources[{index}]: metadata.name is required")
        namespace = meta.setdefault("namespace", owner.namespace)
        if namespace != owner.namespace:
            raise ConfigurationError(
                f"spec.resources[{index}]: {kind.value} {meta['name']} must live in "
                f"namespace {owner.namespace}, not {namespace}"
            )

        key = (kind, Identity.from_object(manifest))
        if key in seen:
            raise ConfigurationError(
                f"spec.resources[{index}]: duplicate {kind.value} {key[1]}"
            )
        seen.add(key)

        if kind == Kind.PVC:
            try:
                storage_request(manifest)
            except ConfigurationError as e:
                raise ConfigurationError(f"spec.resources[{index}]: {e}") from e

        labeler.stamp(manifest, scope_from_spec(entry.get("scope")))
        if owner.uid:
            meta["ownerReferences"] = [owner_reference(owner)]
        desired.append(manifest)

    return desired


def cleanup_orphans(
    store: Store,
    orphans: list[tuple[Kind, Identity]],
    owner: Owner,
    cancel: CancellationToken,
) -> tuple[list[Identity], list[Identity]]:
    """Delete discovered children that are no longer desired.

    Returns:
        Tuple of (deleted, failed) identities
    """
    deleted: list[Identity] = []
    failed: list[Identity] = []
    for kind, identity in orphans:
        if cancel.cancelled:
            break
        try:
            store.delete(kind, identity)
        except NotFoundError:
            pass
        except OperatorError as e:
            logger.error(f"Failed to delete orphaned {kind.value} {identity} for {owner}: {e}")
            failed.append(identity)
            continue
        logger.info(f"Deleted orphaned {kind.value} {identity} for {owner}")
        deleted.append(identity)
    return deleted, failed


def reconcile_installation(
    store: Store,
    reconciler: Reconciler,
    recorder: Recorder,
    owner: Owner,
    resources: list[ChildResourceSpec],
    labeler: Labeler,
    cancel: CancellationToken | None = None,
    discovery_workers: int = 1,
    reconcile_workers: int = 1,
    cleanup: bool = True,
) -> PassResult:
    """Run one reconciliation pass for `owner`.

    Configuration errors in `resources` are raised before anything is
    discovered or changed. Store failures never raise: they are isolated
    per kind (discovery) or per child (converge) and reflected in the
    returned PassResult.
    """
    cancel = cancel or CancellationToken()
    attrs = owner.attributes()
    start_time = time.monotonic()
    result = PassResult()

    desired = build_desired(owner, resources, labeler)

    if cancel.cancelled:
        logger.info(f"Reconciliation of {owner} cancelled before start")
        result.outcome = PassOutcome.ABORTED
        recorder.record_pass(attrs, result.outcome, 0.0)
        return result

    registry = discover(store, owner, labeler, cancel, max_workers=discovery_workers)
    result.skipped_kinds = sorted(registry.skipped_kinds, key=lambda k: list(Kind).index(k))

    if reconcile_workers > 1:
        with ThreadPoolExecutor(max_workers=reconcile_workers) as executor:
            result.results = list(
                executor.map(lambda obj: reconciler.converge(owner, obj, cancel), desired)
            )
    else:
        result.results = [reconciler.converge(owner, obj, cancel) for obj in desired]

    cancelled = registry.cancelled or any(
        r.outcome == Outcome.CANCELLED for r in result.results
    )

    if cleanup and registry.complete and not cancelled:
        keep = {(Kind.from_manifest(obj), Identity.from_object(obj)) for obj in desired}
        orphans = registry.subtract(keep)
        if orphans:
            result.deleted, result.undeleted = cleanup_orphans(
                store, orphans, owner, cancel
            )
            for _ in result.undeleted:
                recorder.record_error(attrs)
    elif cleanup and not registry.complete:
        logger.info(f"Skipping orphan cleanup for {owner}: discovery was incomplete")

    if cancelled or cancel.cancelled:
        result.outcome = PassOutcome.ABORTED
    elif result.failed or result.skipped_kinds or result.undeleted:
        result.outcome = PassOutcome.PARTIAL
    else:
        result.outcome = PassOutcome.COMPLETED

    result.duration = time.monotonic() - start_time
    recorder.record_pass(attrs, result.outcome, result.duration)
    logger.info(
        f"Reconciliation of {owner} {result.outcome.value} in {result.duration:.2f}s: "
        f"{result.counts()}"
    )
    return result
