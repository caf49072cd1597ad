"""Discovery of live child resources owned by a ClusterInstallation."""

import logging
from concurrent.futures import ThreadPoolExecutor

from cancellation import CancellationToken
from kube_store import Store
from labeler import Labeler
from models import Kind, OperatorError, Owner
from resources.registry import Registry
from utils import labels_match

logger = logging.getLogger(__name__)


def discover_kind(
    store: Store,
    registry: Registry,
    kind: Kind,
    owner: Owner,
    selector: dict[str, str],
    cancel: CancellationToken,
) -> None:
    """List one kind with the owner selector and register every match.

    A failed list is logged and the kind is marked skipped; it never
    aborts discovery of the other kinds.
    """
    if cancel.cancelled:
        registry.cancelled = True
        return

    try:
        objects = store.list(kind, owner.namespace, selector)
    except OperatorError as e:
        logger.error(f"Failed to list {kind.value} for {owner}: {e}")
        registry.mark_skipped(kind)
        return

    if not objects:
        logger.debug(f"No {kind.value} found for {owner}")
        return

    for obj in objects:
        labels = (obj.get("metadata") or {}).get("labels")
        if not labels_match(labels, selector):
            logger.warning(
                "Ignoring %s %s/%s: not labeled for %s",
                kind.value,
                owner.namespace,
                (obj.get("metadata") or {}).get("name"),
                owner,
            )
            continue
        registry.register(kind, obj)


def discover(
    store: Store,
    owner: Owner,
    labeler: Labeler,
    cancel: CancellationToken | None = None,
    max_workers: int = 1,
) -> Registry:
    """Build a fresh Registry of every child resource owned by `owner`.

    Args:
        store: Store to list from
        owner: The owning ClusterInstallation
        labeler: Labeler for `owner`, providing the owner-scope selector
        cancel: Checked before starting and before each kind
        max_workers: Number of kinds listed concurrently

    Returns:
        The populated Registry. If cancelled, the registry is partial and
        `registry.cancelled` is set; callers must not treat it as complete.
    """
    cancel = cancel or CancellationToken()
    registry = Registry()

    if cancel.cancelled:
        logger.info(f"Discovery for {owner} cancelled before start")
        registry.cancelled = True
        return registry

    selector = labeler.selector()

    if max_workers > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [
                executor.submit(
                    discover_kind, store, registry, kind, owner, selector, cancel
                )
                for kind in Kind
            ]
            for future in futures:
                future.result()
    else:
        for kind in Kind:
            discover_kind(store, registry, kind, owner, selector, cancel)

    logger.info(f"Discovered {len(registry)} child resources for {owner}: {registry!r}")
    return registry
