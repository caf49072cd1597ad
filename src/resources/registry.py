"""Pass-scoped registry of discovered child resources.

A Registry is a point-in-time snapshot of what exists in the cluster for
one ClusterInstallation. It is built fresh by discovery on every
reconciliation pass and never merged with a previous snapshot.
"""

import copy
import logging
import threading
from collections.abc import Callable, Iterator
from typing import Any

from models import Identity, Kind

logger = logging.getLogger(__name__)


class Registry:
    """Index of child resources keyed by kind and identity.

    Registration is idempotent: registering the same identity twice
    overwrites the previous snapshot.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._objects: dict[Kind, dict[Identity, dict[str, Any]]] = {}
        self.cancelled = False
        self.skipped_kinds: set[Kind] = set()

    @property
    def complete(self) -> bool:
        """True if every kind was listed and the pass was not cancelled.

        An incomplete registry means "nothing known" for the missing
        parts, never "confirmed empty".
        """
        return not self.cancelled and not self.skipped_kinds

    def register(self, kind: Kind, obj: dict[str, Any]) -> Identity:
        """Register a snapshot of an object."""
        identity = Identity.from_object(obj)
        with self._lock:
            self._objects.setdefault(kind, {})[identity] = copy.deepcopy(obj)
        logger.debug("Registered %s %s", kind.value, identity)
        return identity

    def mark_skipped(self, kind: Kind) -> None:
        with self._lock:
            self.skipped_kinds.add(kind)

    def has(self, kind: Kind, identity: Identity) -> bool:
        with self._lock:
            return identity in self._objects.get(kind, {})

    def get(self, kind: Kind, identity: Identity) -> dict[str, Any] | None:
        """Get the snapshot of an object, or None if it wasn't discovered."""
        with self._lock:
            return self._objects.get(kind, {}).get(identity)

    def identities(self, kind: Kind) -> list[Identity]:
        """Sorted identities of all discovered objects of a kind."""
        with self._lock:
            return sorted(self._objects.get(kind, {}))

    def walk(self, func: Callable[[Kind, Identity, dict[str, Any]], None]) -> None:
        """Call func for every registered object, kinds in declaration order."""
        for kind, identity in list(self):
            obj = self.get(kind, identity)
            if obj is not None:
                func(kind, identity, obj)

    def subtract(self, keep: set[tuple[Kind, Identity]]) -> list[tuple[Kind, Identity]]:
        """Return registered (kind, identity) pairs not present in `keep`."""
        return [entry for entry in self if entry not in keep]

    def __iter__(self) -> Iterator[tuple[Kind, Identity]]:
        with self._lock:
            entries = [
                (kind, identity)
                for kind in Kind
                for identity in sorted(self._objects.get(kind, {}))
            ]
        return iter(entries)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(objects) for objects in self._objects.values())

    def __repr__(self) -> str:
        with self._lock:
            counts = {kind.value: len(objs) for kind, objs in self._objects.items() if objs}
        return f"Registry({counts}, complete={self.complete})"
