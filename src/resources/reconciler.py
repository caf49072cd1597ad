"""Generic converge engine for child resources.

For every desired object the reconciler looks up the live object,
creates it when absent, updates it in place according to the kind's
update policy, and falls back to delete-then-create when the update is
structurally impossible. Nothing is retried here: failures are reported
and the next reconciliation pass re-drives them.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from cancellation import CancellationToken
from kube_store import Store
from metrics import Recorder
from models import (
    ConvergeResult,
    Identity,
    ConfigurationError,
    Kind,
    NotFoundError,
    OperatorError,
    Outcome,
    Owner,
    RecreateRequired,
    StructuralConflictError,
    TransientStoreError,
)
from resources.configmap import ConfigMapPolicy, SecretPolicy
from resources.pdb import PodDisruptionBudgetPolicy
from resources.policy import UpdatePolicy, is_subset, stamp_hash
from resources.pvc import PersistentVolumeClaimPolicy
from resources.service import ServicePolicy
from resources.statefulset import StatefulSetPolicy

logger = logging.getLogger(__name__)

POLICIES: dict[Kind, UpdatePolicy] = {
    policy.kind: policy
    for policy in (
        StatefulSetPolicy(),
        ConfigMapPolicy(),
        ServicePolicy(),
        SecretPolicy(),
        PersistentVolumeClaimPolicy(),
        PodDisruptionBudgetPolicy(),
    )
}


class ConvergeCancelled(Exception):
    """Raised internally when the cancellation token fires between store calls."""


class Reconciler:
    """Drives desired child resources to their live counterparts."""

    def __init__(
        self,
        store: Store,
        recorder: Recorder,
        delete_timeout: float = 60.0,
        poll_interval: float = 1.0,
    ) -> None:
        """Initialize the reconciler.

        Args:
            store: Store holding the child resources
            recorder: Receives started/completed/aborted/error/timing reports
            delete_timeout: How long to wait for a deleted object to vanish
                before recreating it
            poll_interval: Delay between existence checks while waiting
        """
        self.store = store
        self.recorder = recorder
        self.delete_timeout = delete_timeout
        self.poll_interval = poll_interval
        # (lock, number of converges holding or waiting for it) per object
        self._locks: dict[tuple[Kind, Identity], list] = {}
        self._locks_lock = threading.Lock()

    @contextmanager
    def _locked(self, kind: Kind, identity: Identity) -> Iterator[None]:
        """Serialise converges of one object; the lock is dropped when unused."""
        key = (kind, identity)
        with self._locks_lock:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_lock:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]

    @staticmethod
    def _check(cancel: CancellationToken) -> None:
        if cancel.cancelled:
            raise ConvergeCancelled()

    def converge(
        self,
        owner: Owner,
        desired: dict[str, Any],
        cancel: CancellationToken | None = None,
    ) -> ConvergeResult:
        """Converge one desired object and report the outcome.

        Store and policy errors never raise: they are logged, reported to
        the recorder and returned as a FAILED result. `desired` must be
        of a managed kind (see `build_desired`).
        """
        cancel = cancel or CancellationToken()
        kind = Kind.from_manifest(desired)
        identity = Identity.from_object(desired)
        attrs = owner.attributes()

        if cancel.cancelled:
            logger.debug(f"Converge of {kind.value} {identity} not attempted: cancelled")
            self.recorder.record_aborted(attrs)
            self.recorder.record_child(attrs, kind, Outcome.CANCELLED)
            return ConvergeResult(kind, identity, Outcome.CANCELLED)

        self.recorder.record_started(attrs)
        start_time = time.monotonic()
        with self._locked(kind, identity):
            try:
                outcome = self._converge(kind, identity, desired, cancel)
            except ConvergeCancelled:
                logger.info(f"Converge of {kind.value} {identity} for {owner} cancelled")
                self.recorder.record_aborted(attrs)
                self.recorder.record_child(attrs, kind, Outcome.CANCELLED)
                return ConvergeResult(kind, identity, Outcome.CANCELLED)
            except OperatorError as e:
                logger.error(
                    f"Failed to reconcile {kind.value} {identity} for {owner}: {e}"
                )
                self.recorder.record_error(attrs)
                self.recorder.record_child(attrs, kind, Outcome.FAILED)
                return ConvergeResult(
                    kind,
                    identity,
                    Outcome.FAILED,
                    duration=time.monotonic() - start_time,
                    error=str(e)[:200],
                    permanent=isinstance(e, ConfigurationError),
                )

        duration = time.monotonic() - start_time
        self.recorder.record_completed(attrs)
        self.recorder.record_timing(attrs, duration)
        self.recorder.record_child(attrs, kind, outcome)
        logger.info(
            f"Reconciled {kind.value} {identity} for {owner}: {outcome.value} "
            f"({duration:.2f}s)"
        )
        return ConvergeResult(kind, identity, outcome, duration=duration)

    def _converge(
        self,
        kind: Kind,
        identity: Identity,
        desired: dict[str, Any],
        cancel: CancellationToken,
    ) -> Outcome:
        desired = stamp_hash(desired)

        # Always look up the live object; a discovery snapshot may be stale
        self._check(cancel)
        try:
            current = self.store.get(kind, identity)
        except NotFoundError:
            current = None

        if current is None:
            logger.debug(f"{kind.value} {identity} not found, creating")
            self._check(cancel)
            self.store.create(kind, desired)
            return Outcome.CREATED

        policy = POLICIES[kind]
        try:
            payload = policy.prepare_update(current, desired)
        except (RecreateRequired, StructuralConflictError) as e:
            logger.info(f"{kind.value} {identity} can not be updated in place: {e}")
            return self._recreate(kind, identity, desired, cancel)

        # The payload carries the hash annotation, so removed keys never compare equal
        if is_subset(payload, current):
            logger.debug(f"{kind.value} {identity} is up to date")
            return Outcome.UNCHANGED

        self._check(cancel)
        try:
            self.store.update(kind, payload)
        except StructuralConflictError as e:
            logger.info(f"Update of {kind.value} {identity} rejected, recreating: {e}")
            return self._recreate(kind, identity, desired, cancel)
        except NotFoundError:
            # Deleted between lookup and update
            logger.info(f"{kind.value} {identity} vanished during update, creating")
            self._check(cancel)
            self.store.create(kind, desired)
            return Outcome.CREATED
        return Outcome.UPDATED

    def _recreate(
        self,
        kind: Kind,
        identity: Identity,
        desired: dict[str, Any],
        cancel: CancellationToken,
    ) -> Outcome:
        """Delete the live object, wait for it to be gone, then create desired."""
        self._check(cancel)
        try:
            self.store.delete(kind, identity)
        except NotFoundError:
            pass
        self._wait_deleted(kind, identity, cancel)

        self._check(cancel)
        self.store.create(kind, desired)
        return Outcome.RECREATED

    def _wait_deleted(
        self, kind: Kind, identity: Identity, cancel: CancellationToken
    ) -> None:
        deadline = time.monotonic() + self.delete_timeout
        while True:
            self._check(cancel)
            try:
                self.store.get(kind, identity)
            except NotFoundError:
                return
            if time.monotonic() >= deadline:
                raise TransientStoreError(
                    f"{kind.value} {identity} still exists {self.delete_timeout:.0f}s "
                    "after deletion"
                )
            time.sleep(self.poll_interval)
