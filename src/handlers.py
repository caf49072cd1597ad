"""Kopf handlers for the ClusterInstallation CRD."""

import logging
import sys
from pathlib import Path
from typing import Any

# Add src directory to path for imports when run as script by Kopf
_src_dir = Path(__file__).parent
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

import kopf
from prometheus_client import start_http_server

from cancellation import CancellationToken
from constants import CRD_GROUP, CRD_PLURAL, CRD_VERSION, FINALIZER
from labeler import Labeler
from metrics import PrometheusRecorder
from models import (
    ConfigurationError,
    ConditionStatus,
    InvalidArgumentError,
    Owner,
    PassOutcome,
    PassResult,
    Phase,
)
from resources.installation import reconcile_installation
from state import Settings, state
from utils import now_iso, set_condition

logger = logging.getLogger(__name__)

# Operator version
OPERATOR_VERSION = "0.1.0"

# Timer intervals are fixed when handlers are registered
RESYNC_INTERVAL = Settings.from_env().resync_interval


@kopf.on.startup()
def configure(settings: kopf.OperatorSettings, **_: Any) -> None:
    """Configure operator settings on startup."""
    operator_settings = Settings.from_env()

    # Reduce logging noise
    settings.posting.level = logging.WARNING
    # Configure persistence
    settings.persistence.finalizer = FINALIZER
    # Set watching namespace - explicit cluster-wide or specific namespace
    if operator_settings.watch_namespace:
        settings.watching.namespaces = [operator_settings.watch_namespace]
    else:
        settings.watching.clusterwide = True

    # Start Prometheus metrics server
    try:
        start_http_server(operator_settings.metrics_port)
        logger.info(
            "Prometheus metrics server started on port %d", operator_settings.metrics_port
        )
    except OSError as e:
        logger.warning(
            "Failed to start metrics server on port %d: %s",
            operator_settings.metrics_port,
            e,
        )

    recorder = PrometheusRecorder()
    recorder.set_operator_info(OPERATOR_VERSION)
    state.start(operator_settings, recorder)

    logger.info("Cluster operator started (version %s)", OPERATOR_VERSION)


@kopf.on.cleanup()
def cleanup(**_: Any) -> None:
    """Clean up resources on operator shutdown."""
    logger.info("Cluster operator shutting down")
    state.close()


def _run_pass(
    spec: dict[str, Any],
    meta: dict[str, Any],
    cancel: CancellationToken,
) -> PassResult:
    """Run a reconciliation pass for the installation described by spec/meta."""
    settings = state.get_settings()
    recorder = state.get_recorder()
    owner = Owner.from_meta(meta)
    recorder.init_owner(owner.attributes())

    recorder.in_progress.inc()
    try:
        return reconcile_installation(
            state.get_store(),
            state.get_reconciler(),
            recorder,
            owner,
            spec.get("resources", []),
            Labeler(owner, settings.labeler),
            cancel=cancel,
            discovery_workers=settings.discovery_workers,
            reconcile_workers=settings.reconcile_workers,
            cleanup=settings.cleanup_orphans,
        )
    finally:
        recorder.in_progress.dec()


def _apply_result(status: dict[str, Any], result: PassResult) -> None:
    """Write the outcome of a pass into the status patch."""
    if result.skipped_kinds:
        kinds = ", ".join(kind.value for kind in result.skipped_kinds)
        set_condition(
            status, "Discovered", ConditionStatus.FALSE.value, "ListFailed", kinds
        )
    else:
        set_condition(status, "Discovered", ConditionStatus.TRUE.value, "Listed", "")

    if result.failed:
        message = "; ".join(
            f"{r.kind.value} {r.identity.name}: {r.error}" for r in result.failed
        )
        set_condition(
            status, "Reconciled", ConditionStatus.FALSE.value, "Failed", message[:200]
        )
    else:
        set_condition(status, "Reconciled", ConditionStatus.TRUE.value, "Converged", "")

    status["children"] = result.counts()
    if result.outcome == PassOutcome.COMPLETED:
        status["phase"] = Phase.READY.value
        status["lastSyncTime"] = now_iso()
    elif result.permanent:
        status["phase"] = Phase.ERROR.value
    else:
        status["phase"] = Phase.DEGRADED.value


@kopf.on.resume(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
@kopf.on.create(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
@kopf.on.update(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
def reconcile_handler(
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    namespace: str,
    name: str,
    meta: dict[str, Any],
    body: kopf.Body,
    **_: Any,
) -> None:
    """Converge all child resources of a ClusterInstallation."""
    logger.info(f"Reconciling ClusterInstallation: {namespace}/{name}")

    patch.status["phase"] = Phase.PROVISIONING.value
    patch.status["observedGeneration"] = meta.get("generation", 1)
    patch.status["conditions"] = [dict(c) for c in status.get("conditions", [])]

    try:
        result = _run_pass(spec, meta, CancellationToken())
    except (ConfigurationError, InvalidArgumentError) as e:
        logger.error(f"Invalid ClusterInstallation {namespace}/{name}: {e}")
        patch.status["phase"] = Phase.ERROR.value
        set_condition(
            patch.status, "Reconciled", ConditionStatus.FALSE.value, "InvalidSpec", str(e)[:200]
        )
        kopf.warn(body, reason="InvalidSpec", message=str(e)[:200])
        raise kopf.PermanentError(f"Invalid spec: {e}")
    except Exception as e:
        logger.exception(f"Reconciliation of {namespace}/{name} failed")
        patch.status["phase"] = Phase.ERROR.value
        kopf.warn(body, reason="ReconcileFailed", message=str(e)[:200])
        raise kopf.TemporaryError(f"Reconciliation failed: {e}", delay=60)

    _apply_result(patch.status, result)

    if result.outcome == PassOutcome.ABORTED:
        raise kopf.TemporaryError("Reconciliation aborted", delay=10)
    if result.outcome == PassOutcome.PARTIAL and result.permanent:
        message = "; ".join(r.error or "" for r in result.failed)[:200]
        kopf.warn(body, reason="InvalidSpec", message=message)
        raise kopf.PermanentError(f"Invalid spec: {message}")
    if result.outcome == PassOutcome.PARTIAL:
        kopf.warn(
            body,
            reason="ReconcileIncomplete",
            message=f"{len(result.failed)} child resources failed to converge",
        )
        raise kopf.TemporaryError("Reconciliation incomplete", delay=60)

    kopf.info(body, reason="Reconciled", message=str(result.counts()))
    logger.info(f"Successfully reconciled ClusterInstallation: {namespace}/{name}")


@kopf.timer(CRD_GROUP, CRD_VERSION, CRD_PLURAL, interval=RESYNC_INTERVAL, idle=RESYNC_INTERVAL)
def resync_handler(
    spec: dict[str, Any],
    status: dict[str, Any],
    patch: kopf.Patch,
    namespace: str,
    name: str,
    meta: dict[str, Any],
    stopped: kopf.DaemonStopped,
    **_: Any,
) -> None:
    """Periodic reconciliation to detect and repair drift."""
    if status.get("phase") not in (Phase.READY.value, Phase.DEGRADED.value):
        return

    logger.debug(f"Resyncing ClusterInstallation: {namespace}/{name}")

    try:
        result = _run_pass(spec, meta, CancellationToken(stopped))
    except Exception:
        logger.exception(f"Resync failed for {namespace}/{name}")
        return

    if result.outcome == PassOutcome.ABORTED:
        return
    patch.status["conditions"] = [dict(c) for c in status.get("conditions", [])]
    _apply_result(patch.status, result)


@kopf.on.delete(CRD_GROUP, CRD_VERSION, CRD_PLURAL)
def delete_handler(namespace: str, name: str, **_: Any) -> None:
    """Handle ClusterInstallation deletion.

    Child resources carry an ownerReference to the installation and are
    removed by the Kubernetes garbage collector.
    """
    logger.info(
        f"ClusterInstallation {namespace}/{name} deleted, "
        "child resources are garbage collected by ownerReference"
    )
