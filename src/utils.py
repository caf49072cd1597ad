"""Utility functions for the cluster operator."""

import datetime
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from kubernetes.utils import parse_quantity

from models import ConfigurationError


def merge_string_maps_preserve(
    primary: Mapping[str, str] | None, secondary: Mapping[str, str] | None
) -> dict[str, str]:
    """Merge two string maps, keeping primary values on key collision.

    Keys only present in secondary are preserved.

    Example: ({'a': '1'}, {'a': '2', 'b': '3'}) -> {'a': '1', 'b': '3'}
    """
    result = dict(secondary or {})
    result.update(primary or {})
    return result


def merge_string_maps_overwrite(
    base: Mapping[str, str] | None, overlay: Mapping[str, str] | None
) -> dict[str, str]:
    """Merge two string maps, overlay values win on key collision."""
    result = dict(base or {})
    result.update(overlay or {})
    return result


def merge_string_lists(
    primary: Iterable[str] | None, secondary: Iterable[str] | None
) -> list[str]:
    """Union of two lists keeping primary order, then secondary-only entries."""
    result: list[str] = []
    for item in list(primary or []) + list(secondary or []):
        if item not in result:
            result.append(item)
    return result


def selector_string(selector: Mapping[str, str]) -> str:
    """Render a matchLabels selector as a Kubernetes label selector string.

    Example: {'app': 'x', 'tier': 'db'} -> 'app=x,tier=db'
    """
    return ",".join(f"{key}={value}" for key, value in sorted(selector.items()))


def labels_match(labels: Mapping[str, str] | None, selector: Mapping[str, str]) -> bool:
    """Check whether a label set satisfies a matchLabels selector."""
    labels = labels or {}
    return all(labels.get(key) == value for key, value in selector.items())


def storage_request(pvc: dict[str, Any]) -> Decimal | None:
    """Return the requested storage of a PVC in bytes, or None if unset."""
    requests = ((pvc.get("spec") or {}).get("resources") or {}).get("requests") or {}
    value = requests.get("storage")
    if value is None:
        return None
    return parse_size(value)


def parse_size(value: Any) -> Decimal:
    """Parse a Kubernetes quantity such as "10Gi" into bytes.

    Raises:
        ConfigurationError: if the value is not a valid quantity
    """
    try:
        return parse_quantity(value)
    except (ValueError, TypeError, ArithmeticError) as e:
        raise ConfigurationError(f"Invalid storage size {value!r}: {e}") from e


def now_iso() -> str:
    """Return current UTC time in ISO format."""
    return datetime.datetime.now(datetime.UTC).isoformat()


def set_condition(
    status: dict[str, Any],
    condition_type: str,
    condition_status: str,
    reason: str = "",
    message: str = "",
) -> None:
    """Set or update a condition in the status conditions list."""
    conditions: list[dict[str, str]] = status.setdefault("conditions", [])

    for condition in conditions:
        if condition["type"] == condition_type:
            if condition["status"] != condition_status:
                condition["status"] = condition_status
                condition["lastTransitionTime"] = now_iso()
            condition["reason"] = reason
            condition["message"] = message
            return

    conditions.append(
        {
            "type": condition_type,
            "status": condition_status,
            "reason": reason,
            "message": message,
            "lastTransitionTime": now_iso(),
        }
    )
