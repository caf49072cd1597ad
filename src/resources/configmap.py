"""Update policies for ConfigMaps and Secrets."""

import base64
from typing import Any

from models import Kind, StructuralConflictError
from resources.policy import UpdatePolicy


class ConfigMapPolicy(UpdatePolicy):
    """ConfigMaps marked immutable can only be recreated to change content."""

    kind = Kind.CONFIG_MAP
    content_fields = ("data", "binaryData")

    def content(self, obj: dict[str, Any]) -> dict[str, Any]:
        return {field: obj.get(field) or {} for field in self.content_fields}

    def check_immutable(self, current: dict[str, Any], payload: dict[str, Any]) -> None:
        if not current.get("immutable"):
            return
        if not payload.get("immutable", False) or self.content(payload) != self.content(
            current
        ):
            raise StructuralConflictError(
                f"{self.kind.value} is immutable and its content differs"
            )


def _secret_data(secret: dict[str, Any]) -> dict[str, str]:
    """Secret data with stringData folded in, base64 encoded as the API returns it."""
    data = dict(secret.get("data") or {})
    for key, value in (secret.get("stringData") or {}).items():
        data[key] = base64.b64encode(value.encode()).decode()
    return data


class SecretPolicy(ConfigMapPolicy):
    kind = Kind.SECRET
    default_type = "Opaque"

    def content(self, obj: dict[str, Any]) -> dict[str, Any]:
        return {"data": _secret_data(obj)}

    def check_immutable(self, current: dict[str, Any], payload: dict[str, Any]) -> None:
        cur_type = current.get("type") or self.default_type
        new_type = payload.get("type") or self.default_type
        if cur_type != new_type:
            raise StructuralConflictError(
                f"Secret type is immutable: '{cur_type}' => '{new_type}'"
            )
        super().check_immutable(current, payload)

    def migrate(self, current: dict[str, Any], payload: dict[str, Any]) -> None:
        # The API server only ever returns data; stringData would never compare equal
        if "stringData" in payload:
            payload["data"] = _secret_data(payload)
            del payload["stringData"]
