"""Update policy for Services.

Updating a Service is the most involved of all kinds: several of its
fields are assigned by the API server on creation and become immutable,
so the update payload has to carry them over from the live object.
"""

import copy
import logging
from typing import Any

from models import Kind, RecreateRequired
from resources.policy import UpdatePolicy

logger = logging.getLogger(__name__)

SERVICE_TYPE_CLUSTER_IP = "ClusterIP"
SERVICE_TYPE_NODE_PORT = "NodePort"
SERVICE_TYPE_LOAD_BALANCER = "LoadBalancer"
TRAFFIC_POLICY_LOCAL = "Local"


def service_type(service: dict[str, Any]) -> str:
    return (service.get("spec") or {}).get("type") or SERVICE_TYPE_CLUSTER_IP


class ServicePolicy(UpdatePolicy):
    kind = Kind.SERVICE

    def prepare_update(
        self, current: dict[str, Any], desired: dict[str, Any]
    ) -> dict[str, Any]:
        cur_type = service_type(current)
        new_type = service_type(desired)
        if cur_type != new_type:
            raise RecreateRequired(
                f"Service type change '{cur_type}' => '{new_type}' requires recreate"
            )
        return super().prepare_update(current, desired)

    def migrate(self, current: dict[str, Any], payload: dict[str, Any]) -> None:
        cur_spec = current.get("spec") or {}
        spec = payload.setdefault("spec", {})
        name = (payload.get("metadata") or {}).get("name")

        # clusterIP is assigned by the API server and immutable
        for field in ("clusterIP", "clusterIPs"):
            if field in cur_spec:
                spec[field] = copy.deepcopy(cur_spec[field])
            else:
                spec.pop(field, None)

        # Node ports are usually auto-assigned; reuse already exposed ports as a whole
        cur_type = service_type(current)
        if cur_type in (SERVICE_TYPE_NODE_PORT, SERVICE_TYPE_LOAD_BALANCER):
            cur_ports = {p.get("port"): p for p in cur_spec.get("ports") or []}
            ports = spec.get("ports") or []
            for i, port in enumerate(ports):
                cur_port = cur_ports.get(port.get("port"))
                if cur_port is not None:
                    ports[i] = copy.deepcopy(cur_port)
                    logger.debug("Service %s: reuse port %s values", name, port.get("port"))

        # healthCheckNodePort is immutable within externalTrafficPolicy=Local only
        if (
            cur_spec.get("externalTrafficPolicy") == TRAFFIC_POLICY_LOCAL
            and spec.get("externalTrafficPolicy") == TRAFFIC_POLICY_LOCAL
            and cur_spec.get("healthCheckNodePort") is not None
        ):
            spec["healthCheckNodePort"] = cur_spec["healthCheckNodePort"]

        # loadBalancerClass cannot be changed once set
        if cur_spec.get("loadBalancerClass") is not None:
            spec["loadBalancerClass"] = cur_spec["loadBalancerClass"]
