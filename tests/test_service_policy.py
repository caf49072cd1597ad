"""Tests for the Service update policy."""

import pytest
from conftest import service

from models import RecreateRequired
from resources.service import ServicePolicy, service_type


@pytest.fixture
def policy():
    return ServicePolicy()


def _live(**spec):
    obj = service(**spec)
    obj["metadata"]["resourceVersion"] = "7"
    return obj


class TestServiceType:
    """Tests for service_type function."""

    def test_default_is_cluster_ip(self):
        assert service_type(service()) == "ClusterIP"
        assert service_type({}) == "ClusterIP"

    def test_explicit(self):
        assert service_type(service(type="NodePort")) == "NodePort"


class TestServicePolicy:
    """Tests for ServicePolicy.prepare_update."""

    def test_type_change_requires_recreate(self, policy):
        with pytest.raises(RecreateRequired):
            policy.prepare_update(_live(type="ClusterIP"), service(type="NodePort"))

    def test_implicit_and_explicit_cluster_ip_are_same_type(self, policy):
        payload = policy.prepare_update(_live(type="ClusterIP"), service())

        assert "type" not in payload["spec"]

    def test_cluster_ip_carried_over(self, policy):
        current = _live(type="ClusterIP", clusterIP="10.0.0.5", clusterIPs=["10.0.0.5"])

        payload = policy.prepare_update(current, service(type="ClusterIP"))

        assert payload["spec"]["clusterIP"] == "10.0.0.5"
        assert payload["spec"]["clusterIPs"] == ["10.0.0.5"]

    def test_cluster_ip_dropped_when_current_has_none(self, policy):
        payload = policy.prepare_update(_live(), service(clusterIP="10.0.0.9"))

        assert "clusterIP" not in payload["spec"]

    def test_node_ports_reused_by_port_number(self, policy):
        current = _live(type="NodePort", ports=[{"port": 80, "nodePort": 31000}])
        desired = service(type="NodePort", ports=[{"port": 80}, {"port": 81}])

        payload = policy.prepare_update(current, desired)

        assert payload["spec"]["ports"] == [{"port": 80, "nodePort": 31000}, {"port": 81}]

    def test_node_ports_not_reused_for_cluster_ip(self, policy):
        current = _live(ports=[{"port": 80, "targetPort": 8080}])
        desired = service(ports=[{"port": 80, "targetPort": 9090}])

        payload = policy.prepare_update(current, desired)

        assert payload["spec"]["ports"] == [{"port": 80, "targetPort": 9090}]

    def test_health_check_node_port_kept_for_local_policy(self, policy):
        current = _live(
            type="LoadBalancer", externalTrafficPolicy="Local", healthCheckNodePort=32000
        )
        desired = service(type="LoadBalancer", externalTrafficPolicy="Local")

        payload = policy.prepare_update(current, desired)

        assert payload["spec"]["healthCheckNodePort"] == 32000

    def test_health_check_node_port_reset_when_policy_changes(self, policy):
        current = _live(
            type="LoadBalancer", externalTrafficPolicy="Local", healthCheckNodePort=32000
        )
        desired = service(type="LoadBalancer", externalTrafficPolicy="Cluster")

        payload = policy.prepare_update(current, desired)

        assert "healthCheckNodePort" not in payload["spec"]

    def test_load_balancer_class_kept(self, policy):
        current = _live(type="LoadBalancer", loadBalancerClass="example.com/lb")
        desired = service(type="LoadBalancer")

        payload = policy.prepare_update(current, desired)

        assert payload["spec"]["loadBalancerClass"] == "example.com/lb"

    def test_metadata_merged(self, policy):
        current = _live()
        current["metadata"]["labels"] = {"a": "live", "external": "x"}
        current["metadata"]["annotations"] = {"note": "keep"}
        current["metadata"]["finalizers"] = ["example.com/protect"]
        desired = service()
        desired["metadata"]["labels"] = {"a": "desired"}

        payload = policy.prepare_update(current, desired)

        meta = payload["metadata"]
        assert meta["labels"] == {"a": "desired", "external": "x"}
        assert meta["annotations"] == {"note": "keep"}
        assert meta["finalizers"] == ["example.com/protect"]
        assert meta["resourceVersion"] == "7"

    def test_desired_not_modified(self, policy):
        current = _live(type="NodePort", ports=[{"port": 80, "nodePort": 31000}])
        desired = service(type="NodePort", ports=[{"port": 80}])

        policy.prepare_update(current, desired)

        assert desired["spec"]["ports"] == [{"port": 80}]
        assert "resourceVersion" not in desired["metadata"]
