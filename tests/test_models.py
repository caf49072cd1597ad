"""Tests for data models."""

import pytest

from models import (
    ConfigurationError,
    ConflictError,
    ConvergeResult,
    Identity,
    Kind,
    NotFoundError,
    OperatorError,
    Outcome,
    Owner,
    PassResult,
    StoreError,
    StructuralConflictError,
)


class TestIdentity:
    """Tests for Identity dataclass."""

    def test_from_object(self):
        identity = Identity.from_object({"metadata": {"name": "svc", "namespace": "db"}})

        assert identity == Identity("db", "svc")

    def test_from_object_without_metadata(self):
        assert Identity.from_object({}) == Identity("", "")

    def test_str(self):
        assert str(Identity("db", "svc")) == "db/svc"

    def test_hashable_and_ordered(self):
        identities = {Identity("db", "b"), Identity("db", "a"), Identity("db", "a")}

        assert sorted(identities) == [Identity("db", "a"), Identity("db", "b")]


class TestOwner:
    """Tests for Owner dataclass."""

    def test_from_meta(self):
        owner = Owner.from_meta(
            {
                "name": "demo",
                "namespace": "db",
                "uid": "uid-1",
                "generation": 3,
                "labels": {"team": "data"},
            }
        )

        assert owner.name == "demo"
        assert owner.namespace == "db"
        assert owner.uid == "uid-1"
        assert owner.generation == 3
        assert owner.labels == {"team": "data"}
        assert owner.annotations == {}

    def test_attributes(self):
        owner = Owner(name="demo", namespace="db")

        assert owner.attributes() == {"namespace": "db", "name": "demo"}


class TestKind:
    """Tests for Kind enum."""

    def test_from_manifest(self):
        assert Kind.from_manifest({"kind": "Service"}) == Kind.SERVICE
        assert Kind.from_manifest({"kind": "PersistentVolumeClaim"}) == Kind.PVC

    def test_from_manifest_unsupported(self):
        with pytest.raises(ConfigurationError):
            Kind.from_manifest({"kind": "Deployment"})

    def test_from_manifest_missing(self):
        with pytest.raises(ConfigurationError):
            Kind.from_manifest({})


class TestOutcome:
    """Tests for Outcome enum."""

    def test_succeeded(self):
        assert Outcome.CREATED.succeeded
        assert Outcome.UPDATED.succeeded
        assert Outcome.UNCHANGED.succeeded
        assert Outcome.RECREATED.succeeded

    def test_failed_and_cancelled_are_not_success(self):
        assert not Outcome.FAILED.succeeded
        assert not Outcome.CANCELLED.succeeded


class TestConvergeResult:
    """Tests for ConvergeResult dataclass."""

    def test_to_dict_minimal(self):
        result = ConvergeResult(Kind.SERVICE, Identity("db", "svc"), Outcome.CREATED)

        assert result.to_dict() == {
            "kind": "Service",
            "name": "svc",
            "outcome": "created",
        }

    def test_to_dict_with_error(self):
        result = ConvergeResult(
            Kind.SERVICE, Identity("db", "svc"), Outcome.FAILED, error="boom"
        )

        assert result.to_dict()["error"] == "boom"


class TestPassResult:
    """Tests for PassResult dataclass."""

    def test_counts(self):
        result = PassResult(
            results=[
                ConvergeResult(Kind.SERVICE, Identity("db", "a"), Outcome.CREATED),
                ConvergeResult(Kind.SERVICE, Identity("db", "b"), Outcome.CREATED),
                ConvergeResult(Kind.CONFIG_MAP, Identity("db", "c"), Outcome.FAILED),
            ],
            deleted=[Identity("db", "old")],
        )

        assert result.counts() == {"created": 2, "failed": 1, "deleted": 1}
        assert len(result.failed) == 1

    def test_empty_counts(self):
        assert PassResult().counts() == {}

    def test_permanent_when_only_configuration_failed(self):
        result = PassResult(
            results=[
                ConvergeResult(Kind.PVC, Identity("db", "data"), Outcome.FAILED, permanent=True),
                ConvergeResult(Kind.SERVICE, Identity("db", "svc"), Outcome.CREATED),
            ]
        )

        assert result.permanent

    def test_not_permanent_with_other_failures(self):
        result = PassResult(
            results=[
                ConvergeResult(Kind.PVC, Identity("db", "data"), Outcome.FAILED, permanent=True),
                ConvergeResult(Kind.SERVICE, Identity("db", "svc"), Outcome.FAILED),
            ]
        )

        assert not result.permanent

    def test_not_permanent_with_skipped_kinds_or_undeleted(self):
        failed = [
            ConvergeResult(Kind.PVC, Identity("db", "data"), Outcome.FAILED, permanent=True)
        ]

        assert not PassResult(results=failed, skipped_kinds=[Kind.SECRET]).permanent
        assert not PassResult(results=failed, undeleted=[Identity("db", "old")]).permanent

    def test_not_permanent_without_failures(self):
        assert not PassResult().permanent


class TestExceptions:
    """Tests for the error hierarchy."""

    def test_structural_conflict_is_conflict(self):
        assert issubclass(StructuralConflictError, ConflictError)
        assert issubclass(ConflictError, StoreError)

    def test_store_errors_are_operator_errors(self):
        error = NotFoundError("gone", 404)

        assert isinstance(error, OperatorError)
        assert error.status == 404
