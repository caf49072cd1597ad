"""Update policy for StatefulSets."""

from models import Kind
from resources.policy import UpdatePolicy


class StatefulSetPolicy(UpdatePolicy):
    """Only replicas, template, updateStrategy and a few more may change.

    Changing any of the identity-bearing fields below is rejected by the
    API server, so it is detected up front and turned into a recreate.
    """

    kind = Kind.STATEFUL_SET
    immutable_fields = (
        "selector",
        "serviceName",
        "volumeClaimTemplates",
        "podManagementPolicy",
    )
