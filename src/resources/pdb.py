"""Update policy for PodDisruptionBudgets."""

from models import Kind
from resources.policy import UpdatePolicy


class PodDisruptionBudgetPolicy(UpdatePolicy):
    # selector, minAvailable and maxUnavailable are all mutable in policy/v1
    kind = Kind.PDB
