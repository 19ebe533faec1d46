"""Decision Engine Package."""

from tenantguard.security.conditions import (
    CONDITION_REGISTRY,
    ConditionEvaluator,
    OwnershipEvaluator,
    RelationshipEvaluator,
)
from tenantguard.security.engine import DecisionEngine

__all__ = [
    "CONDITION_REGISTRY",
    "ConditionEvaluator",
    "DecisionEngine",
    "OwnershipEvaluator",
    "RelationshipEvaluator",
]
