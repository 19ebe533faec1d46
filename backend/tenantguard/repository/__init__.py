"""Repository adapters package."""
from tenantguard.repository.base import ActorLookup, PolicyRepository, RelationshipLookup, ResourceMetadataLookup
from tenantguard.repository.memory import InMemoryDirectory, InMemoryPolicyRepository

__all__ = [
    "ActorLookup",
    "PolicyRepository",
    "RelationshipLookup",
    "ResourceMetadataLookup",
    "InMemoryDirectory",
    "InMemoryPolicyRepository",
]
