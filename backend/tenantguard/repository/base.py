"""
Collaborator Interfaces
========================
The decision engine and the administration service only talk to storage
through these interfaces.

Policy rules are 7-tuples (subject, domain, object, action, condition,
attributes, effect); grouping rules are 3-tuples (actor, role, domain).
Filters take a starting field index and one value per following field,
where "" matches anything.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple

from tenantguard.core.models import Actor, Relationship, ResourceMetadata

Rule = Tuple[str, ...]


def matches_filter(rule: Sequence[str], field_index: int, values: Sequence[str]) -> bool:
    """True when every non-empty filter value equals the rule field at its position."""
    for offset, value in enumerate(values):
        if value == "" or value is None:
            continue
        position = field_index + offset
        if position >= len(rule) or rule[position] != value:
            return False
    return True


class PolicyRepository(ABC):
    """Storage of policy and role-assignment rules."""

    # ---- policies ----
    @abstractmethod
    async def add_policy(self, *rule: str) -> bool:
        """Add a policy rule. Returns False when it already exists."""
        ...

    @abstractmethod
    async def remove_policy(self, *rule: str) -> bool:
        """Remove a policy rule. Returns False when it did not exist."""
        ...

    @abstractmethod
    async def remove_filtered_policy(self, field_index: int, *values: str) -> List[Rule]:
        """Remove every policy matching the filter; returns the removed rules."""
        ...

    @abstractmethod
    async def get_filtered_policy(self, field_index: int, *values: str) -> List[Rule]:
        ...

    async def has_policy(self, *rule: str) -> bool:
        return tuple(rule) in await self.get_filtered_policy(0, *rule)

    # ---- grouping (role assignments) ----
    @abstractmethod
    async def add_grouping_policy(self, actor: str, role: str, domain: str) -> bool:
        ...

    @abstractmethod
    async def remove_grouping_policy(self, actor: str, role: str, domain: str) -> bool:
        ...

    @abstractmethod
    async def remove_filtered_grouping_policy(self, field_index: int, *values: str) -> List[Rule]:
        ...

    @abstractmethod
    async def get_filtered_grouping_policy(self, field_index: int, *values: str) -> List[Rule]:
        ...

    async def has_grouping_policy(self, actor: str, role: str, domain: str) -> bool:
        return bool(await self.get_filtered_grouping_policy(0, actor, role, domain))

    async def get_roles_for_actor(self, actor: str, domain: Optional[str] = None) -> List[str]:
        """Roles held by the actor, in one domain or across all of them."""
        rules = await self.get_filtered_grouping_policy(0, actor, "", domain or "")
        roles: List[str] = []
        for _, role, _ in rules:
            if role not in roles:
                roles.append(role)
        return roles

    async def get_actors_for_role_in_domain(self, role: str, domain: str) -> List[str]:
        rules = await self.get_filtered_grouping_policy(1, role, domain)
        return [actor for actor, _, _ in rules]

    async def get_actor_domains(self, actor: str) -> List[str]:
        """Distinct domains in which the actor holds at least one role."""
        domains: List[str] = []
        for _, _, domain in await self.get_filtered_grouping_policy(0, actor):
            if domain not in domains:
                domains.append(domain)
        return domains

    @abstractmethod
    async def save(self) -> None:
        """Persist the current rule set."""
        ...


class ResourceMetadataLookup(ABC):
    """Row-scoping metadata of the resources behind the engine."""

    @abstractmethod
    async def get_resource_metadata(self, object_name: str) -> Optional[ResourceMetadata]:
        ...

    async def get_row(self, table_name: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        """Fetch one row by column value; used to follow chained domain columns."""
        return None


class ActorLookup(ABC):
    @abstractmethod
    async def get_actor_by_identifier(self, identifier: str) -> Optional[Actor]:
        ...


class RelationshipLookup(ABC):
    @abstractmethod
    async def get_valid_relationship(self, actor_id: int, customer_id: int) -> Optional[Relationship]:
        """The currently valid relationship between an actor and a customer, if any."""
        ...
