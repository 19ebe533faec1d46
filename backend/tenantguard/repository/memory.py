"""
In-Memory Adapters
===================
InMemoryPolicyRepository is the authoritative rule view used by the engine;
SqlPolicyRepository builds on it. InMemoryDirectory backs actor, resource
and relationship lookups for embedding and tests.
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

import structlog

from tenantguard.core.models import Actor, Relationship, ResourceMetadata
from tenantguard.repository.base import (
    ActorLookup,
    PolicyRepository,
    RelationshipLookup,
    ResourceMetadataLookup,
    Rule,
    matches_filter,
)

logger = structlog.get_logger()


class InMemoryPolicyRepository(PolicyRepository):
    """
    Rule store kept in process memory.

    Writes are serialized by an asyncio.Lock; reads return copies so a
    caller never iterates a list that a concurrent write is changing.
    """

    def __init__(self, policies: Iterable[Rule] = (), groupings: Iterable[Rule] = ()):
        self._policies: List[Rule] = []
        self._groupings: List[Rule] = []
        self._lock = asyncio.Lock()
        for rule in policies:
            self._append(self._policies, tuple(rule))
        for rule in groupings:
            self._append(self._groupings, tuple(rule))

    @staticmethod
    def _append(rules: List[Rule], rule: Rule) -> bool:
        if rule in rules:
            return False
        rules.append(rule)
        return True

    @staticmethod
    def _remove(rules: List[Rule], rule: Rule) -> bool:
        if rule not in rules:
            return False
        rules.remove(rule)
        return True

    @staticmethod
    def _remove_filtered(rules: List[Rule], field_index: int, values) -> List[Rule]:
        removed = [rule for rule in rules if matches_filter(rule, field_index, values)]
        rules[:] = [rule for rule in rules if rule not in removed]
        return removed

    # ---- policies ----
    async def add_policy(self, *rule: str) -> bool:
        async with self._lock:
            return self._append(self._policies, tuple(rule))

    async def remove_policy(self, *rule: str) -> bool:
        async with self._lock:
            return self._remove(self._policies, tuple(rule))

    async def remove_filtered_policy(self, field_index: int, *values: str) -> List[Rule]:
        async with self._lock:
            return self._remove_filtered(self._policies, field_index, values)

    async def get_filtered_policy(self, field_index: int, *values: str) -> List[Rule]:
        return [rule for rule in list(self._policies) if matches_filter(rule, field_index, values)]

    # ---- grouping ----
    async def add_grouping_policy(self, actor: str, role: str, domain: str) -> bool:
        async with self._lock:
            return self._append(self._groupings, (actor, role, domain))

    async def remove_grouping_policy(self, actor: str, role: str, domain: str) -> bool:
        async with self._lock:
            return self._remove(self._groupings, (actor, role, domain))

    async def remove_filtered_grouping_policy(self, field_index: int, *values: str) -> List[Rule]:
        async with self._lock:
            return self._remove_filtered(self._groupings, field_index, values)

    async def get_filtered_grouping_policy(self, field_index: int, *values: str) -> List[Rule]:
        return [rule for rule in list(self._groupings) if matches_filter(rule, field_index, values)]

    async def save(self) -> None:
        async with self._lock:
            await self._persist(list(self._policies), list(self._groupings))

    async def _persist(self, policies: List[Rule], groupings: List[Rule]) -> None:
        """Persistence hook; the in-memory store has nothing to write."""
        logger.debug("Policy view saved", policies=len(policies), groupings=len(groupings))

    def _replace(self, policies: Iterable[Rule], groupings: Iterable[Rule]) -> None:
        self._policies = []
        self._groupings = []
        for rule in policies:
            self._append(self._policies, tuple(rule))
        for rule in groupings:
            self._append(self._groupings, tuple(rule))


class InMemoryDirectory(ActorLookup, ResourceMetadataLookup, RelationshipLookup):
    """Actors, resource metadata, relationships and rows held in dictionaries."""

    def __init__(
        self,
        actors: Iterable[Actor] = (),
        resources: Iterable[ResourceMetadata] = (),
        relationships: Iterable[Relationship] = (),
        rows: Optional[Dict[str, List[Dict[str, Any]]]] = None,
    ):
        self.actors = {actor.username.strip().lower(): actor for actor in actors}
        self.resources = {resource.table_name: resource for resource in resources}
        self.relationships = list(relationships)
        self.rows = rows or {}

    async def get_actor_by_identifier(self, identifier: str) -> Optional[Actor]:
        return self.actors.get(identifier.strip().lower())

    async def get_resource_metadata(self, object_name: str) -> Optional[ResourceMetadata]:
        return self.resources.get(object_name)

    async def get_row(self, table_name: str, column: str, value: Any) -> Optional[Dict[str, Any]]:
        for row in self.rows.get(table_name, []):
            if column in row and str(row[column]) == str(value):
                return dict(row)
        return None

    async def get_valid_relationship(self, actor_id: int, customer_id: int) -> Optional[Relationship]:
        now = datetime.now(timezone.utc)
        for relationship in self.relationships:
            if (
                relationship.user_id == actor_id
                and relationship.customer_id == customer_id
                and relationship.is_valid_at(now)
            ):
                return relationship
        return None
