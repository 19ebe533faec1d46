"""
Dynamic Conditions — Ownership & Relationship
===============================================
Each dynamic policy condition is bound to one evaluator. An evaluator
decides pass/fail for a request and returns the where/set predicates the
caller must apply to its data query.

Both evaluators fail closed: any lookup or parsing fault is logged and
turned into a deny.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import asyncio

import structlog

from tenantguard.core.models import (
    Action,
    Actor,
    AuthorizationRequest,
    Condition,
    Predicates,
    ResourceMetadata,
)
from tenantguard.core.tiers import Tier, parse_domain
from tenantguard.repository.base import RelationshipLookup, ResourceMetadataLookup

logger = structlog.get_logger()

Outcome = Tuple[bool, Predicates]

DENY: Outcome = (False, Predicates())

# Chained domain columns ("table.column") are followed at most this many hops
MAX_DOMAIN_HOPS = 8


def same_principal(value: Any, actor_id: Optional[int]) -> bool:
    """True when a stored column value identifies the acting actor."""
    if actor_id is None or value is None or isinstance(value, (bool, dict, list)):
        return False
    return str(value).strip() == str(actor_id)


def _working_copy(request: AuthorizationRequest) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    attrs = request.attributes or {}
    return dict(attrs.get("where") or {}), dict(attrs.get("set") or {})


class ConditionEvaluator(ABC):
    """Abstract base for dynamic condition evaluators."""

    condition: Condition

    def __init__(
        self,
        relationships: Optional[RelationshipLookup] = None,
        resources: Optional[ResourceMetadataLookup] = None,
        lookup_timeout: Optional[float] = None,
    ):
        self.relationships = relationships
        self.resources = resources
        self.lookup_timeout = lookup_timeout

    async def _lookup(self, call):
        """Await a collaborator call; a timeout surfaces as asyncio.TimeoutError."""
        if self.lookup_timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self.lookup_timeout)

    async def evaluate(
        self,
        request: AuthorizationRequest,
        tier: Tier,
        actor: Optional[Actor],
        resource: Optional[ResourceMetadata],
    ) -> Outcome:
        """Run the check; any internal fault yields a deny."""
        try:
            return await self.check(request, tier, actor, resource)
        except Exception as e:
            logger.warning(
                "Condition check failed, denying",
                condition=self.condition.value,
                object=request.object,
                action=request.action,
                error=str(e),
            )
            return DENY

    @abstractmethod
    async def check(
        self,
        request: AuthorizationRequest,
        tier: Tier,
        actor: Optional[Actor],
        resource: Optional[ResourceMetadata],
    ) -> Outcome:
        ...


class OwnershipEvaluator(ConditionEvaluator):
    """
    Scopes row access to rows whose owner column equals the acting actor.

    - public actors never reach owned resources
    - internal actors bypass the check; their where/set pass through untouched
    - everyone else is held to their own rows and cannot hand ownership
      to another principal
    """

    condition = Condition.OWNERSHIP

    async def check(self, request, tier, actor, resource) -> Outcome:
        if tier == Tier.PUBLIC:
            return DENY

        where, set_ = _working_copy(request)

        if tier == Tier.INTERNAL:
            return True, Predicates(where=where, set=set_)

        actor_id = actor.id if actor else None
        if actor_id is None or actor_id <= 0:
            return DENY

        resource = resource or ResourceMetadata(table_name=request.object)
        owner = resource.owner_column

        if request.action == Action.CREATE.value:
            if owner and not same_principal(set_.get(owner), actor_id):
                return DENY
            if resource.creator_column:
                set_[resource.creator_column] = actor_id

        elif request.action == Action.READ.value:
            if owner:
                if where.get(owner) is not None and not same_principal(where[owner], actor_id):
                    return DENY
                where[owner] = actor_id

        elif request.action == Action.UPDATE.value:
            if owner:
                if not same_principal(where.get(owner), actor_id):
                    return DENY
                if set_.get(owner) is not None and not same_principal(set_[owner], actor_id):
                    return DENY
            if resource.updator_column:
                set_[resource.updator_column] = actor_id

        elif request.action == Action.DELETE.value:
            if owner:
                if where.get(owner) is None:
                    where[owner] = actor_id
                elif not same_principal(where[owner], actor_id):
                    return DENY

        else:
            return DENY

        return True, Predicates(where=where, set=set_)


class RelationshipEvaluator(ConditionEvaluator):
    """
    Authorizes an actor acting for a customer domain through a currently
    valid advisor-to-customer relationship. The request domain is the
    customer identifier.
    """

    condition = Condition.RELATIONSHIP

    async def check(self, request, tier, actor, resource) -> Outcome:
        if tier == Tier.PUBLIC:
            return DENY
        if actor is None or actor.id is None or self.relationships is None:
            return DENY

        customer_id = parse_domain(request.domain)
        relationship = await self._lookup(self.relationships.get_valid_relationship(actor.id, customer_id))
        if relationship is None:
            return DENY

        where, set_ = _working_copy(request)
        action = Action(request.action)

        if resource is not None:
            if action == Action.CREATE and resource.creator_column:
                set_[resource.creator_column] = actor.id
            elif action == Action.UPDATE and resource.updator_column:
                set_[resource.updator_column] = actor.id

            if resource.domain_column:
                if action == Action.CREATE:
                    scoped = await self._scope_domain(resource.domain_column, set_, request.domain)
                elif action in (Action.READ, Action.DELETE):
                    scoped = await self._scope_domain(resource.domain_column, where, request.domain)
                elif action == Action.UPDATE:
                    # Rows selected and rows written both stay inside the customer domain
                    scoped = await self._scope_domain(resource.domain_column, where, request.domain)
                    if scoped:
                        scoped = await self._scope_assignment(resource.domain_column, set_, request.domain)
                else:
                    scoped = True
                if not scoped:
                    return DENY

        return True, Predicates(where=where, set=set_)

    async def _scope_assignment(self, domain_column: str, set_: Dict[str, Any], domain: str) -> bool:
        """An update may only re-point the domain reference at the same domain."""
        if "." not in domain_column:
            return await self._scope_domain(domain_column, set_, domain)
        column_name = domain_column.split(".", 1)[1]
        if column_name not in set_:
            return True
        return await self._resolve_chain(domain_column, set_, domain, hops=0)

    async def _scope_domain(self, domain_column: str, target: Dict[str, Any], domain: str) -> bool:
        """
        Bind target to the customer domain.

        A plain column is stamped when absent and must match otherwise. A
        chained "table.column" reference is followed through the referenced
        rows until a plain domain column can be compared.
        """
        if "." not in domain_column:
            if target.get(domain_column) is None:
                target[domain_column] = int(domain)
                return True
            return str(target[domain_column]) == domain
        return await self._resolve_chain(domain_column, target, domain, hops=0)

    async def _resolve_chain(self, domain_column: str, row: Dict[str, Any], domain: str, hops: int) -> bool:
        if "." not in domain_column:
            return row.get(domain_column) is not None and str(row[domain_column]) == domain
        if hops >= MAX_DOMAIN_HOPS or self.resources is None:
            return False

        table_name, column_name = domain_column.split(".", 1)
        if row.get(column_name) is None:
            return False

        referenced = await self._lookup(self.resources.get_resource_metadata(table_name))
        if referenced is None or not referenced.domain_column:
            return False
        next_row = await self._lookup(self.resources.get_row(table_name, column_name, row[column_name]))
        if next_row is None:
            return False
        return await self._resolve_chain(referenced.domain_column, next_row, domain, hops + 1)


# ===========================================================================
# Registry
# ===========================================================================
CONDITION_REGISTRY: Dict[Condition, type] = {
    Condition.OWNERSHIP: OwnershipEvaluator,
    Condition.RELATIONSHIP: RelationshipEvaluator,
}


def build_evaluators(
    relationships: Optional[RelationshipLookup] = None,
    resources: Optional[ResourceMetadataLookup] = None,
    lookup_timeout: Optional[float] = None,
) -> Dict[Condition, ConditionEvaluator]:
    """Instantiate one evaluator per dynamic condition."""
    return {
        condition: cls(relationships=relationships, resources=resources, lookup_timeout=lookup_timeout)
        for condition, cls in CONDITION_REGISTRY.items()
    }
