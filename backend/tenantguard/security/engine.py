"""
Decision Engine — Unified Authorization
=========================================
Evaluates an authorization request against stored policies and returns an
allow/deny Decision together with the row-scoping predicates (where/set)
the caller must apply to its data query.

Evaluation of one policy:
1. Static attributes (deep-equal against the request attributes)
2. Actor and resource-metadata lookups (timeout-bound, fail closed)
3. Default predicates: creator/updator stamping, owner scoping for
   ownership-checked reads and deletes
4. Dynamic condition dispatch (ownership / relationship)

A denied evaluation never touches the request. An allowed one writes the
predicates back into request.attributes and into the request-scoped
condition store.
"""

import asyncio
import copy
from typing import Any, Dict, List, Optional, Tuple

import structlog

from tenantguard.config import settings
from tenantguard.core.condition_store import reset_conditions, store_conditions
from tenantguard.core.errors import LookupFailure, PolicyValidationError
from tenantguard.core.models import (
    Action,
    AuthorizationRequest,
    attributes_match,
    Condition,
    Decision,
    Effect,
    Policy,
    Predicates,
    ResourceMetadata,
)
from tenantguard.core.tiers import Tier, TrustTierClassifier, parse_domain
from tenantguard.repository.base import (
    ActorLookup,
    PolicyRepository,
    RelationshipLookup,
    ResourceMetadataLookup,
)
from tenantguard.security.conditions import ConditionEvaluator, build_evaluators

logger = structlog.get_logger()


def default_predicates(
    attributes: Dict[str, Any],
    action: str,
    condition: Condition,
    tier: Tier,
    actor_id: Optional[int],
    resource: Optional[ResourceMetadata],
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Predicates every evaluation starts from.

    Create/Update always stamp the creator/updator column. Reads and
    deletes under an ownership check are scoped to the actor's rows unless
    the request already names an owner (which the ownership check then
    verifies). Internal actors are never owner-scoped.
    """
    where = dict(attributes.get("where") or {})
    set_ = dict(attributes.get("set") or {})
    if resource is None or actor_id is None or actor_id <= 0:
        return where, set_

    if action == Action.CREATE.value and resource.creator_column:
        set_[resource.creator_column] = actor_id
    elif action == Action.UPDATE.value and resource.updator_column:
        set_[resource.updator_column] = actor_id
    elif (
        action in (Action.READ.value, Action.DELETE.value)
        and condition == Condition.OWNERSHIP
        and tier != Tier.INTERNAL
        and resource.owner_column
        and where.get(resource.owner_column) is None
    ):
        where[resource.owner_column] = actor_id
    return where, set_


class DecisionEngine:
    """
    Authorization decision engine.

    Collaborators are injected; evaluators default to one per dynamic
    condition (see security.conditions.CONDITION_REGISTRY).
    """

    def __init__(
        self,
        policies: PolicyRepository,
        actors: ActorLookup,
        resources: ResourceMetadataLookup,
        relationships: Optional[RelationshipLookup] = None,
        classifier: Optional[TrustTierClassifier] = None,
        evaluators: Optional[Dict[Condition, ConditionEvaluator]] = None,
        lookup_timeout: Optional[float] = None,
    ):
        self.policies = policies
        self.actors = actors
        self.resources = resources
        self.classifier = classifier or TrustTierClassifier()
        self.lookup_timeout = lookup_timeout if lookup_timeout is not None else settings.lookup_timeout_seconds
        if evaluators is None:
            evaluators = build_evaluators(relationships, resources, lookup_timeout=self.lookup_timeout)
        self.evaluators = evaluators

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    async def _lookup(self, what: str, call):
        """Await a collaborator call under the lookup timeout."""
        try:
            return await asyncio.wait_for(call, timeout=self.lookup_timeout)
        except asyncio.TimeoutError as e:
            raise LookupFailure(f"{what} lookup timed out after {self.lookup_timeout}s") from e
        except LookupFailure:
            raise
        except Exception as e:
            raise LookupFailure(f"{what} lookup failed: {e}") from e

    async def classify_actor(self, actor: str) -> Tier:
        """Trust tier of an actor from all of its role assignments."""
        rules = await self._lookup("role", self.policies.get_filtered_grouping_policy(0, actor.strip().lower()))
        return self.classifier.classify((role, domain) for _, role, domain in rules)

    # ------------------------------------------------------------------
    # Single policy
    # ------------------------------------------------------------------
    async def evaluate(self, request: AuthorizationRequest, policy: Policy, tier: Tier) -> Decision:
        """
        Evaluate one request against one policy.

        On allow, request.attributes["where"/"set"] and the condition store
        receive the scoping predicates.
        """
        decision = await self._evaluate(request, policy, tier)
        if decision.allowed:
            self._apply(request.attributes, decision)
        return decision

    async def _evaluate(self, request: AuthorizationRequest, policy: Policy, tier: Tier) -> Decision:
        expected = policy.parsed_attributes()
        if expected is not None and not attributes_match(request.attributes, expected):
            return Decision.deny(policy, tier.value)

        try:
            actor = await self._lookup("actor", self.actors.get_actor_by_identifier(request.subject))
            resource = await self._lookup("resource metadata", self.resources.get_resource_metadata(request.object))
        except LookupFailure as e:
            logger.warning("Lookup failed, denying", actor=request.subject, object=request.object, error=str(e))
            return Decision.deny(policy, tier.value)

        condition = policy.parsed_condition()
        actor_id = actor.id if actor else None
        where, set_ = default_predicates(request.attributes, request.action, condition, tier, actor_id, resource)

        if condition == Condition.NONE:
            allowed, predicates = True, Predicates(where=where, set=set_)
        else:
            evaluator = self.evaluators.get(condition)
            if evaluator is None:
                raise PolicyValidationError(f"No evaluator registered for condition {condition.value!r}")
            working = request.model_copy(
                update={"attributes": {**copy.deepcopy(request.attributes), "where": where, "set": set_}}
            )
            allowed, predicates = await evaluator.evaluate(working, tier, actor, resource)

        if not allowed:
            return Decision.deny(policy, tier.value)
        return Decision(allowed=True, where=predicates.where, set=predicates.set, policy=policy, tier=tier.value)

    @staticmethod
    def _apply(attributes: Optional[Dict[str, Any]], decision: Decision) -> None:
        if attributes is not None:
            if decision.where:
                attributes["where"] = dict(decision.where)
            if decision.set:
                attributes["set"] = dict(decision.set)
        store_conditions(decision.where, decision.set)

    # ------------------------------------------------------------------
    # Full request
    # ------------------------------------------------------------------
    async def enforce(
        self,
        actor: str,
        domain: str,
        obj: str,
        act: str,
        attributes: Optional[Dict[str, Any]] = None,
    ) -> Decision:
        """
        Decide a request against every applicable policy.

        Candidates are policies in the request domain on the same object and
        action whose subject is one of the actor's roles in that domain or
        the actor itself. A passing deny policy overrides everything; else
        the first passing allow policy decides.
        """
        reset_conditions()
        parse_domain(domain)
        actor_key = actor.strip().lower()

        try:
            roles = await self._lookup("role", self.policies.get_roles_for_actor(actor_key, domain))
            rules = await self._lookup("policy", self.policies.get_filtered_policy(1, domain, obj, act))
        except LookupFailure as e:
            logger.warning("Policy lookup failed, denying", actor=actor_key, domain=domain, error=str(e))
            return Decision.deny()

        subjects = set(roles) | {actor_key}
        candidates: List[Policy] = [Policy.from_tuple(rule) for rule in rules if rule[0] in subjects]

        actor_tier: Optional[Tier] = None
        allowed: Optional[Decision] = None
        for policy in candidates:
            if policy.subject in roles:
                tier = self.classifier.classify_in_domain(policy.subject, policy.domain)
            else:
                if actor_tier is None:
                    try:
                        actor_tier = await self.classify_actor(actor_key)
                    except LookupFailure as e:
                        logger.warning("Role lookup failed, denying", actor=actor_key, error=str(e))
                        return Decision.deny()
                tier = actor_tier

            trial = AuthorizationRequest(
                subject=actor_key,
                domain=domain,
                object=obj,
                action=act,
                attributes=copy.deepcopy(attributes or {}),
            )
            decision = await self._evaluate(trial, policy, tier)
            if not decision.allowed:
                continue
            if policy.effect == Effect.DENY.value:
                logger.debug("Denied by policy", actor=actor_key, domain=domain, object=obj, action=act)
                return Decision.deny(policy, decision.tier)
            if allowed is None:
                allowed = decision

        if allowed is None:
            logger.debug("No policy allows request", actor=actor_key, domain=domain, object=obj, action=act)
            return Decision.deny()

        self._apply(attributes, allowed)
        logger.debug(
            "Request allowed",
            actor=actor_key,
            domain=domain,
            object=obj,
            action=act,
            tier=allowed.tier,
            where=allowed.where,
            set=allowed.set,
        )
        return allowed
