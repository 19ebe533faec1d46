"""
Role & Policy Administration
==============================
CRUD over the policy repository: role assignments per actor and domain,
policy listing/authoring/removal and bulk import of rule files.

Every write is followed by save() before the call returns, so a decision
made right after an administration call sees the new state.
"""

import csv
import io
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import structlog
from pydantic import ValidationError

from tenantguard.core.errors import AuthorizationDenied, ConflictError, LookupFailure, PolicyValidationError
from tenantguard.core.models import (
    Action,
    Condition,
    Policy,
    PolicyFilter,
    POLICY_FIELDS,
    RoleAssignment,
)
from tenantguard.core.tiers import GLOBAL_DOMAIN, Tier, parse_domain
from tenantguard.repository.base import PolicyRepository

logger = structlog.get_logger()

RECORD_DELIMITER = ";"


def normalize_actor(actor: str) -> str:
    if not isinstance(actor, str) or not actor.strip():
        raise PolicyValidationError("Actor identifier is mandatory")
    return actor.strip().lower()


class PolicyAdministration:
    """Administrative operations over a PolicyRepository."""

    def __init__(self, repository: PolicyRepository):
        self.repository = repository

    # ------------------------------------------------------------------
    # Role assignments
    # ------------------------------------------------------------------
    async def add_role_for_actor_in_domain(self, actor: str, role: str, domain: str = GLOBAL_DOMAIN) -> bool:
        """Assign a role; a second call for the same triple is a no-op."""
        parse_domain(domain)
        actor = normalize_actor(actor)
        added = await self.repository.add_grouping_policy(actor, role, domain)
        if added:
            await self.repository.save()
            logger.info("Role added", actor=actor, role=role, domain=domain)
        return added

    async def remove_role_for_actor_in_domain(self, actor: str, role: str, domain: str = GLOBAL_DOMAIN) -> bool:
        parse_domain(domain)
        actor = normalize_actor(actor)
        removed = await self.repository.remove_grouping_policy(actor, role, domain)
        if removed:
            await self.repository.save()
            logger.info("Role removed", actor=actor, role=role, domain=domain)
        return removed

    async def remove_roles_for_actor_in_domain(self, actor: str, domain: str) -> int:
        parse_domain(domain)
        actor = normalize_actor(actor)
        removed = await self.repository.remove_filtered_grouping_policy(0, actor, "", domain)
        if removed:
            await self.repository.save()
            logger.info("All roles removed in domain", actor=actor, domain=domain, count=len(removed))
        return len(removed)

    async def remove_roles_for_actor_in_all_domains(self, actor: str) -> int:
        actor = normalize_actor(actor)
        removed = await self.repository.remove_filtered_grouping_policy(0, actor)
        if removed:
            await self.repository.save()
            logger.info("All roles removed in all domains", actor=actor, count=len(removed))
        return len(removed)

    async def has_role_for_actor_in_domain(self, actor: str, role: str, domain: str) -> bool:
        roles = await self.repository.get_roles_for_actor(normalize_actor(actor), domain)
        return role in roles

    async def list_roles_for_actor_in_domain(self, actor: str, domain: str) -> List[str]:
        parse_domain(domain)
        return await self.repository.get_roles_for_actor(normalize_actor(actor), domain)

    async def list_roles_for_actor_in_domains(self, actor: str) -> List[RoleAssignment]:
        """Every (role, domain) pair of the actor, domain by domain."""
        actor = normalize_actor(actor)
        assignments: List[RoleAssignment] = []
        for domain in await self.repository.get_actor_domains(actor):
            for role in await self.repository.get_roles_for_actor(actor, domain):
                assignments.append(RoleAssignment(role=role, domain=domain))
        return assignments

    async def list_roles_for_actor(self, actor: str) -> List[str]:
        return await self.repository.get_roles_for_actor(normalize_actor(actor))

    async def get_roles_in_domain(self, role: Optional[str] = None, domain: Optional[str] = None) -> List[RoleAssignment]:
        """Role assignments filtered by role and/or domain."""
        if domain:
            parse_domain(domain)
        rules = await self.repository.get_filtered_grouping_policy(1, role or "", domain or "")
        return [RoleAssignment(actor=actor, role=r, domain=d) for actor, r, d in rules]

    async def get_actors_for_role_in_domain(self, role: str, domain: str) -> List[str]:
        return await self.repository.get_actors_for_role_in_domain(role, domain)

    async def get_permissions_for_role_in_domain(self, role: str, domain: str) -> List[Tuple[str, str]]:
        """(object, action) pairs granted to a role in a domain."""
        rules = await self.repository.get_filtered_policy(0, role, domain)
        return [(rule[2], rule[3]) for rule in rules]

    # ------------------------------------------------------------------
    # Policies
    # ------------------------------------------------------------------
    async def _matching_rules(self, policy_filter: PolicyFilter) -> List[Tuple[str, ...]]:
        rules = await self.repository.get_filtered_policy(0, *policy_filter.values())
        return [rule for rule in rules if policy_filter.matches_attributes(rule[5])]

    async def list_policies(self, policy_filter: Optional[PolicyFilter] = None) -> List[Policy]:
        rules = await self._matching_rules(policy_filter or PolicyFilter())
        return [Policy.from_tuple(rule) for rule in rules]

    async def add_policy(
        self,
        subject: str,
        domain: str,
        object: str,
        action: str,
        condition: str,
        attributes: Union[str, Dict[str, Any]],
        effect: str,
    ) -> bool:
        """Store a policy; every field is mandatory. Returns False for duplicates."""
        policy = build_policy(subject, domain, object, action, condition, attributes, effect)
        added = await self.repository.add_policy(*policy.to_tuple())
        if added:
            await self.repository.save()
            logger.info("Policy added", policy=policy.to_tuple())
        return added

    async def add_policy_as(self, author: str, policy: Policy, engine) -> bool:
        """
        Store a policy on behalf of an author.

        Internal authors may store any policy. Other authors may only create
        relationship-checked policies, and only for objects on which they
        hold the grant variant of the action in the policy's domain.
        """
        policy.validate_fields()
        try:
            tier = await engine.classify_actor(author)
        except LookupFailure as e:
            raise AuthorizationDenied(f"Cannot classify author: {e}") from e
        if tier != Tier.INTERNAL:
            if policy.condition != Condition.RELATIONSHIP.value:
                raise AuthorizationDenied("Customer users must set condition to 'check_relationship'.")
            grant = Action(policy.action).grant
            decision = await engine.enforce(author, policy.domain, policy.object, grant.value)
            if not decision.allowed:
                raise AuthorizationDenied(f"Missing {grant.value} permission on {policy.object} in domain {policy.domain}")
        return await self.add_policy(*policy.to_tuple())

    async def remove_policies(self, policy_filter: PolicyFilter) -> int:
        """
        Remove every policy matching the filter.

        Refused with ConflictError while any actor still holds a subject
        role of a matching policy in that policy's domain.
        """
        if policy_filter.domain:
            parse_domain(policy_filter.domain)
        matching = await self._matching_rules(policy_filter)

        for subject, domain in {(rule[0], rule[1]) for rule in matching}:
            actors = await self.repository.get_actors_for_role_in_domain(subject, domain)
            if actors:
                raise ConflictError(
                    f"Role {subject!r} is still assigned in domain {domain} and its policies cannot be removed"
                )

        removed = 0
        for rule in matching:
            if await self.repository.remove_policy(*rule):
                removed += 1
        if removed:
            await self.repository.save()
            logger.info("Policies removed", count=removed, filter=policy_filter.model_dump(exclude_none=True))
        return removed

    async def delete_policies_for_domain_zero(self) -> int:
        """Drop every global-domain policy; run before reloading the policy file."""
        removed = await self.repository.remove_filtered_policy(1, GLOBAL_DOMAIN)
        await self.repository.save()
        logger.info("Global-domain policies cleared", count=len(removed))
        return len(removed)

    # ------------------------------------------------------------------
    # Bulk import
    # ------------------------------------------------------------------
    async def import_records(self, content: str, skip_header: bool = False) -> Tuple[int, int]:
        """
        Import ";"-delimited rule records.

        3 fields: actor;role;domain. 7 fields: a full policy. All records are
        validated before the first one is applied; any malformed record
        aborts the whole import. Returns (policies added, roles added).
        """
        policies, groupings = parse_records(content, skip_header=skip_header)

        added_policies = 0
        for policy in policies:
            if await self.repository.add_policy(*policy.to_tuple()):
                added_policies += 1
        added_roles = 0
        for actor, role, domain in groupings:
            if await self.repository.add_grouping_policy(actor, role, domain):
                added_roles += 1

        await self.repository.save()
        logger.info("Rules imported", policies=added_policies, roles=added_roles)
        return added_policies, added_roles

    async def import_file(self, path: Union[str, Path], skip_header: bool = False) -> Tuple[int, int]:
        content = Path(path).read_text(encoding="utf-8")
        return await self.import_records(content, skip_header=skip_header)


def build_policy(*fields: Any) -> Policy:
    """Validate raw policy fields into a Policy."""
    for name, value in zip(POLICY_FIELDS, fields):
        if value is None:
            raise PolicyValidationError(f"Policy field '{name}' is mandatory")
        if name != "attributes" and not isinstance(value, str):
            raise PolicyValidationError(f"Policy field '{name}' must be a string")
    try:
        policy = Policy.from_tuple(fields)
    except ValidationError as e:
        raise PolicyValidationError(f"Invalid policy: {e.errors()[0]['msg']}") from e
    parse_domain(policy.domain)
    return policy.validate_fields()


def parse_records(content: str, skip_header: bool = False) -> Tuple[List[Policy], List[Tuple[str, str, str]]]:
    """Parse and validate every record of an import; nothing is applied here."""
    reader = csv.reader(
        io.StringIO(content),
        delimiter=RECORD_DELIMITER,
        quoting=csv.QUOTE_NONE,
        skipinitialspace=True,
    )
    policies: List[Policy] = []
    groupings: List[Tuple[str, str, str]] = []

    for line_no, record in enumerate(reader, start=1):
        if skip_header and line_no == 1:
            continue
        fields = [field.strip() for field in record]
        if not any(fields):
            continue

        if len(fields) == 3:
            if any(not field for field in fields):
                raise PolicyValidationError(f"Line {line_no}: all role assignment fields are mandatory")
            actor, role, domain = fields
            try:
                parse_domain(domain)
            except PolicyValidationError as e:
                raise PolicyValidationError(f"Line {line_no}: {e}") from e
            groupings.append((normalize_actor(actor), role, domain))
        elif len(fields) == 7:
            try:
                policies.append(build_policy(*fields))
            except PolicyValidationError as e:
                raise PolicyValidationError(f"Line {line_no}: {e}") from e
        else:
            raise PolicyValidationError(f"Line {line_no}: invalid record format: {RECORD_DELIMITER.join(fields)}")

    return policies, groupings
