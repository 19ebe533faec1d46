"""
Policies API — list, author and remove policies.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from tenantguard.admin.service import PolicyAdministration
from tenantguard.api.middleware.identity import (
    check_permission,
    get_admin,
    get_current_actor,
    get_engine,
    require_permission,
)
from tenantguard.config import settings
from tenantguard.core.errors import PolicyValidationError
from tenantguard.core.models import Action, Decision, Policy, PolicyFilter
from tenantguard.security.engine import DecisionEngine

router = APIRouter()


@router.get("/policies", response_model=List[Policy])
async def list_policies(
    subject: Optional[str] = Query(None),
    object: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    condition: Optional[str] = Query(None),
    effect: Optional[str] = Query(None),
    domain: Optional[str] = Query(None),
    decision: Decision = Depends(require_permission(settings.authorization_object, Action.READ)),
    admin: PolicyAdministration = Depends(get_admin),
):
    policy_filter = PolicyFilter(
        subject=subject,
        domain=domain,
        object=object,
        action=action,
        condition=condition,
        effect=effect,
    )
    return await admin.list_policies(policy_filter)


@router.post("/policy")
async def add_policy(
    policy: Policy,
    actor: str = Depends(get_current_actor),
    engine: DecisionEngine = Depends(get_engine),
    admin: PolicyAdministration = Depends(get_admin),
):
    """
    Author a policy.

    Non-internal authors are limited to relationship-checked policies on
    objects they hold the matching grant action for.
    """
    await check_permission(engine, actor, settings.authorization_object, Action.CREATE, policy.domain)
    added = await admin.add_policy_as(actor, policy, engine)
    return {"added": added}


@router.delete("/policies")
async def remove_policies(
    policy_filter: PolicyFilter,
    actor: str = Depends(get_current_actor),
    engine: DecisionEngine = Depends(get_engine),
    admin: PolicyAdministration = Depends(get_admin),
):
    """Remove matching policies; subject and domain are mandatory. 409 while the role is assigned."""
    if not policy_filter.subject or not policy_filter.domain:
        raise PolicyValidationError("subject and domain are mandatory")
    await check_permission(engine, actor, settings.authorization_object, Action.DELETE, policy_filter.domain)
    removed = await admin.remove_policies(policy_filter)
    return {"removed": removed}
