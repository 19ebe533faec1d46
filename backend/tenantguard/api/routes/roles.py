"""
Roles API — role assignments per actor and domain.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from tenantguard.admin.service import PolicyAdministration
from tenantguard.api.middleware.identity import (
    check_permission,
    get_admin,
    get_current_actor,
    get_engine,
    require_permission,
)
from tenantguard.config import settings
from tenantguard.core.errors import NotFoundError
from tenantguard.core.models import Action, Decision, RoleAssignment
from tenantguard.security.engine import DecisionEngine

router = APIRouter()


class RoleAssignmentRequest(BaseModel):
    username: str
    role: str
    domain: str = "0"


@router.get("/domain-roles", response_model=List[RoleAssignment])
async def domain_roles(
    role: Optional[str] = Query(None),
    domain: Optional[str] = Query(None),
    decision: Decision = Depends(require_permission(settings.authorization_object, Action.READ)),
    admin: PolicyAdministration = Depends(get_admin),
):
    """Role assignments in a domain, optionally narrowed to one role."""
    return await admin.get_roles_in_domain(role, domain)


@router.get("/my-roles", response_model=List[RoleAssignment])
async def my_roles(
    domain: Optional[str] = Query(None),
    actor: str = Depends(get_current_actor),
    admin: PolicyAdministration = Depends(get_admin),
):
    """Roles of the calling actor, in one domain or in all of them."""
    if domain is None:
        return await admin.list_roles_for_actor_in_domains(actor)
    roles = await admin.list_roles_for_actor_in_domain(actor, domain)
    return [RoleAssignment(role=role, domain=domain) for role in roles]


@router.get("/user-roles", response_model=List[RoleAssignment])
async def user_roles(
    username: str = Query(...),
    domain: Optional[str] = Query(None),
    decision: Decision = Depends(require_permission(settings.authorization_object, Action.READ)),
    admin: PolicyAdministration = Depends(get_admin),
):
    """Roles of another actor; requires read permission on the authorization object."""
    if domain is None:
        return await admin.list_roles_for_actor_in_domains(username)
    roles = await admin.list_roles_for_actor_in_domain(username, domain)
    return [RoleAssignment(role=role, domain=domain) for role in roles]


@router.post("/user-role", status_code=status.HTTP_201_CREATED)
async def add_user_role(
    body: RoleAssignmentRequest,
    actor: str = Depends(get_current_actor),
    engine: DecisionEngine = Depends(get_engine),
    admin: PolicyAdministration = Depends(get_admin),
):
    await check_permission(engine, actor, settings.authorization_object, Action.CREATE, body.domain)
    if not await admin.get_roles_in_domain(body.role, body.domain):
        raise NotFoundError("The role does not exist in the domain.")
    added = await admin.add_role_for_actor_in_domain(body.username, body.role, body.domain)
    return {"added": added}


@router.delete("/user-role")
async def remove_user_role(
    body: RoleAssignmentRequest,
    actor: str = Depends(get_current_actor),
    engine: DecisionEngine = Depends(get_engine),
    admin: PolicyAdministration = Depends(get_admin),
):
    await check_permission(engine, actor, settings.authorization_object, Action.DELETE, body.domain)
    removed = await admin.remove_role_for_actor_in_domain(body.username, body.role, body.domain)
    return {"removed": removed}
