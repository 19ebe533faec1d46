"""
Authorize API — decision endpoint for upstream services.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from tenantguard.admin.service import PolicyAdministration
from tenantguard.api.middleware.identity import get_admin, get_current_actor, get_engine
from tenantguard.core.condition_store import get_conditions
from tenantguard.core.errors import AuthorizationDenied
from tenantguard.core.models import RoleAssignment
from tenantguard.security.engine import DecisionEngine

router = APIRouter()


class AuthorizeRequest(BaseModel):
    dom: str = "0"
    obj: str
    act: str
    attrs: Dict[str, Any] = Field(default_factory=dict)


class AuthorizeResponse(BaseModel):
    actor: str
    roles: List[RoleAssignment]
    allowed: bool
    conditions: Dict[str, Dict[str, Any]]


@router.post("/authorize", response_model=AuthorizeResponse)
async def authorize(
    body: AuthorizeRequest,
    actor: str = Depends(get_current_actor),
    engine: DecisionEngine = Depends(get_engine),
    admin: PolicyAdministration = Depends(get_admin),
):
    """
    Decide (actor, dom, obj, act, attrs).

    On allow the response carries the where/set predicates the caller must
    apply to its data query. Denied requests answer 403.
    """
    decision = await engine.enforce(actor, body.dom, body.obj, body.act, body.attrs)
    if not decision.allowed:
        raise AuthorizationDenied("User is not authorized.")

    roles = await admin.list_roles_for_actor_in_domains(actor)
    return AuthorizeResponse(actor=actor, roles=roles, allowed=True, conditions=get_conditions())
