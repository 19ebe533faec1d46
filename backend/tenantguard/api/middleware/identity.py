"""
Actor Identity & Permission Dependencies
=========================================
Identity is asserted by a trusted upstream (gateway or session service)
through the X-Actor header; requests without it act as the public actor.

require_permission() mirrors the role-dependency factories of classic
FastAPI auth layers, but asks the decision engine instead of a static
role list.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import Depends, Header, Query, Request

from tenantguard.admin.service import PolicyAdministration
from tenantguard.config import settings
from tenantguard.core.errors import AuthorizationDenied, LookupFailure
from tenantguard.core.models import Action, Decision
from tenantguard.core.tiers import resolve_domain
from tenantguard.security.engine import DecisionEngine

logger = structlog.get_logger()


async def get_current_actor(x_actor: Optional[str] = Header(None)) -> str:
    """Acting principal for this request; falls back to the public actor."""
    if x_actor is None or not x_actor.strip():
        return settings.public_actor
    return x_actor.strip().lower()


def get_engine(request: Request) -> DecisionEngine:
    return request.app.state.engine


def get_admin(request: Request) -> PolicyAdministration:
    return request.app.state.admin


async def check_permission(
    engine: DecisionEngine,
    actor: str,
    obj: str,
    act: Action,
    requested_domain: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None,
) -> Decision:
    """
    Authorize an administrative call.

    Internal actors are checked in the global domain, everyone else in the
    requested tenant domain. Raises AuthorizationDenied on deny.
    """
    try:
        tier = await engine.classify_actor(actor)
    except LookupFailure as e:
        logger.warning("Role lookup failed, denying", actor=actor, error=str(e))
        raise AuthorizationDenied("User is not authorized.") from e
    domain = resolve_domain(tier, requested_domain)
    decision = await engine.enforce(actor, domain, obj, act.value, attributes)
    if not decision.allowed:
        logger.info("Permission denied", actor=actor, domain=domain, object=obj, action=act.value)
        raise AuthorizationDenied("User is not authorized.")
    return decision


def require_permission(obj: str, act: Action):
    """
    Dependency factory requiring `act` on `obj`.

    Usage:
        @router.get("/domain-roles")
        async def domain_roles(
            decision: Decision = Depends(require_permission("authorization", Action.READ))
        ):
            ...
    """
    async def permission_checker(
        domain: Optional[str] = Query(None, description="Tenant domain"),
        actor: str = Depends(get_current_actor),
        engine: DecisionEngine = Depends(get_engine),
    ) -> Decision:
        return await check_permission(engine, actor, obj, act, domain)

    return permission_checker
