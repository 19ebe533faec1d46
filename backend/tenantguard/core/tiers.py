"""
Trust Tiers — Actor Classification
====================================
Derives an actor's trust tier from its (role, domain) memberships.

Tiers, highest priority first:
- internal : platform staff roles held in domain 0
- customer : any role in a tenant domain (> 0), or a customer-facing
             privileged role in domain 0
- external : the self-registered "enduser" role in domain 0
- public   : the unauthenticated "public" role in domain 0

Domain "0" is the platform-global domain.
"""

from enum import Enum
from typing import Iterable, Optional, Tuple, Union

from tenantguard.config import settings
from tenantguard.core.errors import PolicyValidationError

GLOBAL_DOMAIN = "0"


class Tier(str, Enum):
    """Trust tier of an actor."""
    INTERNAL = "internal"
    CUSTOMER = "customer"
    EXTERNAL = "external"
    PUBLIC = "public"
    UNKNOWN = "unknown"


def parse_domain(value: Union[str, int, None]) -> int:
    """
    Parse a domain identifier into a non-negative integer.

    Only plain digit strings and non-negative ints are accepted; anything
    else raises PolicyValidationError rather than defaulting to domain 0.
    """
    if isinstance(value, bool):
        raise PolicyValidationError(f"Invalid domain: {value!r}")
    if isinstance(value, int):
        if value < 0:
            raise PolicyValidationError(f"Invalid domain: {value!r}")
        return value
    if isinstance(value, str) and value.isascii() and value.isdigit():
        return int(value)
    raise PolicyValidationError(f"Domain must be a string containing digits, got {value!r}")


class TrustTierClassifier:
    """
    Classifies actors into trust tiers.

    Role sets default to the configured ones so a classifier can be built
    without arguments; tests and embedders may pass their own.
    """

    def __init__(
        self,
        internal_roles: Optional[Iterable[str]] = None,
        customer_roles: Optional[Iterable[str]] = None,
        external_role: Optional[str] = None,
        public_role: Optional[str] = None,
    ):
        self.internal_roles = frozenset(internal_roles if internal_roles is not None else settings.internal_roles)
        self.customer_roles = frozenset(customer_roles if customer_roles is not None else settings.customer_roles)
        self.external_role = external_role or settings.external_role
        self.public_role = public_role or settings.public_role

    def classify(self, pairs: Iterable[Tuple[str, Union[str, int]]]) -> Tier:
        """
        Classify an actor from all of its (role, domain) pairs.

        Flags are OR-accumulated across every pair, then the highest
        priority flag wins: internal > customer > external > public.
        """
        internal = customer = external = public = False

        for role, domain in pairs:
            dom = parse_domain(domain)
            if dom > 0:
                customer = True
            elif role in self.internal_roles:
                internal = True
            elif role in self.customer_roles:
                customer = True
            elif role == self.external_role:
                external = True
            elif role == self.public_role:
                public = True

        if internal:
            return Tier.INTERNAL
        if customer:
            return Tier.CUSTOMER
        if external:
            return Tier.EXTERNAL
        if public:
            return Tier.PUBLIC
        return Tier.UNKNOWN

    def classify_in_domain(self, role: str, domain: Union[str, int]) -> Tier:
        """Single-pair fast path for a role already bound to one domain."""
        if isinstance(domain, int) and not isinstance(domain, bool) and domain < 0:
            return Tier.UNKNOWN
        dom = parse_domain(domain)
        if dom > 0:
            return Tier.CUSTOMER
        if role in self.internal_roles:
            return Tier.INTERNAL
        if role in self.customer_roles:
            return Tier.CUSTOMER
        if role == self.external_role:
            return Tier.EXTERNAL
        return Tier.PUBLIC


def resolve_domain(tier: Tier, requested: Optional[str]) -> str:
    """
    Pick the domain an administrative request is authorized in.

    Internal actors always act in the global domain; everyone else in the
    requested tenant domain, defaulting to the global one.
    """
    if tier == Tier.INTERNAL or not requested:
        return GLOBAL_DOMAIN
    parse_domain(requested)
    return requested
