"""
Authorization Errors
=====================
Validation problems are surfaced to the caller, lookup failures are
converted to deny by the decision engine, conflicts reject administration
writes.
"""


class AuthzError(Exception):
    """Base class for all TenantGuard errors."""


class PolicyValidationError(AuthzError, ValueError):
    """Malformed domain, missing policy field or unknown condition name."""


class LookupFailure(AuthzError):
    """A repository, actor or resource-metadata lookup failed or timed out."""


class ConflictError(AuthzError):
    """An administration write would leave dangling grants."""


class AuthorizationDenied(AuthzError):
    """The acting principal is not allowed to perform the requested operation."""


class NotFoundError(AuthzError):
    """An administration call referenced a role or policy that does not exist."""
