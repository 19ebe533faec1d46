"""
TenantGuard — Data Models
==========================
Core Pydantic models for policies, role assignments, resource metadata
and authorization requests/decisions.
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from tenantguard.core.errors import PolicyValidationError

NONE = "none"


# ---------------------------------------------------------------------------
# Vocabulary
# ---------------------------------------------------------------------------
class Action(str, Enum):
    """CRUD actions and the grant variants used to author policies for others."""
    CREATE = "C"
    READ = "R"
    UPDATE = "U"
    DELETE = "D"
    GRANT_CREATE = "GC"
    GRANT_READ = "GR"
    GRANT_UPDATE = "GU"
    GRANT_DELETE = "GD"

    @property
    def grant(self) -> "Action":
        """The grant variant of a plain CRUD action (grant actions map to themselves)."""
        if self.value.startswith("G"):
            return self
        return Action("G" + self.value)


class Condition(str, Enum):
    """Dynamic condition attached to a policy."""
    NONE = "none"
    OWNERSHIP = "check_ownership"
    RELATIONSHIP = "check_relationship"


class Effect(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


def parse_condition(value: str) -> Condition:
    try:
        return Condition(value)
    except ValueError:
        raise PolicyValidationError(f"Unknown condition: {value!r}")


# ---------------------------------------------------------------------------
# Policies & Role Assignments
# ---------------------------------------------------------------------------
POLICY_FIELDS = ("subject", "domain", "object", "action", "condition", "attributes", "effect")


class Policy(BaseModel):
    """
    Policy tuple (subject, domain, object, action, condition, attributes, effect).

    All fields are stored as strings, exactly as they live in the rule table.
    attributes is either the literal "none" or a JSON object string; a mapping
    passed in is serialized to compact JSON.
    """
    subject: str
    domain: str
    object: str
    action: str
    condition: str = NONE
    attributes: str = NONE
    effect: str = Effect.ALLOW.value

    model_config = {"frozen": True}

    @field_validator("attributes", mode="before")
    @classmethod
    def _serialize_attributes(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return json.dumps(value, separators=(",", ":"))
        return value

    def to_tuple(self) -> Tuple[str, ...]:
        return tuple(getattr(self, name) for name in POLICY_FIELDS)

    @classmethod
    def from_tuple(cls, values) -> "Policy":
        return cls(**dict(zip(POLICY_FIELDS, values)))

    def parsed_condition(self) -> Condition:
        return parse_condition(self.condition)

    def parsed_attributes(self) -> Optional[Dict[str, Any]]:
        """
        The attribute object, or None when the policy carries no static attributes.

        Raises PolicyValidationError when the stored value is neither "none"
        nor a JSON object.
        """
        if self.attributes == NONE:
            return None
        try:
            parsed = json.loads(self.attributes)
        except ValueError:
            raise PolicyValidationError(f"Policy attributes are not valid JSON: {self.attributes!r}")
        if not isinstance(parsed, dict):
            raise PolicyValidationError("Policy attributes must be 'none' or a JSON object")
        return parsed

    def validate_fields(self) -> "Policy":
        """Check the enumerated fields before the policy is stored."""
        for name in POLICY_FIELDS:
            if not getattr(self, name):
                raise PolicyValidationError(f"Policy field '{name}' is mandatory")
        try:
            Action(self.action)
        except ValueError:
            raise PolicyValidationError(f"Unknown action: {self.action!r}")
        try:
            Effect(self.effect)
        except ValueError:
            raise PolicyValidationError(f"Unknown effect: {self.effect!r}")
        self.parsed_condition()
        self.parsed_attributes()
        return self


def attributes_match(left: Any, right: Any) -> bool:
    """
    Structural equality over JSON-like values.

    Maps compare order-independently, arrays order-sensitively; booleans
    never equal numbers.
    """
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(attributes_match(left[k], right[k]) for k in left)
    if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
        return len(left) == len(right) and all(attributes_match(a, b) for a, b in zip(left, right))
    if isinstance(left, (dict, list, tuple)) or isinstance(right, (dict, list, tuple)):
        return False
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    return left == right


class PolicyFilter(BaseModel):
    """Any subset of the policy fields; unset fields match everything."""
    subject: Optional[str] = None
    domain: Optional[str] = None
    object: Optional[str] = None
    action: Optional[str] = None
    condition: Optional[str] = None
    attributes: Optional[Any] = None
    effect: Optional[str] = None

    def values(self) -> List[str]:
        """Positional repository filter; attributes are matched by matches_attributes()."""
        return [
            "" if name == "attributes" else (getattr(self, name) or "")
            for name in POLICY_FIELDS
        ]

    def matches_attributes(self, stored: str) -> bool:
        """Compare the attribute filter with a stored value structurally."""
        if self.attributes is None or self.attributes == "":
            return True
        expected = self.attributes
        if isinstance(expected, str):
            if expected == NONE or stored == NONE:
                return expected == stored
            try:
                expected = json.loads(expected)
            except ValueError:
                raise PolicyValidationError(f"Attribute filter is not valid JSON: {expected!r}")
        if stored == NONE:
            return False
        try:
            return attributes_match(json.loads(stored), expected)
        except ValueError:
            return False


class RoleAssignment(BaseModel):
    """Grouping tuple (actor, role, domain)."""
    role: str
    domain: str
    actor: Optional[str] = None


# ---------------------------------------------------------------------------
# Collaborator records
# ---------------------------------------------------------------------------
class ResourceMetadata(BaseModel):
    """Row-scoping columns of a resource; a missing column disables that dimension."""
    table_name: str
    owner_column: Optional[str] = None
    creator_column: Optional[str] = None
    updator_column: Optional[str] = None
    domain_column: Optional[str] = None


class Actor(BaseModel):
    """Resolved actor profile."""
    id: Optional[int] = None
    username: str
    email: Optional[str] = None


class Relationship(BaseModel):
    """Advisor-to-customer relationship between an actor and a customer domain."""
    user_id: int
    customer_id: int
    user_accepted_at: Optional[datetime] = None
    customer_accepted_at: Optional[datetime] = None
    valid_from: Optional[datetime] = None
    valid_to: Optional[datetime] = None
    quit_at: Optional[datetime] = None
    suspend_at: Optional[datetime] = None

    def is_valid_at(self, now: datetime) -> bool:
        return (
            self.user_accepted_at is not None
            and self.user_accepted_at <= now
            and self.customer_accepted_at is not None
            and self.customer_accepted_at <= now
            and self.valid_from is not None
            and self.valid_from <= now
            and (self.valid_to is None or self.valid_to >= now)
            and self.quit_at is None
            and self.suspend_at is None
        )


# ---------------------------------------------------------------------------
# Requests & Decisions
# ---------------------------------------------------------------------------
class AuthorizationRequest(BaseModel):
    """
    A single authorization request.

    attributes is mutated in place on allow: its "where" and "set" maps
    carry the row scoping the caller must apply to its data query.
    """
    subject: str
    domain: str
    object: str
    action: str
    attributes: Dict[str, Any] = Field(default_factory=dict)

    @property
    def where(self) -> Dict[str, Any]:
        return self.attributes.get("where") or {}

    @property
    def set(self) -> Dict[str, Any]:
        return self.attributes.get("set") or {}


class Predicates(BaseModel):
    """Scoping predicates handed back to the data layer."""
    where: Dict[str, Any] = Field(default_factory=dict)
    set: Dict[str, Any] = Field(default_factory=dict)


class Decision(BaseModel):
    """Outcome of an evaluation: allow/deny plus the predicates to apply."""
    allowed: bool
    where: Dict[str, Any] = Field(default_factory=dict)
    set: Dict[str, Any] = Field(default_factory=dict)
    policy: Optional[Policy] = None
    tier: Optional[str] = None

    @classmethod
    def deny(cls, policy: Optional[Policy] = None, tier: Optional[str] = None) -> "Decision":
        return cls(allowed=False, policy=policy, tier=tier)
