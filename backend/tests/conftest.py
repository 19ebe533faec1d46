"""
Shared fixtures: a small tenant world.

- staff  (id 1)  : admin in domain 0             -> internal
- alice  (id 42) : member in domain 7            -> customer
- bob    (id 43) : member in domain 7            -> customer
- eve    (id 44) : enduser in domain 0           -> external
- carol  (id 50) : advisor with a relationship to customer 7
- public (id 0)  : public in domain 0            -> public
"""

from datetime import datetime, timedelta, timezone

import pytest

from tenantguard.admin.service import PolicyAdministration
from tenantguard.core.models import Actor, Relationship, ResourceMetadata
from tenantguard.core.tiers import TrustTierClassifier
from tenantguard.repository.memory import InMemoryDirectory, InMemoryPolicyRepository
from tenantguard.security.engine import DecisionEngine

NOW = datetime.now(timezone.utc)

TICKET = ResourceMetadata(
    table_name="ticket",
    owner_column="owner_id",
    creator_column="created_by",
    updator_column="updated_by",
)
INVOICE = ResourceMetadata(
    table_name="invoice",
    creator_column="created_by",
    updator_column="updated_by",
    domain_column="customer_id",
)
INVOICE_LINE = ResourceMetadata(
    table_name="invoice_line",
    domain_column="invoice.invoice_id",
)
NOTE = ResourceMetadata(table_name="note", creator_column="created_by")


@pytest.fixture
def classifier():
    return TrustTierClassifier(
        internal_roles=["admin", "admindata", "officer", "agent", "administrator"],
        customer_roles=["customer_admin"],
        external_role="enduser",
        public_role="public",
    )


@pytest.fixture
def valid_relationship():
    return Relationship(
        user_id=50,
        customer_id=7,
        user_accepted_at=NOW - timedelta(days=10),
        customer_accepted_at=NOW - timedelta(days=9),
        valid_from=NOW - timedelta(days=9),
        valid_to=None,
    )


@pytest.fixture
def directory(valid_relationship):
    return InMemoryDirectory(
        actors=[
            Actor(id=1, username="staff"),
            Actor(id=42, username="alice"),
            Actor(id=43, username="bob"),
            Actor(id=44, username="eve"),
            Actor(id=50, username="carol"),
            Actor(id=0, username="public"),
        ],
        resources=[TICKET, INVOICE, INVOICE_LINE, NOTE],
        relationships=[valid_relationship],
        rows={
            "invoice": [
                {"invoice_id": 900, "customer_id": 7},
                {"invoice_id": 901, "customer_id": 8},
            ],
        },
    )


@pytest.fixture
def repository():
    return InMemoryPolicyRepository(
        groupings=[
            ("staff", "admin", "0"),
            ("alice", "member", "7"),
            ("bob", "member", "7"),
            ("eve", "enduser", "0"),
            ("carol", "advisor", "7"),
            ("public", "public", "0"),
        ],
    )


@pytest.fixture
def engine(repository, directory, classifier):
    return DecisionEngine(
        policies=repository,
        actors=directory,
        resources=directory,
        relationships=directory,
        classifier=classifier,
        lookup_timeout=0.5,
    )


@pytest.fixture
def admin(repository):
    return PolicyAdministration(repository)
