"""
Role & Policy Administration Tests
===================================
"""

import json

import pytest

from tenantguard.admin.service import PolicyAdministration, parse_records
from tenantguard.core.errors import AuthorizationDenied, ConflictError, PolicyValidationError
from tenantguard.core.models import Policy, PolicyFilter, RoleAssignment
from tenantguard.repository.memory import InMemoryPolicyRepository

POLICY_FILE = """
admin;0;authorization;C;none;none;allow
admin;0;authorization;R;none;none;allow
member;7;ticket;R;check_ownership;none;allow
 member ; 7 ; ticket ; U ; check_ownership ; {"where":{"status":"open"}} ; allow

dave;member;7
Frank;enduser;0
"""


class CountingRepository(InMemoryPolicyRepository):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.saves = 0

    async def _persist(self, policies, groupings):
        self.saves += 1


@pytest.fixture
def counting():
    return CountingRepository()


# ---------------------------------------------------------------------------
# Role assignments
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_role_is_idempotent(admin, repository):
    assert await admin.add_role_for_actor_in_domain("dave", "member", "7") is True
    assert await admin.add_role_for_actor_in_domain("Dave ", "member", "7") is False

    assignments = await repository.get_filtered_grouping_policy(0, "dave", "member", "7")
    assert assignments == [("dave", "member", "7")]


@pytest.mark.asyncio
async def test_remove_role_is_idempotent(admin):
    assert await admin.remove_role_for_actor_in_domain("alice", "member", "7") is True
    assert await admin.remove_role_for_actor_in_domain("alice", "member", "7") is False
    assert await admin.has_role_for_actor_in_domain("alice", "member", "7") is False


@pytest.mark.asyncio
async def test_bulk_role_removal(admin):
    await admin.add_role_for_actor_in_domain("alice", "auditor", "7")
    await admin.add_role_for_actor_in_domain("alice", "member", "9")

    assert await admin.remove_roles_for_actor_in_domain("alice", "7") == 2
    assert await admin.list_roles_for_actor("alice") == ["member"]
    assert await admin.remove_roles_for_actor_in_all_domains("alice") == 1
    assert await admin.list_roles_for_actor_in_domains("alice") == []


@pytest.mark.asyncio
async def test_role_listings(admin):
    await admin.add_role_for_actor_in_domain("alice", "auditor", "9")

    assert await admin.list_roles_for_actor_in_domain("alice", "7") == ["member"]
    assert await admin.list_roles_for_actor_in_domains("alice") == [
        RoleAssignment(role="member", domain="7"),
        RoleAssignment(role="auditor", domain="9"),
    ]
    assert sorted(await admin.get_actors_for_role_in_domain("member", "7")) == ["alice", "bob"]
    assert [a.actor for a in await admin.get_roles_in_domain("member", "7")] == ["alice", "bob"]
    assert len(await admin.get_roles_in_domain(domain="0")) == 3


@pytest.mark.asyncio
async def test_role_domain_is_validated(admin):
    with pytest.raises(PolicyValidationError):
        await admin.add_role_for_actor_in_domain("alice", "member", "x7")


@pytest.mark.asyncio
async def test_every_write_is_saved(counting):
    admin = PolicyAdministration(counting)
    await admin.add_role_for_actor_in_domain("dave", "member", "7")
    await admin.add_policy("member", "7", "note", "R", "none", "none", "allow")
    await admin.remove_role_for_actor_in_domain("dave", "member", "7")
    assert counting.saves == 3


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_add_policy_serializes_attributes(admin):
    added = await admin.add_policy("member", "7", "ticket", "R", "none", {"where": {"status": "open"}}, "allow")
    assert added is True
    assert await admin.add_policy("member", "7", "ticket", "R", "none", {"where": {"status": "open"}}, "allow") is False

    [policy] = await admin.list_policies(PolicyFilter(subject="member", domain="7"))
    assert policy.attributes == '{"where":{"status":"open"}}'
    assert policy.parsed_attributes() == {"where": {"status": "open"}}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "fields",
    [
        ("member", "7", "ticket", "R", "none", "none", None),
        ("member", "7", "ticket", "R", "none", "none", ""),
        ("member", 7, "ticket", "R", "none", "none", "allow"),
        ("member", "7", "ticket", "X", "none", "none", "allow"),
        ("member", "7", "ticket", "R", "check_horoscope", "none", "allow"),
        ("member", "7", "ticket", "R", "none", "[1, 2]", "allow"),
        ("member", "7", "ticket", "R", "none", "{not json", "allow"),
        ("member", "7", "ticket", "R", "none", "none", "maybe"),
        ("member", "-7", "ticket", "R", "none", "none", "allow"),
    ],
)
async def test_add_policy_rejects_malformed_fields(admin, fields):
    with pytest.raises(PolicyValidationError):
        await admin.add_policy(*fields)
    assert await admin.list_policies() == []


@pytest.mark.asyncio
async def test_permissions_for_role(admin):
    await admin.add_policy("member", "7", "ticket", "R", "none", "none", "allow")
    await admin.add_policy("member", "7", "note", "C", "none", "none", "allow")
    assert await admin.get_permissions_for_role_in_domain("member", "7") == [("ticket", "R"), ("note", "C")]


@pytest.mark.asyncio
async def test_remove_policies_refused_while_role_assigned(admin):
    await admin.add_policy("member", "7", "ticket", "R", "none", "none", "allow")

    with pytest.raises(ConflictError):
        await admin.remove_policies(PolicyFilter(subject="member", domain="7"))
    assert len(await admin.list_policies()) == 1

    await admin.remove_roles_for_actor_in_domain("alice", "7")
    await admin.remove_roles_for_actor_in_domain("bob", "7")
    assert await admin.remove_policies(PolicyFilter(subject="member", domain="7")) == 1
    assert await admin.list_policies() == []


@pytest.mark.asyncio
async def test_attribute_filter_compares_structurally(admin):
    await admin.import_records(
        'member;7;ticket;R;none;{"where": {"status": "open", "prio": [1, 2]}};allow\n'
        "member;7;ticket;U;none;none;allow\n"
    )

    wanted = {"where": {"prio": [1, 2], "status": "open"}}
    [policy] = await admin.list_policies(PolicyFilter(attributes=wanted))
    assert policy.action == "R"
    assert len(await admin.list_policies(PolicyFilter(attributes=json.dumps(wanted)))) == 1
    assert [p.action for p in await admin.list_policies(PolicyFilter(attributes="none"))] == ["U"]
    assert await admin.list_policies(PolicyFilter(attributes={"where": {"status": "closed"}})) == []

    await admin.remove_roles_for_actor_in_domain("alice", "7")
    await admin.remove_roles_for_actor_in_domain("bob", "7")
    assert await admin.remove_policies(PolicyFilter(subject="member", domain="7", attributes=wanted)) == 1
    assert [p.action for p in await admin.list_policies()] == ["U"]


@pytest.mark.asyncio
async def test_delete_policies_for_domain_zero(admin):
    await admin.add_policy("admin", "0", "ticket", "R", "none", "none", "allow")
    await admin.add_policy("member", "7", "ticket", "R", "none", "none", "allow")

    assert await admin.delete_policies_for_domain_zero() == 1
    assert [p.domain for p in await admin.list_policies()] == ["7"]


# ---------------------------------------------------------------------------
# Policy authoring on behalf of an actor
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_internal_author_may_add_any_policy(admin, engine):
    policy = Policy(subject="member", domain="7", object="ticket", action="R", condition="check_ownership")
    assert await admin.add_policy_as("staff", policy, engine) is True


@pytest.mark.asyncio
async def test_customer_author_needs_relationship_condition(admin, engine, repository):
    await repository.add_policy("member", "7", "note", "GR", "none", "none", "allow")
    policy = Policy(subject="reader", domain="7", object="note", action="R", condition="none")

    with pytest.raises(AuthorizationDenied):
        await admin.add_policy_as("alice", policy, engine)


@pytest.mark.asyncio
async def test_customer_author_needs_grant_action(admin, engine, repository):
    policy = Policy(subject="reader", domain="7", object="note", action="R", condition="check_relationship")
    with pytest.raises(AuthorizationDenied):
        await admin.add_policy_as("alice", policy, engine)

    await repository.add_policy("member", "7", "note", "GR", "none", "none", "allow")
    assert await admin.add_policy_as("alice", policy, engine) is True
    assert policy in await admin.list_policies(PolicyFilter(subject="reader"))


# ---------------------------------------------------------------------------
# Bulk import
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_import_round_trip(admin):
    assert await admin.import_records(POLICY_FILE) == (4, 2)

    [policy] = await admin.list_policies(PolicyFilter(subject="member", domain="7", action="U"))
    assert policy.to_tuple() == (
        "member", "7", "ticket", "U", "check_ownership", '{"where":{"status":"open"}}', "allow",
    )
    assert await admin.has_role_for_actor_in_domain("frank", "enduser", "0") is True


@pytest.mark.asyncio
async def test_import_is_all_or_nothing(admin):
    broken = POLICY_FILE + "member;7;ticket;D;check_ownership;none\n"

    with pytest.raises(PolicyValidationError) as excinfo:
        await admin.import_records(broken)
    assert "Line 9" in str(excinfo.value)
    assert await admin.list_policies() == []
    assert await admin.has_role_for_actor_in_domain("dave", "member", "7") is False


@pytest.mark.asyncio
async def test_import_skips_header(admin):
    content = "subject;domain;object;action;condition;attributes;effect\nmember;7;note;R;none;none;allow\n"
    with pytest.raises(PolicyValidationError):
        await admin.import_records(content)
    assert await admin.import_records(content, skip_header=True) == (1, 0)


@pytest.mark.asyncio
async def test_import_file(admin, tmp_path):
    path = tmp_path / "policies.csv"
    path.write_text(POLICY_FILE, encoding="utf-8")
    assert await admin.import_file(path) == (4, 2)
    assert await admin.import_file(path) == (0, 0)


def test_parse_records_rejects_empty_grouping_field():
    with pytest.raises(PolicyValidationError):
        parse_records("dave;;7\n")
