"""
SQL Adapters — Async SQLAlchemy
=================================
SqlPolicyRepository keeps the in-memory rule view and mirrors it to the
authz_rules table; SqlDirectory answers actor, resource-metadata,
relationship and row lookups straight from the database.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from sqlalchemy import column, delete, literal_column, or_, select, table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from tenantguard.core.errors import LookupFailure
from tenantguard.core.models import Actor, Relationship, ResourceMetadata
from tenantguard.db.models import ActorCustomerRecord, ActorRecord, ResourceTableRecord, RuleRecord
from tenantguard.repository.base import ActorLookup, RelationshipLookup, ResourceMetadataLookup, Rule
from tenantguard.repository.memory import InMemoryPolicyRepository

logger = structlog.get_logger()

_VALUE_COLUMNS = ("v0", "v1", "v2", "v3", "v4", "v5", "v6")


class SqlPolicyRepository(InMemoryPolicyRepository):
    """
    Rule store persisted in the authz_rules table.

    Reads are served from the in-memory view; save() rewrites the table in a
    single transaction so the stored rule set always equals the view.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        super().__init__()
        self._session_factory = session_factory

    async def load(self) -> None:
        """Replace the in-memory view with the rules stored in the database."""
        async with self._session_factory() as session:
            result = await session.execute(select(RuleRecord).order_by(RuleRecord.id))
            records = result.scalars().all()

        policies: List[Rule] = []
        groupings: List[Rule] = []
        for record in records:
            values = tuple(getattr(record, name) for name in _VALUE_COLUMNS)
            if record.ptype == "p":
                policies.append(values[:7])
            elif record.ptype == "g":
                groupings.append(values[:3])

        async with self._lock:
            self._replace(policies, groupings)
        logger.info("Policy rules loaded", policies=len(policies), groupings=len(groupings))

    async def _persist(self, policies: List[Rule], groupings: List[Rule]) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await session.execute(delete(RuleRecord))
                for ptype, rules in (("p", policies), ("g", groupings)):
                    for rule in rules:
                        session.add(RuleRecord(ptype=ptype, **dict(zip(_VALUE_COLUMNS, rule))))
        logger.debug("Policy rules saved", policies=len(policies), groupings=len(groupings))


class SqlDirectory(ActorLookup, ResourceMetadataLookup, RelationshipLookup):
    """Database-backed collaborator lookups. Driver errors surface as LookupFailure."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get_actor_by_identifier(self, identifier: str) -> Optional[Actor]:
        stmt = select(ActorRecord).where(ActorRecord.username == identifier.strip().lower())
        try:
            async with self._session_factory() as session:
                record = (await session.execute(stmt)).scalars().first()
        except SQLAlchemyError as e:
            raise LookupFailure(f"Actor lookup failed: {e}") from e
        if record is None:
            return None
        return Actor(id=record.id, username=record.username, email=record.email)

    async def get_resource_metadata(self, object_name: str) -> Optional[ResourceMetadata]:
        try:
            async with self._session_factory() as session:
                record = await session.get(ResourceTableRecord, object_name)
        except SQLAlchemyError as e:
            raise LookupFailure(f"Resource metadata lookup failed: {e}") from e
        if record is None:
            return None
        return ResourceMetadata(
            table_name=record.table_name,
            owner_column=record.owner_column,
            creator_column=record.creator_column,
            updator_column=record.updator_column,
            domain_column=record.domain_column,
        )

    async def get_row(self, table_name: str, column_name: str, value: Any) -> Optional[Dict[str, Any]]:
        target = table(table_name, column(column_name))
        stmt = (
            select(literal_column("*"))
            .select_from(target)
            .where(target.c[column_name] == value)
            .limit(1)
        )
        try:
            async with self._session_factory() as session:
                row = (await session.execute(stmt)).mappings().first()
        except SQLAlchemyError as e:
            raise LookupFailure(f"Row lookup on {table_name} failed: {e}") from e
        return dict(row) if row is not None else None

    async def get_valid_relationship(self, actor_id: int, customer_id: int) -> Optional[Relationship]:
        now = datetime.now(timezone.utc)
        rel = ActorCustomerRecord
        stmt = select(rel).where(
            rel.user_id == actor_id,
            rel.customer_id == customer_id,
            rel.customer_accepted_at <= now,
            rel.user_accepted_at <= now,
            rel.valid_from <= now,
            or_(rel.valid_to >= now, rel.valid_to.is_(None)),
            rel.quit_at.is_(None),
            rel.suspend_at.is_(None),
        )
        try:
            async with self._session_factory() as session:
                record = (await session.execute(stmt)).scalars().first()
        except SQLAlchemyError as e:
            raise LookupFailure(f"Relationship lookup failed: {e}") from e
        if record is None:
            return None
        return Relationship(
            user_id=record.user_id,
            customer_id=record.customer_id,
            user_accepted_at=record.user_accepted_at,
            customer_accepted_at=record.customer_accepted_at,
            valid_from=record.valid_from,
            valid_to=record.valid_to,
            quit_at=record.quit_at,
            suspend_at=record.suspend_at,
        )
