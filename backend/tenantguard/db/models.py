"""
Database Models — SQLAlchemy ORM
==================================
Rule table for policies and role assignments, plus the actor, resource
metadata and relationship tables the decision engine reads.
"""

from datetime import datetime, timezone
from sqlalchemy import (
    Column, String, Integer, DateTime, BigInteger,
    Index, UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class RuleRecord(Base):
    """
    One policy ("p") or grouping ("g") rule.

    p: v0..v6 = subject, domain, object, action, condition, attributes, effect
    g: v0..v2 = actor, role, domain
    """
    __tablename__ = "authz_rules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    ptype = Column(String(8), nullable=False)
    v0 = Column(String(255))
    v1 = Column(String(255))
    v2 = Column(String(255))
    v3 = Column(String(255))
    v4 = Column(String(255))
    v5 = Column(String(4096))
    v6 = Column(String(255))

    __table_args__ = (
        Index("ix_authz_rules_ptype_v0", "ptype", "v0"),
        Index("ix_authz_rules_ptype_v1", "ptype", "v1"),
    )


class ActorRecord(Base):
    """An authenticated principal."""
    __tablename__ = "actors"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    username = Column(String(64), nullable=False, unique=True)
    email = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))


class ResourceTableRecord(Base):
    """Row-scoping columns of a protected resource."""
    __tablename__ = "resource_tables"

    table_name = Column(String(128), primary_key=True)
    owner_column = Column(String(128))
    creator_column = Column(String(128))
    updator_column = Column(String(128))
    domain_column = Column(String(256))


class ActorCustomerRecord(Base):
    """Advisor-to-customer relationship between an actor and a customer domain."""
    __tablename__ = "actor_customers"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=False, index=True)
    customer_id = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=False, index=True)
    user_accepted_at = Column(DateTime(timezone=True))
    customer_accepted_at = Column(DateTime(timezone=True))
    valid_from = Column(DateTime(timezone=True))
    valid_to = Column(DateTime(timezone=True))
    quit_at = Column(DateTime(timezone=True))
    suspend_at = Column(DateTime(timezone=True))

    __table_args__ = (
        UniqueConstraint("user_id", "customer_id", "valid_from", name="uq_actor_customer_period"),
    )
