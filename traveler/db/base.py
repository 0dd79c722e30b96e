"""
Traveler Database Base: SQLAlchemy declarative base, mixins and engine factory.

Provides:
- Base: SQLAlchemy declarative base for all traveler tables
- DocumentColumnsMixin: queryable ACL / audit columns shared by document tables
- create_db_engine: engine construction with SQLite special-casing
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, Boolean, Column, DateTime, Float, Integer, String, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all traveler models."""
    pass


class DocumentColumnsMixin:
    """
    Columns promoted out of the document body for filtering.

    The full document (share lists, works, form html ...) lives in ``body``
    and is saved whole on every write.
    """
    id = Column(String(64), primary_key=True)
    title = Column(String(500), nullable=False, default="")
    status = Column(Float, nullable=False, default=0.0, index=True)
    created_by = Column(String(100), nullable=True, index=True)
    owner = Column(String(100), nullable=True, index=True)
    public_access = Column(Integer, nullable=False, default=0, index=True)
    archived = Column(Boolean, nullable=False, default=False, index=True)
    created_on = Column(DateTime(timezone=True), nullable=True)
    updated_on = Column(DateTime(timezone=True), nullable=True)
    body = Column(JSON, nullable=False, default=dict)


def create_db_engine(
    url: str,
    pool_size: int = 10,
    max_overflow: int = 20,
    pool_timeout: int = 30,
    pool_recycle: int = 1800,
    pool_pre_ping: bool = True,
    **kwargs: Any,
) -> Engine:
    """
    Create an engine for the document store.

    SQLite URLs get a single shared connection (``StaticPool``) usable from
    the worker threads the async store runs its queries on; pool sizing
    options only apply to server databases.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            **kwargs,
        )
    return create_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_timeout=pool_timeout,
        pool_recycle=pool_recycle,
        pool_pre_ping=pool_pre_ping,
        **kwargs,
    )
