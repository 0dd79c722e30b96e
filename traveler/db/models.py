"""
Traveler Tables: SQLAlchemy models for the document store.

Tables:
1. users    : Users with back-references to shared documents
2. groups   : Directory groups with back-references
3. forms    : Form documents
4. travelers: Traveler documents
5. binders  : Binder documents (works embedded in body)
6. binder_works: binder to child junction for finding the parents of a document
"""

from __future__ import annotations

from sqlalchemy import JSON, Column, DateTime, Float, ForeignKey, Index, String

from traveler.db.base import Base, DocumentColumnsMixin


class UserRow(Base):
    __tablename__ = "users"

    id = Column(String(100), primary_key=True)
    name = Column(String(200), nullable=False, default="", index=True)
    email = Column(String(255), nullable=True)
    last_visited_on = Column(DateTime(timezone=True), nullable=True)
    body = Column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<UserRow(id='{self.id}', name='{self.name}')>"


class GroupRow(Base):
    __tablename__ = "groups"

    id = Column(String(100), primary_key=True)
    name = Column(String(200), nullable=False, default="", index=True)
    body = Column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<GroupRow(id='{self.id}', name='{self.name}')>"


class FormRow(Base, DocumentColumnsMixin):
    __tablename__ = "forms"

    def __repr__(self) -> str:
        return f"<FormRow(id='{self.id}', status={self.status})>"


class TravelerRow(Base, DocumentColumnsMixin):
    __tablename__ = "travelers"

    reference_form = Column(String(64), nullable=True, index=True)

    def __repr__(self) -> str:
        return f"<TravelerRow(id='{self.id}', status={self.status})>"


class BinderRow(Base, DocumentColumnsMixin):
    __tablename__ = "binders"

    total_value = Column(Float, nullable=False, default=0.0)

    def __repr__(self) -> str:
        return f"<BinderRow(id='{self.id}', status={self.status})>"


class BinderWorkRow(Base):
    __tablename__ = "binder_works"

    binder_id = Column(String(64), ForeignKey("binders.id", ondelete="CASCADE"), primary_key=True)
    work_id = Column(String(64), primary_key=True)

    __table_args__ = (
        Index("idx_bw_work_id", "work_id"),
    )

    def __repr__(self) -> str:
        return f"<BinderWorkRow(binder_id='{self.binder_id}', work_id='{self.work_id}')>"
