"""
SQLAlchemy models for the multi-tenant remote report store.

Both tables keep the full record as an opaque JSON blob tagged with its owner.
"""

from sqlalchemy import Column, String, DateTime, JSON
from sqlalchemy.sql import func

from reportcard.core.database import Base


class StudentRow(Base):
    """One row per student record, keyed by the record id."""

    __tablename__ = "students"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(128), index=True, nullable=False)
    data = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<StudentRow(id={self.id}, user_id={self.user_id})>"


class SettingsRow(Base):
    """At most one settings row per identity."""

    __tablename__ = "settings"

    user_id = Column(String(128), primary_key=True)
    data = Column(JSON, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
