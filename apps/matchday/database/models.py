"""
SQLAlchemy ORM models backing the replicated store and the photo blob store.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    LargeBinary,
    JSON,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.sql import func
from matchday.database.db import Base

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONValue = JSON().with_variant(JSONB(), "postgresql")


class StoreDocument(Base):
    """
    One document of the replicated store.

    ``key`` is the document path (``current-match``, ``users/<id>``, ...).
    ``version`` increases on every committed write and is used for
    optimistic concurrency control.
    """

    __tablename__ = "store_documents"

    key = Column(String(255), primary_key=True)
    value = Column(JSONValue, nullable=False)
    version = Column(Integer, nullable=False, default=1)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class StoreIdempotencyRecord(Base):
    """Mutation already applied under an idempotency key, with its result."""

    __tablename__ = "store_idempotency"

    key = Column(String(255), primary_key=True)
    result = Column(JSONValue, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class UserPhoto(Base):
    """Profile photo bytes, kept out of the replicated documents."""

    __tablename__ = "user_photos"

    user_id = Column(String(64), primary_key=True)
    content_type = Column(String(50), nullable=False)
    data = Column(LargeBinary, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
