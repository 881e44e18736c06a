"""
SQLAlchemy ORM models for users, workflows and clients.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, relationship

# JSONB on PostgreSQL, plain JSON elsewhere (tests run on SQLite).
JSONDocument = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")

CLIENT_STATUSES = ("new", "in_progress", "review", "completed", "cancelled")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    # Subject id issued by the identity provider.
    user_id = Column(String(128), primary_key=True)
    email = Column(String(255), nullable=False, default="")
    first_name = Column(String(128))
    last_name = Column(String(128))
    username = Column(String(64), unique=True)
    image_url = Column(String(512))
    is_provider = Column(Boolean, nullable=False, default=False)
    # accessToken / refreshToken / scope / tokenType / expiryDate, or NULL when unlinked
    google_tokens = Column(JSONDocument, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    workflows = relationship("Workflow", back_populates="owner", cascade="all, delete-orphan")
    clients = relationship("Client", back_populates="provider", cascade="all, delete-orphan")


class Workflow(Base):
    __tablename__ = "workflows"

    workflow_id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(128), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, default="")
    category = Column(String(64), default="General")
    tags = Column(JSONDocument, default=list)
    steps = Column(JSONDocument, default=list)
    is_public = Column(Boolean, nullable=False, default=False)
    usage_count = Column(Integer, nullable=False, default=0)
    imported_from = Column(String(32))
    source_ref = Column(String(256))
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    owner = relationship("User", back_populates="workflows")


class Client(Base):
    __tablename__ = "clients"

    client_id = Column(String(36), primary_key=True, default=_new_id)
    provider_id = Column(String(128), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True)
    workflow_id = Column(String(36), ForeignKey("workflows.workflow_id", ondelete="SET NULL"), nullable=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=False, default="")
    phone = Column(String(64))
    status = Column(String(16), nullable=False, default="new")
    progress = Column(Integer, nullable=False, default=0)
    current_step = Column(String(128), default="")
    form_data = Column(JSONDocument, default=dict)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    provider = relationship("User", back_populates="clients")
    workflow = relationship("Workflow")
