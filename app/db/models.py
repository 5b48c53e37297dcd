"""SQLAlchemy ORM models for the tables the chat service reads.

Rows are written by the dashboard; this service only selects from them.
"""

from datetime import datetime

from sqlalchemy import Index, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class Integration(Base):
    """A user's connection to an external source (``github`` or ``jira``).

    ``metadata`` holds source-specific identity: ``username``/``org`` for
    GitHub, ``base_url``/``email`` for Jira.
    """

    __tablename__ = "integrations"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64))
    type: Mapped[str] = mapped_column(String(32))
    status: Mapped[str] = mapped_column(String(32), default="connected")
    access_token: Mapped[str | None] = mapped_column(Text)
    metadata_: Mapped[dict] = mapped_column("metadata", JSONB, default=dict)
    updated_at: Mapped[datetime] = mapped_column(server_default=func.now(), onupdate=func.now())

    __table_args__ = (Index("ix_integrations_user_type", "user_id", "type"),)


class RosterEntry(Base):
    """A member of the caller's team roster."""

    __tablename__ = "team_members"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), index=True)
    name: Mapped[str] = mapped_column(String(255))
    role: Mapped[str] = mapped_column(String(255), default="")
    github: Mapped[str | None] = mapped_column(String(255))
    expertise: Mapped[list[str]] = mapped_column(ARRAY(String(100)), default=list)
    capacity: Mapped[int] = mapped_column(default=100)
    active_tasks: Mapped[int] = mapped_column(default=0)
