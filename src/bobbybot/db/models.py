"""SQLAlchemy ORM models for the BobbyBot database.

Tables: users (economy, leveling, moderation counters, AI memory), house,
valorant_registrations, team_history. Discord snowflakes are stored as
strings so they survive JSON round-trips unchanged.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.sqlite import JSON
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Base class for all ORM models."""


class UserRow(Base):
    """One member of one guild."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    guild_id: Mapped[str] = mapped_column(String(20), nullable=False)
    user_id: Mapped[str] = mapped_column(String(20), nullable=False)
    balance: Mapped[int] = mapped_column(Integer, default=0)
    xp: Mapped[int] = mapped_column(Integer, default=0)
    message_count: Mapped[int] = mapped_column(Integer, default=0)
    thin_ice_warnings: Mapped[int] = mapped_column(Integer, default=0)
    memory: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    last_active: Mapped[datetime] = mapped_column(DateTime, default=_now)

    __table_args__ = (
        UniqueConstraint("guild_id", "user_id", name="uq_users_guild_user"),
        Index("ix_users_guild_balance", "guild_id", "balance"),
        Index("ix_users_guild_xp", "guild_id", "xp"),
    )


class HouseRow(Base):
    """The casino house account; collects Bobby Bucks spent in a guild."""

    __tablename__ = "house"

    guild_id: Mapped[str] = mapped_column(String(20), primary_key=True)
    balance: Mapped[int] = mapped_column(Integer, default=0)


class ValorantRegistrationRow(Base):
    """Riot account a member linked for rank lookups."""

    __tablename__ = "valorant_registrations"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    guild_id: Mapped[str] = mapped_column(String(20), nullable=False)
    user_id: Mapped[str] = mapped_column(String(20), nullable=False)
    riot_name: Mapped[str] = mapped_column(String(50), nullable=False)
    riot_tag: Mapped[str] = mapped_column(String(10), nullable=False)
    region: Mapped[str] = mapped_column(String(10), default="na")
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_now, onupdate=_now)

    __table_args__ = (
        UniqueConstraint("guild_id", "user_id", name="uq_valorant_reg_guild_user"),
    )


class TeamHistoryRow(Base):
    """A team-builder team that finished (completed, closed, or disbanded)."""

    __tablename__ = "team_history"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    guild_id: Mapped[str] = mapped_column(String(20), nullable=False)
    team_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    leader_id: Mapped[str] = mapped_column(String(20), nullable=False)
    member_ids: Mapped[list] = mapped_column(JSON, default=list)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_now)
    finished_at: Mapped[datetime] = mapped_column(DateTime, default=_now)

    __table_args__ = (Index("ix_team_history_guild_leader", "guild_id", "leader_id"),)
