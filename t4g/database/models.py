"""
t4g.database.models — SQLAlchemy 2.0 Data Models
=================================================

Tables:
- users               — End-user profiles (Auth0 user tenant)
- tenants             — Organization-side accounts (Auth0 org tenant)
- gifts               — Rewards an organization offers
- challenges          — Time-boxed goals carrying bonus points
- user_challenges     — External "completed" signal per user+challenge
- user_actions        — Append-only action journal (SCAN/SHARE/GAME)
- coin_balances       — One monotonic coin balance per user
- user_eligibility    — Rolling weekly/monthly counters + derived flags
- leaderboard_entries — Score + derived position per user
- admin_log           — Append-only audit trail
"""

from __future__ import annotations

import enum
from datetime import date, datetime

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all T4G ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ActionType(enum.StrEnum):
    """Discrete user actions that earn coins."""
    SCAN = "SCAN"
    SHARE = "SHARE"
    GAME = "GAME"


class UserRole(enum.StrEnum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"


class TenantRole(enum.StrEnum):
    TENANT_USER = "tenant_user"
    TENANT_MANAGER = "tenant_manager"
    TENANT_ADMIN = "tenant_admin"


class ChallengeType(enum.StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    SPECIAL = "special"


class ChallengeDifficulty(enum.StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


# ---------------------------------------------------------------------------
# Users — end-user profiles
# ---------------------------------------------------------------------------
class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    auth0_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    picture: Mapped[str | None] = mapped_column(String(500), default=None)
    role: Mapped[str] = mapped_column(String(20), default=UserRole.USER.value)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    preferences: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    actions: Mapped[list[UserAction]] = relationship(
        back_populates="user", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_users_email", "email"),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Tenants — organization-side accounts
# ---------------------------------------------------------------------------
class Tenant(Base):
    __tablename__ = "tenants"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    auth0_id: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    picture: Mapped[str | None] = mapped_column(String(500), default=None)
    role: Mapped[str] = mapped_column(String(30), default=TenantRole.TENANT_USER.value)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    organization_name: Mapped[str] = mapped_column(String(200), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    settings: Mapped[dict | None] = mapped_column(JSONB, default=dict)
    last_login_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_tenants_organization", "organization_id"),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} org={self.organization_id!r} role={self.role}>"


# ---------------------------------------------------------------------------
# Gifts — offered by an organization
# ---------------------------------------------------------------------------
class Gift(Base):
    __tablename__ = "gifts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    value: Mapped[int] = mapped_column(Integer, default=0)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(500), default=None)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_gifts_organization", "organization_id"),
    )

    def __repr__(self) -> str:
        return f"<Gift id={self.id} name={self.name!r}>"


# ---------------------------------------------------------------------------
# Challenges — time-boxed goals with bonus points
# ---------------------------------------------------------------------------
class Challenge(Base):
    __tablename__ = "challenges"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    organization_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    difficulty: Mapped[str] = mapped_column(String(20), nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0)
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    rules: Mapped[list | None] = mapped_column(JSONB, default=list)
    rewards: Mapped[list | None] = mapped_column(JSONB, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[str] = mapped_column(
        String(64), ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    completions: Mapped[list[UserChallenge]] = relationship(
        back_populates="challenge", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_challenges_organization", "organization_id"),
    )

    def __repr__(self) -> str:
        return f"<Challenge id={self.id} title={self.title!r} points={self.points}>"


# ---------------------------------------------------------------------------
# UserChallenge — completion signal that unlocks bonus points
# ---------------------------------------------------------------------------
class UserChallenge(Base):
    __tablename__ = "user_challenges"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    challenge_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("challenges.id", ondelete="CASCADE"), primary_key=True
    )
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    confirmed_by: Mapped[str | None] = mapped_column(String(64), default=None)

    challenge: Mapped[Challenge] = relationship(back_populates="completions")

    def __repr__(self) -> str:
        return (
            f"<UserChallenge user={self.user_id} challenge={self.challenge_id} "
            f"completed={self.completed}>"
        )


# ---------------------------------------------------------------------------
# UserAction — append-only action journal
# ---------------------------------------------------------------------------
class UserAction(Base):
    __tablename__ = "user_actions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    metadata_: Mapped[dict | None] = mapped_column("metadata", JSONB, nullable=True)
    occurred_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship(back_populates="actions")

    __table_args__ = (
        Index("ix_user_actions_user_time", "user_id", "occurred_at"),
        Index("ix_user_actions_kind_user", "kind", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<UserAction id={self.id} user={self.user_id} kind={self.kind}>"


# ---------------------------------------------------------------------------
# CoinBalance — one per user
# ---------------------------------------------------------------------------
class CoinBalance(Base):
    __tablename__ = "coin_balances"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    total_coins: Mapped[int] = mapped_column(Integer, default=0)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<CoinBalance user={self.user_id} coins={self.total_coins}>"


# ---------------------------------------------------------------------------
# UserEligibility — rolling window counters
# ---------------------------------------------------------------------------
class UserEligibility(Base):
    __tablename__ = "user_eligibility"

    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True
    )
    monthly_scans: Mapped[int] = mapped_column(Integer, default=0)
    monthly_shares: Mapped[int] = mapped_column(Integer, default=0)
    monthly_games: Mapped[int] = mapped_column(Integer, default=0)
    weekly_scans: Mapped[int] = mapped_column(Integer, default=0)
    weekly_shares: Mapped[int] = mapped_column(Integer, default=0)
    weekly_games: Mapped[int] = mapped_column(Integer, default=0)
    last_reset_month: Mapped[date | None] = mapped_column(Date, default=None)
    last_reset_week: Mapped[date | None] = mapped_column(Date, default=None)
    gift_eligible: Mapped[bool] = mapped_column(Boolean, default=False)
    challenge_eligible: Mapped[bool] = mapped_column(Boolean, default=False)
    last_gift_eligibility: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    last_challenge_eligibility: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )

    __table_args__ = (
        Index("ix_user_eligibility_gift", "gift_eligible"),
        Index("ix_user_eligibility_challenge", "challenge_eligible"),
    )

    def __repr__(self) -> str:
        return (
            f"<UserEligibility user={self.user_id} gift={self.gift_eligible} "
            f"challenge={self.challenge_eligible}>"
        )


# ---------------------------------------------------------------------------
# LeaderboardEntry — score + derived position
# ---------------------------------------------------------------------------
class LeaderboardEntry(Base):
    __tablename__ = "leaderboard_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    total_score: Mapped[int] = mapped_column(Integer, default=0)
    position: Mapped[int | None] = mapped_column(Integer, default=None)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_leaderboard_entries_user"),
        Index("ix_leaderboard_entries_position", "position"),
    )

    def __repr__(self) -> str:
        return (
            f"<LeaderboardEntry user={self.user_id} score={self.total_score} "
            f"pos={self.position}>"
        )


# ---------------------------------------------------------------------------
# AdminLog — append-only audit trail
# ---------------------------------------------------------------------------
class AdminLog(Base):
    __tablename__ = "admin_log"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    actor_id: Mapped[str] = mapped_column(String(64), nullable=False)
    action_type: Mapped[str] = mapped_column(String(50), nullable=False)
    target_table: Mapped[str] = mapped_column(String(50), nullable=False)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    before_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    after_snapshot: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_admin_log_actor_time", "actor_id", "timestamp"),
        Index("ix_admin_log_target", "target_table", "target_id", "timestamp"),
    )

    def __repr__(self) -> str:
        return f"<AdminLog id={self.id} actor={self.actor_id} action={self.action_type}>"
