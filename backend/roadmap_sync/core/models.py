"""
Ultra Roadmap Sync - Database Models
====================================

SQLAlchemy models for the coaching data model: accounts, coaching cycles
and the strategic content synchronized from roadmap documents.
"""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from roadmap_sync.core.database import Base


# ==========================================================================
# Enums
# ==========================================================================

class ProfileRole(str, enum.Enum):
    """Account roles."""
    COACH = "coach"
    USER = "user"


class EngagementStatus(str, enum.Enum):
    """Status of a coaching cycle."""
    ACTIVE = "active"
    PAUSED = "paused"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class PillarType(str, enum.Enum):
    """The three fixed strategic pillars of a roadmap."""
    OPERATIONS = "operations"
    ACQUISITION = "acquisition"
    VISION = "vision"


class TaskStatus(str, enum.Enum):
    """Coaching task progress."""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TaskPriority(str, enum.Enum):
    """Coaching task priority."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# ==========================================================================
# Mixins
# ==========================================================================

class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamps."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


# ==========================================================================
# Accounts
# ==========================================================================

class AuthUser(Base, TimestampMixin):
    """
    Authentication identity managed through the admin identity API.

    Profiles reference it through ``Profile.user_id``.
    """

    __tablename__ = "auth_users"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    password_hash: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    email_confirmed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    banned_until: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<AuthUser {self.email}>"


class Profile(Base, TimestampMixin):
    """Client or coach account."""

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    user_id: Mapped[Optional[UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("auth_users.id", ondelete="SET NULL"),
        unique=True,
        nullable=True,
    )
    email: Mapped[str] = mapped_column(
        String(255),
        unique=True,
        index=True,
        nullable=False,
    )
    full_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    company: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    role: Mapped[ProfileRole] = mapped_column(
        Enum(ProfileRole),
        default=ProfileRole.USER,
        nullable=False,
    )
    category: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    is_blocked: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
    )
    blocked_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Profile {self.email} ({self.role.value})>"


# ==========================================================================
# Coaching Cycles
# ==========================================================================

class CoachClient(Base, TimestampMixin):
    """
    One coaching cycle between a coach and a client.

    Several rows may exist for the same pair, told apart by ``cycle_number``.
    """

    __tablename__ = "coach_clients"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    coach_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status: Mapped[EngagementStatus] = mapped_column(
        Enum(EngagementStatus),
        default=EngagementStatus.ACTIVE,
        nullable=False,
    )
    program_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_weeks: Mapped[int] = mapped_column(Integer, default=16, nullable=False)
    current_week: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    cycle_number: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    def __repr__(self) -> str:
        return f"<CoachClient {self.id} cycle={self.cycle_number}>"


# ==========================================================================
# Roadmap Content
# ==========================================================================

class StrategicPillar(Base, TimestampMixin):
    """One strategic pillar of a coaching cycle."""

    __tablename__ = "roadmap_strategic_pillars"
    __table_args__ = (
        UniqueConstraint("coach_client_id", "pillar_type", name="uq_pillar_per_cycle"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    coach_client_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("coach_clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    pillar_type: Mapped[PillarType] = mapped_column(Enum(PillarType), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    problem: Mapped[str] = mapped_column(Text, default="", nullable=False)
    actions: Mapped[list] = mapped_column(JSON, default=list, nullable=False)
    expert_tip: Mapped[str] = mapped_column(Text, nullable=False)


class WeekNote(Base, TimestampMixin):
    """Short label attached to one week of a coaching cycle."""

    __tablename__ = "coach_client_week_notes"
    __table_args__ = (
        UniqueConstraint("coach_client_id", "week_number", name="uq_week_note_per_cycle"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    coach_client_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("coach_clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str] = mapped_column(Text, default="", nullable=False)
    # Longer context for the week (strategic goals on week 1)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)


class CoachingTask(Base, TimestampMixin):
    """Actionable item derived from a bullet of the weekly plan."""

    __tablename__ = "coaching_tasks"

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    coach_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[TaskStatus] = mapped_column(
        Enum(TaskStatus),
        default=TaskStatus.PENDING,
        nullable=False,
    )
    priority: Mapped[TaskPriority] = mapped_column(
        Enum(TaskPriority),
        default=TaskPriority.MEDIUM,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<CoachingTask w{self.week_number} {self.title[:30]}>"


class ClientMetric(Base, TimestampMixin):
    """Financial snapshot of a client for one week of a cycle."""

    __tablename__ = "client_metrics"
    __table_args__ = (
        UniqueConstraint("coach_client_id", "week_number", name="uq_metric_per_week"),
    )

    id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid4,
    )
    coach_client_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("coach_clients.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    client_id: Mapped[UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    revenue: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    cash_in_bank: Mapped[Optional[Decimal]] = mapped_column(Numeric(14, 2), nullable=True)
    clients_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    conversion_rate: Mapped[Optional[Decimal]] = mapped_column(Numeric(7, 2), nullable=True)
    metric_date: Mapped[date] = mapped_column(Date, nullable=False)
