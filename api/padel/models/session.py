"""Session and session-template models.

Session = a scheduled, capacity-bounded match within a community.
SessionTemplate = a weekly recurring definition that sessions are generated from.
"""

import enum
from datetime import datetime, time

from sqlalchemy import Boolean, CheckConstraint, DateTime, Enum, ForeignKey, Index, String, Text, Time
from sqlalchemy.orm import Mapped, mapped_column, relationship

from padel.models.base import Base, TimestampMixin, enum_values
from padel.models.community import Community


class SessionStatus(enum.StrEnum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class Session(TimestampMixin, Base):
    __tablename__ = "sessions"

    id: Mapped[int] = mapped_column(primary_key=True)
    community_id: Mapped[int] = mapped_column(ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)
    sub_community_id: Mapped[int | None] = mapped_column(ForeignKey("communities.id", ondelete="SET NULL"))
    created_from_template_id: Mapped[int | None] = mapped_column(
        ForeignKey("session_templates.id", ondelete="SET NULL")
    )

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(default=90, nullable=False)
    location: Mapped[str] = mapped_column(String(300), nullable=False)
    google_maps_url: Mapped[str | None] = mapped_column(String(500))

    # Price in fils (AED minor units)
    price_fils: Mapped[int] = mapped_column(default=0, nullable=False)
    max_players: Mapped[int] = mapped_column(default=4, nullable=False)
    booked_count: Mapped[int] = mapped_column(default=0, nullable=False)

    status: Mapped[SessionStatus] = mapped_column(
        Enum(SessionStatus, name="session_status", values_callable=enum_values),
        default=SessionStatus.ACTIVE,
        nullable=False,
    )
    visibility: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Cancellation policy
    free_cancellation_hours: Mapped[int] = mapped_column(default=24, nullable=False)
    allow_conditional_cancellation: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    community: Mapped[Community] = relationship(foreign_keys=[community_id], lazy="raise")

    __table_args__ = (
        CheckConstraint("booked_count >= 0 AND booked_count <= max_players", name="ck_sessions_capacity"),
        CheckConstraint("duration_minutes BETWEEN 30 AND 300", name="ck_sessions_duration"),
        Index("ix_sessions_community_time", "community_id", "scheduled_at"),
        Index("ix_sessions_status_time", "status", "scheduled_at"),
    )

    @property
    def available_spots(self) -> int:
        return self.max_players - self.booked_count

    @property
    def is_full(self) -> bool:
        return self.booked_count >= self.max_players

    def __repr__(self) -> str:
        return f"<Session {self.title} {self.scheduled_at}>"


class SessionTemplate(TimestampMixin, Base):
    __tablename__ = "session_templates"

    id: Mapped[int] = mapped_column(primary_key=True)
    community_id: Mapped[int] = mapped_column(ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)
    sub_community_id: Mapped[int | None] = mapped_column(ForeignKey("communities.id", ondelete="SET NULL"))
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    day_of_week: Mapped[int] = mapped_column(nullable=False)  # 0 = Sunday
    time_of_day: Mapped[time] = mapped_column(Time, nullable=False)
    duration_minutes: Mapped[int] = mapped_column(default=90, nullable=False)
    price_fils: Mapped[int] = mapped_column(default=0, nullable=False)
    max_players: Mapped[int] = mapped_column(default=4, nullable=False)
    free_cancellation_hours: Mapped[int] = mapped_column(default=24, nullable=False)
    allow_conditional_cancellation: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_session_templates_day"),)

    def __repr__(self) -> str:
        return f"<SessionTemplate {self.title} day={self.day_of_week} {self.time_of_day}>"
