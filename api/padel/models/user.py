"""User and pending-registration models.

User = a verified person who can log in by email or phone.
PendingRegistration = sign-up data held until the phone OTP is confirmed.
"""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from padel.models.base import Base, TimestampMixin, enum_values


class UserRole(enum.StrEnum):
    """Platform roles. A user's active role travels in the access token."""

    MEMBER = "member"
    COMMUNITY_MANAGER = "community_manager"
    SUPER_ADMIN = "super_admin"


class SkillLevel(enum.StrEnum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"
    PROFESSIONAL = "professional"


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str | None] = mapped_column(String(254), unique=True, index=True)
    phone: Mapped[str | None] = mapped_column(String(20), unique=True, index=True)
    hashed_password: Mapped[str | None] = mapped_column(String(200))
    otp_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=enum_values),
        default=UserRole.MEMBER,
        nullable=False,
    )

    # Profile
    name: Mapped[str | None] = mapped_column(String(200))
    location: Mapped[str | None] = mapped_column(String(200))
    skill_level: Mapped[SkillLevel | None] = mapped_column(
        Enum(SkillLevel, name="skill_level", values_callable=enum_values)
    )
    gender: Mapped[str | None] = mapped_column(String(20))
    profile_image: Mapped[str | None] = mapped_column(Text)

    # Devices / payments
    push_token: Mapped[str | None] = mapped_column(String(255))
    stripe_customer_id: Mapped[str | None] = mapped_column(String(100))

    @property
    def display_name(self) -> str:
        return self.name or self.email or self.phone or f"User {self.id}"

    def __repr__(self) -> str:
        return f"<User {self.email or self.phone}>"


class PendingRegistration(TimestampMixin, Base):
    __tablename__ = "pending_registrations"

    id: Mapped[int] = mapped_column(primary_key=True)
    email: Mapped[str] = mapped_column(String(254), nullable=False, index=True)
    phone: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    hashed_password: Mapped[str] = mapped_column(String(200), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<PendingRegistration {self.phone}>"
