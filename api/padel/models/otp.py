"""One-time passcodes keyed by identifier (email address or E.164 phone)."""

import enum
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Enum, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from padel.models.base import Base, TimestampMixin, enum_values


class OtpMedium(enum.StrEnum):
    EMAIL = "email"
    WHATSAPP = "whatsapp"


class Otp(TimestampMixin, Base):
    __tablename__ = "otps"

    id: Mapped[int] = mapped_column(primary_key=True)
    identifier: Mapped[str] = mapped_column(String(254), nullable=False)
    code: Mapped[str] = mapped_column(String(6), nullable=False)
    medium: Mapped[OtpMedium] = mapped_column(
        Enum(OtpMedium, name="otp_medium", values_callable=enum_values), nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attempts: Mapped[int] = mapped_column(default=0, nullable=False)

    __table_args__ = (Index("ix_otps_identifier_created", "identifier", "created_at"),)

    def __repr__(self) -> str:
        return f"<Otp {self.identifier} verified={self.verified}>"
