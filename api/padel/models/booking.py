"""Booking and payment models.

A booking reserves one seat in a session for a user; it is created only once
the card payment has succeeded. Payment records the money side of it.
"""

import enum
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from padel.models.base import Base, TimestampMixin, enum_values
from padel.models.session import Session
from padel.models.user import User


class PaymentStatus(enum.StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUNDED = "refunded"


class CancellationStatus(enum.StrEnum):
    NONE = "none"
    PENDING_REPLACEMENT = "pending_replacement"
    CANCELLED = "cancelled"


class Booking(TimestampMixin, Base):
    __tablename__ = "bookings"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_id: Mapped[int] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False)

    payment_status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=enum_values),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    cancellation_status: Mapped[CancellationStatus] = mapped_column(
        Enum(CancellationStatus, name="cancellation_status", values_callable=enum_values),
        default=CancellationStatus.NONE,
        nullable=False,
    )
    cancellation_requested_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    refund_amount_fils: Mapped[int | None] = mapped_column()
    replaced_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"))

    session: Mapped[Session] = relationship(lazy="raise")
    user: Mapped[User] = relationship(foreign_keys=[user_id], lazy="raise")
    payment: Mapped["Payment"] = relationship(back_populates="booking", uselist=False, lazy="raise")

    __table_args__ = (
        # One live booking per user per session
        Index(
            "ix_bookings_user_session_live",
            "user_id",
            "session_id",
            unique=True,
            postgresql_where=text("cancelled_at IS NULL"),
            sqlite_where=text("cancelled_at IS NULL"),
        ),
        Index("ix_bookings_session", "session_id"),
    )

    @property
    def is_live(self) -> bool:
        return self.cancelled_at is None

    def __repr__(self) -> str:
        return f"<Booking user={self.user_id} session={self.session_id} {self.payment_status}>"


class Payment(TimestampMixin, Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True)
    booking_id: Mapped[int] = mapped_column(
        ForeignKey("bookings.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    session_id: Mapped[int] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False)

    # All amounts in fils
    amount_fils: Mapped[int] = mapped_column(nullable=False)
    platform_fee_fils: Mapped[int] = mapped_column(default=0, nullable=False)
    net_amount_fils: Mapped[int] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="aed", nullable=False)
    payment_method: Mapped[str] = mapped_column(String(30), default="card", nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(
        Enum(PaymentStatus, name="payment_status", values_callable=enum_values),
        default=PaymentStatus.PENDING,
        nullable=False,
    )
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(100), index=True)
    stripe_refund_id: Mapped[str | None] = mapped_column(String(100))

    booking: Mapped[Booking] = relationship(back_populates="payment", lazy="raise")

    def __repr__(self) -> str:
        return f"<Payment {self.amount_fils} {self.status}>"
