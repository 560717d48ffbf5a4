"""Community models.

Community = a padel group run by a manager (optionally a sub-community of
another community; nesting is one level deep).
CommunityMember = a user's membership of a community.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from padel.models.base import Base, TimestampMixin
from padel.utils.datetime_utils import utcnow


class Community(TimestampMixin, Base):
    __tablename__ = "communities"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    location: Mapped[str | None] = mapped_column(String(200))
    manager_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), index=True)
    parent_community_id: Mapped[int | None] = mapped_column(
        ForeignKey("communities.id", ondelete="CASCADE"), index=True
    )
    visibility: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Branding
    profile_image: Mapped[str | None] = mapped_column(Text)
    banner_image: Mapped[str | None] = mapped_column(Text)
    website_url: Mapped[str | None] = mapped_column(String(500))
    instagram_url: Mapped[str | None] = mapped_column(String(500))
    facebook_url: Mapped[str | None] = mapped_column(String(500))
    twitter_url: Mapped[str | None] = mapped_column(String(500))

    # Stripe Connect destination for session payments
    stripe_account_id: Mapped[str | None] = mapped_column(String(100))

    @property
    def is_sub_community(self) -> bool:
        return self.parent_community_id is not None

    def __repr__(self) -> str:
        return f"<Community {self.name}>"


class CommunityMember(Base):
    __tablename__ = "community_members"

    id: Mapped[int] = mapped_column(primary_key=True)
    community_id: Mapped[int] = mapped_column(ForeignKey("communities.id", ondelete="CASCADE"), nullable=False)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("community_id", "user_id", name="uq_community_members"),)
