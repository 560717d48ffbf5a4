"""All models imported here for Alembic autogenerate discovery."""

from padel.models.base import Base
from padel.models.booking import Booking, CancellationStatus, Payment, PaymentStatus
from padel.models.community import Community, CommunityMember
from padel.models.otp import Otp, OtpMedium
from padel.models.role import Role, UserRoleAssignment
from padel.models.session import Session, SessionStatus, SessionTemplate
from padel.models.social import Announcement, CommunityMessage, Friendship, FriendshipStatus
from padel.models.user import PendingRegistration, SkillLevel, User, UserRole

__all__ = [
    "Base",
    "User",
    "UserRole",
    "SkillLevel",
    "PendingRegistration",
    "Otp",
    "OtpMedium",
    "Role",
    "UserRoleAssignment",
    "Community",
    "CommunityMember",
    "Session",
    "SessionStatus",
    "SessionTemplate",
    "Booking",
    "Payment",
    "PaymentStatus",
    "CancellationStatus",
    "Announcement",
    "CommunityMessage",
    "Friendship",
    "FriendshipStatus",
]
