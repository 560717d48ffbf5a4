"""Pydantic schemas for API serialisation."""

from datetime import date, datetime, time
from typing import Annotated

from pydantic import AfterValidator, BaseModel, ConfigDict, EmailStr, Field, model_validator

from padel.models.otp import OtpMedium
from padel.models.user import SkillLevel, UserRole
from padel.utils.datetime_utils import as_utc

# Naive values (SQLite, clients without an offset) are read as UTC
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


# --- Users ---


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str | None
    phone: str | None
    name: str | None
    role: str
    otp_verified: bool
    location: str | None
    skill_level: str | None
    gender: str | None
    profile_image: str | None
    created_at: UtcDatetime


class UserPublic(BaseModel):
    """What other players get to see about a user."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str | None
    profile_image: str | None
    skill_level: str | None


class UserContact(UserPublic):
    """A user as seen by the managers of their communities."""

    email: str | None
    phone: str | None


# --- Auth ---


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    role: str = UserRole.MEMBER
    user: UserOut | None = None


class SendOtpRequest(BaseModel):
    identifier: str
    medium: OtpMedium


class VerifyOtpRequest(BaseModel):
    identifier: str
    code: str
    name: str | None = None


class RegisterRequest(BaseModel):
    email: EmailStr
    name: str = Field(min_length=1, max_length=200)
    phone: str
    password: str = Field(min_length=8)


class VerifyRegistrationRequest(BaseModel):
    phone: str
    code: str


class LoginRequest(BaseModel):
    identifier: str
    password: str


class RefreshRequest(BaseModel):
    refresh_token: str


class ForgotPasswordRequest(BaseModel):
    identifier: str


class ResetPasswordRequest(BaseModel):
    identifier: str | None = None
    phone: str | None = None
    code: str
    new_password: str = Field(min_length=8)

    @model_validator(mode="after")
    def _require_identifier(self):
        if not (self.identifier or self.phone):
            raise ValueError("identifier or phone is required")
        return self

    @property
    def target(self) -> str:
        return self.identifier or self.phone  # type: ignore[return-value]


class ProfileUpdate(BaseModel):
    name: str | None = Field(default=None, max_length=200)
    email: EmailStr | None = None
    phone: str | None = None
    location: str | None = None
    skill_level: SkillLevel | None = None
    gender: str | None = None
    profile_image: str | None = None


class PushTokenRequest(BaseModel):
    push_token: str = Field(min_length=1, max_length=255)


class SwitchRoleRequest(BaseModel):
    role: UserRole


# --- Communities ---


class CommunityCreate(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    location: str | None = None
    visibility: bool = True
    profile_image: str | None = None
    banner_image: str | None = None
    website_url: str | None = None
    instagram_url: str | None = None
    facebook_url: str | None = None
    twitter_url: str | None = None
    stripe_account_id: str | None = None


class CommunityUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    location: str | None = None
    visibility: bool | None = None
    profile_image: str | None = None
    banner_image: str | None = None
    website_url: str | None = None
    instagram_url: str | None = None
    facebook_url: str | None = None
    twitter_url: str | None = None
    stripe_account_id: str | None = None


class CommunityOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None
    location: str | None
    manager_id: int | None
    parent_community_id: int | None
    visibility: bool
    profile_image: str | None
    banner_image: str | None
    website_url: str | None
    instagram_url: str | None
    facebook_url: str | None
    twitter_url: str | None
    created_at: UtcDatetime
    member_count: int = 0


class CommunityNotificationRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1)
    sub_community_ids: list[int] = []
    include_parent: bool = True


class JoinWithSubsRequest(BaseModel):
    sub_community_ids: list[int] = []


class NotificationResult(BaseModel):
    recipients: int
    sent: int
    failed: int


# --- Sessions ---


class SessionCreate(BaseModel):
    community_id: int
    sub_community_id: int | None = None
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    scheduled_at: UtcDatetime
    duration_minutes: int = Field(default=90, ge=30, le=300)
    location: str = Field(min_length=1, max_length=300)
    google_maps_url: str | None = None
    price_fils: int = Field(ge=0)
    max_players: int = Field(default=4, ge=1, le=64)
    visibility: bool = True
    free_cancellation_hours: int = Field(default=24, ge=0)
    allow_conditional_cancellation: bool = True


class SessionUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    scheduled_at: UtcDatetime | None = None
    duration_minutes: int | None = Field(default=None, ge=30, le=300)
    location: str | None = Field(default=None, min_length=1, max_length=300)
    google_maps_url: str | None = None
    price_fils: int | None = Field(default=None, ge=0)
    max_players: int | None = Field(default=None, ge=1, le=64)
    visibility: bool | None = None
    free_cancellation_hours: int | None = Field(default=None, ge=0)
    allow_conditional_cancellation: bool | None = None


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    community_id: int
    sub_community_id: int | None
    created_from_template_id: int | None
    title: str
    description: str | None
    scheduled_at: UtcDatetime
    duration_minutes: int
    location: str
    google_maps_url: str | None
    price_fils: int
    max_players: int
    booked_count: int
    available_spots: int
    status: str
    visibility: bool
    free_cancellation_hours: int
    allow_conditional_cancellation: bool
    created_at: UtcDatetime


class SessionNotificationRequest(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1)


class ManagerStats(BaseModel):
    upcoming_sessions: int
    past_sessions: int
    total_bookings: int
    total_revenue_fils: int
    total_members: int
    pending_cancellations: int


class ManagerMemberOut(BaseModel):
    user: UserContact
    community_id: int
    joined_at: UtcDatetime
    total_bookings: int
    total_spent_fils: int


# --- Bookings ---


class PaymentIntentRequest(BaseModel):
    session_id: int


class PaymentIntentResponse(BaseModel):
    client_secret: str
    payment_intent_id: str
    publishable_key: str
    amount_fils: int
    currency: str


class ConfirmBookingRequest(BaseModel):
    session_id: int
    payment_intent_id: str


class BookingCreate(BaseModel):
    session_id: int
    payment_method_id: str


class TakeSpotRequest(BaseModel):
    payment_method_id: str


class PaymentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    amount_fils: int
    platform_fee_fils: int
    net_amount_fils: int
    currency: str
    payment_method: str
    status: str
    stripe_payment_intent_id: str | None
    created_at: UtcDatetime


class BookingOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    session_id: int
    payment_status: str
    cancellation_status: str
    cancellation_requested_at: UtcDatetime | None
    cancelled_at: UtcDatetime | None
    refund_amount_fils: int | None
    replaced_by_user_id: int | None
    created_at: UtcDatetime


class BookingDetailOut(BookingOut):
    """Booking with its session and payment eagerly loaded."""

    session: SessionOut
    payment: PaymentOut | None


class SessionBookingOut(BookingOut):
    user: UserContact


class CancelBookingResponse(BaseModel):
    outcome: str  # "cancelled" | "pending_replacement"
    message: str
    refund_amount_fils: int
    booking: BookingOut


# --- Roles ---


class RoleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: str | None


class RoleAssignmentOut(BaseModel):
    id: int
    user_id: int
    role: str
    community_id: int | None
    assigned_by: int | None
    assigned_at: UtcDatetime


class RoleAssignRequest(BaseModel):
    user_email: EmailStr
    role_name: UserRole
    community_id: int | None = None


class RoleRemoveRequest(BaseModel):
    user_id: int
    role_name: UserRole
    community_id: int | None = None


class ManagerAssignRequest(BaseModel):
    user_id: int


class CommunityManagerOut(BaseModel):
    assignment_id: int
    user: UserPublic
    assigned_at: UtcDatetime


# --- Friendships ---


class FriendRequestCreate(BaseModel):
    addressee_id: int


class FriendshipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    requester_id: int
    addressee_id: int
    status: str
    created_at: UtcDatetime


class FriendOut(BaseModel):
    friendship_id: int
    user: UserPublic
    since: UtcDatetime


class FriendshipStatusOut(BaseModel):
    status: str  # none | pending | accepted
    direction: str | None = None  # sent | received, for pending
    friendship_id: int | None = None


# --- Announcements ---


class AnnouncementCreate(BaseModel):
    community_id: int
    title: str = Field(min_length=1, max_length=200)
    message: str = Field(min_length=1)


class AnnouncementUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    message: str | None = Field(default=None, min_length=1)


class AnnouncementOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    community_id: int
    created_by: int | None
    title: str
    message: str
    created_at: UtcDatetime
    community_name: str | None = None


# --- Chat ---


class MessageCreate(BaseModel):
    content: str = Field(max_length=4000)


class MessageOut(BaseModel):
    id: int
    community_id: int
    sender_id: int
    sender_name: str | None
    content: str
    created_at: UtcDatetime


class ChatOut(BaseModel):
    community_id: int
    name: str
    profile_image: str | None
    member_count: int
    last_message: MessageOut | None


# --- Session templates ---


class SessionTemplateCreate(BaseModel):
    community_id: int
    sub_community_id: int | None = None
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    day_of_week: int = Field(ge=0, le=6)
    time_of_day: time
    duration_minutes: int = Field(default=90, ge=30, le=300)
    price_fils: int = Field(ge=0)
    max_players: int = Field(default=4, ge=1, le=64)
    free_cancellation_hours: int = Field(default=24, ge=0)
    allow_conditional_cancellation: bool = True
    is_active: bool = True


class SessionTemplateUpdate(BaseModel):
    sub_community_id: int | None = None
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    day_of_week: int | None = Field(default=None, ge=0, le=6)
    time_of_day: time | None = None
    duration_minutes: int | None = Field(default=None, ge=30, le=300)
    price_fils: int | None = Field(default=None, ge=0)
    max_players: int | None = Field(default=None, ge=1, le=64)
    free_cancellation_hours: int | None = Field(default=None, ge=0)
    allow_conditional_cancellation: bool | None = None
    is_active: bool | None = None


class SessionTemplateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    community_id: int
    sub_community_id: int | None
    created_by: int | None
    title: str
    description: str | None
    day_of_week: int
    time_of_day: time
    duration_minutes: int
    price_fils: int
    max_players: int
    free_cancellation_hours: int
    allow_conditional_cancellation: bool
    is_active: bool
    created_at: UtcDatetime


class BulkCreateRequest(BaseModel):
    template_ids: list[int] = Field(min_length=1)
    weeks_ahead: int = Field(default=1, ge=1, le=12)
    start_date: date | None = None


class BulkCreateError(BaseModel):
    template_id: int
    week: int | None = None
    error: str


class BulkCreateResponse(BaseModel):
    created: int
    sessions: list[SessionOut]
    errors: list[BulkCreateError]
