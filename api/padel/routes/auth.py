"""Authentication routes: OTP sign-in, registration, login, tokens, profile and role switching."""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from jose import JWTError
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.auth import create_access_token, create_refresh_token, decode_token, hash_password, verify_password
from padel.core.config import settings
from padel.core.database import get_db
from padel.core.dependencies import get_current_user
from padel.models.otp import OtpMedium
from padel.models.user import PendingRegistration, User, UserRole
from padel.schemas import (
    ForgotPasswordRequest,
    LoginRequest,
    ProfileUpdate,
    PushTokenRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
    SendOtpRequest,
    SwitchRoleRequest,
    TokenResponse,
    UserOut,
    VerifyOtpRequest,
    VerifyRegistrationRequest,
)
from padel.services.otp import OtpDeliveryError, OtpError, issue_otp, verify_otp
from padel.services.roles import has_role
from padel.utils.datetime_utils import utcnow
from padel.utils.validators import is_email_identifier, is_valid_email, is_valid_phone, normalise_identifier

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


def _tokens(user: User, role: UserRole = UserRole.MEMBER) -> TokenResponse:
    return TokenResponse(
        access_token=create_access_token(str(user.id), role=role),
        refresh_token=create_refresh_token(str(user.id), role=role),
        role=role,
        user=UserOut.model_validate(user),
    )


async def _find_user(db: AsyncSession, identifier: str) -> User | None:
    column = User.email if is_email_identifier(identifier) else User.phone
    result = await db.execute(select(User).where(column == identifier, User.is_active.is_(True)))
    return result.scalar_one_or_none()


async def _send_otp(db: AsyncSession, identifier: str, medium: OtpMedium) -> None:
    try:
        await issue_otp(db, identifier, medium)
    except OtpDeliveryError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from None


async def _check_otp(db: AsyncSession, identifier: str, code: str) -> None:
    """Verify a code, answering 400 on failure.

    The failed attempt is committed first so the counter survives the
    rollback that the error response triggers.
    """
    try:
        await verify_otp(db, identifier, code)
    except OtpError as exc:
        await db.commit()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None


# ---------------------------------------------------------------------------
# OTP sign-in
# ---------------------------------------------------------------------------


@router.post("/send-otp")
async def send_otp(body: SendOtpRequest, db: AsyncSession = Depends(get_db)):
    identifier = normalise_identifier(body.identifier)
    if body.medium == OtpMedium.EMAIL and not is_valid_email(identifier):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid email address")
    if body.medium == OtpMedium.WHATSAPP and not is_valid_phone(identifier):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid phone number. Use international format, e.g. +971501234567",
        )

    await _send_otp(db, identifier, body.medium)
    return {"message": f"Verification code sent via {body.medium}"}


@router.post("/verify-otp", response_model=TokenResponse)
async def verify_otp_login(body: VerifyOtpRequest, db: AsyncSession = Depends(get_db)):
    """Verify a code and sign in, creating the account on first use."""
    identifier = normalise_identifier(body.identifier)
    await _check_otp(db, identifier, body.code)

    user = await _find_user(db, identifier)
    if user is None:
        user = User(name=body.name, otp_verified=True)
        if is_email_identifier(identifier):
            user.email = identifier
        else:
            user.phone = identifier
        db.add(user)
        await db.flush()
        logger.info("User %s created via OTP sign-in", user.id)
    else:
        user.otp_verified = True
        if body.name and not user.name:
            user.name = body.name
        await db.flush()

    return _tokens(user)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(body: RegisterRequest, db: AsyncSession = Depends(get_db)):
    """Hold the sign-up until the phone number is confirmed by WhatsApp OTP."""
    email = normalise_identifier(body.email)
    phone = body.phone.strip()
    if not is_valid_phone(phone):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid phone number. Use international format, e.g. +971501234567",
        )

    existing = await db.execute(select(User).where(or_(User.email == email, User.phone == phone)))
    taken = existing.scalars().first()
    if taken is not None:
        detail = "Email already registered" if taken.email == email else "Phone number already registered"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    now = utcnow()
    await db.execute(delete(PendingRegistration).where(PendingRegistration.expires_at < now))

    result = await db.execute(
        select(PendingRegistration).where(
            or_(PendingRegistration.email == email, PendingRegistration.phone == phone)
        )
    )
    pending = result.scalars().first()
    if pending is None:
        pending = PendingRegistration(email=email, phone=phone, name=body.name, hashed_password="", expires_at=now)
        db.add(pending)
    pending.email = email
    pending.phone = phone
    pending.name = body.name
    pending.hashed_password = hash_password(body.password)
    pending.expires_at = now + timedelta(minutes=settings.pending_registration_expiry_minutes)
    await db.flush()

    await _send_otp(db, phone, OtpMedium.WHATSAPP)
    return {"message": "Verification code sent via WhatsApp", "phone": phone}


@router.post("/verify-registration", response_model=TokenResponse)
async def verify_registration(body: VerifyRegistrationRequest, db: AsyncSession = Depends(get_db)):
    phone = body.phone.strip()
    await _check_otp(db, phone, body.code)

    result = await db.execute(
        select(PendingRegistration)
        .where(PendingRegistration.phone == phone, PendingRegistration.expires_at >= utcnow())
        .order_by(PendingRegistration.created_at.desc())
    )
    pending = result.scalars().first()

    if pending is not None:
        user = User(
            email=pending.email,
            phone=pending.phone,
            name=pending.name,
            hashed_password=pending.hashed_password,
            otp_verified=True,
        )
        db.add(user)
        await db.delete(pending)
        await db.flush()
        logger.info("User %s registered", user.id)
        return _tokens(user)

    # Accounts created before registrations were held as pending
    user = await _find_user(db, phone)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Registration not found or expired")
    user.otp_verified = True
    await db.flush()
    return _tokens(user)


# ---------------------------------------------------------------------------
# Password login and tokens
# ---------------------------------------------------------------------------


@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await _find_user(db, normalise_identifier(body.identifier))

    if not user or not user.hashed_password or not verify_password(body.password, user.hashed_password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    if not user.otp_verified:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account not verified")

    return _tokens(user)


@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(body: RefreshRequest, db: AsyncSession = Depends(get_db)):
    try:
        payload = decode_token(body.refresh_token)
        if payload.get("type") != "refresh":
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token type")
        user_id = int(payload["sub"])
        role = UserRole(payload.get("role", UserRole.MEMBER))
    except (JWTError, KeyError, ValueError):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid refresh token") from None

    result = await db.execute(select(User).where(User.id == user_id, User.is_active.is_(True)))
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

    # A revoked role falls back to member
    if not await has_role(db, user.id, role):
        role = UserRole.MEMBER
    return _tokens(user, role)


# ---------------------------------------------------------------------------
# Password reset
# ---------------------------------------------------------------------------


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    """Send a reset code. Always returns 200 to prevent user enumeration."""
    user = await _find_user(db, normalise_identifier(body.identifier))

    if user is not None:
        if user.phone:
            await _send_otp(db, user.phone, OtpMedium.WHATSAPP)
        elif user.email:
            await _send_otp(db, user.email, OtpMedium.EMAIL)

    return {"message": "If an account exists, a verification code has been sent"}


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    """Reset the password with the code sent by forgot-password."""
    user = await _find_user(db, normalise_identifier(body.target))
    if user is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid or expired code")

    otp_identifier = user.phone or user.email
    await _check_otp(db, otp_identifier, body.code)

    user.hashed_password = hash_password(body.new_password)
    user.otp_verified = True
    return {"message": "Password reset successfully"}


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)):
    return user


@router.put("/profile", response_model=UserOut)
async def update_profile(
    body: ProfileUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    changes = body.model_dump(exclude_unset=True)

    if changes.get("email"):
        changes["email"] = normalise_identifier(changes["email"])
        taken = await db.execute(select(User.id).where(User.email == changes["email"], User.id != user.id))
        if taken.first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already in use")

    if changes.get("phone"):
        changes["phone"] = changes["phone"].strip()
        if not is_valid_phone(changes["phone"]):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid phone number")
        taken = await db.execute(select(User.id).where(User.phone == changes["phone"], User.id != user.id))
        if taken.first():
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Phone number already in use")

    for field, value in changes.items():
        setattr(user, field, value)
    await db.flush()
    return user


@router.post("/push-token")
async def register_push_token(
    body: PushTokenRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    user.push_token = body.push_token
    await db.flush()
    return {"message": "Push token registered"}


@router.post("/switch-role", response_model=TokenResponse)
async def switch_role(
    body: SwitchRoleRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Re-issue tokens acting as another role the user holds."""
    if body.role != UserRole.MEMBER and not await has_role(db, user.id, body.role):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"You do not have the {body.role} role")

    logger.info("User %s switched to role %s", user.id, body.role)
    return _tokens(user, body.role)
