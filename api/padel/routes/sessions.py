"""Session routes: discovery, manager dashboard, and session management."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import distinct, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from padel.core.database import get_db
from padel.core.dependencies import get_current_user, require_manager
from padel.models.booking import Booking, CancellationStatus, Payment, PaymentStatus
from padel.models.community import Community, CommunityMember
from padel.models.session import Session, SessionStatus
from padel.models.user import User
from padel.schemas import (
    ManagerMemberOut,
    ManagerStats,
    NotificationResult,
    SessionBookingOut,
    SessionCreate,
    SessionNotificationRequest,
    SessionOut,
    SessionUpdate,
    UserContact,
)
from padel.services.notifications import notify_users
from padel.services.roles import can_manage_community, get_managed_communities
from padel.services.sessions import announce_session, cancel_session, create_session
from padel.utils.datetime_utils import as_utc, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


async def _get_session(db: AsyncSession, session_id: int) -> Session:
    session = await db.get(Session, session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


async def _require_manage(db: AsyncSession, user: User, community_id: int) -> None:
    if not await can_manage_community(db, user.id, community_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to manage sessions for this community",
        )


async def _managed_community_ids(db: AsyncSession, user: User) -> list[int]:
    """Managed parent communities plus their sub-communities."""
    parent_ids = [c.id for c in await get_managed_communities(db, user.id)]
    if not parent_ids:
        return []
    result = await db.execute(select(Community.id).where(Community.parent_community_id.in_(parent_ids)))
    return parent_ids + list(result.scalars().all())


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------


@router.get("/available", response_model=list[SessionOut])
async def available_sessions(
    community_id: int | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    """Future, visible, active sessions that still have a free seat."""
    query = (
        select(Session)
        .where(
            Session.status == SessionStatus.ACTIVE,
            Session.visibility.is_(True),
            Session.scheduled_at > utcnow(),
            Session.booked_count < Session.max_players,
        )
        .order_by(Session.scheduled_at)
        .limit(limit)
    )
    if community_id is not None:
        query = query.where(or_(Session.community_id == community_id, Session.sub_community_id == community_id))
    result = await db.execute(query)
    return result.scalars().all()


# ---------------------------------------------------------------------------
# Manager dashboard
# ---------------------------------------------------------------------------


@router.get("/manager/sessions", response_model=list[SessionOut])
async def manager_sessions(
    session_status: SessionStatus | None = Query(default=None, alias="status"),
    user: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    community_ids = await _managed_community_ids(db, user)
    if not community_ids:
        return []
    query = select(Session).where(Session.community_id.in_(community_ids)).order_by(Session.scheduled_at.desc())
    if session_status is not None:
        query = query.where(Session.status == session_status)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/manager/stats", response_model=ManagerStats)
async def manager_stats(user: User = Depends(require_manager), db: AsyncSession = Depends(get_db)):
    community_ids = await _managed_community_ids(db, user)
    if not community_ids:
        return ManagerStats(
            upcoming_sessions=0,
            past_sessions=0,
            total_bookings=0,
            total_revenue_fils=0,
            total_members=0,
            pending_cancellations=0,
        )

    now = utcnow()
    in_scope = Session.community_id.in_(community_ids)

    upcoming = await db.scalar(
        select(func.count(Session.id)).where(in_scope, Session.status == SessionStatus.ACTIVE, Session.scheduled_at > now)
    )
    past = await db.scalar(select(func.count(Session.id)).where(in_scope, Session.scheduled_at <= now))
    bookings = await db.scalar(
        select(func.count(Booking.id))
        .join(Session, Session.id == Booking.session_id)
        .where(in_scope, Booking.payment_status == PaymentStatus.COMPLETED)
    )
    revenue = await db.scalar(
        select(func.coalesce(func.sum(Payment.amount_fils), 0))
        .join(Session, Session.id == Payment.session_id)
        .where(in_scope, Payment.status == PaymentStatus.COMPLETED)
    )
    members = await db.scalar(
        select(func.count(distinct(CommunityMember.user_id))).where(CommunityMember.community_id.in_(community_ids))
    )
    pending = await db.scalar(
        select(func.count(Booking.id))
        .join(Session, Session.id == Booking.session_id)
        .where(
            in_scope,
            Booking.cancellation_status == CancellationStatus.PENDING_REPLACEMENT,
            Booking.cancelled_at.is_(None),
        )
    )

    return ManagerStats(
        upcoming_sessions=upcoming or 0,
        past_sessions=past or 0,
        total_bookings=bookings or 0,
        total_revenue_fils=revenue or 0,
        total_members=members or 0,
        pending_cancellations=pending or 0,
    )


@router.get("/manager/members", response_model=list[ManagerMemberOut])
async def manager_members(user: User = Depends(require_manager), db: AsyncSession = Depends(get_db)):
    """Members of managed communities with their booking totals there."""
    community_ids = await _managed_community_ids(db, user)
    if not community_ids:
        return []

    result = await db.execute(
        select(CommunityMember, User)
        .join(User, User.id == CommunityMember.user_id)
        .where(CommunityMember.community_id.in_(community_ids))
        .order_by(CommunityMember.joined_at.desc())
    )
    rows = result.all()

    stats = await db.execute(
        select(Payment.user_id, func.count(Payment.id), func.coalesce(func.sum(Payment.amount_fils), 0))
        .join(Session, Session.id == Payment.session_id)
        .where(Session.community_id.in_(community_ids), Payment.status == PaymentStatus.COMPLETED)
        .group_by(Payment.user_id)
    )
    totals = {user_id: (count, spent) for user_id, count, spent in stats.all()}

    return [
        ManagerMemberOut(
            user=UserContact.model_validate(member_user),
            community_id=membership.community_id,
            joined_at=membership.joined_at,
            total_bookings=totals.get(member_user.id, (0, 0))[0],
            total_spent_fils=totals.get(member_user.id, (0, 0))[1],
        )
        for membership, member_user in rows
    ]


# ---------------------------------------------------------------------------
# Single session
# ---------------------------------------------------------------------------


@router.get("/{session_id}", response_model=SessionOut)
async def get_session(session_id: int, db: AsyncSession = Depends(get_db)):
    return await _get_session(db, session_id)


@router.get("/{session_id}/bookings", response_model=list[SessionBookingOut])
async def session_bookings(
    session_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session = await _get_session(db, session_id)
    await _require_manage(db, user, session.community_id)

    result = await db.execute(
        select(Booking)
        .options(selectinload(Booking.user))
        .where(Booking.session_id == session.id, Booking.cancelled_at.is_(None))
        .order_by(Booking.created_at)
    )
    return result.scalars().all()


@router.post("", response_model=SessionOut, status_code=status.HTTP_201_CREATED)
async def create_new_session(
    body: SessionCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_manage(db, user, body.community_id)
    if body.scheduled_at <= utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session must be scheduled in the future")
    if body.sub_community_id is not None:
        sub = await db.get(Community, body.sub_community_id)
        if sub is None or sub.parent_community_id != body.community_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid sub-community")

    session = await create_session(db, user.id, **body.model_dump())
    await announce_session(db, session, user.id)
    return session


@router.put("/{session_id}", response_model=SessionOut)
async def update_session(
    session_id: int,
    body: SessionUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session = await _get_session(db, session_id)
    await _require_manage(db, user, session.community_id)

    changes = body.model_dump(exclude_unset=True)
    if changes.get("max_players") is not None and changes["max_players"] < session.booked_count:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"max_players cannot be lower than the {session.booked_count} seats already booked",
        )
    if changes.get("scheduled_at") is not None and as_utc(changes["scheduled_at"]) <= utcnow():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session must be scheduled in the future")

    for field, value in changes.items():
        if value is not None:
            setattr(session, field, value)
    await db.flush()
    return session


@router.delete("/{session_id}")
async def delete_session(
    session_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a session. Booked players are refunded and notified."""
    session = await _get_session(db, session_id)
    await _require_manage(db, user, session.community_id)
    if session.status == SessionStatus.CANCELLED:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Session is already cancelled")

    summary = await cancel_session(db, session)
    return {"message": "Session cancelled", **summary}


@router.post("/{session_id}/notifications", response_model=NotificationResult)
async def notify_attendees(
    session_id: int,
    body: SessionNotificationRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    session = await _get_session(db, session_id)
    await _require_manage(db, user, session.community_id)

    result = await db.execute(
        select(Booking.user_id).where(
            Booking.session_id == session.id,
            Booking.cancelled_at.is_(None),
            Booking.payment_status == PaymentStatus.COMPLETED,
        )
    )
    user_ids = list(result.scalars().all())
    if not user_ids:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No attendees to notify")

    return await notify_users(
        db,
        user_ids,
        body.title,
        body.message,
        {"type": "session_notification", "session_id": session.id},
    )
