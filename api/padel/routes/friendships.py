"""Friendship routes: requests, responses, friend lists and suggestions."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import and_, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.database import get_db
from padel.core.dependencies import get_current_user
from padel.models.community import CommunityMember
from padel.models.social import Friendship, FriendshipStatus
from padel.models.user import User
from padel.schemas import FriendOut, FriendRequestCreate, FriendshipOut, FriendshipStatusOut, UserPublic
from padel.services.notifications import notify_friend_request, notify_users

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/friendships", tags=["friendships"])


def _between(a: int, b: int):
    return or_(
        and_(Friendship.requester_id == a, Friendship.addressee_id == b),
        and_(Friendship.requester_id == b, Friendship.addressee_id == a),
    )


async def _get_friendship(db: AsyncSession, friendship_id: int) -> Friendship:
    friendship = await db.get(Friendship, friendship_id)
    if friendship is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Friend request not found")
    return friendship


async def _pending_for_addressee(db: AsyncSession, friendship_id: int, user: User) -> Friendship:
    friendship = await _get_friendship(db, friendship_id)
    if friendship.addressee_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="This request was not sent to you")
    if friendship.status != FriendshipStatus.PENDING:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Friend request is no longer pending")
    return friendship


async def _friend_list(db: AsyncSession, friendships: list[Friendship], user: User) -> list[FriendOut]:
    """Pair each friendship with the user on the other side of it."""
    other_ids = [f.addressee_id if f.requester_id == user.id else f.requester_id for f in friendships]
    if not other_ids:
        return []
    result = await db.execute(select(User).where(User.id.in_(other_ids)))
    users = {u.id: u for u in result.scalars().all()}
    return [
        FriendOut(friendship_id=f.id, user=UserPublic.model_validate(users[other_id]), since=f.updated_at)
        for f, other_id in zip(friendships, other_ids, strict=True)
        if other_id in users
    ]


@router.post("/request", response_model=FriendshipOut, status_code=status.HTTP_201_CREATED)
async def send_request(
    body: FriendRequestCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if body.addressee_id == user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot befriend yourself")
    if await db.get(User, body.addressee_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    result = await db.execute(select(Friendship).where(_between(user.id, body.addressee_id)))
    existing = result.scalar_one_or_none()
    if existing is not None:
        detail = "Already friends" if existing.status == FriendshipStatus.ACCEPTED else "Friend request already exists"
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail)

    friendship = Friendship(requester_id=user.id, addressee_id=body.addressee_id)
    db.add(friendship)
    await db.flush()

    await notify_friend_request(db, body.addressee_id, user)
    return friendship


@router.post("/accept/{friendship_id}", response_model=FriendshipOut)
async def accept_request(
    friendship_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    friendship = await _pending_for_addressee(db, friendship_id, user)
    friendship.status = FriendshipStatus.ACCEPTED
    await db.flush()

    await notify_users(
        db,
        [friendship.requester_id],
        "Friend Request Accepted",
        f"{user.display_name} accepted your friend request",
        {"type": "friend_accepted", "user_id": user.id},
    )
    return friendship


@router.post("/reject/{friendship_id}")
async def reject_request(
    friendship_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    friendship = await _pending_for_addressee(db, friendship_id, user)
    await db.delete(friendship)
    return {"message": "Friend request rejected"}


@router.delete("/{friendship_id}")
async def remove_friendship(
    friendship_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Unfriend, or withdraw a request you sent."""
    friendship = await _get_friendship(db, friendship_id)
    if user.id not in (friendship.requester_id, friendship.addressee_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your friendship")
    await db.delete(friendship)
    return {"message": "Friendship removed"}


@router.get("/friends", response_model=list[FriendOut])
async def list_friends(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Friendship)
        .where(
            Friendship.status == FriendshipStatus.ACCEPTED,
            or_(Friendship.requester_id == user.id, Friendship.addressee_id == user.id),
        )
        .order_by(Friendship.updated_at.desc())
    )
    return await _friend_list(db, list(result.scalars().all()), user)


@router.get("/requests/pending", response_model=list[FriendOut])
async def pending_requests(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Requests waiting for this user's answer."""
    result = await db.execute(
        select(Friendship)
        .where(Friendship.addressee_id == user.id, Friendship.status == FriendshipStatus.PENDING)
        .order_by(Friendship.created_at.desc())
    )
    return await _friend_list(db, list(result.scalars().all()), user)


@router.get("/requests/sent", response_model=list[FriendOut])
async def sent_requests(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Friendship)
        .where(Friendship.requester_id == user.id, Friendship.status == FriendshipStatus.PENDING)
        .order_by(Friendship.created_at.desc())
    )
    return await _friend_list(db, list(result.scalars().all()), user)


@router.get("/suggestions", response_model=list[UserPublic])
async def suggestions(
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Players from the user's communities they have no friendship or request with yet."""
    my_communities = select(CommunityMember.community_id).where(CommunityMember.user_id == user.id)
    co_members = select(CommunityMember.user_id).where(CommunityMember.community_id.in_(my_communities))
    requested = select(Friendship.addressee_id).where(Friendship.requester_id == user.id)
    requested_by = select(Friendship.requester_id).where(Friendship.addressee_id == user.id)

    result = await db.execute(
        select(User)
        .where(
            User.id.in_(co_members),
            User.id != user.id,
            User.id.not_in(requested),
            User.id.not_in(requested_by),
            User.is_active.is_(True),
        )
        .order_by(User.name)
        .limit(limit)
    )
    return result.scalars().all()


@router.get("/status/{other_user_id}", response_model=FriendshipStatusOut)
async def friendship_status(
    other_user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(select(Friendship).where(_between(user.id, other_user_id)))
    friendship = result.scalar_one_or_none()
    if friendship is None:
        return FriendshipStatusOut(status="none")
    if friendship.status == FriendshipStatus.ACCEPTED:
        return FriendshipStatusOut(status="accepted", friendship_id=friendship.id)
    direction = "sent" if friendship.requester_id == user.id else "received"
    return FriendshipStatusOut(status="pending", direction=direction, friendship_id=friendship.id)
