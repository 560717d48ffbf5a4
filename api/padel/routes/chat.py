"""Community chat routes."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.database import get_db
from padel.core.dependencies import get_current_user
from padel.models.community import Community, CommunityMember
from padel.models.social import CommunityMessage
from padel.models.user import User
from padel.schemas import ChatOut, MessageCreate, MessageOut

router = APIRouter(prefix="/chat", tags=["chat"])


def _message_out(message: CommunityMessage, sender_name: str | None) -> MessageOut:
    return MessageOut(
        id=message.id,
        community_id=message.community_id,
        sender_id=message.sender_id,
        sender_name=sender_name,
        content=message.content,
        created_at=message.created_at,
    )


async def _require_member(db: AsyncSession, community_id: int, user: User) -> Community:
    community = await db.get(Community, community_id)
    if community is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
    result = await db.execute(
        select(CommunityMember.id).where(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id == user.id,
        )
    )
    if result.first() is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not a member of this community")
    return community


@router.get("/chats", response_model=list[ChatOut])
async def list_chats(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """One chat per joined top-level community, most recent conversation first."""
    result = await db.execute(
        select(Community)
        .join(CommunityMember, CommunityMember.community_id == Community.id)
        .where(CommunityMember.user_id == user.id, Community.parent_community_id.is_(None))
    )
    communities = list(result.scalars().all())

    chats = []
    for community in communities:
        member_count = await db.scalar(
            select(func.count(CommunityMember.id)).where(CommunityMember.community_id == community.id)
        )
        last = await db.execute(
            select(CommunityMessage, User.name)
            .join(User, User.id == CommunityMessage.sender_id)
            .where(CommunityMessage.community_id == community.id)
            .order_by(CommunityMessage.created_at.desc(), CommunityMessage.id.desc())
            .limit(1)
        )
        row = last.first()
        chats.append(
            ChatOut(
                community_id=community.id,
                name=community.name,
                profile_image=community.profile_image,
                member_count=member_count or 0,
                last_message=_message_out(*row) if row else None,
            )
        )

    # Newest conversation first; chats without messages last
    chats.sort(
        key=lambda c: c.last_message.created_at.timestamp() if c.last_message else float("-inf"),
        reverse=True,
    )
    return chats


@router.get("/communities/{community_id}/messages", response_model=list[MessageOut])
async def list_messages(
    community_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """A page of messages, newest page first, returned oldest-to-newest."""
    await _require_member(db, community_id, user)
    result = await db.execute(
        select(CommunityMessage, User.name)
        .join(User, User.id == CommunityMessage.sender_id)
        .where(CommunityMessage.community_id == community_id)
        .order_by(CommunityMessage.created_at.desc(), CommunityMessage.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return [_message_out(message, name) for message, name in reversed(result.all())]


@router.post(
    "/communities/{community_id}/messages",
    response_model=MessageOut,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    community_id: int,
    body: MessageCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_member(db, community_id, user)
    content = body.content.strip()
    if not content:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message cannot be empty")

    message = CommunityMessage(community_id=community_id, sender_id=user.id, content=content)
    db.add(message)
    await db.flush()
    return _message_out(message, user.name)
