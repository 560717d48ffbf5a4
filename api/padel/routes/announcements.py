"""Announcement routes: feeds for members, posting and editing for managers."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.database import get_db
from padel.core.dependencies import get_current_user
from padel.models.community import Community, CommunityMember
from padel.models.social import Announcement
from padel.models.user import User
from padel.schemas import AnnouncementCreate, AnnouncementOut, AnnouncementUpdate
from padel.services.notifications import notify_community_members
from padel.services.roles import can_manage_community, is_super_admin

router = APIRouter(prefix="/announcements", tags=["announcements"])


def _out(announcement: Announcement, community_name: str | None = None) -> AnnouncementOut:
    out = AnnouncementOut.model_validate(announcement)
    out.community_name = community_name
    return out


async def _get_editable(db: AsyncSession, announcement_id: int, user: User) -> Announcement:
    announcement = await db.get(Announcement, announcement_id)
    if announcement is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Announcement not found")
    if announcement.created_by != user.id and not await is_super_admin(db, user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the author or a super admin can change this announcement",
        )
    return announcement


@router.get("/my-announcements", response_model=list[AnnouncementOut])
async def my_announcements(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    """Latest announcements across every community the user belongs to."""
    result = await db.execute(
        select(Announcement, Community.name)
        .join(Community, Community.id == Announcement.community_id)
        .join(CommunityMember, CommunityMember.community_id == Announcement.community_id)
        .where(CommunityMember.user_id == user.id)
        .order_by(Announcement.created_at.desc(), Announcement.id.desc())
        .limit(50)
    )
    return [_out(announcement, name) for announcement, name in result.all()]


@router.get("/community/{community_id}", response_model=list[AnnouncementOut])
async def community_announcements(
    community_id: int,
    limit: int = Query(default=50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
):
    community = await db.get(Community, community_id)
    if community is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
    result = await db.execute(
        select(Announcement)
        .where(Announcement.community_id == community.id)
        .order_by(Announcement.created_at.desc(), Announcement.id.desc())
        .limit(limit)
    )
    return [_out(a, community.name) for a in result.scalars().all()]


@router.post("", response_model=AnnouncementOut, status_code=status.HTTP_201_CREATED)
async def create_announcement(
    body: AnnouncementCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    community = await db.get(Community, body.community_id)
    if community is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
    if not await can_manage_community(db, user.id, community.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to post in this community",
        )

    announcement = Announcement(
        community_id=community.id,
        created_by=user.id,
        title=body.title,
        message=body.message,
    )
    db.add(announcement)
    await db.flush()

    await notify_community_members(
        db,
        [community.id],
        body.title,
        body.message,
        {"type": "announcement", "community_id": community.id, "announcement_id": announcement.id},
        exclude_user_id=user.id,
    )
    return _out(announcement, community.name)


@router.put("/{announcement_id}", response_model=AnnouncementOut)
async def update_announcement(
    announcement_id: int,
    body: AnnouncementUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    announcement = await _get_editable(db, announcement_id, user)
    for field, value in body.model_dump(exclude_unset=True, exclude_none=True).items():
        setattr(announcement, field, value)
    await db.flush()
    return _out(announcement)


@router.delete("/{announcement_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_announcement(
    announcement_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    announcement = await _get_editable(db, announcement_id, user)
    await db.delete(announcement)
