"""Community routes: browse, manage, membership, sub-communities and member notifications."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.database import get_db
from padel.core.dependencies import get_current_user, require_manager
from padel.models.community import Community, CommunityMember
from padel.models.user import User
from padel.schemas import (
    CommunityCreate,
    CommunityNotificationRequest,
    CommunityOut,
    CommunityUpdate,
    JoinWithSubsRequest,
    NotificationResult,
)
from padel.services.notifications import community_member_ids, notify_users
from padel.services.roles import can_manage_community, get_managed_communities

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/communities", tags=["communities"])


async def _with_member_counts(db: AsyncSession, communities: list[Community]) -> list[CommunityOut]:
    if not communities:
        return []
    result = await db.execute(
        select(CommunityMember.community_id, func.count(CommunityMember.id))
        .where(CommunityMember.community_id.in_([c.id for c in communities]))
        .group_by(CommunityMember.community_id)
    )
    counts = dict(result.all())
    out = []
    for community in communities:
        item = CommunityOut.model_validate(community)
        item.member_count = counts.get(community.id, 0)
        out.append(item)
    return out


async def _get_community(db: AsyncSession, community_id: int) -> Community:
    community = await db.get(Community, community_id)
    if community is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
    return community


async def _require_manage(db: AsyncSession, user: User, community: Community) -> None:
    if not await can_manage_community(db, user.id, community.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to manage this community",
        )


async def _get_sub_community(db: AsyncSession, parent_id: int, sub_id: int) -> Community:
    sub = await db.get(Community, sub_id)
    if sub is None or sub.parent_community_id != parent_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sub-community not found")
    return sub


async def _membership(db: AsyncSession, community_id: int, user_id: int) -> CommunityMember | None:
    result = await db.execute(
        select(CommunityMember).where(
            CommunityMember.community_id == community_id,
            CommunityMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Browse
# ---------------------------------------------------------------------------


@router.get("", response_model=list[CommunityOut])
async def list_communities(db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Community).where(Community.visibility.is_(True)).order_by(Community.created_at.desc())
    )
    return await _with_member_counts(db, list(result.scalars().all()))


@router.get("/my-communities", response_model=list[CommunityOut])
async def my_communities(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Community)
        .join(CommunityMember, CommunityMember.community_id == Community.id)
        .where(CommunityMember.user_id == user.id)
        .order_by(CommunityMember.joined_at.desc())
    )
    return await _with_member_counts(db, list(result.scalars().all()))


@router.get("/manager/communities", response_model=list[CommunityOut])
async def manager_communities(user: User = Depends(require_manager), db: AsyncSession = Depends(get_db)):
    return await _with_member_counts(db, await get_managed_communities(db, user.id))


@router.get("/{community_id}", response_model=CommunityOut)
async def get_community(community_id: int, db: AsyncSession = Depends(get_db)):
    community = await _get_community(db, community_id)
    return (await _with_member_counts(db, [community]))[0]


# ---------------------------------------------------------------------------
# Manage
# ---------------------------------------------------------------------------


@router.post("", response_model=CommunityOut, status_code=status.HTTP_201_CREATED)
async def create_community(
    body: CommunityCreate,
    user: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    community = Community(**body.model_dump(), manager_id=user.id)
    db.add(community)
    await db.flush()
    logger.info("Community %s created by user %s", community.id, user.id)
    return CommunityOut.model_validate(community)


@router.put("/{community_id}", response_model=CommunityOut)
async def update_community(
    community_id: int,
    body: CommunityUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    community = await _get_community(db, community_id)
    await _require_manage(db, user, community)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(community, field, value)
    await db.flush()
    return (await _with_member_counts(db, [community]))[0]


@router.post("/{community_id}/notifications", response_model=NotificationResult)
async def notify_community(
    community_id: int,
    body: CommunityNotificationRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Push a message to the members of a community and any chosen sub-communities."""
    community = await _get_community(db, community_id)
    await _require_manage(db, user, community)

    targets = [community.id] if body.include_parent else []
    for sub_id in body.sub_community_ids:
        targets.append((await _get_sub_community(db, community.id, sub_id)).id)
    if not targets:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No communities selected")

    user_ids = await community_member_ids(db, targets, exclude_user_id=user.id)
    if not user_ids:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No members to notify")

    return await notify_users(
        db,
        user_ids,
        body.title,
        body.message,
        {"type": "community_notification", "community_id": community.id},
    )


# ---------------------------------------------------------------------------
# Membership
# ---------------------------------------------------------------------------


@router.post("/{community_id}/join", status_code=status.HTTP_201_CREATED)
async def join_community(
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    community = await _get_community(db, community_id)
    if await _membership(db, community.id, user.id) is not None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Already a member of this community")

    db.add(CommunityMember(community_id=community.id, user_id=user.id))
    await db.flush()
    return {"message": f"Joined {community.name}"}


@router.post("/{community_id}/leave")
async def leave_community(
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    community = await _get_community(db, community_id)
    membership = await _membership(db, community.id, user.id)
    if membership is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Not a member of this community")

    await db.delete(membership)
    return {"message": f"Left {community.name}"}


@router.post("/{community_id}/join-with-subs", status_code=status.HTTP_201_CREATED)
async def join_with_sub_communities(
    community_id: int,
    body: JoinWithSubsRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Join a community and any of its sub-communities in one go."""
    community = await _get_community(db, community_id)
    subs = []
    for sub_id in body.sub_community_ids:
        sub = await db.get(Community, sub_id)
        if sub is None or sub.parent_community_id != community.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Community {sub_id} is not a sub-community of {community.name}",
            )
        subs.append(sub)

    joined = []
    for target in [community, *subs]:
        if await _membership(db, target.id, user.id) is None:
            db.add(CommunityMember(community_id=target.id, user_id=user.id))
            joined.append(target.id)
    await db.flush()
    return {"joined": joined}


# ---------------------------------------------------------------------------
# Sub-communities
# ---------------------------------------------------------------------------


@router.get("/{community_id}/sub-communities", response_model=list[CommunityOut])
async def list_sub_communities(community_id: int, db: AsyncSession = Depends(get_db)):
    community = await _get_community(db, community_id)
    result = await db.execute(
        select(Community).where(Community.parent_community_id == community.id).order_by(Community.name)
    )
    return await _with_member_counts(db, list(result.scalars().all()))


@router.post(
    "/{community_id}/sub-communities",
    response_model=CommunityOut,
    status_code=status.HTTP_201_CREATED,
)
async def create_sub_community(
    community_id: int,
    body: CommunityCreate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    parent = await _get_community(db, community_id)
    await _require_manage(db, user, parent)
    if parent.is_sub_community:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Sub-communities cannot have their own sub-communities",
        )

    sub = Community(**body.model_dump(), manager_id=parent.manager_id, parent_community_id=parent.id)
    db.add(sub)
    await db.flush()
    return CommunityOut.model_validate(sub)


@router.put("/{community_id}/sub-communities/{sub_id}", response_model=CommunityOut)
async def update_sub_community(
    community_id: int,
    sub_id: int,
    body: CommunityUpdate,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    parent = await _get_community(db, community_id)
    await _require_manage(db, user, parent)
    sub = await _get_sub_community(db, parent.id, sub_id)

    for field, value in body.model_dump(exclude_unset=True).items():
        setattr(sub, field, value)
    await db.flush()
    return (await _with_member_counts(db, [sub]))[0]


@router.delete("/{community_id}/sub-communities/{sub_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_sub_community(
    community_id: int,
    sub_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    parent = await _get_community(db, community_id)
    await _require_manage(db, user, parent)
    sub = await _get_sub_community(db, parent.id, sub_id)
    await db.delete(sub)
