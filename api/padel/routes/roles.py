"""Role routes: my roles, super-admin role assignment, and community manager administration."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.database import get_db
from padel.core.dependencies import get_current_user
from padel.models.community import Community
from padel.models.role import Role, UserRoleAssignment
from padel.models.user import User, UserRole
from padel.schemas import (
    CommunityManagerOut,
    CommunityOut,
    ManagerAssignRequest,
    RoleAssignmentOut,
    RoleAssignRequest,
    RoleOut,
    RoleRemoveRequest,
    UserContact,
    UserPublic,
)
from padel.services.roles import (
    RoleError,
    assign_role,
    get_community_managers,
    get_managed_communities,
    get_or_create_role,
    get_user_roles,
    is_super_admin,
    remove_role,
    search_users,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/roles", tags=["roles"])


def _assignment_out(assignment: UserRoleAssignment) -> RoleAssignmentOut:
    return RoleAssignmentOut(
        id=assignment.id,
        user_id=assignment.user_id,
        role=assignment.role.name,
        community_id=assignment.community_id,
        assigned_by=assignment.assigned_by,
        assigned_at=assignment.assigned_at,
    )


async def _require_super_admin(db: AsyncSession, user: User) -> None:
    if not await is_super_admin(db, user.id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Super admin access required")


async def _require_owner_or_super_admin(db: AsyncSession, user: User, community_id: int) -> Community:
    """Only the community's owner or a super admin may change who manages it."""
    community = await db.get(Community, community_id)
    if community is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
    if community.manager_id != user.id and not await is_super_admin(db, user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only the community owner or a super admin can do this",
        )
    return community


@router.get("/my-roles", response_model=list[RoleAssignmentOut])
async def my_roles(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return [_assignment_out(a) for a in await get_user_roles(db, user.id)]


@router.get("/all", response_model=list[RoleOut])
async def all_roles(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    await _require_super_admin(db, user)
    for name in UserRole:
        await get_or_create_role(db, name)
    result = await db.execute(select(Role).order_by(Role.id))
    return result.scalars().all()


@router.post("/assign", response_model=RoleAssignmentOut, status_code=status.HTTP_201_CREATED)
async def assign(
    body: RoleAssignRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_super_admin(db, user)

    result = await db.execute(select(User).where(User.email == body.user_email.strip().lower()))
    target = result.scalar_one_or_none()
    if target is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    try:
        assignment = await assign_role(db, target.id, body.role_name, body.community_id, assigned_by=user.id)
    except RoleError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from None
    return _assignment_out(assignment)


@router.delete("/remove")
async def remove(
    body: RoleRemoveRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_super_admin(db, user)
    if body.role_name == UserRole.MEMBER:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="The member role cannot be removed")

    if not await remove_role(db, body.user_id, body.role_name, body.community_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Role assignment not found")
    return {"message": "Role removed"}


@router.get("/managed-communities", response_model=list[CommunityOut])
async def managed_communities(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)):
    return await get_managed_communities(db, user.id)


# ---------------------------------------------------------------------------
# Community managers
# ---------------------------------------------------------------------------


@router.get("/community/{community_id}/managers", response_model=list[CommunityManagerOut])
async def community_managers(
    community_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    if await db.get(Community, community_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Community not found")
    return [
        CommunityManagerOut(
            assignment_id=a.id,
            user=UserPublic.model_validate(a.user),
            assigned_at=a.assigned_at,
        )
        for a in await get_community_managers(db, community_id)
    ]


@router.post(
    "/community/{community_id}/managers",
    response_model=RoleAssignmentOut,
    status_code=status.HTTP_201_CREATED,
)
async def add_community_manager(
    community_id: int,
    body: ManagerAssignRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    community = await _require_owner_or_super_admin(db, user, community_id)
    if await db.get(User, body.user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    assignment = await assign_role(
        db, body.user_id, UserRole.COMMUNITY_MANAGER, community.id, assigned_by=user.id
    )
    return _assignment_out(assignment)


@router.delete("/community/{community_id}/managers/{manager_user_id}")
async def revoke_community_manager(
    community_id: int,
    manager_user_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    community = await _require_owner_or_super_admin(db, user, community_id)
    if not await remove_role(db, manager_user_id, UserRole.COMMUNITY_MANAGER, community.id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Manager not found")
    return {"message": "Manager removed"}


@router.get("/community/{community_id}/search-users", response_model=list[UserContact])
async def search_community_users(
    community_id: int,
    q: str = Query(min_length=2),
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    await _require_owner_or_super_admin(db, user, community_id)
    return await search_users(db, q)
