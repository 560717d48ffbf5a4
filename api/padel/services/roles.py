"""Role checks and role assignment.

Every user is implicitly a member. Community managers are scoped to a
community (and manage its sub-communities through it); super admins are
global. A community's owner (``manager_id``) can always manage it.
"""

import logging

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from padel.models.community import Community
from padel.models.role import Role, UserRoleAssignment
from padel.models.user import User, UserRole
from padel.utils.datetime_utils import utcnow

logger = logging.getLogger(__name__)

ROLE_DESCRIPTIONS = {
    UserRole.MEMBER: "Books sessions and joins communities",
    UserRole.COMMUNITY_MANAGER: "Runs sessions for the communities they are assigned to",
    UserRole.SUPER_ADMIN: "Full platform access",
}


class RoleError(Exception):
    """A role change that breaks an assignment rule."""


async def get_or_create_role(db: AsyncSession, name: UserRole) -> Role:
    result = await db.execute(select(Role).where(Role.name == name))
    role = result.scalar_one_or_none()
    if role is None:
        role = Role(name=name, description=ROLE_DESCRIPTIONS[name])
        db.add(role)
        await db.flush()
    return role


async def get_user_roles(db: AsyncSession, user_id: int) -> list[UserRoleAssignment]:
    result = await db.execute(
        select(UserRoleAssignment)
        .where(UserRoleAssignment.user_id == user_id)
        .order_by(UserRoleAssignment.assigned_at)
    )
    return list(result.scalars().all())


async def has_role(
    db: AsyncSession,
    user_id: int,
    role_name: UserRole,
    community_id: int | None = None,
) -> bool:
    """Whether the user holds ``role_name``, optionally for one specific community."""
    if role_name == UserRole.MEMBER:
        return True
    query = (
        select(UserRoleAssignment.id)
        .join(Role)
        .where(UserRoleAssignment.user_id == user_id, Role.name == role_name)
    )
    if community_id is not None:
        query = query.where(UserRoleAssignment.community_id == community_id)
    result = await db.execute(query.limit(1))
    return result.first() is not None


async def is_super_admin(db: AsyncSession, user_id: int) -> bool:
    return await has_role(db, user_id, UserRole.SUPER_ADMIN)


async def can_manage_community(db: AsyncSession, user_id: int, community_id: int) -> bool:
    if await is_super_admin(db, user_id):
        return True

    community = await db.get(Community, community_id)
    if community is None:
        return False
    if community.manager_id == user_id:
        return True

    scopes = [community.id]
    if community.parent_community_id is not None:
        parent = await db.get(Community, community.parent_community_id)
        if parent is not None and parent.manager_id == user_id:
            return True
        scopes.append(community.parent_community_id)

    result = await db.execute(
        select(UserRoleAssignment.id)
        .join(Role)
        .where(
            UserRoleAssignment.user_id == user_id,
            Role.name == UserRole.COMMUNITY_MANAGER,
            UserRoleAssignment.community_id.in_(scopes),
        )
        .limit(1)
    )
    return result.first() is not None


async def assign_role(
    db: AsyncSession,
    user_id: int,
    role_name: UserRole,
    community_id: int | None = None,
    assigned_by: int | None = None,
) -> UserRoleAssignment:
    """Grant a role. Assigning a role the user already holds returns the existing assignment."""
    if role_name == UserRole.COMMUNITY_MANAGER and community_id is None:
        raise RoleError("community_id is required for community_manager")
    if role_name != UserRole.COMMUNITY_MANAGER:
        community_id = None

    if community_id is not None and await db.get(Community, community_id) is None:
        raise RoleError("Community not found")

    role = await get_or_create_role(db, role_name)
    query = select(UserRoleAssignment).where(
        UserRoleAssignment.user_id == user_id,
        UserRoleAssignment.role_id == role.id,
    )
    query = query.where(
        UserRoleAssignment.community_id == community_id
        if community_id is not None
        else UserRoleAssignment.community_id.is_(None)
    )
    existing = (await db.execute(query)).scalar_one_or_none()
    if existing is not None:
        return existing

    assignment = UserRoleAssignment(
        user_id=user_id,
        role=role,
        community_id=community_id,
        assigned_by=assigned_by,
        assigned_at=utcnow(),
    )
    db.add(assignment)
    await db.flush()
    logger.info("Assigned %s to user %s (community=%s)", role_name, user_id, community_id)
    return assignment


async def remove_role(
    db: AsyncSession,
    user_id: int,
    role_name: UserRole,
    community_id: int | None = None,
) -> bool:
    """Revoke a role. Returns False when there was nothing to revoke."""
    query = (
        select(UserRoleAssignment)
        .join(Role)
        .where(UserRoleAssignment.user_id == user_id, Role.name == role_name)
    )
    if community_id is not None:
        query = query.where(UserRoleAssignment.community_id == community_id)
    assignments = (await db.execute(query)).scalars().all()
    for assignment in assignments:
        await db.delete(assignment)
    await db.flush()
    if assignments:
        logger.info("Removed %s from user %s (community=%s)", role_name, user_id, community_id)
    return bool(assignments)


async def get_community_managers(db: AsyncSession, community_id: int) -> list[UserRoleAssignment]:
    """Community-manager assignments for a community, with users loaded."""
    result = await db.execute(
        select(UserRoleAssignment)
        .options(selectinload(UserRoleAssignment.user))
        .join(Role)
        .where(Role.name == UserRole.COMMUNITY_MANAGER, UserRoleAssignment.community_id == community_id)
        .order_by(UserRoleAssignment.assigned_at)
    )
    return list(result.scalars().all())


async def get_managed_communities(db: AsyncSession, user_id: int) -> list[Community]:
    """Parent communities the user can manage: all of them for a super admin."""
    query = select(Community).where(Community.parent_community_id.is_(None)).order_by(Community.name)
    if not await is_super_admin(db, user_id):
        assigned = (
            select(UserRoleAssignment.community_id)
            .join(Role)
            .where(UserRoleAssignment.user_id == user_id, Role.name == UserRole.COMMUNITY_MANAGER)
        )
        query = query.where(or_(Community.manager_id == user_id, Community.id.in_(assigned)))
    result = await db.execute(query)
    return list(result.scalars().all())


async def search_users(db: AsyncSession, term: str, limit: int = 10) -> list[User]:
    pattern = f"%{term.strip()}%"
    result = await db.execute(
        select(User)
        .where(
            User.is_active.is_(True),
            or_(User.email.ilike(pattern), User.phone.ilike(pattern), User.name.ilike(pattern)),
        )
        .order_by(User.name)
        .limit(limit)
    )
    return list(result.scalars().all())
