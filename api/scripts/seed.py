"""Seed the database with Padel Community demo data.

Run with: python -m scripts.seed
Creates the platform roles, a super admin, a community manager with one
community (plus two sub-communities), weekly templates and a week of
sessions, and a couple of member accounts.
"""

import asyncio
from datetime import time

from sqlalchemy import select

from padel.core.auth import hash_password
from padel.core.database import async_session_factory, engine
from padel.models import Base, Community, CommunityMember, SessionTemplate, User, UserRole
from padel.services.roles import assign_role, get_or_create_role
from padel.services.sessions import bulk_create_from_templates

COMMUNITY = {
    "name": "Marina Padel Club",
    "description": "Social and competitive padel in Dubai Marina.",
    "location": "Dubai Marina",
    "instagram_url": "https://instagram.com/marinapadel",
}

SUB_COMMUNITIES = [
    {"name": "Ladies Night", "location": "Marina Courts 1-2"},
    {"name": "Advanced Americano", "location": "Marina Courts 3-4"},
]

# day_of_week: 0 = Sunday
TEMPLATES = [
    {"title": "Monday Mixer", "day_of_week": 1, "time_of_day": time(19, 0), "price_fils": 7500, "max_players": 8},
    {"title": "Ladies Night", "day_of_week": 3, "time_of_day": time(20, 0), "price_fils": 6000, "sub": "Ladies Night"},
    {
        "title": "Advanced Americano",
        "day_of_week": 5,
        "time_of_day": time(18, 30),
        "price_fils": 9000,
        "max_players": 12,
        "duration_minutes": 120,
        "allow_conditional_cancellation": False,
        "sub": "Advanced Americano",
    },
]

USERS = [
    # email, phone, name, password, role
    ("admin@padelcommunity.app", "+971500000001", "Platform Admin", "admin123", UserRole.SUPER_ADMIN),
    ("manager@padelcommunity.app", "+971500000002", "Marina Manager", "manager123", UserRole.COMMUNITY_MANAGER),
    ("player1@example.com", "+971500000003", "Test Player One", "player123", UserRole.MEMBER),
    ("player2@example.com", "+971500000004", "Test Player Two", "player123", UserRole.MEMBER),
]


async def seed():
    # Create tables (in dev; production uses Alembic migrations)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with async_session_factory() as db:
        # Check if already seeded
        result = await db.execute(select(Community).where(Community.name == COMMUNITY["name"]))
        if result.scalar_one_or_none():
            print("Database already seeded, skipping.")
            return

        for role in UserRole:
            await get_or_create_role(db, role)

        users = {}
        for email, phone, name, password, role in USERS:
            user = User(
                email=email,
                phone=phone,
                name=name,
                hashed_password=hash_password(password),
                otp_verified=True,
            )
            db.add(user)
            await db.flush()
            users[role] = users.get(role, user)

        admin = users[UserRole.SUPER_ADMIN]
        manager = users[UserRole.COMMUNITY_MANAGER]
        await assign_role(db, admin.id, UserRole.SUPER_ADMIN)

        community = Community(**COMMUNITY, manager_id=manager.id)
        db.add(community)
        await db.flush()
        await assign_role(db, manager.id, UserRole.COMMUNITY_MANAGER, community.id, assigned_by=admin.id)

        subs = {}
        for sub_data in SUB_COMMUNITIES:
            sub = Community(**sub_data, manager_id=manager.id, parent_community_id=community.id)
            db.add(sub)
            await db.flush()
            subs[sub.name] = sub

        members = (await db.execute(select(User).where(User.email.like("player%")))).scalars().all()
        for member in members:
            db.add(CommunityMember(community_id=community.id, user_id=member.id))

        templates = []
        for template_data in TEMPLATES:
            template_data = dict(template_data)
            sub_name = template_data.pop("sub", None)
            template = SessionTemplate(
                community_id=community.id,
                sub_community_id=subs[sub_name].id if sub_name else None,
                created_by=manager.id,
                **template_data,
            )
            db.add(template)
            templates.append(template)
        await db.flush()

        sessions, _ = await bulk_create_from_templates(db, templates, weeks_ahead=2, creator_id=manager.id)

        await db.commit()

        print(f"Seeded: {community.name}")
        print(f"  {len(subs)} sub-communities")
        print(f"  {len(templates)} weekly templates, {len(sessions)} sessions")
        print(f"  {len(USERS)} test users:")
        for email, _, _, password, role in USERS:
            print(f"    {email} / {password} ({role})")


if __name__ == "__main__":
    asyncio.run(seed())
