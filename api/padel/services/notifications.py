"""Push notification fan-out for community events.

Resolves users to their stored device tokens and sends through APNs.
Device tokens APNs reports as dead are cleared so they are not retried.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from padel.models.community import CommunityMember
from padel.models.session import Session
from padel.models.user import User
from padel.services.push import send_push

logger = logging.getLogger(__name__)


def _format_aed(amount_fils: int) -> str:
    return f"AED {amount_fils / 100:.2f}"


async def community_member_ids(
    db: AsyncSession,
    community_ids: list[int],
    exclude_user_id: int | None = None,
) -> list[int]:
    """Unique member IDs across ``community_ids``."""
    if not community_ids:
        return []
    query = select(CommunityMember.user_id).where(CommunityMember.community_id.in_(community_ids)).distinct()
    if exclude_user_id is not None:
        query = query.where(CommunityMember.user_id != exclude_user_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def notify_users(
    db: AsyncSession,
    user_ids: list[int],
    title: str,
    body: str,
    data: dict | None = None,
) -> dict:
    """Push to every user in ``user_ids`` that has a device token."""
    unique_ids = list(dict.fromkeys(user_ids))
    if not unique_ids:
        return {"recipients": 0, "sent": 0, "failed": 0}

    result = await db.execute(
        select(User.push_token).where(User.id.in_(unique_ids), User.push_token.is_not(None))
    )
    tokens = list(result.scalars().all())
    push = await send_push(tokens, title, body, data)

    if push.invalid_tokens:
        await db.execute(update(User).where(User.push_token.in_(push.invalid_tokens)).values(push_token=None))
        logger.info("Cleared %d invalid push tokens", len(push.invalid_tokens))

    return {"recipients": len(unique_ids), "sent": push.sent, "failed": push.failed}


async def notify_community_members(
    db: AsyncSession,
    community_ids: list[int],
    title: str,
    body: str,
    data: dict | None = None,
    exclude_user_id: int | None = None,
) -> dict:
    user_ids = await community_member_ids(db, community_ids, exclude_user_id)
    return await notify_users(db, user_ids, title, body, data)


async def notify_new_session(db: AsyncSession, session: Session, exclude_user_id: int | None = None) -> dict:
    return await notify_community_members(
        db,
        [session.community_id],
        "New Match Available",
        f"{session.title} at {session.location}",
        {"type": "new_session", "session_id": session.id},
        exclude_user_id=exclude_user_id,
    )


async def notify_spot_available(db: AsyncSession, session: Session, exclude_user_id: int) -> dict:
    """A booked player wants out: offer their seat to the rest of the community."""
    return await notify_community_members(
        db,
        [session.community_id],
        "Spot Available",
        f"A spot opened up in {session.title}. Book it before it's gone!",
        {"type": "spot_available", "session_id": session.id},
        exclude_user_id=exclude_user_id,
    )


async def notify_refund_processed(db: AsyncSession, user_id: int, session: Session, amount_fils: int) -> dict:
    return await notify_users(
        db,
        [user_id],
        "Refund Processed",
        f"Your {_format_aed(amount_fils)} for {session.title} has been refunded.",
        {"type": "refund_processed", "session_id": session.id},
    )


async def notify_session_cancelled(db: AsyncSession, user_ids: list[int], session: Session) -> dict:
    return await notify_users(
        db,
        user_ids,
        "Match Cancelled",
        f"{session.title} has been cancelled. Your payment will be refunded.",
        {"type": "session_cancelled", "session_id": session.id},
    )


async def notify_friend_request(db: AsyncSession, addressee_id: int, requester: User) -> dict:
    return await notify_users(
        db,
        [addressee_id],
        "New Friend Request",
        f"{requester.display_name} wants to be your friend",
        {"type": "friend_request", "user_id": requester.id},
    )
