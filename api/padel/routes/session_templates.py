"""Session template routes: weekly recurring sessions and bulk session generation."""

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from padel.core.database import get_db
from padel.core.dependencies import require_manager
from padel.models.community import Community
from padel.models.session import SessionTemplate
from padel.models.user import User
from padel.schemas import (
    BulkCreateRequest,
    BulkCreateResponse,
    SessionOut,
    SessionTemplateCreate,
    SessionTemplateOut,
    SessionTemplateUpdate,
)
from padel.services.roles import can_manage_community, get_managed_communities
from padel.services.sessions import bulk_create_from_templates

router = APIRouter(prefix="/session-templates", tags=["session-templates"])


async def _require_manage(db: AsyncSession, user: User, community_id: int) -> None:
    if not await can_manage_community(db, user.id, community_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to manage templates for this community",
        )


async def _check_sub_community(db: AsyncSession, community_id: int, sub_community_id: int | None) -> None:
    if sub_community_id is None:
        return
    sub = await db.get(Community, sub_community_id)
    if sub is None or sub.parent_community_id != community_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid sub-community")


async def _get_template(db: AsyncSession, template_id: int, user: User) -> SessionTemplate:
    template = await db.get(SessionTemplate, template_id)
    if template is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Template not found")
    await _require_manage(db, user, template.community_id)
    return template


@router.get("", response_model=list[SessionTemplateOut])
async def list_templates(
    community_id: int | None = Query(default=None),
    user: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    if community_id is not None:
        await _require_manage(db, user, community_id)
        community_ids = [community_id]
    else:
        community_ids = [c.id for c in await get_managed_communities(db, user.id)]

    result = await db.execute(
        select(SessionTemplate)
        .where(SessionTemplate.community_id.in_(community_ids))
        .order_by(SessionTemplate.day_of_week, SessionTemplate.time_of_day)
    )
    return result.scalars().all()


@router.get("/{template_id}", response_model=SessionTemplateOut)
async def get_template(template_id: int, user: User = Depends(require_manager), db: AsyncSession = Depends(get_db)):
    return await _get_template(db, template_id, user)


@router.post("", response_model=SessionTemplateOut, status_code=status.HTTP_201_CREATED)
async def create_template(
    body: SessionTemplateCreate,
    user: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    await _require_manage(db, user, body.community_id)
    await _check_sub_community(db, body.community_id, body.sub_community_id)

    template = SessionTemplate(**body.model_dump(), created_by=user.id)
    db.add(template)
    await db.flush()
    return template


@router.put("/{template_id}", response_model=SessionTemplateOut)
async def update_template(
    template_id: int,
    body: SessionTemplateUpdate,
    user: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    template = await _get_template(db, template_id, user)
    changes = body.model_dump(exclude_unset=True)
    if "sub_community_id" in changes:
        await _check_sub_community(db, template.community_id, changes["sub_community_id"])

    for field, value in changes.items():
        if value is not None or field == "sub_community_id":
            setattr(template, field, value)
    await db.flush()
    return template


@router.delete("/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_template(template_id: int, user: User = Depends(require_manager), db: AsyncSession = Depends(get_db)):
    template = await _get_template(db, template_id, user)
    await db.delete(template)


@router.post("/bulk-create-sessions", response_model=BulkCreateResponse, status_code=status.HTTP_201_CREATED)
async def bulk_create_sessions(
    body: BulkCreateRequest,
    user: User = Depends(require_manager),
    db: AsyncSession = Depends(get_db),
):
    """Generate sessions from templates for the coming weeks."""
    result = await db.execute(
        select(SessionTemplate)
        .where(SessionTemplate.id.in_(body.template_ids), SessionTemplate.is_active.is_(True))
        .order_by(SessionTemplate.id)
    )
    templates = list(result.scalars().all())
    if not templates:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active templates found")
    for template in templates:
        await _require_manage(db, user, template.community_id)

    sessions, errors = await bulk_create_from_templates(
        db, templates, body.weeks_ahead, user.id, start_date=body.start_date
    )
    return BulkCreateResponse(
        created=len(sessions),
        sessions=[SessionOut.model_validate(s) for s in sessions],
        errors=errors,
    )
