"""
Database helper functions — ensure parent records exist and persist data.

The workflow and client helpers are the data-access layer for the
WorkflowHub records the importer and the wider app write through; only
``create_workflow`` is reached from this service's own routes.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import CLIENT_STATUSES, Client, User, Workflow

logger = logging.getLogger(__name__)


async def ensure_user_exists(session: AsyncSession, user_id: str) -> User:
    """Return the ``User`` row, creating a bare one if it does not exist yet."""
    user = await session.get(User, user_id)
    if user is None:
        user = User(user_id=user_id, email="")
        session.add(user)
        await session.flush()
        logger.info("Created user record for %s", user_id)
    return user


# ── Workflows ──────────────────────────────────────────────────────────


def workflow_to_dict(wf: Workflow) -> Dict[str, Any]:
    return {
        "id": wf.workflow_id,
        "userId": wf.user_id,
        "title": wf.title,
        "description": wf.description or "",
        "category": wf.category,
        "tags": list(wf.tags or []),
        "steps": list(wf.steps or []),
        "isPublic": bool(wf.is_public),
        "usageCount": wf.usage_count or 0,
        "importedFrom": wf.imported_from,
        "sourceRef": wf.source_ref,
        "createdAt": wf.created_at.isoformat() if wf.created_at else None,
        "updatedAt": wf.updated_at.isoformat() if wf.updated_at else None,
    }


async def create_workflow(
    session: AsyncSession,
    *,
    user_id: str,
    title: str,
    description: str = "",
    category: str = "General",
    tags: Optional[List[str]] = None,
    steps: Optional[List[Dict[str, Any]]] = None,
    is_public: bool = False,
    imported_from: Optional[str] = None,
    source_ref: Optional[str] = None,
) -> Workflow:
    """Insert a workflow owned by ``user_id``.  The usage counter starts at 0."""
    await ensure_user_exists(session, user_id)
    wf = Workflow(
        user_id=user_id,
        title=title,
        description=description,
        category=category,
        tags=tags or [],
        steps=steps or [],
        is_public=is_public,
        usage_count=0,
        imported_from=imported_from,
        source_ref=source_ref,
    )
    session.add(wf)
    await session.flush()
    return wf


async def list_user_workflows(
    session: AsyncSession,
    user_id: str,
    *,
    limit: int = 10,
    offset: int = 0,
) -> List[Workflow]:
    result = await session.execute(
        select(Workflow)
        .where(Workflow.user_id == user_id)
        .order_by(Workflow.updated_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(result.scalars().all())


async def get_workflow_for_viewer(
    session: AsyncSession,
    workflow_id: str,
    viewer_id: Optional[str],
) -> Optional[Workflow]:
    """
    Fetch a workflow as seen by ``viewer_id``.

    Private workflows are only visible to their owner.  Every non-owner view
    of a public workflow bumps ``usage_count``.
    """
    wf = await session.get(Workflow, workflow_id)
    if wf is None:
        return None
    if wf.user_id == viewer_id:
        return wf
    if not wf.is_public:
        return None

    await session.execute(
        update(Workflow)
        .where(Workflow.workflow_id == workflow_id)
        .values(usage_count=Workflow.usage_count + 1)
    )
    await session.refresh(wf)
    return wf


# ── Clients ────────────────────────────────────────────────────────────


async def update_client_status(
    session: AsyncSession,
    client_id: str,
    provider_id: str,
    status: str,
    *,
    progress: Optional[int] = None,
    current_step: Optional[str] = None,
) -> Optional[Client]:
    """
    Move a client to ``status``.  Only the owning provider may do this.

    Returns None when the client does not exist or belongs to someone else.
    """
    if status not in CLIENT_STATUSES:
        raise ValueError(f"Invalid client status '{status}', expected one of {', '.join(CLIENT_STATUSES)}")

    client = await session.get(Client, client_id)
    if client is None or client.provider_id != provider_id:
        return None

    client.status = status
    if progress is not None:
        client.progress = max(0, min(100, int(progress)))
    if current_step is not None:
        client.current_step = current_step
    await session.flush()
    return client
