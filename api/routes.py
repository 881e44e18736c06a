"""
REST API routes — Google resource listings, connection test, and the
Google → workflow importers.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.errors import error_body
from auth.dependencies import authenticated_body, db_session, get_current_user_id
from connectors.errors import IntegrationError
from connectors.fetchers import fetch_calendar_events, fetch_drive_files, fetch_gmail_labels
from connectors.google_client import GoogleClientFactory
from connectors.routes import get_client_factory
from connectors.token_store import GoogleTokens
from utils.schemas import ImportRequest, PreviewType, envelope, preview_sources
from workflows.drafts import ImportSource
from workflows.importer import WorkflowImporter, preview_import, session_persister

logger = logging.getLogger(__name__)

router = APIRouter(tags=["google-resources"])
import_router = APIRouter(tags=["google-import"])

# ── Resource listings (prefix /api/integrations/google) ────────────────


@router.get("/calendar/events")
async def list_calendar_events(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    factory: GoogleClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    service = await factory.build(user_id, "calendar", "v3", db_session=session)
    events = await fetch_calendar_events(service)
    return envelope(events=[e.to_api() for e in events], count=len(events))


@router.get("/drive/files")
async def list_drive_files(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    factory: GoogleClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    service = await factory.build(user_id, "drive", "v3", db_session=session)
    files = await fetch_drive_files(service)
    return envelope(files=[f.to_api() for f in files], count=len(files))


@router.get("/gmail/labels")
async def list_gmail_labels(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    factory: GoogleClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    service = await factory.build(user_id, "gmail", "v1", db_session=session)
    labels = await fetch_gmail_labels(service)
    return envelope(labels=[label.to_api() for label in labels], count=len(labels))


# ── Connection test ────────────────────────────────────────────────────


async def _check_service(name: str, check: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
    """Run one service check; failures are reported, not raised."""
    try:
        result = await check()
    except IntegrationError as exc:
        logger.info("Google %s check failed: %s", name, exc.detail or exc.message)
        return {"success": False, "error": exc.message}
    return {"success": True, **result}


def _token_info(tokens: GoogleTokens) -> Dict[str, Any]:
    return {
        "hasAccessToken": bool(tokens.access_token),
        "hasRefreshToken": bool(tokens.refresh_token),
        "scope": tokens.scopes,
        "expiryDate": tokens.expiry_date,
        "expired": tokens.is_expired(),
    }


@router.get("/test")
async def test_connection(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    factory: GoogleClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    """
    Check the stored tokens against each Google product.

    Every service is checked independently, so one missing scope does not
    hide the others.
    """
    tokens = await factory.fresh_tokens(user_id, db_session=session)

    async def user_info() -> Dict[str, Any]:
        info = await factory.connector.get_user_info(tokens.access_token)
        return {"email": info.get("email"), "name": info.get("name")}

    async def drive() -> Dict[str, Any]:
        service = await factory.build_from_tokens(tokens, "drive", "v3")
        return {"count": len(await fetch_drive_files(service, page_size=5))}

    async def calendar() -> Dict[str, Any]:
        service = await factory.build_from_tokens(tokens, "calendar", "v3")
        return {"count": len(await fetch_calendar_events(service))}

    async def gmail() -> Dict[str, Any]:
        service = await factory.build_from_tokens(tokens, "gmail", "v1")
        labels = await fetch_gmail_labels(service)
        return {"customLabels": sum(1 for label in labels if label.type == "user")}

    tests = {
        "userInfo": await _check_service("userinfo", user_info),
        "drive": await _check_service("drive", drive),
        "calendar": await _check_service("calendar", calendar),
        "gmail": await _check_service("gmail", gmail),
    }
    return envelope(tokenInfo=_token_info(tokens), tests=tests)


# ── Importers (prefix /api/google) ─────────────────────────────────────


async def _import(
    source: ImportSource,
    user_id: str,
    session: AsyncSession,
    factory: GoogleClientFactory,
) -> Dict[str, Any]:
    importer = WorkflowImporter(session_persister(session))
    result = await importer.import_from(source, user_id, factory=factory, db_session=session)
    await session.commit()
    return result.to_api()


@import_router.post("/calendar-workflows")
async def import_calendar_workflows(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    factory: GoogleClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    """Create one workflow per upcoming calendar event."""
    return await _import(ImportSource.CALENDAR, user_id, session, factory)


@import_router.post("/gmail-workflows")
async def import_gmail_workflows(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    factory: GoogleClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    """Create one workflow per user-defined Gmail label."""
    return await _import(ImportSource.GMAIL, user_id, session, factory)


@import_router.post("/drive-workflows")
async def import_drive_workflows(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    factory: GoogleClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    """Create one workflow per recent Drive file."""
    return await _import(ImportSource.DRIVE, user_id, session, factory)


@import_router.post("/import")
async def bulk_import(
    user_id: str = Depends(get_current_user_id),
    body: ImportRequest = Depends(authenticated_body(ImportRequest)),
    session: AsyncSession = Depends(db_session),
    factory: GoogleClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    """
    Import several sources in one call.

    The connection is checked (and refreshed) once up front, so a missing
    or unusable connection fails the request before anything is written.
    After that, each source reports its own failure in its slot.
    """
    await factory.fresh_tokens(user_id, db_session=session)

    results: Dict[str, Any] = {}
    total = 0
    for source in body.sources():
        try:
            result = await _import(source, user_id, session, factory)
        except IntegrationError as exc:
            logger.warning("Import of %s failed for user %s: %s", source.value, user_id, exc.detail or exc.message)
            results[source.value] = error_body(exc)
            continue
        results[source.value] = result
        total += result["importedCount"]
    return envelope(results=results, totalImported=total)


@import_router.get("/import")
async def import_preview(
    type: PreviewType = Query("all"),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    factory: GoogleClientFactory = Depends(get_client_factory),
) -> Dict[str, Any]:
    """Show what an import would create.  Nothing is persisted."""
    data: Dict[str, Any] = {}
    for source in preview_sources(type):
        data[source.value] = await preview_import(source, user_id, factory=factory, db_session=session)
    return envelope(data)
