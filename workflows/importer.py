"""
Workflow importer — Google records → persisted workflow drafts.

Every call is additive: nothing is compared against earlier imports, so
importing the same calendar twice creates the drafts twice.

Each draft is persisted on its own.  A failure for one draft is recorded in
``ImportResult.failed`` and the remaining drafts are still attempted;
nothing is rolled back across drafts.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Sequence

from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from connectors.fetchers import fetch_calendar_events, fetch_drive_files, fetch_gmail_labels
from connectors.google_client import GoogleClientFactory
from database.helpers import create_workflow, workflow_to_dict
from workflows.drafts import ImportSource, WorkflowDraft, build_drafts

logger = logging.getLogger(__name__)

PersistFn = Callable[[WorkflowDraft], Awaitable[Dict[str, Any]]]

# source → (api, version, fetcher)
_SOURCE_APIS = {
    ImportSource.CALENDAR: ("calendar", "v3", fetch_calendar_events),
    ImportSource.GMAIL: ("gmail", "v1", fetch_gmail_labels),
    ImportSource.DRIVE: ("drive", "v3", fetch_drive_files),
}


class ImportResult(BaseModel):
    source: ImportSource
    total_seen: int = 0
    imported_count: int = 0
    workflows: List[Dict[str, Any]] = Field(default_factory=list)
    skipped: List[Dict[str, str]] = Field(default_factory=list)
    failed: List[Dict[str, str]] = Field(default_factory=list)

    def to_api(self) -> Dict[str, Any]:
        return {
            "success": True,
            "source": self.source.value,
            "totalSeen": self.total_seen,
            "importedCount": self.imported_count,
            "workflows": self.workflows,
            "skipped": self.skipped,
            "failed": self.failed,
        }


def session_persister(session: AsyncSession) -> PersistFn:
    """Persist each draft inside its own SAVEPOINT on ``session``."""

    async def persist(draft: WorkflowDraft) -> Dict[str, Any]:
        async with session.begin_nested():
            wf = await create_workflow(
                session,
                user_id=draft.user_id,
                title=draft.title,
                description=draft.description,
                category=draft.category,
                tags=draft.tags,
                steps=[step.model_dump() for step in draft.steps],
                is_public=draft.is_public,
                imported_from=draft.imported_from.value,
                source_ref=draft.source_ref,
            )
        return workflow_to_dict(wf)

    return persist


async def fetch_records(
    source: ImportSource,
    user_id: str,
    *,
    factory: GoogleClientFactory,
    db_session: AsyncSession,
) -> List[Any]:
    """Fetch the normalised records for ``source`` with the user's credentials."""
    api, version, fetcher = _SOURCE_APIS[ImportSource(source)]
    service = await factory.build(user_id, api, version, db_session=db_session)
    return await fetcher(service)


class WorkflowImporter:
    """Turns fetched records into workflows via a persistence callable."""

    def __init__(self, persist: PersistFn):
        self._persist = persist

    async def import_records(
        self,
        source: ImportSource,
        user_id: str,
        records: Sequence[Any],
    ) -> ImportResult:
        source = ImportSource(source)
        drafts, skipped = build_drafts(source, user_id, records)
        result = ImportResult(source=source, total_seen=len(records), skipped=skipped)

        for record_id, draft in drafts:
            try:
                workflow = await self._persist(draft)
            except Exception as exc:
                logger.error(
                    "Failed to save %s draft %r for user %s: %s",
                    source.value, draft.title, user_id, exc,
                )
                result.failed.append({"recordId": record_id, "title": draft.title, "error": "Failed to save workflow"})
                continue
            result.workflows.append(workflow)

        result.imported_count = len(result.workflows)
        logger.info(
            "Imported %d/%d %s records for user %s (%d skipped, %d failed)",
            result.imported_count, result.total_seen, source.value, user_id,
            len(result.skipped), len(result.failed),
        )
        return result

    async def import_from(
        self,
        source: ImportSource,
        user_id: str,
        *,
        factory: GoogleClientFactory,
        db_session: AsyncSession,
    ) -> ImportResult:
        records = await fetch_records(source, user_id, factory=factory, db_session=db_session)
        return await self.import_records(source, user_id, records)


async def preview_import(
    source: ImportSource,
    user_id: str,
    *,
    factory: GoogleClientFactory,
    db_session: AsyncSession,
) -> Dict[str, Any]:
    """What an import would create, without persisting anything."""
    records = await fetch_records(source, user_id, factory=factory, db_session=db_session)
    drafts, skipped = build_drafts(source, user_id, records)
    return {
        "count": len(drafts),
        "skipped": len(skipped),
        "items": [
            {
                "title": draft.title,
                "description": draft.description,
                "category": draft.category,
                "steps": len(draft.steps),
            }
            for _, draft in drafts
        ],
    }
