"""
Read-only adapters over Google Calendar, Drive and Gmail.

Each fetcher calls one listing endpoint with a bounded window and maps the
response into a small record type.  The ``googleapiclient`` calls are
synchronous, so ``execute()`` runs in a worker thread.

A 401 from Google becomes ``ReauthRequired``; any other API error becomes
``UpstreamFailure``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from google.auth.exceptions import RefreshError
from googleapiclient.errors import HttpError
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from connectors.errors import ReauthRequired, UpstreamFailure

logger = logging.getLogger(__name__)

CALENDAR_DAYS_BACK = 7
CALENDAR_DAYS_FORWARD = 30
CALENDAR_MAX_RESULTS = 50
DRIVE_PAGE_SIZE = 50


# ── Record types ───────────────────────────────────────────────────────


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_api(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class CalendarEvent(_Record):
    id: str
    summary: Optional[str] = None
    description: Optional[str] = None
    location: Optional[str] = None
    status: Optional[str] = None
    start: Dict[str, Any] = Field(default_factory=dict)
    end: Dict[str, Any] = Field(default_factory=dict)
    attendees: List[str] = Field(default_factory=list)
    recurring_event_id: Optional[str] = None


class DriveFile(_Record):
    id: str
    name: Optional[str] = None
    mime_type: Optional[str] = None
    size: Optional[str] = None
    modified_time: Optional[str] = None
    web_view_link: Optional[str] = None
    owners: List[str] = Field(default_factory=list)
    description: Optional[str] = None


class MailLabel(_Record):
    id: str
    name: Optional[str] = None
    type: Optional[str] = None
    messages_total: Optional[int] = None
    messages_unread: Optional[int] = None
    color: Optional[Dict[str, Any]] = None


# ── Error classification ───────────────────────────────────────────────


def _http_status(exc: HttpError) -> Optional[int]:
    status = getattr(exc, "status_code", None)
    if status is None and getattr(exc, "resp", None) is not None:
        status = getattr(exc.resp, "status", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


async def _execute(request: Any, what: str) -> Dict[str, Any]:
    try:
        return await asyncio.to_thread(request.execute) or {}
    except HttpError as exc:
        status = _http_status(exc)
        if status == 401:
            logger.warning("Google rejected credentials while fetching %s", what)
            raise ReauthRequired(detail=f"{what}: HTTP 401") from exc
        logger.error("Error fetching %s: %s", what, exc)
        raise UpstreamFailure(f"Failed to fetch {what}", detail=str(exc)) from exc
    except RefreshError as exc:
        logger.warning("Credential refresh failed while fetching %s: %s", what, exc)
        raise ReauthRequired(detail=str(exc)) from exc


# ── Calendar ───────────────────────────────────────────────────────────


def _event_time(value: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    value = value or {}
    return {k: value[k] for k in ("dateTime", "date", "timeZone") if k in value}


async def fetch_calendar_events(service: Any, *, now: Optional[datetime] = None) -> List[CalendarEvent]:
    """Primary-calendar events from a week ago to a month ahead."""
    now = now or datetime.now(timezone.utc)
    request = service.events().list(
        calendarId="primary",
        timeMin=(now - timedelta(days=CALENDAR_DAYS_BACK)).isoformat(),
        timeMax=(now + timedelta(days=CALENDAR_DAYS_FORWARD)).isoformat(),
        maxResults=CALENDAR_MAX_RESULTS,
        singleEvents=True,
        orderBy="startTime",
    )
    data = await _execute(request, "calendar events")
    return [
        CalendarEvent(
            id=item.get("id", ""),
            summary=item.get("summary"),
            description=item.get("description"),
            location=item.get("location"),
            status=item.get("status"),
            start=_event_time(item.get("start")),
            end=_event_time(item.get("end")),
            attendees=[a["email"] for a in item.get("attendees", []) if a.get("email")],
            recurring_event_id=item.get("recurringEventId"),
        )
        for item in data.get("items", [])
    ]


# ── Drive ──────────────────────────────────────────────────────────────


async def fetch_drive_files(service: Any, *, page_size: int = DRIVE_PAGE_SIZE) -> List[DriveFile]:
    """The most recently modified Drive files."""
    request = service.files().list(
        pageSize=page_size,
        orderBy="modifiedTime desc",
        fields="nextPageToken, files(id, name, mimeType, size, modifiedTime, webViewLink, owners, description)",
    )
    data = await _execute(request, "drive files")
    return [
        DriveFile(
            id=item.get("id", ""),
            name=item.get("name"),
            mime_type=item.get("mimeType"),
            size=item.get("size"),
            modified_time=item.get("modifiedTime"),
            web_view_link=item.get("webViewLink"),
            owners=[o["displayName"] for o in item.get("owners", []) if o.get("displayName")],
            description=item.get("description"),
        )
        for item in data.get("files", [])
    ]


# ── Gmail ──────────────────────────────────────────────────────────────


def sort_labels(labels: List[MailLabel]) -> List[MailLabel]:
    """System labels first, then user labels; each group by name (stable)."""
    return sorted(labels, key=lambda label: (label.type != "system", label.name or ""))


async def fetch_gmail_labels(service: Any) -> List[MailLabel]:
    request = service.users().labels().list(userId="me")
    data = await _execute(request, "gmail labels")
    labels = [
        MailLabel(
            id=item.get("id", ""),
            name=item.get("name"),
            type=item.get("type"),
            messages_total=item.get("messagesTotal"),
            messages_unread=item.get("messagesUnread"),
            color=item.get("color"),
        )
        for item in data.get("labels", [])
    ]
    return sort_labels(labels)
