"""
Maps imported Google records to workflow drafts.

A draft is a private workflow owned by the importing user, waiting for the
owner to review it.  Records that cannot be mapped raise ``RecordSkipped``
with a short reason code.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from connectors.fetchers import CalendarEvent, DriveFile, MailLabel


class ImportSource(str, Enum):
    CALENDAR = "calendar"
    GMAIL = "gmail"
    DRIVE = "drive"


SOURCE_TAGS = {
    ImportSource.CALENDAR: "google-calendar",
    ImportSource.GMAIL: "gmail",
    ImportSource.DRIVE: "google-drive",
}

RESERVED_LABEL_NAMES = {"IMPORTANT", "STARRED", "TRASH"}

GOOGLE_DOC = "application/vnd.google-apps.document"
GOOGLE_SHEET = "application/vnd.google-apps.spreadsheet"
GOOGLE_SLIDES = "application/vnd.google-apps.presentation"


class WorkflowStep(BaseModel):
    id: str
    title: str
    description: str = ""
    type: str = "action"  # "action" | "condition" | "loop" | "delay" | "integration"
    config: Dict[str, Any] = Field(default_factory=dict)
    position: Dict[str, int] = Field(default_factory=dict)
    connections: List[str] = Field(default_factory=list)


class WorkflowDraft(BaseModel):
    user_id: str
    title: str
    description: str = ""
    category: str = "General"
    tags: List[str] = Field(default_factory=list)
    steps: List[WorkflowStep] = Field(default_factory=list)
    is_public: bool = False
    imported_from: ImportSource
    source_ref: str


class RecordSkipped(Exception):
    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


def _steps(*specs: Tuple[str, str, str, Dict[str, Any]]) -> List[WorkflowStep]:
    """Lay out (title, description, type, config) specs left to right."""
    prefix = uuid.uuid4().hex[:12]
    return [
        WorkflowStep(
            id=f"step_{prefix}_{n}",
            title=title,
            description=description,
            type=step_type,
            config=step_config,
            position={"x": 100 + 200 * (n - 1), "y": 100},
        )
        for n, (title, description, step_type, step_config) in enumerate(specs, start=1)
    ]


def _display(value: Optional[str]) -> str:
    return (value or "").strip()


def _tags(source: ImportSource, *extra: str) -> List[str]:
    return ["imported", SOURCE_TAGS[source], *extra]


# ── Calendar ───────────────────────────────────────────────────────────


def event_duration(start: Dict[str, Any], end: Dict[str, Any]) -> str:
    if not start.get("dateTime") or not end.get("dateTime"):
        return "Unknown duration"
    try:
        began = datetime.fromisoformat(start["dateTime"].replace("Z", "+00:00"))
        ended = datetime.fromisoformat(end["dateTime"].replace("Z", "+00:00"))
    except ValueError:
        return "Unknown duration"
    minutes = max(0, int((ended - began).total_seconds() // 60))
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes}m" if hours else f"{minutes}m"


def draft_from_event(event: CalendarEvent, user_id: str) -> WorkflowDraft:
    summary = _display(event.summary)
    if not summary:
        raise RecordSkipped("missing_title")
    return WorkflowDraft(
        user_id=user_id,
        title=f"{summary} Workflow",
        description=f"Imported calendar workflow: {event.description or 'Recurring event or client meeting'}",
        category="Meeting Management",
        tags=_tags(ImportSource.CALENDAR, "meetings"),
        steps=_steps(
            ("Pre-Meeting Preparation", "Prepare materials and agenda", "action",
             {"preparation_time": "30 minutes"}),
            ("Meeting/Event", summary, "action",
             {"googleEventId": event.id,
              "duration": event_duration(event.start, event.end),
              "attendees": list(event.attendees)}),
            ("Follow-up Actions", "Send follow-up and action items", "action",
             {"action": "send_followup"}),
        ),
        imported_from=ImportSource.CALENDAR,
        source_ref=event.id,
    )


# ── Gmail ──────────────────────────────────────────────────────────────


def draft_from_label(label: MailLabel, user_id: str) -> WorkflowDraft:
    name = _display(label.name)
    if not name:
        raise RecordSkipped("missing_title")
    if label.type != "user" or name in RESERVED_LABEL_NAMES:
        raise RecordSkipped("system_label")
    return WorkflowDraft(
        user_id=user_id,
        title=f"{name} Email Workflow",
        description=f"Email management workflow for {name} category",
        category="Email Management",
        tags=_tags(ImportSource.GMAIL, "email-automation"),
        steps=_steps(
            ("Email Triage", f"Organize emails with label: {name}", "condition",
             {"gmailLabelId": label.id, "condition": "email_received"}),
            ("Process Email", "Review and respond to emails", "action",
             {"action": "process_email"}),
            ("Archive or Follow-up", "Complete email processing", "condition",
             {"condition": "email_processed"}),
        ),
        imported_from=ImportSource.GMAIL,
        source_ref=label.id,
    )


# ── Drive ──────────────────────────────────────────────────────────────


def draft_from_file(file: DriveFile, user_id: str) -> WorkflowDraft:
    name = _display(file.name)
    if not name:
        raise RecordSkipped("missing_title")

    if file.mime_type == GOOGLE_DOC:
        kind, category = "content-creation", "Content Creation"
        steps = _steps(
            ("Document Review", f"Review and edit: {name}", "action",
             {"googleDocId": file.id, "action": "review_document"}),
            ("Client Approval", "Get client feedback and approval", "condition",
             {"condition": "client_approved"}),
        )
    elif file.mime_type == GOOGLE_SHEET:
        kind, category = "data-management", "Data Processing"
        steps = _steps(
            ("Data Collection", f"Update spreadsheet: {name}", "action",
             {"googleSheetId": file.id, "action": "update_data"}),
            ("Generate Report", "Create summary report from data", "action",
             {"action": "generate_report"}),
        )
    elif file.mime_type == GOOGLE_SLIDES:
        kind, category = "presentation", "Marketing"
        steps = _steps(
            ("Slide Preparation", f"Prepare slides: {name}", "action",
             {"googleSlideId": file.id, "action": "prepare_slides"}),
        )
    else:
        kind, category = "document", "General"
        steps = _steps(
            ("File Review", f"Review file: {name}", "action",
             {"googleFileId": file.id, "action": "review_file"}),
        )

    return WorkflowDraft(
        user_id=user_id,
        title=name,
        description=file.description or f"Imported from Google Drive - {kind}",
        category=category,
        tags=_tags(ImportSource.DRIVE, kind),
        steps=steps,
        imported_from=ImportSource.DRIVE,
        source_ref=file.id,
    )


# ── Batch ──────────────────────────────────────────────────────────────


def build_drafts(
    source: ImportSource,
    user_id: str,
    records: Sequence[Any],
) -> Tuple[List[Tuple[str, WorkflowDraft]], List[Dict[str, str]]]:
    """
    Map a batch of records.

    Returns ``(drafts, skipped)``: ``drafts`` pairs each record id with its
    draft, ``skipped`` lists ``{"recordId", "reason"}``.  Instances of one
    recurring calendar series collapse into the first one in the batch.
    """
    source = ImportSource(source)
    drafts: List[Tuple[str, WorkflowDraft]] = []
    skipped: List[Dict[str, str]] = []
    seen_series: set[str] = set()

    for record in records:
        try:
            if source is ImportSource.CALENDAR:
                series = record.recurring_event_id
                if series and series in seen_series:
                    raise RecordSkipped("duplicate_series")
                draft = draft_from_event(record, user_id)
                if series:
                    seen_series.add(series)
            elif source is ImportSource.GMAIL:
                draft = draft_from_label(record, user_id)
            else:
                draft = draft_from_file(record, user_id)
        except RecordSkipped as skip:
            skipped.append({"recordId": record.id, "reason": skip.reason})
            continue
        drafts.append((record.id, draft))

    return drafts, skipped
