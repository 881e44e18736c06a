"""
Pydantic request/response schemas for the integrations API.
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from workflows.drafts import ImportSource


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


# ═══════════════════════════════════════════════════════════════════════════════
# Consent
# ═══════════════════════════════════════════════════════════════════════════════


class CodeExchangeRequest(BaseModel):
    """Body of ``POST /api/google/auth``."""

    code: str = Field(..., min_length=1)
    state: str = Field(..., min_length=1)


class AuthUrlData(_CamelModel):
    auth_url: str


class TokenSummary(_CamelModel):
    scope: str = ""
    expiry_date: int


# ═══════════════════════════════════════════════════════════════════════════════
# Import
# ═══════════════════════════════════════════════════════════════════════════════


class ImportRequest(_CamelModel):
    """Body of ``POST /api/google/import``."""

    import_types: List[ImportSource] = Field(..., min_length=1)

    def sources(self) -> List[ImportSource]:
        """Requested sources, duplicates dropped, order kept."""
        return list(dict.fromkeys(self.import_types))


PreviewType = Literal["all", "calendar", "gmail", "drive"]


def preview_sources(kind: Optional[str]) -> List[ImportSource]:
    if kind in (None, "", "all"):
        return list(ImportSource)
    return [ImportSource(kind)]


def envelope(data: Optional[Dict[str, Any]] = None, **extra: Any) -> Dict[str, Any]:
    """Success envelope: ``{"success": true, ...}``."""
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    body.update(extra)
    return body
