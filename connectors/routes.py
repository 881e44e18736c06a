"""
Consent routes — start consent, exchange code, redirect callback,
status, disconnect.

Route prefix: /api/google
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.dependencies import authenticated_body, db_session, get_current_user_id
from config.settings import config
from connectors.consent import ConsentFlow
from connectors.errors import IntegrationError, MissingAccessToken, StateMismatch
from connectors.google_client import GoogleClientFactory
from utils.schemas import AuthUrlData, CodeExchangeRequest, TokenSummary, envelope

logger = logging.getLogger(__name__)

router = APIRouter(tags=["google-consent"])


def get_consent_flow() -> ConsentFlow:
    return ConsentFlow(config.google_oauth())


def get_client_factory() -> GoogleClientFactory:
    return GoogleClientFactory(config.google_oauth())


def _dashboard_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(url=f"{config.app_url}/dashboard?{urlencode(params)}", status_code=302)


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/auth")
async def start_consent(
    user_id: str = Depends(get_current_user_id),
    flow: ConsentFlow = Depends(get_consent_flow),
) -> Dict[str, Any]:
    """
    Get the Google consent URL.

    Frontend should send the user there; Google comes back to the
    callback (or the frontend posts the code to ``POST /auth``).
    """
    auth_url = flow.begin_consent(user_id)
    return envelope(AuthUrlData(auth_url=auth_url).model_dump(by_alias=True))


@router.post("/auth")
async def exchange_code(
    user_id: str = Depends(get_current_user_id),
    body: CodeExchangeRequest = Depends(authenticated_body(CodeExchangeRequest)),
    session: AsyncSession = Depends(db_session),
    flow: ConsentFlow = Depends(get_consent_flow),
) -> Dict[str, Any]:
    """Exchange an authorization code for the current caller."""
    _, tokens = await flow.complete_consent(
        body.code, body.state, expected_user_id=user_id, db_session=session
    )
    await session.commit()
    summary = TokenSummary(scope=tokens.scope, expiry_date=tokens.expiry_date)
    return envelope(summary.model_dump(by_alias=True))


@router.delete("/auth")
async def disconnect_google(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    flow: ConsentFlow = Depends(get_consent_flow),
) -> Dict[str, Any]:
    """Revoke and forget the caller's Google tokens."""
    await flow.disconnect(user_id, db_session=session)
    await session.commit()
    return envelope(message="Google account disconnected")


@router.get("/status")
async def google_status(
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(db_session),
    flow: ConsentFlow = Depends(get_consent_flow),
) -> Dict[str, Any]:
    return envelope(await flow.connection_status(user_id, db_session=session))


@router.get("/callback")
async def oauth_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    session: AsyncSession = Depends(db_session),
    flow: ConsentFlow = Depends(get_consent_flow),
) -> RedirectResponse:
    """
    OAuth callback — Google redirects here after consent.

    There is no caller session on this request; the signed ``state`` names
    the user.  Always answers with a redirect to the dashboard.
    """
    if error:
        logger.info("Google consent declined or failed: %s", error)
        return _dashboard_redirect(error="google_auth_failed")
    if not code or not state:
        return _dashboard_redirect(error="missing_parameters")

    try:
        user_id, _ = await flow.complete_consent(code, state, db_session=session)
    except StateMismatch as exc:
        logger.warning("Callback state rejected: %s", exc.detail)
        return _dashboard_redirect(error="google_auth_failed")
    except MissingAccessToken:
        return _dashboard_redirect(error="no_access_token")
    except IntegrationError as exc:
        logger.error("Callback code exchange failed: %s (%s)", exc.message, exc.detail)
        return _dashboard_redirect(error="callback_error")
    except SQLAlchemyError:
        logger.exception("Failed to save Google tokens from callback")
        await session.rollback()
        return _dashboard_redirect(error="failed_to_save_tokens")
    except Exception:
        logger.exception("Unexpected error in Google callback")
        return _dashboard_redirect(error="callback_error")

    try:
        await session.commit()
    except SQLAlchemyError:
        logger.exception("Failed to save Google tokens for user %s", user_id)
        await session.rollback()
        return _dashboard_redirect(error="failed_to_save_tokens")

    logger.info("Google connected via callback for user %s", user_id)
    return _dashboard_redirect(success="google_connected")
