"""
FastAPI dependencies for authentication.

Provides ``db_session``, ``get_current_user_id`` and ``authenticated_body``
dependencies that are used across all protected routes.
"""

from __future__ import annotations

from typing import AsyncGenerator, Callable, Optional, Type, TypeVar

from fastapi import Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from auth.jwt import verify_token
from connectors.errors import Unauthenticated
from database.session import get_db_session

ModelT = TypeVar("ModelT", bound=BaseModel)

# auto_error=False so a missing header reaches our 401 envelope, not FastAPI's 403
_bearer_scheme = HTTPBearer(auto_error=False)


async def db_session(
    session: AsyncSession = Depends(get_db_session),
) -> AsyncGenerator[AsyncSession, None]:
    """Yield a DB session for route handlers."""
    yield session


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> str:
    """
    Extract and verify the Bearer token, returning the authenticated
    ``user_id`` (identity-provider subject).
    """
    if credentials is None or not credentials.credentials:
        raise Unauthenticated()
    return verify_token(credentials.credentials)


def authenticated_body(model: Type[ModelT]) -> Callable[..., ModelT]:
    """
    Dependency that parses the JSON body into ``model`` only after the
    caller is authenticated.  An empty body validates as ``{}``.
    """

    async def parse_body(
        request: Request,
        _user_id: str = Depends(get_current_user_id),
    ) -> ModelT:
        raw = await request.body()
        try:
            if not raw.strip():
                return model.model_validate({})
            return model.model_validate_json(raw)
        except ValidationError as exc:
            errors = [
                {**err, "loc": ("body", *err.get("loc", ()))}
                for err in exc.errors(include_url=False, include_context=False)
            ]
            raise RequestValidationError(errors) from exc

    return parse_body
