from __future__ import annotations

import logging
from dataclasses import dataclass

from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from portal.entra import EntraTokenValidator, ValidationError
from portal.models.security import User
from portal.security.config import SecurityConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Authenticated:
    user: User
    token: str
    token_roles: frozenset[str] = frozenset()


def extract_bearer_token(request: Request, config: SecurityConfig, allow_query_token: bool = False) -> str | None:
    """
    Read `Authorization: Bearer <token>`; on routes that allow it, fall back
    to the `access_token` query parameter. Returns None when neither is present.
    """

    header_name = config.auth.authorization_header
    bearer_prefix = config.auth.bearer_prefix

    raw = request.headers.get(header_name)
    if not raw:
        if allow_query_token:
            token = (request.query_params.get(config.auth.query_token_param) or "").strip()
            if token:
                return token
        logger.info("Missing Authorization header (auth required) path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{bearer_prefix} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Expected '{bearer_prefix} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    if not token:
        logger.warning("Empty bearer token path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {header_name}. Missing token after '{bearer_prefix}'.",
        )
    return token


def _user_query():
    return select(User).options(selectinload(User.roles))


def authenticate(
    db: Session,
    token: str,
    config: SecurityConfig,
    validator: EntraTokenValidator | None = None,
) -> Authenticated:
    """
    Map a bearer token to a portal user.

    Expired or locked-out users still authenticate; the permission resolver
    gives them an empty catalog. Unknown users are rejected here.
    """

    if config.auth.provider == "entra":
        if validator is None:
            raise RuntimeError("Entra auth configured but no token validator available")
        try:
            claims = validator.validate(token)
        except ValidationError as exc:
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
        user = db.execute(_user_query().where(User.entra_object_id == claims.object_id)).scalar_one_or_none()
        token_roles = frozenset(claims.roles)
    else:
        try:
            user_id = int(token)
        except ValueError as exc:
            logger.warning("Bearer token not an integer user id (dummy auth)")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid bearer token (dummy auth expects an integer user id).",
            ) from exc
        user = db.execute(_user_query().where(User.id == user_id)).scalar_one_or_none()
        token_roles = frozenset()

    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return Authenticated(user=user, token=token, token_roles=token_roles)
