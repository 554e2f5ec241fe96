from __future__ import annotations

import logging

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from portal.access.identity import Identity
from portal.db.session import get_db
from portal.models.security import User
from portal.security.auth import authenticate, extract_bearer_token
from portal.security.config import SecurityConfig
from portal.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def get_security_config(request: Request) -> SecurityConfig:
    config = getattr(request.app.state, "security_config", None)
    if config is None:
        raise RuntimeError("Security config not loaded. Did app startup run?")
    return config


def get_current_user(request: Request) -> User:
    user = getattr(request.state, "user", None)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return user


def get_identity(request: Request) -> Identity:
    identity = getattr(request.state, "identity", None)
    if identity is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return identity


def get_access_token(request: Request) -> str:
    token = getattr(request.state, "access_token", None)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    return token


def enforce_security(
    request: Request,
    config: SecurityConfig = Depends(get_security_config),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db, use_cache=False),
) -> None:
    """
    Global security dependency, driven by config/security_config.yaml.

    On authenticated routes it leaves behind, on request.state:
    - user: the portal User row
    - identity: the explicit Identity every resolver call takes
    - access_token: the raw bearer token (for SSRS iframe URLs; never logged)
    """

    rule = config.match(request.url.path, request.method)
    if not rule.auth_required:
        return

    token = extract_bearer_token(request, config, allow_query_token=rule.allow_query_token)
    if token is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing bearer token")

    validator = getattr(request.app.state, "token_validator", None)
    authenticated = authenticate(db, token, config, validator)
    user = authenticated.user

    identity = Identity.from_user(user, settings.admin_role, extra_roles=authenticated.token_roles)
    request.state.user = user
    request.state.identity = identity
    request.state.access_token = authenticated.token

    if rule.required_roles and (identity.is_blocked or not rule.roles_satisfied(identity.roles)):
        logger.info("Role check failed user_id=%s path=%s", user.id, request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Insufficient role. Required one of: {sorted(rule.required_roles)}",
        )
