import os
from typing import Any, Dict

import jwt
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from taskboard_api.db import atomic, get_db
from taskboard_api.models import GLOBAL_ROLES, User


def _get_required_env(name: str) -> str:
    value = os.environ.get(name, "").strip()
    if not value:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Missing required environment variable: {name}",
        )
    return value


def _issuer() -> str:
    return os.environ.get("TASKBOARD_JWT_ISSUER", "taskboard")


def _audience() -> str:
    return os.environ.get("TASKBOARD_JWT_AUDIENCE", "taskboard-api")


def decode_token(token: str) -> Dict[str, Any]:
    secret = _get_required_env("TASKBOARD_JWT_SECRET")
    claims = jwt.decode(
        token,
        secret,
        algorithms=["HS256"],
        issuer=_issuer(),
        audience=_audience(),
        options={"require": ["exp", "sub"]},
    )
    if claims.get("roles") is None:
        claims["roles"] = ["member"]
    return claims


def require_claims(request: Request) -> Dict[str, Any]:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
        )
    token = auth_header.replace("Bearer ", "", 1).strip()
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
        )
    try:
        claims = decode_token(token)
    except jwt.PyJWTError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {exc}",
        ) from exc
    request.state.claims = claims
    return claims


def _role_from_claims(claims: Dict[str, Any]) -> str:
    """Highest global role named in the token; unknown role names are ignored."""
    roles = claims.get("roles") or []
    if isinstance(roles, str):
        roles = [roles]
    for role in GLOBAL_ROLES:
        if role in roles:
            return role
    return "member"


def resolve_user(db: Session, claims: Dict[str, Any]) -> User:
    """Get-or-create the user row for a token subject, refreshing its global role from the claims."""
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Token missing subject")
    email = claims.get("email") or None
    username = claims.get("preferred_username") or (email.split("@")[0] if email else subject)
    role = _role_from_claims(claims)
    user = db.execute(select(User).where(User.subject == subject)).scalar_one_or_none()
    if user and user.role == role and (not email or user.email == email):
        return user
    with atomic(db):
        if user is None:
            user = User(subject=subject, username=username[:150], email=email, role=role)
            db.add(user)
        else:
            user.role = role
            if email:
                user.email = email
    db.refresh(user)
    return user


def require_user(request: Request, db: Session = Depends(get_db)) -> User:
    claims = require_claims(request)
    user = resolve_user(db, claims)
    request.state.user = user
    return user
