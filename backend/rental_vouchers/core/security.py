from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import jwt
from fastapi import Depends, HTTPException, Request

from rental_vouchers.core.settings import settings


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CurrentUser:
    id: str
    email: str
    role: str

    @property
    def is_admin(self) -> bool:
        return (self.role or "").lower() == "admin"


def _normalize_email(value: str) -> str:
    return str(value or "").strip().lower()


def _is_admin_email(email: str) -> bool:
    normalized = _normalize_email(email)
    if not normalized:
        return False
    return normalized in (settings.admin_emails or set())


def _decide_role(*, email_is_admin: bool, claim_role: str | None) -> tuple[str, str]:
    role = str(claim_role or "").strip().lower()
    if email_is_admin:
        return ("admin", "admin_emails")
    if role == "admin":
        return ("admin", "jwt_claim")
    if role:
        return (role, "jwt_claim")
    return ("user", "default")


def _get_bearer_token(request: Request) -> str:
    auth = request.headers.get("authorization") or ""
    if not auth.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = auth.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    return token


def _decode_jwt(token: str) -> dict[str, Any]:
    if not settings.jwt_secret:
        raise HTTPException(status_code=500, detail="JWT_SECRET is not configured")

    options: dict[str, Any] = {"require": ["sub"]}
    kwargs: dict[str, Any] = {}
    if settings.jwt_audience:
        kwargs["audience"] = settings.jwt_audience
    else:
        options["verify_aud"] = False

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options=options,
            **kwargs,
        )
        return dict(payload)
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid bearer token")


def get_current_user(request: Request) -> CurrentUser:
    token = _get_bearer_token(request)
    claims = _decode_jwt(token)

    user_id = str(claims.get("sub") or "").strip()
    email = str(claims.get("email") or "").strip()
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid token")

    role, reason = _decide_role(email_is_admin=_is_admin_email(email), claim_role=claims.get("role"))
    logger.debug("auth.user.resolved user_id=%s role=%s reason=%s", user_id, role, reason)
    return CurrentUser(id=user_id, email=email, role=role)


def get_optional_user(request: Request) -> CurrentUser | None:
    if not (request.headers.get("authorization") or "").strip():
        return None
    return get_current_user(request)


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user
