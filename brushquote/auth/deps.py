# brushquote/auth/deps.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt as pyjwt
from fastapi import Depends, Header, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from brushquote.auth.jwt import decode_token
from brushquote.auth.portal_tokens import PortalTokenService
from brushquote.core.settings import settings

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class StaffUser:
    user_id: str
    tenant_id: str
    email: str = ""


@dataclass(frozen=True)
class PortalSession:
    client_id: str
    tenant_id: str


def get_current_staff(
    creds: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> StaffUser:
    if not creds or not creds.credentials:
        raise HTTPException(status_code=401, detail="Not authenticated")

    try:
        payload = decode_token(creds.credentials)
    except pyjwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")

    user_id = payload.get("sub")
    tenant_id = payload.get("tenant_id")
    if not user_id or not tenant_id:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    return StaffUser(user_id=str(user_id), tenant_id=str(tenant_id), email=payload.get("email") or "")


def get_portal_tokens() -> PortalTokenService:
    return PortalTokenService(settings.PORTAL_TOKEN_SECRET)


def get_portal_session(
    x_portal_token: Optional[str] = Header(default=None),
    tokens: PortalTokenService = Depends(get_portal_tokens),
) -> PortalSession:
    if not x_portal_token:
        raise HTTPException(status_code=401, detail="Missing portal token")
    try:
        payload = tokens.verify(x_portal_token, max_age_seconds=settings.PORTAL_TOKEN_MAX_AGE_SECONDS)
    except ValueError as e:
        raise HTTPException(status_code=401, detail=str(e))

    client_id = payload.get("client_id")
    tenant_id = payload.get("tenant_id")
    if not client_id or not tenant_id:
        raise HTTPException(status_code=401, detail="Invalid portal token payload")
    return PortalSession(client_id=str(client_id), tenant_id=str(tenant_id))
