from __future__ import annotations

import secrets
from typing import Optional

from fastapi import HTTPException, Request

from settings import settings


def get_auth_token(request: Request) -> Optional[str]:
    auth = request.headers.get("Authorization", "")
    if auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1].strip()
    return None


def require_cms_editor(request: Request) -> None:
    needed = settings.cms_admin_token
    if not needed:
        # No token configured -> allow all (useful for local dev).
        return
    token = get_auth_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Not authenticated")
    if not secrets.compare_digest(token, needed):
        raise HTTPException(status_code=403, detail="Forbidden")


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded.strip():
        return forwarded.split(",", 1)[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"
