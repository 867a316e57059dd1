"""Request-scoped identity dependencies shared by the API routers."""
from __future__ import annotations

import os
from typing import Any, Optional

from fastapi import Cookie, Depends, HTTPException, status

try:
    from backend import app_context
except ModuleNotFoundError as exc:
    if exc.name != "backend":
        raise
    import app_context  # type: ignore[no-redef]

_SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")


def get_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Any:
    return app_context.get_current_user(session_token=session_token)


def get_optional_current_user(
    session_token: Optional[str] = Cookie(None, alias=_SESSION_COOKIE_NAME),
) -> Optional[Any]:
    return app_context.get_optional_current_user(session_token=session_token)


def require_admin(current_user=Depends(get_current_user)) -> Any:
    if getattr(current_user, "role", None) != "admin":
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Administrator access required")
    return current_user


__all__ = ["get_current_user", "get_optional_current_user", "require_admin"]
