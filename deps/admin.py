# deps/admin.py
from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException, status

from deps.auth import CurrentUser, get_current_user


def require_role(*roles: str) -> Callable[..., CurrentUser]:
    """
    Dependency factory: the token's role must be one of `roles`.
    Admin passes every check.
    """
    allowed = {r.lower() for r in roles} | {"admin"}

    def _dep(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            detail = "ADMIN_REQUIRED" if allowed == {"admin"} else "ROLE_NOT_ALLOWED"
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)
        return user

    return _dep


require_admin = require_role("admin")
