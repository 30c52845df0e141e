# carebook/core/permission.py
from __future__ import annotations

from fastapi import Depends, HTTPException, status

from carebook.core.security import CurrentUser, Role
from carebook.dependencies import get_current_user


def require_roles(*allowed: Role):
    """
    Role guard factory. Example: Depends(require_roles(Role.doctor, Role.admin))
    """
    async def dep(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
        if user.role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="forbidden_role",
            )
        return user
    return dep


def ensure_owner_or_admin(user: CurrentUser, owner_id) -> None:
    # admin → let it pass
    if user.role == Role.admin:
        return
    if str(owner_id) != str(user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="not_owner",
        )
